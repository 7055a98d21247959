"""
Tests for flood-risk classification.

Tests cover:
- Threshold boundaries for current and last-hour rainfall
- Missing values and allow_null
- Coverage gating
- Threshold overrides
"""

import pytest

from utils.flood_risk import estimate_flood_risk


class TestThresholds:
    @pytest.mark.parametrize("now, hour, expected", [
        (11, 0, "High"),
        (6, 0, "Moderate"),
        (0, 0, "Low"),
        (10, 0, "Moderate"),
        (5, 0, "Low"),
        (0, 31, "High"),
        (0, 30, "Moderate"),
        (0, 16, "Moderate"),
        (0, 15, "Low"),
        (12, 35, "High"),
    ])
    def test_levels(self, now, hour, expected):
        assert estimate_flood_risk(now, hour) == expected

    def test_last_hour_is_optional(self):
        assert estimate_flood_risk(11) == "High"

    def test_overridden_thresholds(self):
        assert estimate_flood_risk(3, 0, now_high=2) == "High"
        assert estimate_flood_risk(0, 8, hour_moderate=5) == "Moderate"


class TestMissingValues:
    def test_both_missing_with_allow_null_is_unknown(self):
        assert estimate_flood_risk(None, None, allow_null=True) is None

    def test_both_missing_without_allow_null_is_low(self):
        assert estimate_flood_risk(None, None) == "Low"

    def test_one_missing_counts_as_zero(self):
        assert estimate_flood_risk(None, 31, allow_null=True) == "High"
        assert estimate_flood_risk(6, None, allow_null=True) == "Moderate"

    def test_non_finite_counts_as_missing(self):
        assert estimate_flood_risk(float("nan"), None, allow_null=True) is None


class TestCoverageGate:
    def test_low_coverage_is_low(self):
        assert estimate_flood_risk(12, 35, coverage_minutes=10, min_coverage=30) == "Low"

    def test_low_coverage_with_allow_null_is_unknown(self):
        assert estimate_flood_risk(12, 35, coverage_minutes=10, min_coverage=30, allow_null=True) is None

    def test_sufficient_coverage_classifies_normally(self):
        assert estimate_flood_risk(12, 35, coverage_minutes=30, min_coverage=30) == "High"

    def test_unknown_coverage_is_not_gated(self):
        assert estimate_flood_risk(12, 35, min_coverage=30) == "High"
