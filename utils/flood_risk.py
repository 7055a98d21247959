"""Flood-risk classification from current and last-hour rainfall."""
import math
from typing import Any, Optional

from config import FLOOD_MIN_COVERAGE_MINUTES

HIGH = "High"
MODERATE = "Moderate"
LOW = "Low"


def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def estimate_flood_risk(
    rainfall_now: Optional[float],
    last_hour: Optional[float] = None,
    *,
    coverage_minutes: Optional[float] = None,
    min_coverage: float = FLOOD_MIN_COVERAGE_MINUTES,
    allow_null: bool = False,
    now_high: float = 10,
    now_moderate: float = 5,
    hour_high: float = 30,
    hour_moderate: float = 15,
) -> Optional[str]:
    """Classify flood risk as "High", "Moderate" or "Low".

    When `coverage_minutes` is given and below `min_coverage` the last-hour total
    is not trusted and the result is "Low" (None with `allow_null`). Missing
    inputs count as 0, except that two missing inputs with `allow_null` give
    None ("unknown" rather than "safe").
    """
    if coverage_minutes is not None and coverage_minutes < min_coverage:
        return None if allow_null else LOW

    now, hour = _finite(rainfall_now), _finite(last_hour)
    if now is None and hour is None and allow_null:
        return None
    now = now or 0.0
    hour = hour or 0.0

    if now > now_high or hour > hour_high:
        return HIGH
    if now > now_moderate or hour > hour_moderate:
        return MODERATE
    return LOW
