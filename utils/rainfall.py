"""Rainfall time-series helpers.

The rainfall feed returns several 5-minute reading sets ("slots"), sometimes
with jittered duplicates for the same nominal time and sometimes only the
latest slot. `normalize_rain_slots` turns the raw sets into a clean,
newest-first window of at most 12 slots spanning 60 minutes.
`RollingRainBuffer` remembers per-station samples across fetches so a
last-hour total can still be approximated when the feed degrades to a single
slot.
"""
import logging
import math
from bisect import insort
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from constants import (
    RAIN_BUCKET_SECONDS, RAIN_MAX_SLOTS, RAIN_WINDOW_SECONDS, ROLLING_RETENTION_SECONDS
)

logger = logging.getLogger(__name__)

TimestampLike = Union[str, int, float, datetime, None]


def parse_timestamp(value: TimestampLike) -> float:
    """Epoch seconds for an ISO-8601 string, datetime or number; 0.0 when unusable.

    Naive datetimes are taken as UTC.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) and value > 0 else 0.0
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return 0.0
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    return 0.0


def _slot_timestamp(slot: Any) -> float:
    if isinstance(slot, dict):
        return parse_timestamp(slot.get("timestamp"))
    return parse_timestamp(getattr(slot, "timestamp", None))


def normalize_rain_slots(reading_sets: Iterable[Any]) -> List[Any]:
    """Newest-first, bucket-deduplicated slots covering at most the last 60 minutes.

    Two slots in the same 5-minute bucket collapse to the newer one. The walk
    stops at the first slot older than newest - 60 min, or after 12 buckets.
    """
    ordered = sorted(reading_sets or [], key=_slot_timestamp, reverse=True)
    if not ordered:
        return []

    newest = _slot_timestamp(ordered[0])
    if not newest:
        return []

    cutoff = newest - RAIN_WINDOW_SECONDS
    seen_buckets = set()
    window = []
    for slot in ordered:
        ts = _slot_timestamp(slot)
        if not ts or ts < cutoff:
            break
        bucket = math.floor(ts / RAIN_BUCKET_SECONDS)
        if bucket in seen_buckets:
            continue
        seen_buckets.add(bucket)
        window.append(slot)
        if len(window) >= RAIN_MAX_SLOTS:
            break
    return window


@dataclass(frozen=True, order=True)
class RollingPoint:
    timestamp: float
    value: float


class RollingRainBuffer:
    """Per-station sliding window of recent 5-minute rainfall samples."""

    def __init__(self, retention_seconds: float = ROLLING_RETENTION_SECONDS,
                 window_seconds: float = RAIN_WINDOW_SECONDS):
        self.retention_seconds = retention_seconds
        self.window_seconds = window_seconds
        self._points: Dict[str, List[RollingPoint]] = {}

    def push(self, station_id: str, timestamp: TimestampLike, value: Any) -> bool:
        """Record one sample. Non-finite values are ignored; negatives clamp to 0.

        A sample with the same timestamp as a stored one replaces it, so
        re-reading the same upstream payload does not double count.
        """
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            return False
        ts = parse_timestamp(timestamp)
        if not ts:
            return False

        point = RollingPoint(ts, max(0.0, float(value)))
        points = self._points.setdefault(station_id, [])
        for index, existing in enumerate(points):
            if existing.timestamp == ts:
                points[index] = point
                break
        else:
            insort(points, point)
        self._prune(station_id)
        return True

    def _prune(self, station_id: str) -> List[RollingPoint]:
        points = self._points.get(station_id)
        if not points:
            return []
        cutoff = points[-1].timestamp - self.retention_seconds
        if points[0].timestamp < cutoff:
            points[:] = [p for p in points if p.timestamp >= cutoff]
        return points

    def points(self, station_id: str) -> List[RollingPoint]:
        return list(self._prune(station_id))

    def _in_window(self, station_id: str, reference: TimestampLike) -> List[RollingPoint]:
        ref = parse_timestamp(reference)
        if not ref:
            return []
        start = ref - self.window_seconds
        return [p for p in self.points(station_id) if start <= p.timestamp <= ref]

    def sum_last_hour(self, station_id: str, reference: TimestampLike) -> Optional[float]:
        """Sum of samples in [reference - 60 min, reference]; None when there are none."""
        window = self._in_window(station_id, reference)
        if not window:
            return None
        return sum(p.value for p in window)

    def coverage_minutes(self, station_id: str, reference: TimestampLike) -> float:
        """Minutes between the earliest in-window sample and the reference, capped at 60."""
        window = self._in_window(station_id, reference)
        if not window:
            return 0.0
        ref = parse_timestamp(reference)
        minutes = (ref - window[0].timestamp) / 60.0
        return min(self.window_seconds / 60.0, max(0.0, minutes))

    def stations(self) -> List[str]:
        return list(self._points)

    def __len__(self) -> int:
        return sum(len(points) for points in self._points.values())
