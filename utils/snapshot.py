"""
Bundled snapshot fallback.

The snapshot is a JSON document with one top-level key per feed (`rain`,
`pm25`, `wind`, `humidity`, `temp`, `twoHr`) plus `_savedAt`. Older snapshots
used flat legacy shapes (`windSpeedStations`/`windDirStations`, top-level
`forecasts`/`area_metadata`, rain readings carrying `value`); the mappers here
accept both and always return the live output records.
"""
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from config import ENV_SNAPSHOT_PATH
from models import (
    ForecastResponse, Pm25Record, RainfallResponse, SnapshotDebugInfo,
    StationRecord, StationValueRecord, WindRecord
)
from utils.geo import distance_to

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

SNAPSHOT_SOURCE = "assets"


def _non_empty(value: Any) -> bool:
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    return value is not None


def _validate_records(model: Type[M], items: Iterable[Any]) -> List[M]:
    records = []
    for item in items or []:
        if not isinstance(item, dict):
            continue
        try:
            records.append(model.model_validate(item))
        except ValidationError as e:
            logger.debug(f"Skipping snapshot {model.__name__} entry: {e.error_count()} validation error(s)")
    return records


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _legacy_rain_value(entry: Dict[str, Any]) -> Any:
    nested = entry.get("readings")
    nested_value = None
    if isinstance(nested, list) and nested and isinstance(nested[0], dict):
        nested_value = nested[0].get("value")
    return _first_present(entry.get("rainfall"), entry.get("value"), nested_value)


def map_rainfall(snapshot: Dict[str, Any], user_coords: Any = None) -> Optional[RainfallResponse]:
    rain = snapshot.get("rain")
    if isinstance(rain, list):
        # Bare list of station entries
        rain = {"stations": rain}
    if not isinstance(rain, dict):
        return None

    stations = rain.get("stations")
    if isinstance(stations, list) and stations:
        records = _validate_records(StationRecord, stations)
    else:
        legacy = rain.get("readings")
        if not isinstance(legacy, list) or not legacy:
            return None
        records = _validate_records(StationRecord, [
            {
                "id": entry.get("id", entry.get("stationId")),
                "name": entry.get("name", ""),
                "location": entry.get("location"),
                "rainfall": _legacy_rain_value(entry),
                "lastHour": entry.get("lastHour"),
            }
            for entry in legacy if isinstance(entry, dict)
        ])
    if not records:
        return None

    if user_coords is not None:
        for record in records:
            distance = distance_to(user_coords, record.location)
            record.distance_km = round(distance, 3) if distance is not None else None

    timestamp = rain.get("timestamp")
    return RainfallResponse(stations=records, timestamp=str(timestamp) if timestamp is not None else None)


def map_pm25(snapshot: Dict[str, Any]) -> List[Pm25Record]:
    return _validate_records(Pm25Record, snapshot.get("pm25") or [])


def map_wind(snapshot: Dict[str, Any]) -> List[WindRecord]:
    wind = snapshot.get("wind")
    if isinstance(wind, list) and wind:
        return _validate_records(WindRecord, wind)

    speeds = snapshot.get("windSpeedStations") or []
    directions = {
        str(d.get("id")): d.get("value")
        for d in snapshot.get("windDirStations") or [] if isinstance(d, dict)
    }
    return _validate_records(WindRecord, [
        {
            "id": s.get("id"),
            "name": s.get("name", ""),
            "location": s.get("location"),
            "speed": s.get("value"),
            "direction": directions.get(str(s.get("id"))),
        }
        for s in speeds if isinstance(s, dict)
    ])


def map_station_values(snapshot: Dict[str, Any], key: str) -> List[StationValueRecord]:
    return _validate_records(StationValueRecord, snapshot.get(key) or [])


def map_forecast(snapshot: Dict[str, Any]) -> Optional[ForecastResponse]:
    two_hr = snapshot.get("twoHr") if isinstance(snapshot.get("twoHr"), dict) else {}
    forecasts = _first_present(two_hr.get("forecasts"), snapshot.get("forecasts")) or []
    metadata = _first_present(two_hr.get("metadata"), two_hr.get("area_metadata"), snapshot.get("area_metadata")) or []
    timestamp = _first_present(two_hr.get("timestamp"), snapshot.get("timestamp"))
    if not forecasts or not metadata:
        return None
    try:
        return ForecastResponse.model_validate({
            "forecasts": forecasts,
            "metadata": metadata,
            "timestamp": str(timestamp) if timestamp is not None else None,
        })
    except ValidationError as e:
        logger.warning(f"⚠️  Snapshot forecast section is invalid: {e.error_count()} validation error(s)")
        return None


class SnapshotProvider:
    """Loads the bundled snapshot once and serves per-feed fallbacks from it."""

    def __init__(self, path: Union[str, Path] = ENV_SNAPSHOT_PATH):
        self.path = Path(path)
        self._data: Optional[Dict[str, Any]] = None
        self._attempted = False
        self.source: Optional[str] = None

    def load(self) -> Optional[Dict[str, Any]]:
        """Return the parsed snapshot, or None when it is missing or unreadable."""
        if self._attempted:
            return self._data
        self._attempted = True
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("top-level JSON value is not an object")
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️  Bundled snapshot {self.path} could not be loaded: {e}")
            self._data = None
            self.source = None
            return None
        self._data = data
        self.source = SNAPSHOT_SOURCE
        logger.info(f"📦 Loaded bundled snapshot from {self.path}")
        return data

    def debug_info(self) -> SnapshotDebugInfo:
        data = self._data or {}
        return SnapshotDebugInfo(source=self.source, path=str(self.path), saved_at=data.get("_savedAt"))

    def select(self, selector: Callable[[Dict[str, Any]], Any], fallback: Any) -> Any:
        """Apply `selector` to the snapshot; `fallback` when there is no snapshot or the result is empty."""
        data = self.load()
        if data is None:
            return fallback
        value = selector(data)
        return value if _non_empty(value) else fallback

    def rainfall(self, user_coords: Any = None) -> RainfallResponse:
        return self.select(lambda s: map_rainfall(s, user_coords), RainfallResponse())

    def pm25(self) -> List[Pm25Record]:
        return self.select(map_pm25, [])

    def wind(self) -> List[WindRecord]:
        return self.select(map_wind, [])

    def humidity(self) -> List[StationValueRecord]:
        return self.select(lambda s: map_station_values(s, "humidity"), [])

    def temperature(self) -> List[StationValueRecord]:
        return self.select(lambda s: map_station_values(s, "temp"), [])

    def forecast(self) -> ForecastResponse:
        return self.select(map_forecast, ForecastResponse())
