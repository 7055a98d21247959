"""
Dataset aggregators for the Singapore environmental feeds.

`EnvDataService` owns the long-lived state (fetch client with its cache and
in-flight tracker, the rolling rainfall buffer and the snapshot provider).
One instance is created at application startup; tests build their own.

Every feed follows the same two steps:
1. a live attempt (fetch -> validate -> reshape) that yields a FeedResult
2. if the attempt failed, a throttled warning and the snapshot fallback

Callers always receive well-formed records; failures never propagate.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from config import OPENWEATHER_API_KEY
from constants import (
    FORECAST_TTL_SECONDS, HUMIDITY_TTL_SECONDS, NEA_FORECAST_URL, NEA_HUMIDITY_URL,
    NEA_PM25_URL, NEA_RAINFALL_URL, NEA_TEMPERATURE_URL, NEA_WIND_DIRECTION_URL,
    NEA_WIND_SPEED_URL, PM25_TTL_SECONDS, RAINFALL_TTL_SECONDS, RAIN_BUCKET_SECONDS,
    RAIN_WINDOW_SECONDS, TEMPERATURE_TTL_SECONDS, WIND_TTL_SECONDS
)
from exceptions import EmptyPayloadError, FetchError, MalformedPayloadError, describe_fetch_error
from models import (
    DailyOutlook, ForecastPayload, ForecastResponse, NowWeather, Pm25Payload, Pm25Record,
    RainfallResponse, SnapshotDebugInfo, StationFeedPayload, StationRecord,
    StationValueRecord, WindRecord
)
from utils.fetch_client import RateLimitedFetchClient
from utils.geo import distance_to, get_nearest_forecast_area
from utils.openweather import build_now_weather, fetch_ow_current, fetch_ow_forecast_5d, group_ow_forecast_by_day
from utils.rainfall import RollingRainBuffer, normalize_rain_slots
from utils.snapshot import SnapshotProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

LIVE = "live"
FALLBACK = "fallback"
EMPTY = "empty"
# Only seen between steps: the live attempt did not produce data
FAILED = "failed"


@dataclass
class FeedResult(Generic[T]):
    """Outcome of one aggregator call.

    status is "live" (fresh upstream data), "fallback" (served from the
    bundled snapshot) or "empty" (neither had data; `data` is the empty shape).
    """
    status: str
    data: T
    error: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.status == LIVE


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    if isinstance(value, RainfallResponse):
        return not value.stations
    if isinstance(value, ForecastResponse):
        return not value.forecasts or not value.metadata
    return False


def _parse(model: Type[M], raw: Any, label: str) -> M:
    if not isinstance(raw, dict):
        raise MalformedPayloadError(label, "expected a JSON object")
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise MalformedPayloadError(label, f"{e.error_count()} schema error(s)") from e


def _round(value: Optional[float], digits: int = 2) -> Optional[float]:
    return round(value, digits) if value is not None else None


def _distance_km(user_coords: Any, location: Any) -> Optional[float]:
    if user_coords is None:
        return None
    return _round(distance_to(user_coords, location), 3)


class EnvDataService:
    """Aggregates every feed and falls back to the bundled snapshot on failure."""

    def __init__(
        self,
        client: Optional[RateLimitedFetchClient] = None,
        rain_buffer: Optional[RollingRainBuffer] = None,
        snapshot: Optional[SnapshotProvider] = None,
        ow_api_key: str = OPENWEATHER_API_KEY,
    ):
        self.client = client or RateLimitedFetchClient()
        self.rain_buffer = rain_buffer or RollingRainBuffer()
        self.snapshot = snapshot or SnapshotProvider()
        self.ow_api_key = ow_api_key
        self.throttle = self.client.throttle

    # ------------------------------------------------------------------
    # Shared live -> fallback flow
    # ------------------------------------------------------------------

    async def _attempt(self, live: Callable[[], Awaitable[T]]) -> FeedResult[Optional[T]]:
        try:
            data = await live()
        except FetchError as exc:
            return FeedResult(FAILED, None, describe_fetch_error(exc))
        return FeedResult(LIVE, data)

    def _resolve(self, attempt: FeedResult, operation: str, fallback: Callable[[], T]) -> FeedResult[T]:
        if attempt.status == LIVE:
            return attempt
        self.throttle.warn(operation, f"{operation} -> fallback to snapshot: {attempt.error}")
        data = fallback()
        status = EMPTY if _is_empty(data) else FALLBACK
        if status == EMPTY:
            logger.info(f"📭 {operation}: snapshot has no data either - returning empty result")
        return FeedResult(status, data, attempt.error)

    # ------------------------------------------------------------------
    # 2-hour forecast
    # ------------------------------------------------------------------

    async def _forecast_live(self) -> ForecastResponse:
        label = "NEA 2hr forecast"
        raw = await self.client.fetch_json(NEA_FORECAST_URL, label, ttl=FORECAST_TTL_SECONDS)
        payload = _parse(ForecastPayload, raw, label)
        item = payload.data.items[0] if payload.data.items else None
        forecasts = item.forecasts if item else []
        metadata = payload.data.area_metadata
        if not forecasts or not metadata:
            raise EmptyPayloadError(label, "2hr forecast payload empty")
        return ForecastResponse(forecasts=forecasts, metadata=metadata, timestamp=item.timestamp)

    async def fetch_weather_forecast_result(self) -> FeedResult[ForecastResponse]:
        attempt = await self._attempt(self._forecast_live)
        return self._resolve(attempt, "fetch_weather_forecast", self.snapshot.forecast)

    async def fetch_weather_forecast(self) -> ForecastResponse:
        return (await self.fetch_weather_forecast_result()).data

    # ------------------------------------------------------------------
    # Rainfall (latest 5-min slot + last-hour accumulation)
    # ------------------------------------------------------------------

    async def _rainfall_live(self, user_coords: Any) -> RainfallResponse:
        label = "NEA rainfall"
        raw = await self.client.fetch_json(NEA_RAINFALL_URL, label, ttl=RAINFALL_TTL_SECONDS)
        payload = _parse(StationFeedPayload, raw, label)
        stations, reading_sets = payload.data.stations, payload.data.readings
        if not stations or not reading_sets:
            raise EmptyPayloadError(label, "rainfall payload empty")

        window = normalize_rain_slots(reading_sets)
        if not window:
            logger.info("🌧️  Rainfall payload has no usable timestamps - returning stations without values")
            return RainfallResponse(
                stations=[
                    StationRecord(id=s.id, name=s.name, location=s.location,
                                  distance_km=_distance_km(user_coords, s.location))
                    for s in stations
                ],
                timestamp=None,
            )

        for slot in window:
            for reading in slot.data:
                self.rain_buffer.push(reading.station_id, slot.timestamp, reading.value)

        newest = window[0]
        latest = newest.values_by_station()
        per_slot = [slot.values_by_station() for slot in window]
        strict = len(window) >= 2
        strict_coverage = float(min(RAIN_WINDOW_SECONDS, len(window) * RAIN_BUCKET_SECONDS) / 60)

        records = []
        for station in stations:
            if strict:
                values = [max(0.0, v[station.id]) for v in per_slot if v.get(station.id) is not None]
                last_hour = sum(values) if values else None
                coverage = strict_coverage if values else 0.0
            else:
                last_hour = self.rain_buffer.sum_last_hour(station.id, newest.timestamp)
                coverage = self.rain_buffer.coverage_minutes(station.id, newest.timestamp)
            records.append(StationRecord(
                id=station.id,
                name=station.name,
                location=station.location,
                rainfall=_round(latest.get(station.id)),
                last_hour=_round(last_hour),
                coverage_minutes=coverage,
                distance_km=_distance_km(user_coords, station.location),
            ))

        logger.debug(f"🌧️  Rainfall: {len(records)} stations, {len(window)} slot(s), strict={strict}")
        return RainfallResponse(stations=records, timestamp=newest.timestamp)

    async def fetch_rainfall_data_result(self, user_coords: Any = None) -> FeedResult[RainfallResponse]:
        attempt = await self._attempt(lambda: self._rainfall_live(user_coords))
        return self._resolve(attempt, "fetch_rainfall_data", lambda: self.snapshot.rainfall(user_coords))

    async def fetch_rainfall_data(self, user_coords: Any = None) -> RainfallResponse:
        return (await self.fetch_rainfall_data_result(user_coords)).data

    # ------------------------------------------------------------------
    # PM2.5
    # ------------------------------------------------------------------

    async def _pm25_live(self) -> List[Pm25Record]:
        label = "NEA PM2.5"
        raw = await self.client.fetch_json(NEA_PM25_URL, label, ttl=PM25_TTL_SECONDS)
        payload = _parse(Pm25Payload, raw, label)
        regions = payload.data.region_metadata
        if not regions:
            raise EmptyPayloadError(label, "PM2.5 payload empty")
        items = payload.data.items
        readings = items[0].readings.get("pm25_one_hourly", {}) if items else {}
        return [
            Pm25Record(name=region.name, location=region.label_location, value=readings.get(region.name))
            for region in regions
        ]

    async def fetch_pm25_data_result(self) -> FeedResult[List[Pm25Record]]:
        attempt = await self._attempt(self._pm25_live)
        return self._resolve(attempt, "fetch_pm25_data", self.snapshot.pm25)

    async def fetch_pm25_data(self) -> List[Pm25Record]:
        return (await self.fetch_pm25_data_result()).data

    # ------------------------------------------------------------------
    # Wind (speed + direction feeds joined by station id)
    # ------------------------------------------------------------------

    async def _wind_live(self) -> List[WindRecord]:
        speed_raw, direction_raw = await asyncio.gather(
            self.client.fetch_json(NEA_WIND_SPEED_URL, "NEA wind-speed", ttl=WIND_TTL_SECONDS),
            self.client.fetch_json(NEA_WIND_DIRECTION_URL, "NEA wind-direction", ttl=WIND_TTL_SECONDS),
        )
        speed = _parse(StationFeedPayload, speed_raw, "NEA wind-speed")
        direction = _parse(StationFeedPayload, direction_raw, "NEA wind-direction")
        stations = speed.data.stations
        if not stations:
            raise EmptyPayloadError("NEA wind", "wind payload empty")

        speeds = speed.data.readings[0].values_by_station() if speed.data.readings else {}
        directions = direction.data.readings[0].values_by_station() if direction.data.readings else {}
        return [
            WindRecord(id=s.id, name=s.name, location=s.location,
                       speed=speeds.get(s.id), direction=directions.get(s.id))
            for s in stations
        ]

    async def fetch_wind_data_result(self) -> FeedResult[List[WindRecord]]:
        attempt = await self._attempt(self._wind_live)
        return self._resolve(attempt, "fetch_wind_data", self.snapshot.wind)

    async def fetch_wind_data(self) -> List[WindRecord]:
        return (await self.fetch_wind_data_result()).data

    # ------------------------------------------------------------------
    # Humidity / air temperature (same station feed shape)
    # ------------------------------------------------------------------

    async def _station_values_live(self, url: str, label: str, ttl: float) -> List[StationValueRecord]:
        raw = await self.client.fetch_json(url, label, ttl=ttl)
        payload = _parse(StationFeedPayload, raw, label)
        stations = payload.data.stations
        if not stations:
            raise EmptyPayloadError(label, f"{label} payload empty")
        values = payload.data.readings[0].values_by_station() if payload.data.readings else {}
        return [
            StationValueRecord(id=s.id, name=s.name, location=s.location, value=values.get(s.id))
            for s in stations
        ]

    async def fetch_humidity_data_result(self) -> FeedResult[List[StationValueRecord]]:
        attempt = await self._attempt(
            lambda: self._station_values_live(NEA_HUMIDITY_URL, "NEA humidity", HUMIDITY_TTL_SECONDS))
        return self._resolve(attempt, "fetch_humidity_data", self.snapshot.humidity)

    async def fetch_humidity_data(self) -> List[StationValueRecord]:
        return (await self.fetch_humidity_data_result()).data

    async def fetch_temperature_data_result(self) -> FeedResult[List[StationValueRecord]]:
        attempt = await self._attempt(
            lambda: self._station_values_live(NEA_TEMPERATURE_URL, "NEA temperature", TEMPERATURE_TTL_SECONDS))
        return self._resolve(attempt, "fetch_temperature_data", self.snapshot.temperature)

    async def fetch_temperature_data(self) -> List[StationValueRecord]:
        return (await self.fetch_temperature_data_result()).data

    # ------------------------------------------------------------------
    # Convenience aggregators
    # ------------------------------------------------------------------

    async def get_nearest_forecast_result(
        self, user_coords: Any
    ) -> Tuple[Optional[str], Optional[str], FeedResult[ForecastResponse]]:
        """(area name, its forecast text, the forecast result used) for the user's position."""
        result = await self.fetch_weather_forecast_result()
        forecast = result.data
        if not forecast.metadata or user_coords is None:
            return None, None, result
        area = get_nearest_forecast_area(user_coords, forecast.metadata)
        text = next((f.forecast for f in forecast.forecasts if f.area == area), None) if area else None
        return area, text, result

    async def get_nearest_forecast(self, user_coords: Any) -> Tuple[Optional[str], Optional[str], ForecastResponse]:
        area, text, result = await self.get_nearest_forecast_result(user_coords)
        return area, text, result.data

    async def get_now_weather(self, user_coords: Any, lang: str = "en") -> NowWeather:
        area, text, forecast = await self.get_nearest_forecast(user_coords)
        ow = await fetch_ow_current(self.client, user_coords, lang, api_key=self.ow_api_key)
        return build_now_weather(area, text, ow, nea_available=not _is_empty(forecast))

    async def get_ow_outlook(self, user_coords: Any, lang: str = "en", cnt: Optional[int] = None) -> List[DailyOutlook]:
        ow5d = await fetch_ow_forecast_5d(self.client, user_coords, lang, cnt, api_key=self.ow_api_key)
        return group_ow_forecast_by_day(ow5d)

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    def load_env_datasets_from_file(self) -> Optional[Dict[str, Any]]:
        return self.snapshot.load()

    def get_snapshot_debug_info(self) -> SnapshotDebugInfo:
        return self.snapshot.debug_info()

    def stats(self) -> Dict[str, Any]:
        return {
            "cache_entries": len(self.client.cache),
            "cache_stats": dict(self.client.cache.stats),
            "in_flight": len(self.client.inflight),
            "in_flight_shared": self.client.inflight.shared,
            "network_calls": self.client.network_calls,
            "rolling_points": len(self.rain_buffer),
            "rolling_stations": len(self.rain_buffer.stations()),
            "suppressed_warnings": self.throttle.suppressed,
        }

    async def close(self) -> None:
        await self.client.close()
