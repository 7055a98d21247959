"""Fakes and payload builders shared by the test suite."""
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
from unittest.mock import AsyncMock

from cache_utils import TTLCache, WarningThrottle
from utils.fetch_client import FetchResponse, RateLimitedFetchClient, always_online

SGT = timezone(timedelta(hours=8))
BASE_TIME = datetime(2026, 10, 12, 14, 0, 0, tzinfo=SGT)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """Stands in for RateLimitedFetchClient._request.

    Routes map a URL to a FetchResponse, an exception, or a list of those
    served in order (the last one repeats).
    """

    def __init__(self):
        self.routes: Dict[str, Any] = {}
        self.calls: List[str] = []
        self.gate = None

    def set_json(self, url: str, body: Any, status: int = 200, headers: Optional[Dict[str, str]] = None):
        self.routes[url] = json_response(body, status, headers)

    def set_sequence(self, url: str, *responses: Any):
        self.routes[url] = list(responses)

    def set_error(self, url: str, exc: BaseException):
        self.routes[url] = exc

    def count(self, url: str) -> int:
        return self.calls.count(url)

    async def __call__(self, url: str, timeout: float) -> FetchResponse:
        self.calls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        route = self.routes.get(url)
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if route is None:
            return FetchResponse(404, {}, "{}")
        if isinstance(route, BaseException):
            raise route
        return route


def json_response(body: Any, status: int = 200, headers: Optional[Dict[str, str]] = None) -> FetchResponse:
    text = body if isinstance(body, str) else json.dumps(body)
    return FetchResponse(status, headers or {}, text)


def make_client(upstream: FakeUpstream, clock: FakeClock, **kwargs) -> RateLimitedFetchClient:
    kwargs.setdefault("connectivity", always_online)
    kwargs.setdefault("sleep", AsyncMock())
    client = RateLimitedFetchClient(
        cache=TTLCache(clock=clock),
        throttle=WarningThrottle(60, clock=clock),
        **kwargs,
    )
    client._request = upstream
    return client


def write_snapshot(path: Path, document: Dict[str, Any]) -> Path:
    path.write_text(json.dumps(document), encoding="utf-8")
    return path


def iso(minutes_before: float = 0, base: datetime = BASE_TIME) -> str:
    return (base - timedelta(minutes=minutes_before)).isoformat()


def station(station_id: str, lat: float, lng: float, name: Optional[str] = None) -> Dict[str, Any]:
    return {"id": station_id, "name": name or f"Station {station_id}",
            "location": {"latitude": lat, "longitude": lng}}


def reading_set(timestamp: str, values: Dict[str, float]) -> Dict[str, Any]:
    return {"timestamp": timestamp,
            "data": [{"stationId": sid, "value": value} for sid, value in values.items()]}


def station_feed(stations: Iterable[Dict[str, Any]], readings: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    return {"code": 0, "data": {"stations": list(stations), "readings": list(readings)}}


def rainfall_payload(stations: Iterable[Dict[str, Any]],
                     slots: Iterable[Tuple[str, Dict[str, float]]]) -> Dict[str, Any]:
    return station_feed(stations, [reading_set(ts, values) for ts, values in slots])


def forecast_payload(areas: Iterable[Tuple[str, float, float, str]], timestamp: str = None) -> Dict[str, Any]:
    areas = list(areas)
    return {
        "code": 0,
        "data": {
            "area_metadata": [
                {"name": name, "label_location": {"latitude": lat, "longitude": lng}}
                for name, lat, lng, _ in areas
            ],
            "items": [{
                "timestamp": timestamp or iso(),
                "forecasts": [{"area": name, "forecast": text} for name, _, _, text in areas],
            }],
        },
    }


def pm25_payload(values: Dict[str, float]) -> Dict[str, Any]:
    centres = {
        "west": (1.35735, 103.7), "east": (1.35735, 103.94), "central": (1.35735, 103.82),
        "south": (1.29587, 103.82), "north": (1.41803, 103.82),
    }
    return {
        "code": 0,
        "data": {
            "regionMetadata": [
                {"name": name, "labelLocation": {"latitude": lat, "longitude": lng}}
                for name, (lat, lng) in centres.items()
            ],
            "items": [{"timestamp": iso(), "readings": {"pm25_one_hourly": values}}],
        },
    }
