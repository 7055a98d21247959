"""OpenWeather augmentation: current conditions and the 5-day / 3-hour forecast.

OpenWeather is optional. Without `OPENWEATHER_API_KEY`, or on any failure,
these helpers return None and callers fall back to NEA data alone.
"""
import logging
import math
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from config import OPENWEATHER_API_KEY
from constants import OW_CURRENT_TTL_SECONDS, OW_CURRENT_URL, OW_FORECAST_TTL_SECONDS, OW_FORECAST_URL
from exceptions import FetchError
from models import DailyOutlook, NowWeather
from utils.geo import lat_lng

logger = logging.getLogger(__name__)


def build_ow_url(base_url: str, coords: Any, lang: str, api_key: str, cnt: Optional[int] = None) -> Optional[str]:
    """Query URL for `coords` rounded to 3 dp, so nearby callers share one cache entry."""
    point = lat_lng(coords)
    if point is None:
        return None
    params = {
        "lat": f"{point[0]:.3f}",
        "lon": f"{point[1]:.3f}",
        "appid": api_key,
        "units": "metric",
        "lang": lang or "en",
    }
    if cnt:
        params["cnt"] = str(int(cnt))
    return f"{base_url}?{urlencode(params)}"


async def _fetch_ow(client, url: Optional[str], label: str, ttl: float) -> Optional[Dict[str, Any]]:
    if url is None:
        return None
    try:
        payload = await client.fetch_json(url, label, ttl=ttl)
    except FetchError:
        # Already logged (throttled) by the client
        return None
    return payload if isinstance(payload, dict) else None


async def fetch_ow_current(client, coords: Any, lang: str = "en",
                           api_key: str = OPENWEATHER_API_KEY) -> Optional[Dict[str, Any]]:
    if not api_key:
        logger.debug("OpenWeather key not configured - skipping current conditions")
        return None
    url = build_ow_url(OW_CURRENT_URL, coords, lang, api_key)
    return await _fetch_ow(client, url, "OW current", OW_CURRENT_TTL_SECONDS)


async def fetch_ow_forecast_5d(client, coords: Any, lang: str = "en", cnt: Optional[int] = None,
                               api_key: str = OPENWEATHER_API_KEY) -> Optional[Dict[str, Any]]:
    if not api_key:
        logger.debug("OpenWeather key not configured - skipping 5-day forecast")
        return None
    url = build_ow_url(OW_FORECAST_URL, coords, lang, api_key, cnt)
    return await _fetch_ow(client, url, "OW forecast", OW_FORECAST_TTL_SECONDS)


def _dig(data: Any, *keys: Any) -> Any:
    for key in keys:
        if isinstance(data, dict):
            data = data.get(key)
        elif isinstance(data, list) and isinstance(key, int) and -len(data) <= key < len(data):
            data = data[key]
        else:
            return None
    return data


def _utc_from_epoch(value: Any) -> Optional[datetime]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return None


def _iso_from_epoch(value: Any) -> Optional[str]:
    moment = _utc_from_epoch(value) if value else None
    return moment.isoformat().replace("+00:00", "Z") if moment else None


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)


def build_now_weather(area: Optional[str], nea_forecast_text: Optional[str],
                      ow: Optional[Dict[str, Any]], nea_available: bool) -> NowWeather:
    ow = ow or {}
    return NowWeather(
        area=area,
        nea_forecast_text=nea_forecast_text,
        temp=_dig(ow, "main", "temp"),
        feels_like=_dig(ow, "main", "feels_like"),
        pressure=_dig(ow, "main", "pressure"),
        humidity=_dig(ow, "main", "humidity"),
        visibility=ow.get("visibility"),
        wind_speed=_dig(ow, "wind", "speed"),
        wind_deg=_dig(ow, "wind", "deg"),
        clouds=_dig(ow, "clouds", "all"),
        rain_1h=_dig(ow, "rain", "1h"),
        timestamp=_iso_from_epoch(ow.get("dt")),
        source={"nea": nea_available, "openweather": bool(ow)},
    )


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def group_ow_forecast_by_day(ow5d: Optional[Dict[str, Any]]) -> List[DailyOutlook]:
    """Collapse 3-hourly forecast slots into one summary per UTC calendar day."""
    slots = (ow5d or {}).get("list")
    if not isinstance(slots, list):
        return []
    by_day: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
    for slot in slots:
        if not isinstance(slot, dict):
            continue
        moment = _utc_from_epoch(_number(slot.get("dt")) or 0.0)
        if moment is None:
            logger.debug(f"Skipping OpenWeather slot with unusable dt: {slot.get('dt')!r}")
            continue
        day = moment.strftime("%Y-%m-%d")
        by_day.setdefault(day, []).append(slot)

    days = []
    for day, day_slots in by_day.items():
        temps = [t for t in (_number(_dig(s, "main", "temp")) for s in day_slots) if t is not None]
        pops = [_number(s.get("pop")) or 0.0 for s in day_slots]
        midday = next((s for s in day_slots if "12:00:00" in str(s.get("dt_txt") or "")), day_slots[0])
        days.append(DailyOutlook(
            date=day,
            min=min(temps) if temps else None,
            max=max(temps) if temps else None,
            pop_max=max([0.0] + pops),
            icon=_text(_dig(midday, "weather", 0, "icon")),
            desc=_text(_dig(midday, "weather", 0, "description")),
            slots=day_slots,
        ))
    return days
