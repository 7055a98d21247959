"""Great-circle distance and nearest-neighbour helpers."""
import math
from typing import Any, Callable, Iterable, Optional, Tuple, TypeVar

from constants import EARTH_RADIUS_KM

T = TypeVar("T")


def get_distance_from_lat_lon_in_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def lat_lng(location: Any) -> Optional[Tuple[float, float]]:
    """(lat, lng) from a GeoPoint-like object or a dict; None when either is not numeric."""
    if location is None:
        return None
    if isinstance(location, dict):
        lat = location.get("latitude", location.get("lat"))
        lng = location.get("longitude", location.get("lng", location.get("lon")))
    else:
        lat = getattr(location, "latitude", None)
        lng = getattr(location, "longitude", None)
    lat, lng = _as_number(lat), _as_number(lng)
    if lat is None or lng is None:
        return None
    return lat, lng


def _default_location(candidate: Any) -> Any:
    if isinstance(candidate, dict):
        return candidate.get("location") or candidate.get("label_location") or candidate.get("labelLocation")
    return getattr(candidate, "location", None) or getattr(candidate, "label_location", None)


def distance_to(point: Any, location: Any) -> Optional[float]:
    origin, target = lat_lng(point), lat_lng(location)
    if origin is None or target is None:
        return None
    return get_distance_from_lat_lon_in_km(origin[0], origin[1], target[0], target[1])


def nearest(candidates: Iterable[T], point: Any,
            location_of: Callable[[T], Any] = _default_location) -> Optional[T]:
    """Candidate closest to `point`, skipping ones without numeric coordinates.

    Ties keep the first candidate seen.
    """
    if lat_lng(point) is None:
        return None
    best, best_distance = None, math.inf
    for candidate in candidates or []:
        distance = distance_to(point, location_of(candidate))
        if distance is not None and distance < best_distance:
            best, best_distance = candidate, distance
    return best


def get_nearest_forecast_area(user_coords: Any, metadata: Iterable[Any]) -> Optional[str]:
    """Name of the forecast area whose label location is closest to the user."""
    area = nearest(metadata, user_coords)
    if area is None:
        return None
    return area.get("name") if isinstance(area, dict) else getattr(area, "name", None)
