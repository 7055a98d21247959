"""Utility functions for the application."""
from .sanitization import sanitize_url, sanitize_for_logging
from .geo import get_distance_from_lat_lon_in_km, get_nearest_forecast_area, nearest
from .rainfall import RollingRainBuffer, normalize_rain_slots, parse_timestamp
from .flood_risk import estimate_flood_risk

__all__ = [
    "sanitize_url",
    "sanitize_for_logging",
    "get_distance_from_lat_lon_in_km",
    "get_nearest_forecast_area",
    "nearest",
    "RollingRainBuffer",
    "normalize_rain_slots",
    "parse_timestamp",
    "estimate_flood_risk",
]
