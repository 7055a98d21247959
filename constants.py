"""Upstream feed endpoints and data-layer constants."""
from config import NEA_BASE_URL, OPENWEATHER_BASE_URL

# data.gov.sg real-time feeds (one fixed URL per feed)
NEA_FORECAST_URL = f"{NEA_BASE_URL}/two-hr-forecast"
NEA_RAINFALL_URL = f"{NEA_BASE_URL}/rainfall"
NEA_PM25_URL = f"{NEA_BASE_URL}/pm25"
NEA_WIND_SPEED_URL = f"{NEA_BASE_URL}/wind-speed"
NEA_WIND_DIRECTION_URL = f"{NEA_BASE_URL}/wind-direction"
NEA_HUMIDITY_URL = f"{NEA_BASE_URL}/relative-humidity"
NEA_TEMPERATURE_URL = f"{NEA_BASE_URL}/air-temperature"

OW_CURRENT_URL = f"{OPENWEATHER_BASE_URL}/weather"
OW_FORECAST_URL = f"{OPENWEATHER_BASE_URL}/forecast"

# Cache durations (seconds)
FORECAST_TTL_SECONDS = 5 * 60
PM25_TTL_SECONDS = 5 * 60
HUMIDITY_TTL_SECONDS = 2 * 60
TEMPERATURE_TTL_SECONDS = 2 * 60
RAINFALL_TTL_SECONDS = 60
WIND_TTL_SECONDS = 60
OW_CURRENT_TTL_SECONDS = 2 * 60
OW_FORECAST_TTL_SECONDS = 45 * 60

# Rainfall window
RAIN_BUCKET_SECONDS = 5 * 60
RAIN_WINDOW_SECONDS = 60 * 60
RAIN_MAX_SLOTS = 12
ROLLING_RETENTION_SECONDS = 65 * 60

# 429 handling
RETRY_AFTER_MAX_SECONDS = 2.0
RETRY_JITTER_MIN_SECONDS = 0.8
RETRY_JITTER_SPAN_SECONDS = 0.4

EARTH_RADIUS_KM = 6371.0
