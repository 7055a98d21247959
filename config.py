"""Application configuration and environment variables."""
import os
import logging
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent

# Environment and debug settings
ENVIRONMENT = os.getenv("ENVIRONMENT", os.getenv("ENV", "development")).lower()
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Prevent DEBUG mode in production
if ENVIRONMENT == "production" and DEBUG:
    import logging as _logging
    _logging.basicConfig(level=_logging.INFO)
    _temp_logger = _logging.getLogger(__name__)
    _temp_logger.error("❌ DEBUG mode cannot be enabled in production environment")
    raise ValueError("DEBUG=true is forbidden in production. Set ENVIRONMENT=production and DEBUG=false")

# Logging configuration
LOG_VERBOSITY = os.getenv("LOG_VERBOSITY", "normal").lower()  # "minimal", "normal", "verbose"

# Upstream feeds - strip whitespace/newlines from API keys
NEA_BASE_URL = os.getenv("NEA_BASE_URL", "https://api-open.data.gov.sg/v2/real-time/api").strip().rstrip("/")
OPENWEATHER_API_KEY = os.getenv("OPENWEATHER_API_KEY", "").strip()
OPENWEATHER_BASE_URL = os.getenv("OPENWEATHER_BASE_URL", "https://api.openweathermap.org/data/2.5").strip().rstrip("/")

# HTTP timeout configuration
HTTP_TIMEOUT_FEED = float(os.getenv("HTTP_TIMEOUT_FEED", "8.0"))  # Default per-call bound in seconds
DEFAULT_FEED_TTL_SECONDS = float(os.getenv("DEFAULT_FEED_TTL_SECONDS", "60"))

# Connectivity check (fail fast with "offline" before any network call)
CONNECTIVITY_CHECK_ENABLED = os.getenv("CONNECTIVITY_CHECK_ENABLED", "true").lower() == "true"
CONNECTIVITY_TIMEOUT = float(os.getenv("CONNECTIVITY_TIMEOUT", "2.0"))

# Upstream-failure warnings are emitted at most once per label per window
WARN_THROTTLE_SECONDS = float(os.getenv("WARN_THROTTLE_SECONDS", "60"))

# Bundled snapshot used when live feeds are unavailable
ENV_SNAPSHOT_PATH = Path(os.getenv("ENV_SNAPSHOT_PATH", str(BASE_DIR / "assets" / "env_snapshot.json")))

# Flood risk: minimum last-hour coverage before the accumulated sum is trusted
FLOOD_MIN_COVERAGE_MINUTES = float(os.getenv("FLOOD_MIN_COVERAGE_MINUTES", "0"))

# CORS: comma-separated origins and/or an origin regex for the dashboard
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "").strip()
CORS_ORIGIN_REGEX = os.getenv("CORS_ORIGIN_REGEX", "").strip()


def get_log_level() -> int:
    """Map DEBUG/LOG_VERBOSITY onto a logging level."""
    if LOG_VERBOSITY == "minimal":
        return logging.WARNING
    if DEBUG or LOG_VERBOSITY == "verbose":
        return logging.DEBUG
    return logging.INFO
