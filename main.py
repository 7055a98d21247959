# Standard library imports
import logging
from contextlib import asynccontextmanager

# Third-party imports
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import CORS_ORIGIN_REGEX, CORS_ORIGINS, DEBUG, ENVIRONMENT, get_log_level

logging.basicConfig(
    level=get_log_level(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)

# Reduce verbosity of noisy third-party loggers
logging.getLogger('aiohttp').setLevel(logging.WARNING)
logging.getLogger('asyncio').setLevel(logging.WARNING)

# Import routers
from routers.env import router as env_router
from routers.health import router as health_router
from routers.root import router as root_router
from routers.dependencies import initialize_dependencies
from exceptions import register_exception_handlers
from middleware import log_requests_middleware, request_id_middleware
from env_data import EnvDataService
from version import __version__


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown events."""
    # Startup
    service = EnvDataService()
    initialize_dependencies(service)
    app.state.env_service = service

    # Load the bundled snapshot eagerly so a missing asset shows up at boot
    if service.snapshot.load() is None:
        logger.warning("⚠️  SNAPSHOT: bundled fallback unavailable - failed feeds will return empty data")
    logger.info(f"🚀 Env Data API {__version__} started ({ENVIRONMENT})")

    yield  # Application runs here

    # Shutdown
    if DEBUG:
        logger.info("🛑 APPLICATION SHUTDOWN: Cleaning up resources")
    try:
        await service.close()
        if DEBUG:
            logger.info("✅ HTTP client session closed successfully")
    except Exception as e:
        logger.error(f"⚠️  Error closing HTTP client session: {e}")
    initialize_dependencies(None)


app = FastAPI(
    title="Singapore Env Data API",
    version=__version__,
    lifespan=lifespan,
)

# Register exception handlers from exceptions module
register_exception_handlers(app)

# Include all routers
app.include_router(root_router)
app.include_router(health_router)
app.include_router(env_router)

app.middleware("http")(log_requests_middleware)
app.middleware("http")(request_id_middleware)


def get_cors_origins():
    """Parse CORS origins from environment variable or use defaults."""
    if CORS_ORIGINS:
        return [origin.strip() for origin in CORS_ORIGINS.split(",") if origin.strip()]
    # Default origins for local dashboard development
    return [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8081",
    ]


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_origin_regex=CORS_ORIGIN_REGEX or None,
    allow_credentials=False,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["accept", "content-type", "x-request-id"],
    expose_headers=["X-Data-Source", "X-Request-ID"],
    max_age=600,  # Cache preflight requests for 10 minutes
)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=DEBUG)
