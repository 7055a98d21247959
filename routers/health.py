"""Health check and status endpoints."""
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from config import CONNECTIVITY_CHECK_ENABLED, OPENWEATHER_API_KEY
from env_data import EnvDataService
from routers.dependencies import get_env_service
from version import __version__

router = APIRouter()


@router.get("/health")
async def health_check():
    """Simple health check endpoint for load balancers."""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


@router.get("/health/detailed")
async def detailed_health_check(service: EnvDataService = Depends(get_env_service)):
    """Snapshot availability, OpenWeather configuration and in-process cache state.

    Upstream feeds are not queried here; a degraded feed is served from the
    snapshot, so only a missing snapshot makes the service degraded.
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": __version__,
        "checks": {}
    }

    snapshot = service.snapshot.load()
    debug_info = service.get_snapshot_debug_info()
    if snapshot is not None:
        health_status["checks"]["snapshot"] = {
            "status": "healthy",
            "path": debug_info.path,
            "saved_at": debug_info.saved_at,
            "sections": sorted(k for k in snapshot if not k.startswith("_")),
        }
    else:
        health_status["checks"]["snapshot"] = {
            "status": "degraded",
            "path": debug_info.path,
            "message": "Bundled snapshot missing or unreadable - feed failures will return empty data",
        }
        health_status["status"] = "degraded"

    health_status["checks"]["openweather_api"] = {
        "status": "healthy" if OPENWEATHER_API_KEY else "disabled",
        "message": "API key configured" if OPENWEATHER_API_KEY else "API key not configured - augmentation off",
    }
    health_status["checks"]["connectivity_check"] = {"enabled": CONNECTIVITY_CHECK_ENABLED}
    health_status["checks"]["cache"] = service.stats()

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(
        content=health_status,
        status_code=status_code,
        headers={"Cache-Control": "no-cache"}
    )
