"""Root endpoint and API information."""
from fastapi import APIRouter

from version import __version__

router = APIRouter()


@router.api_route("/", methods=["GET", "OPTIONS"])
async def root():
    """Root endpoint that returns API information"""
    return {
        "name": "Singapore Env Data API",
        "version": __version__,
        "description": "Live Singapore environmental feeds with cached, rate-limit aware fetching and snapshot fallback",
        "v1_endpoints": {
            "feeds": [
                "/v1/env/forecast",
                "/v1/env/rainfall?lat={lat}&lng={lng}",
                "/v1/env/pm25",
                "/v1/env/wind",
                "/v1/env/humidity",
                "/v1/env/temperature"
            ],
            "derived": [
                "/v1/env/nearest-area?lat={lat}&lng={lng}",
                "/v1/env/now?lat={lat}&lng={lng}&lang={lang}",
                "/v1/env/outlook?lat={lat}&lng={lng}&cnt={cnt}",
                "/v1/env/flood-risk?rainfall={mm}&last_hour={mm}&coverage={minutes}"
            ],
            "snapshot": [
                "/v1/env/snapshot",
                "/v1/env/snapshot/debug"
            ],
            "examples": [
                "/v1/env/rainfall?lat=1.3521&lng=103.8198",
                "/v1/env/flood-risk?rainfall=12&last_hour=35",
                "/v1/env/flood-risk?lat=1.3521&lng=103.8198"
            ]
        },
        "other_endpoints": [
            "/health",
            "/health/detailed"
        ],
        "headers": {
            "X-Data-Source": "live | fallback | empty on every feed response"
        }
    }
