"""Environmental feed endpoints consumed by the dashboard."""
import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from env_data import EnvDataService, FeedResult
from models import Coordinates, FloodRiskResponse
from routers.dependencies import get_env_service
from utils.flood_risk import estimate_flood_risk
from utils.geo import nearest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/env", tags=["environment"])

DATA_SOURCE_HEADER = "X-Data-Source"


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    if isinstance(data, list):
        return [_dump(item) for item in data]
    return data


def _feed_response(result: FeedResult) -> JSONResponse:
    return JSONResponse(content=_dump(result.data), headers={DATA_SOURCE_HEADER: result.status})


def _coords(lat: Optional[float], lng: Optional[float]) -> Optional[Coordinates]:
    if lat is None and lng is None:
        return None
    if lat is None or lng is None:
        raise HTTPException(status_code=400, detail="Both lat and lng are required when either is given")
    return Coordinates(latitude=lat, longitude=lng)


OptionalLat = Annotated[Optional[float], Query(ge=-90, le=90, description="Latitude in decimal degrees")]
OptionalLng = Annotated[Optional[float], Query(ge=-180, le=180, description="Longitude in decimal degrees")]


@router.get("/forecast")
async def get_forecast(service: EnvDataService = Depends(get_env_service)):
    """2-hour area forecasts with their label locations."""
    return _feed_response(await service.fetch_weather_forecast_result())


@router.get("/rainfall")
async def get_rainfall(
    lat: OptionalLat = None,
    lng: OptionalLng = None,
    service: EnvDataService = Depends(get_env_service),
):
    """All rainfall stations with the latest 5-minute value and the last-hour total."""
    return _feed_response(await service.fetch_rainfall_data_result(_coords(lat, lng)))


@router.get("/pm25")
async def get_pm25(service: EnvDataService = Depends(get_env_service)):
    return _feed_response(await service.fetch_pm25_data_result())


@router.get("/wind")
async def get_wind(service: EnvDataService = Depends(get_env_service)):
    return _feed_response(await service.fetch_wind_data_result())


@router.get("/humidity")
async def get_humidity(service: EnvDataService = Depends(get_env_service)):
    return _feed_response(await service.fetch_humidity_data_result())


@router.get("/temperature")
async def get_temperature(service: EnvDataService = Depends(get_env_service)):
    return _feed_response(await service.fetch_temperature_data_result())


@router.get("/nearest-area")
async def get_nearest_area(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    service: EnvDataService = Depends(get_env_service),
):
    """Closest 2-hour forecast area and its current forecast text."""
    area, text, result = await service.get_nearest_forecast_result(Coordinates(latitude=lat, longitude=lng))
    return JSONResponse(
        content={"area": area, "forecast": text, "timestamp": result.data.timestamp},
        headers={DATA_SOURCE_HEADER: result.status},
    )


@router.get("/now")
async def get_now(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    lang: str = Query("en", min_length=2, max_length=10),
    service: EnvDataService = Depends(get_env_service),
):
    """NEA area forecast combined with OpenWeather current conditions."""
    now = await service.get_now_weather(Coordinates(latitude=lat, longitude=lng), lang)
    return _dump(now)


@router.get("/outlook")
async def get_outlook(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    lang: str = Query("en", min_length=2, max_length=10),
    cnt: Optional[int] = Query(None, ge=1, le=40, description="Number of 3-hour slots"),
    service: EnvDataService = Depends(get_env_service),
):
    """OpenWeather 5-day forecast grouped into daily summaries (empty without an API key)."""
    days = await service.get_ow_outlook(Coordinates(latitude=lat, longitude=lng), lang, cnt)
    return _dump(days)


@router.get("/flood-risk")
async def get_flood_risk(
    rainfall: Optional[float] = Query(None, description="mm in the latest 5-minute slot"),
    last_hour: Optional[float] = Query(None, description="mm over the last hour"),
    coverage: Optional[float] = Query(None, ge=0, le=60, description="Minutes of data backing last_hour"),
    min_coverage: Optional[float] = Query(None, ge=0, le=60),
    allow_null: bool = Query(False),
    lat: OptionalLat = None,
    lng: OptionalLng = None,
    service: EnvDataService = Depends(get_env_service),
):
    """Classify flood risk from explicit values, or from the nearest station when lat/lng are given."""
    station = None
    user_coords = _coords(lat, lng)
    if user_coords is not None and rainfall is None and last_hour is None:
        data = await service.fetch_rainfall_data(user_coords)
        station = nearest(data.stations, user_coords)
        if station is not None:
            rainfall, last_hour = station.rainfall, station.last_hour
            if coverage is None:
                coverage = station.coverage_minutes

    options = {"coverage_minutes": coverage, "allow_null": allow_null}
    if min_coverage is not None:
        options["min_coverage"] = min_coverage
    level = estimate_flood_risk(rainfall, last_hour, **options)
    response = FloodRiskResponse(
        level=level, rainfall=rainfall, last_hour=last_hour,
        coverage_minutes=coverage, station=station,
    )
    return _dump(response)


@router.get("/snapshot")
async def get_snapshot(service: EnvDataService = Depends(get_env_service)):
    """The bundled fallback dataset as stored on disk."""
    data = service.load_env_datasets_from_file()
    if data is None:
        raise HTTPException(status_code=404, detail="Bundled snapshot is not available")
    # Returned as-is: the default encoder drops keys such as "_savedAt"
    return JSONResponse(content=data)


@router.get("/snapshot/debug")
async def get_snapshot_debug(service: EnvDataService = Depends(get_env_service)):
    return _dump(service.get_snapshot_debug_info())
