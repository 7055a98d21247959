"""Pydantic models for upstream feed payloads and API responses."""
import math
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field


def _coerce_number(value: Any) -> Optional[float]:
    """Lenient numeric coercion: anything that is not a finite number becomes None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _coerce_text(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


def _coerce_forecast_text(value: Any) -> Any:
    # Newer payloads nest the text: {"code": "PC", "text": "Partly Cloudy (Day)"}
    if isinstance(value, dict):
        return value.get("text")
    return value


OptionalNumber = Annotated[Optional[float], BeforeValidator(_coerce_number)]
StationId = Annotated[str, BeforeValidator(_coerce_text)]


class GeoPoint(BaseModel):
    """Latitude/longitude pair; accepts `lat`/`lng`/`lon` spellings on input."""
    model_config = ConfigDict(populate_by_name=True)

    latitude: OptionalNumber = Field(None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: OptionalNumber = Field(None, validation_alias=AliasChoices("longitude", "lng", "lon"))

    def is_valid(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class Coordinates(BaseModel):
    """User position supplied by the caller."""
    model_config = ConfigDict(populate_by_name=True)

    latitude: float = Field(..., ge=-90, le=90, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(..., ge=-180, le=180, validation_alias=AliasChoices("longitude", "lng", "lon"))


# ---------------------------------------------------------------------------
# Upstream payloads (data.gov.sg real-time API, v2)
# ---------------------------------------------------------------------------

class StationMeta(BaseModel):
    id: StationId
    name: str = ""
    location: Optional[GeoPoint] = None


class StationReading(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    station_id: StationId = Field(..., alias="stationId")
    value: OptionalNumber = None


class ReadingSet(BaseModel):
    """One upstream timestamp snapshot across all stations (a rainfall "slot")."""
    timestamp: Optional[str] = None
    data: List[StationReading] = Field(default_factory=list)

    def values_by_station(self) -> Dict[str, Optional[float]]:
        return {reading.station_id: reading.value for reading in self.data}


class StationFeedData(BaseModel):
    stations: List[StationMeta] = Field(default_factory=list)
    readings: List[ReadingSet] = Field(default_factory=list)


class StationFeedPayload(BaseModel):
    """Shared shape of the rainfall, wind, humidity and temperature feeds."""
    data: StationFeedData = Field(default_factory=StationFeedData)


class AreaForecast(BaseModel):
    area: str
    forecast: Annotated[Optional[str], BeforeValidator(_coerce_forecast_text)] = None


class ForecastArea(BaseModel):
    name: str
    label_location: Optional[GeoPoint] = None


class ForecastItem(BaseModel):
    timestamp: Optional[str] = None
    forecasts: List[AreaForecast] = Field(default_factory=list)


class ForecastData(BaseModel):
    area_metadata: List[ForecastArea] = Field(default_factory=list)
    items: List[ForecastItem] = Field(default_factory=list)


class ForecastPayload(BaseModel):
    data: ForecastData = Field(default_factory=ForecastData)


class Pm25Region(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    label_location: Optional[GeoPoint] = Field(None, alias="labelLocation")


class Pm25Item(BaseModel):
    timestamp: Optional[str] = None
    readings: Dict[str, Dict[str, OptionalNumber]] = Field(default_factory=dict)


class Pm25Data(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    region_metadata: List[Pm25Region] = Field(default_factory=list, alias="regionMetadata")
    items: List[Pm25Item] = Field(default_factory=list)


class Pm25Payload(BaseModel):
    data: Pm25Data = Field(default_factory=Pm25Data)


# ---------------------------------------------------------------------------
# Output records (camelCase on the wire, consumed by the dashboard)
# ---------------------------------------------------------------------------

class StationRecord(BaseModel):
    """One rainfall station as shown on the dashboard."""
    model_config = ConfigDict(populate_by_name=True)

    id: StationId
    name: str = ""
    location: Optional[GeoPoint] = None
    rainfall: OptionalNumber = Field(None, description="mm in the latest 5-minute slot")
    last_hour: OptionalNumber = Field(
        None,
        validation_alias=AliasChoices("lastHour", "last_hour"),
        serialization_alias="lastHour",
        description="mm accumulated over the last 60 minutes",
    )
    coverage_minutes: OptionalNumber = Field(
        None,
        validation_alias=AliasChoices("coverageMinutes", "lastHourCoverageMin", "coverage_minutes"),
        serialization_alias="coverageMinutes",
        description="Minutes of real data backing last_hour (0-60)",
    )
    distance_km: OptionalNumber = Field(
        None,
        validation_alias=AliasChoices("distanceKm", "distance_km"),
        serialization_alias="distanceKm",
    )


class RainfallResponse(BaseModel):
    stations: List[StationRecord] = Field(default_factory=list)
    timestamp: Optional[str] = None


class Pm25Record(BaseModel):
    name: str = ""
    location: Optional[GeoPoint] = None
    value: OptionalNumber = None


class WindRecord(BaseModel):
    id: StationId
    name: str = ""
    location: Optional[GeoPoint] = None
    speed: OptionalNumber = Field(None, description="knots")
    direction: OptionalNumber = Field(None, description="degrees")


class StationValueRecord(BaseModel):
    """Humidity (%) or air temperature (°C) at one station."""
    id: StationId
    name: str = ""
    location: Optional[GeoPoint] = None
    value: OptionalNumber = None


class ForecastResponse(BaseModel):
    forecasts: List[AreaForecast] = Field(default_factory=list)
    metadata: List[ForecastArea] = Field(default_factory=list)
    timestamp: Optional[str] = None


class NowWeather(BaseModel):
    """NEA area forecast combined with OpenWeather current conditions."""
    model_config = ConfigDict(populate_by_name=True)

    area: Optional[str] = None
    nea_forecast_text: Optional[str] = Field(None, serialization_alias="neaForecastText")
    temp: OptionalNumber = None
    feels_like: OptionalNumber = Field(None, serialization_alias="feelsLike")
    pressure: OptionalNumber = None
    humidity: OptionalNumber = None
    visibility: OptionalNumber = None
    wind_speed: OptionalNumber = Field(None, serialization_alias="windSpeed")
    wind_deg: OptionalNumber = Field(None, serialization_alias="windDeg")
    clouds: OptionalNumber = None
    rain_1h: OptionalNumber = Field(None, serialization_alias="rain1h")
    timestamp: Optional[str] = None
    source: Dict[str, bool] = Field(default_factory=dict)


class DailyOutlook(BaseModel):
    """One calendar day of the OpenWeather 3-hourly forecast."""
    model_config = ConfigDict(populate_by_name=True)

    date: str
    min: OptionalNumber = None
    max: OptionalNumber = None
    pop_max: float = Field(0.0, serialization_alias="popMax")
    icon: Optional[str] = None
    desc: Optional[str] = None
    slots: List[Dict[str, Any]] = Field(default_factory=list)


FloodRiskLevel = Literal["High", "Moderate", "Low"]


class FloodRiskResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    level: Optional[FloodRiskLevel] = None
    rainfall: OptionalNumber = None
    last_hour: OptionalNumber = Field(None, serialization_alias="lastHour")
    coverage_minutes: OptionalNumber = Field(None, serialization_alias="coverageMinutes")
    station: Optional[StationRecord] = Field(None, description="Nearest station, when coordinates were given")


class SnapshotDebugInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: Optional[Literal["assets"]] = None
    path: Optional[str] = None
    saved_at: Optional[Union[int, float, str]] = Field(None, serialization_alias="savedAt")


# Error Response Model
class ErrorResponse(BaseModel):
    """Standardized error response format for consistent API error handling."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    code: Optional[str] = Field(None, description="Error code for programmatic handling")
    details: Optional[Union[List[Dict], Dict, str]] = Field(None, description="Additional error details")
    path: Optional[str] = Field(None, description="Request path where error occurred")
    method: Optional[str] = Field(None, description="HTTP method")
    request_id: Optional[str] = Field(None, description="Request ID for tracing")
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat(),
                          description="Error timestamp")
