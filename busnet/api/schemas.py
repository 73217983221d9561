"""Request body schemas for the REST API."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

TIME_PATTERN = r'^([01]?[0-9]|2[0-3]):[0-5][0-9]$'


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='forbid', allow_inf_nan=False)


class StopCreateRequest(_Request):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: Optional[str] = Field(default=None, max_length=255)
    landmarks: Optional[str] = None


class OperatingHours(_Request):
    start: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    end: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    days: Optional[List[str]] = None


class RouteCreateRequest(_Request):
    name: str = Field(min_length=1, max_length=255)
    code: str = Field(min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, pattern=r'^#[0-9A-Fa-f]{6}$')
    description: Optional[str] = None
    operating_hours: Optional[OperatingHours] = Field(default=None, alias='operatingHours')
    fare_price: Optional[float] = Field(default=None, ge=0, le=999.99, alias='farePrice')


class RouteStopCreateRequest(_Request):
    stop_id: int = Field(alias='stopId')
    stop_order: int = Field(default=1, ge=1, alias='stopOrder')
    direction: Literal['outbound', 'inbound'] = 'outbound'
    distance_from_previous: float = Field(default=0, ge=0, alias='distanceFromPrevious')
    average_arrival_time: Optional[int] = Field(default=None, ge=0, alias='averageArrivalTime')
