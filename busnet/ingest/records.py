"""
Batch input records and the JSON batch file loader.

Each entity kind arrives as one JSON array. Records keep the camelCase field
names used by the batch files; parsing happens per record so that a single
malformed entry only fails itself.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class BatchFileError(Exception):
    """A batch file could not be read or is not a JSON array."""


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore', allow_inf_nan=False)


class StopRecord(_Record):
    name: str
    description: Optional[str] = None
    latitude: float
    longitude: float
    address: Optional[str] = None
    landmarks: Optional[str] = None

    @property
    def key(self) -> str:
        return self.name


class OperatingHoursRecord(_Record):
    start: Optional[str] = None
    end: Optional[str] = None
    days: Optional[List[str]] = None


class RouteRecord(_Record):
    name: str
    code: str
    color: Optional[str] = None
    description: Optional[str] = None
    operating_hours: Optional[OperatingHoursRecord] = Field(default=None, alias='operatingHours')
    fare_price: Optional[float] = Field(default=None, alias='farePrice')

    @property
    def key(self) -> str:
        return self.code


class RouteStopRecord(_Record):
    route_code: str = Field(alias='routeCode')
    stop_name: str = Field(alias='stopName')
    direction: str
    stop_order: int = Field(alias='stopOrder')
    distance_from_previous: Optional[float] = Field(default=None, alias='distanceFromPrevious')
    average_arrival_time: Optional[int] = Field(default=None, alias='averageArrivalTime')

    @property
    def key(self) -> str:
        return f"{self.route_code} - {self.stop_name} ({self.direction} #{self.stop_order})"


def raw_record_key(raw: Any, *fields: str) -> str:
    """Best-effort key for a record that failed to parse."""
    if isinstance(raw, dict):
        parts = [str(raw[f]) for f in fields if raw.get(f) is not None]
        if parts:
            return ' - '.join(parts)
    return '<unparseable record>'


def load_batch(path) -> List[Dict[str, Any]]:
    """
    Read one batch file.

    Raises:
        BatchFileError: the file is missing, unreadable, not JSON, or not an array
    """
    path = Path(path)
    try:
        with path.open('r', encoding='utf-8') as handle:
            data = json.load(handle)
    except OSError as exc:
        raise BatchFileError(f"Cannot read batch file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise BatchFileError(f"Batch file {path} is not valid JSON: {exc}") from exc

    if not isinstance(data, list):
        raise BatchFileError(f"Batch file {path} must contain a JSON array, got {type(data).__name__}")

    logger.info(f"Loaded {len(data)} records from {path}")
    return data
