from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_serializer

from utils.datetime_helpers import format_utc_datetime


# A Point On Earth As Reported By A Device (Degrees)
class Coordinate(BaseModel):
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    timestamp: Optional[datetime] = None

    @field_serializer("timestamp")
    def serialize_timestamp(self, dt: Optional[datetime]) -> Optional[str]:
        return format_utc_datetime(dt)


# Where A Geofence Definition Came From
class GeofenceSource(str, Enum):
    BRANCH = "branch"
    CUSTOM = "custom"


# Circular Boundary; Replaced Whole On Every Save
class GeofenceDefinition(BaseModel):
    name: str
    center: Coordinate
    radius_meters: float
    source: GeofenceSource


class ContainmentResult(BaseModel):
    is_within: bool
    distance_meters: float
    radius_meters: float
    geofence_name: str
    source: Optional[GeofenceSource] = None


class ComplianceSummary(BaseModel):
    total_hours: float = 0.0
    compliance_percentage: float = 0.0
    breach_count: int = 0
    record_count: int = 0
    gap_count: int = 0
