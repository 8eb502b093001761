from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field as PydanticField, field_serializer
from sqlmodel import Field, Index, SQLModel

from models.coordinate import GeofenceSource
from utils.datetime_helpers import format_utc_datetime


# Defines the Structure of Data for a Clock in / Clock out Call
class PunchRequest(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    branch_id: str | None = None
    notes: str | None = PydanticField(default=None, max_length=500)


# Enum Limiting Punch Type to Just Two Vals
class PunchType(str, Enum):
    CLOCK_IN = "clock_in"
    CLOCK_OUT = "clock_out"


# Defines a Table "time_log" w/ Cols emp_id, punch_type, timestamp, geofence verdict ...
class TimeLog(SQLModel, table=True):
    __tablename__ = "time_log"

    # Define indexes for frequently queried columns
    __table_args__ = (
        Index("ix_time_log_employee_id", "employee_id"),
        Index("ix_time_log_timestamp", "timestamp"),
        # Most common query pattern: one employee over a time window
        Index("ix_time_log_employee_id_timestamp", "employee_id", "timestamp"),
        Index("ix_time_log_branch_id", "branch_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    employee_id: str
    branch_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    punch_type: PunchType
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    # Containment verdict at the moment of the punch
    is_within_geofence: bool
    distance_meters: float
    radius_meters: float
    geofence_name: str
    geofence_source: GeofenceSource

    notes: Optional[str] = Field(default=None)

    @field_serializer("timestamp")
    def serialize_timestamp(self, dt: datetime) -> str:
        """Ensure timestamp is formatted as UTC with Z suffix"""
        result = format_utc_datetime(dt)
        return result if result is not None else dt.isoformat()
