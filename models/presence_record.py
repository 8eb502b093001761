from datetime import datetime, timezone
from typing import Optional

from pydantic import field_serializer
from sqlmodel import Field, Index, SQLModel

from models.coordinate import Coordinate
from utils.datetime_helpers import format_utc_datetime


# One Row Per Presence Tracking Tick; Append-Only
class PresenceRecord(SQLModel, table=True):
    __tablename__ = "presence_record"

    __table_args__ = (
        # Aggregation always slices one employee's log by time
        Index("ix_presence_record_employee_id_timestamp", "employee_id", "timestamp"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    employee_id: str = Field(index=True)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Null on a gap record (acquisition or validation failed)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    is_within_geofence: Optional[bool] = None
    distance_meters: Optional[float] = None

    geofence_name: Optional[str] = None
    # Interval of the tracking session that produced this record
    interval_minutes: float
    # Failure kind for gap records, e.g. "timeout"
    error: Optional[str] = Field(default=None)

    @property
    def is_gap(self) -> bool:
        return self.is_within_geofence is None

    @property
    def coordinate(self) -> Optional[Coordinate]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinate(
            latitude=self.latitude, longitude=self.longitude, accuracy=self.accuracy
        )

    @field_serializer("timestamp")
    def serialize_timestamp(self, dt: datetime) -> str:
        """Ensure timestamp is formatted as UTC with Z suffix"""
        result = format_utc_datetime(dt)
        return result if result is not None else dt.isoformat()
