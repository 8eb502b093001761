from collections import deque
from datetime import datetime
from typing import Deque, List, Optional

from pydantic import BaseModel, field_serializer

from models.presence_record import PresenceRecord
from utils.datetime_helpers import format_utc_datetime
from utils.geofence import accuracy_description, google_maps_url


class BreachAlert(BaseModel):
    employee_id: str
    timestamp: datetime
    geofence_name: Optional[str] = None
    distance_meters: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    # Ready-made for the monitoring dashboard
    maps_url: Optional[str] = None
    accuracy_label: Optional[str] = None

    @field_serializer("timestamp")
    def serialize_timestamp(self, dt: datetime) -> str:
        return format_utc_datetime(dt)


class BreachAlertFeed:
    """Bounded in-memory feed of recent breach signals for dashboards."""

    def __init__(self, max_alerts: int = 500):
        self._alerts: Deque[BreachAlert] = deque(maxlen=max_alerts)

    def __call__(self, record: PresenceRecord) -> None:
        point = record.coordinate
        self._alerts.append(
            BreachAlert(
                employee_id=record.employee_id,
                timestamp=record.timestamp,
                geofence_name=record.geofence_name,
                distance_meters=record.distance_meters,
                latitude=record.latitude,
                longitude=record.longitude,
                maps_url=google_maps_url(point) if point else None,
                accuracy_label=(
                    accuracy_description(record.accuracy) if record.accuracy is not None else None
                ),
            )
        )

    def recent(self, limit: int = 50, employee_id: Optional[str] = None) -> List[BreachAlert]:
        alerts = [
            a for a in reversed(self._alerts)
            if employee_id is None or a.employee_id == employee_id
        ]
        return alerts[:limit]
