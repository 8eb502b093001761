from .coordinate import (
    ComplianceSummary,
    ContainmentResult,
    Coordinate,
    GeofenceDefinition,
    GeofenceSource,
)
from .geofence import Geofence
from .presence_record import PresenceRecord
from .time_log import PunchRequest, PunchType, TimeLog
