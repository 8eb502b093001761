import logging
from datetime import datetime, timezone
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field as PydanticField, field_serializer

from core.config import ADMIN_ROLES, DEFAULT_TRACKING_INTERVAL_MINUTES
from core.deps import (
    get_breach_alerts,
    get_current_user,
    get_position_board,
    get_store,
    get_tracker_registry,
    require_admin_role,
)
from core.exceptions import InvalidCoordinate, LocationFailureReason, NoGeofenceConfigured
from models.coordinate import ComplianceSummary, Coordinate, GeofenceDefinition
from models.presence_record import PresenceRecord
from services.alerts import BreachAlert, BreachAlertFeed
from services.compliance import summarize
from services.geofence_resolver import GeofenceResolver
from services.location_provider import PositionReportBoard
from services.persistence import GeofenceStore
from services.presence_tracker import PresenceTracker, TrackerRegistry
from utils.datetime_helpers import format_utc_datetime
from utils.geofence import validate_coordinate

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Pydantic Models for Requests / Responses ---


class PositionReport(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    timestamp: Optional[datetime] = None
    # Set instead of a position when the device could not get one
    error: Optional[LocationFailureReason] = None
    message: Optional[str] = None


class StartTrackingRequest(BaseModel):
    interval_minutes: float = PydanticField(default=DEFAULT_TRACKING_INTERVAL_MINUTES, gt=0)
    branch_id: Optional[str] = None
    # Admins may name the device whose custom premise applies
    device_id: Optional[str] = None


class TrackerStatus(BaseModel):
    employee_id: str
    state: str
    interval_minutes: Optional[float] = None
    geofence: Optional[GeofenceDefinition] = None
    started_at: Optional[datetime] = None
    session_record_count: int = 0
    tick_in_flight: bool = False

    @field_serializer("started_at")
    def serialize_started_at(self, dt: Optional[datetime]) -> Optional[str]:
        return format_utc_datetime(dt)


def _status(employee_id: str, tracker: Optional[PresenceTracker]) -> TrackerStatus:
    if tracker is None:
        return TrackerStatus(employee_id=employee_id, state="idle")
    return TrackerStatus(
        employee_id=employee_id,
        state=tracker.state.value,
        interval_minutes=tracker.interval_minutes,
        geofence=tracker.fence,
        started_at=tracker.started_at,
        session_record_count=len(tracker.get_log()),
        tick_in_flight=tracker.tick_in_flight,
    )


def _ensure_self_or_admin(employee_id: str, user: dict) -> None:
    if user["uid"] != employee_id and user.get("role") not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only access your own presence data.",
        )


# --- Device position reports ---


@router.post("/position", status_code=status.HTTP_202_ACCEPTED)
async def report_position(
    report: PositionReport,
    board: Annotated[PositionReportBoard, Depends(get_position_board)],
    user: Annotated[dict, Depends(get_current_user)],
):
    if report.error is not None:
        board.report_failure(user["uid"], report.error, report.message)
        return {"status": "accepted", "error": report.error.value}

    if report.latitude is None or report.longitude is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either a position or an error must be reported.",
        )
    coordinate = Coordinate(
        latitude=report.latitude,
        longitude=report.longitude,
        accuracy=report.accuracy,
        timestamp=report.timestamp,
    )
    try:
        validate_coordinate(coordinate)
    except InvalidCoordinate as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    board.report_position(user["uid"], coordinate)
    return {"status": "accepted"}


# --- Tracking sessions ---


@router.post("/{employee_id}/start", response_model=TrackerStatus)
async def start_tracking(
    employee_id: str,
    payload: StartTrackingRequest,
    store: Annotated[GeofenceStore, Depends(get_store)],
    registry: Annotated[TrackerRegistry, Depends(get_tracker_registry)],
    user: Annotated[dict, Depends(get_current_user)],
):
    _ensure_self_or_admin(employee_id, user)

    existing = registry.get(employee_id)
    if existing is not None and existing.is_running:
        return _status(employee_id, existing)

    is_self = user["uid"] == employee_id
    device_id = user.get("device_id") if is_self else payload.device_id
    branch_id = payload.branch_id
    if branch_id is None and is_self:
        branch_id = next(iter(user.get("branches", [])), None)

    try:
        fence = await GeofenceResolver(store).resolve_for(device_id, branch_id)
    except NoGeofenceConfigured as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    tracker = registry.start(employee_id, fence, payload.interval_minutes)
    return _status(employee_id, tracker)


@router.post("/{employee_id}/stop")
async def stop_tracking(
    employee_id: str,
    registry: Annotated[TrackerRegistry, Depends(get_tracker_registry)],
    user: Annotated[dict, Depends(get_current_user)],
):
    _ensure_self_or_admin(employee_id, user)
    session_log = registry.stop(employee_id)
    return {"status": "success", "data": session_log}


@router.get("/{employee_id}/status", response_model=TrackerStatus)
async def tracking_status(
    employee_id: str,
    registry: Annotated[TrackerRegistry, Depends(get_tracker_registry)],
    user: Annotated[dict, Depends(get_current_user)],
):
    _ensure_self_or_admin(employee_id, user)
    return _status(employee_id, registry.get(employee_id))


@router.get("/{employee_id}/log", response_model=List[PresenceRecord])
async def presence_log(
    employee_id: str,
    store: Annotated[GeofenceStore, Depends(get_store)],
    user: Annotated[dict, Depends(get_current_user)],
    start: Optional[datetime] = Query(default=None),
    end: Optional[datetime] = Query(default=None),
):
    _ensure_self_or_admin(employee_id, user)
    return await store.load_presence_records(employee_id, start, end)


# --- Compliance ---


@router.get("/{employee_id}/compliance", response_model=ComplianceSummary)
async def compliance_summary(
    employee_id: str,
    start: datetime,
    store: Annotated[GeofenceStore, Depends(get_store)],
    user: Annotated[dict, Depends(get_current_user)],
    end: Optional[datetime] = Query(default=None),
):
    """
    Compliance over [start, end]; `end` defaults to now.
    """
    _ensure_self_or_admin(employee_id, user)
    try:
        return await summarize(store, employee_id, start, end or datetime.now(timezone.utc))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/trackers", response_model=List[TrackerStatus])
async def running_trackers(
    registry: Annotated[TrackerRegistry, Depends(get_tracker_registry)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    """Employees currently under presence tracking, for the monitoring dashboard."""
    return [_status(t.employee_id, t) for t in registry.running()]


@router.get("/alerts", response_model=List[BreachAlert])
async def recent_breach_alerts(
    feed: Annotated[BreachAlertFeed, Depends(get_breach_alerts)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
    limit: int = Query(default=50, ge=1, le=500),
    employee_id: Optional[str] = None,
):
    return feed.recent(limit=limit, employee_id=employee_id)
