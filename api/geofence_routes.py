import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field as PydanticField

from core.config import (
    ADMIN_ROLES,
    DEFAULT_CUSTOM_PREMISE_NAME,
    DEFAULT_CUSTOM_RADIUS_METERS,
)
from core.deps import get_current_user, get_store, require_admin_role
from core.exceptions import InvalidCoordinate, NoGeofenceConfigured, RemoteSyncFailed
from models.coordinate import (
    ContainmentResult,
    Coordinate,
    GeofenceDefinition,
    GeofenceSource,
)
from services.containment import check
from services.geofence_resolver import GeofenceResolver
from services.persistence import GeofenceStore
from utils.geofence import validate_coordinate

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Pydantic Models for Requests ---


class BranchGeofenceIn(BaseModel):
    name: Optional[str] = PydanticField(default=None, max_length=50)
    center_lat: float
    center_lng: float
    radius_meters: float = PydanticField(gt=0)  # Ensures radius is positive


class CustomPremiseIn(BaseModel):
    name: Optional[str] = PydanticField(default=None, max_length=50)
    center_lat: float
    center_lng: float
    radius_meters: float = PydanticField(default=DEFAULT_CUSTOM_RADIUS_METERS, gt=0)


class GeofenceCheckRequest(BaseModel):
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    branch_id: Optional[str] = None
    # Ask the remote attendance service to re-verify; falls back to the local check
    remote_verify: bool = False


class GeofenceEntry(GeofenceDefinition):
    # Branch id for BRANCH entries, device id for CUSTOM ones
    scope_key: str


def _definition(
    name: str, lat: float, lng: float, radius: float, source: GeofenceSource
) -> GeofenceDefinition:
    center = Coordinate(latitude=lat, longitude=lng)
    try:
        validate_coordinate(center)
    except InvalidCoordinate as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return GeofenceDefinition(name=name, center=center, radius_meters=radius, source=source)


def _ensure_device_access(device_id: str, user: dict) -> None:
    # Custom premises are per device: only that device (or an admin) may touch them
    if user.get("device_id") != device_id and user.get("role") not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Custom premise belongs to another device.",
        )


# --- Overview (administrators) ---


@router.get("", response_model=List[GeofenceEntry])
async def list_geofences(
    store: Annotated[GeofenceStore, Depends(get_store)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
    source: Optional[GeofenceSource] = None,
):
    """Every stored branch geofence and custom premise, optionally filtered by source."""
    entries = await store.list_geofence_definitions(source)
    return [
        GeofenceEntry(scope_key=scope_key, **definition.model_dump())
        for scope_key, definition in entries
    ]


# --- Branch geofences (administrator-configured) ---


@router.get("/branch/{branch_id}", response_model=GeofenceDefinition)
async def get_branch_geofence(
    branch_id: str,
    store: Annotated[GeofenceStore, Depends(get_store)],
    user: Annotated[dict, Depends(get_current_user)],
):
    definition = await store.load_geofence_definition(GeofenceSource.BRANCH, branch_id)
    if definition is None:
        raise HTTPException(
            status_code=404, detail=f"No geofence configured for branch {branch_id}."
        )
    return definition


@router.put("/branch/{branch_id}", response_model=GeofenceDefinition)
async def save_branch_geofence(
    branch_id: str,
    payload: BranchGeofenceIn,
    store: Annotated[GeofenceStore, Depends(get_store)],
    admin_user: Annotated[dict, Depends(require_admin_role)],
):
    definition = _definition(
        payload.name or branch_id,
        payload.center_lat,
        payload.center_lng,
        payload.radius_meters,
        GeofenceSource.BRANCH,
    )
    saved = await store.save_geofence_definition(branch_id, definition)
    logger.info(f"Admin {admin_user.get('email')} saved geofence for branch {branch_id}")
    return saved


# --- Custom premises (per device) ---


@router.get("/custom/{device_id}", response_model=GeofenceDefinition)
async def get_custom_premise(
    device_id: str,
    store: Annotated[GeofenceStore, Depends(get_store)],
    user: Annotated[dict, Depends(get_current_user)],
):
    _ensure_device_access(device_id, user)
    definition = await store.load_geofence_definition(GeofenceSource.CUSTOM, device_id)
    if definition is None:
        raise HTTPException(
            status_code=404, detail=f"No custom premise saved for device {device_id}."
        )
    return definition


@router.put("/custom/{device_id}", response_model=GeofenceDefinition)
async def save_custom_premise(
    device_id: str,
    payload: CustomPremiseIn,
    store: Annotated[GeofenceStore, Depends(get_store)],
    user: Annotated[dict, Depends(get_current_user)],
):
    _ensure_device_access(device_id, user)
    definition = _definition(
        payload.name or DEFAULT_CUSTOM_PREMISE_NAME,
        payload.center_lat,
        payload.center_lng,
        payload.radius_meters,
        GeofenceSource.CUSTOM,
    )
    return await store.save_geofence_definition(device_id, definition)


@router.delete("/custom/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_custom_premise(
    device_id: str,
    store: Annotated[GeofenceStore, Depends(get_store)],
    user: Annotated[dict, Depends(get_current_user)],
):
    _ensure_device_access(device_id, user)
    deleted = await store.delete_geofence_definition(GeofenceSource.CUSTOM, device_id)
    if not deleted:
        raise HTTPException(
            status_code=404, detail=f"No custom premise saved for device {device_id}."
        )


# --- Verification ---


@router.post("/check", response_model=ContainmentResult)
async def check_location(
    payload: GeofenceCheckRequest,
    store: Annotated[GeofenceStore, Depends(get_store)],
    user: Annotated[dict, Depends(get_current_user)],
):
    """
    Resolve the active geofence (custom premise first, then branch) and
    classify the given position against it.
    """
    device_id = user.get("device_id")
    branches = user.get("branches", [])
    if payload.branch_id is not None and payload.branch_id not in branches:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You are not assigned to branch {payload.branch_id}.",
        )
    branch_id = payload.branch_id or next(iter(branches), None)
    point = Coordinate(
        latitude=payload.latitude, longitude=payload.longitude, accuracy=payload.accuracy
    )

    try:
        fence = await GeofenceResolver(store).resolve_for(device_id, branch_id)
        result = check(point, fence)
    except InvalidCoordinate as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except NoGeofenceConfigured as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    if payload.remote_verify and store.remote is not None:
        scope_key = device_id if fence.source == GeofenceSource.CUSTOM else branch_id
        try:
            return await store.remote.check_location(point, scope_key, fence.source)
        except RemoteSyncFailed as e:
            logger.warning(f"[SYNC] Remote re-verification failed, using local result: {e}")

    return result
