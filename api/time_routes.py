from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends

from core.deps import get_current_user, get_store
from models.time_log import PunchRequest, PunchType
from services.persistence import GeofenceStore
from services.punch_service import PunchService
from utils.datetime_helpers import start_of_utc_day

# Defines API Endpoints
router = APIRouter()


async def _punch(
    punch_type: PunchType, data: PunchRequest, store: GeofenceStore, user: dict
):
    return await PunchService.validate_and_save(
        employee_id=user["uid"],
        branch_ids=user["branches"],
        punch_type=punch_type,
        latitude=data.latitude,
        longitude=data.longitude,
        store=store,
        device_id=user.get("device_id"),
        branch_id=data.branch_id,
        accuracy=data.accuracy,
        notes=data.notes,
    )


# Clock In Endpoint
@router.post("/check-in")
async def check_in(
    data: PunchRequest,
    store: Annotated[GeofenceStore, Depends(get_store)],
    user: Annotated[dict, Depends(get_current_user)],
):
    return await _punch(PunchType.CLOCK_IN, data, store, user)


# Clock Out Endpoint
@router.post("/check-out")
async def check_out(
    data: PunchRequest,
    store: Annotated[GeofenceStore, Depends(get_store)],
    user: Annotated[dict, Depends(get_current_user)],
):
    return await _punch(PunchType.CLOCK_OUT, data, store, user)


# Get Today's Punches
@router.get("/today")
async def get_todays_logs(
    store: Annotated[GeofenceStore, Depends(get_store)],
    user: Annotated[dict, Depends(get_current_user)],
):
    since = start_of_utc_day(datetime.now(timezone.utc))
    punches = await store.load_time_logs(user["uid"], since=since)
    return {"status": "success", "data": list(reversed(punches))}


# Get All Punches
@router.get("/logs")
async def get_all_logs(
    store: Annotated[GeofenceStore, Depends(get_store)],
    user: Annotated[dict, Depends(get_current_user)],
):
    punches = await store.load_time_logs(user["uid"])
    return {"status": "success", "data": punches}


# Get Last Punch
@router.get("/last-punch")
async def get_last_punch(
    store: Annotated[GeofenceStore, Depends(get_store)],
    user: Annotated[dict, Depends(get_current_user)],
):
    last_punch = await store.last_time_log(user["uid"])

    if not last_punch:
        return {"status": "success", "data": None, "message": "No punches found."}

    return {"status": "success", "data": last_punch}
