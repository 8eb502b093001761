import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import HTTPException, status

from core.exceptions import InvalidCoordinate, NoGeofenceConfigured
from models.coordinate import Coordinate, GeofenceSource
from models.time_log import PunchType, TimeLog
from services.containment import check
from services.geofence_resolver import GeofenceResolver

logger = logging.getLogger(__name__)


class PunchService:

    @staticmethod
    async def validate_and_save(
        employee_id: str,
        branch_ids: List[str],
        punch_type: PunchType,
        latitude: Optional[float],
        longitude: Optional[float],
        store,
        device_id: Optional[str] = None,
        branch_id: Optional[str] = None,
        accuracy: Optional[float] = None,
        notes: Optional[str] = None,
    ):
        # Capture the time of the request for consistency
        request_time = datetime.now(timezone.utc)

        # 0) Must supply location
        if latitude is None or longitude is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Location required to punch.",
            )

        # A requested branch must be one the user is assigned to
        if branch_id is not None and branch_id not in branch_ids:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"You are not assigned to branch {branch_id}.",
            )

        # 1) Resolve the active geofence fresh for this punch and check containment
        resolver = GeofenceResolver(store)
        point = Coordinate(latitude=latitude, longitude=longitude, accuracy=accuracy)
        try:
            if branch_id is not None:
                fence = await resolver.resolve_for(device_id, branch_id)
                fence_branch_id = branch_id if fence.source == GeofenceSource.BRANCH else None
            else:
                fence, fence_branch_id = await resolver.resolve_for_any_branch(
                    device_id, branch_ids
                )
            result = check(point, fence)
        except InvalidCoordinate as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except NoGeofenceConfigured as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

        if not result.is_within:
            logger.info(
                f"[PUNCH] Refused {punch_type.value} for {employee_id}: "
                f"{result.distance_meters:.0f} m from '{result.geofence_name}' "
                f"(radius {result.radius_meters:.0f} m)"
            )
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=(
                    f"You must be within the geofence of '{result.geofence_name}' to punch. "
                    f"Distance: {result.distance_meters:.0f} m, allowed: {result.radius_meters:.0f} m."
                ),
            )

        # Fetch Most Recent Log For Employee
        last_punch = await store.last_time_log(employee_id)

        # Punch Order Validation
        if last_punch and last_punch.punch_type == punch_type:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=(
                    "Already checked in."
                    if punch_type == PunchType.CLOCK_IN
                    else "Cannot clock out twice in a row."
                ),
            )
        if not last_punch and punch_type == PunchType.CLOCK_OUT:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot clock out before clocking in.",
            )

        # Clock-out keeps the branch of the shift it closes
        if punch_type == PunchType.CLOCK_OUT and fence_branch_id is None and last_punch:
            fence_branch_id = last_punch.branch_id

        punch = TimeLog(
            employee_id=employee_id,
            branch_id=fence_branch_id,
            punch_type=punch_type,
            latitude=latitude,
            longitude=longitude,
            timestamp=request_time,
            is_within_geofence=result.is_within,
            distance_meters=result.distance_meters,
            radius_meters=result.radius_meters,
            geofence_name=result.geofence_name,
            geofence_source=result.source,
            notes=notes,
        )

        # Local commit first; remote mirroring never undoes it
        punch = await store.append_time_log(punch)

        return {"status": "success", "data": punch, "containment": result}
