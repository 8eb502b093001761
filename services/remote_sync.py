import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from core.config import REMOTE_API_TOKEN, REMOTE_ATTENDANCE_URL, REMOTE_SYNC_TIMEOUT_SECONDS
from core.exceptions import RemoteSyncFailed
from models.coordinate import (
    ContainmentResult,
    Coordinate,
    GeofenceDefinition,
    GeofenceSource,
)
from models.time_log import PunchType, TimeLog
from utils.datetime_helpers import format_utc_datetime

logger = logging.getLogger(__name__)


class RemoteAttendanceClient:
    """Thin httpx client for the remote attendance/geofence service."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = REMOTE_SYNC_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Optional[Dict[str, Any]]:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._headers(),
                transport=self.transport,
            ) as client:
                response = await client.request(method, path, json=json)
                if allow_missing and response.status_code == 404:
                    return None
                response.raise_for_status()
                if not response.content:
                    return None
                return response.json()
        except httpx.HTTPStatusError as http_error:
            raise RemoteSyncFailed(
                f"{method} {path} returned {http_error.response.status_code}"
            ) from http_error
        except httpx.TimeoutException as timeout_error:
            raise RemoteSyncFailed(
                f"{method} {path} timed out after {self.timeout}s"
            ) from timeout_error
        except httpx.HTTPError as transport_error:
            raise RemoteSyncFailed(f"{method} {path} failed: {transport_error}") from transport_error
        except ValueError as decode_error:
            raise RemoteSyncFailed(f"{method} {path} returned invalid JSON") from decode_error

    async def push_geofence(self, scope_key: str, definition: GeofenceDefinition) -> None:
        await self._request(
            "PUT",
            f"/geofences/{definition.source.value}/{scope_key}",
            json=definition.model_dump(mode="json"),
        )

    async def fetch_geofence(
        self, source: GeofenceSource, scope_key: str
    ) -> Optional[GeofenceDefinition]:
        data = await self._request(
            "GET", f"/geofences/{source.value}/{scope_key}", allow_missing=True
        )
        if data is None:
            return None
        try:
            return GeofenceDefinition.model_validate(data)
        except ValidationError as e:
            raise RemoteSyncFailed(f"Remote geofence payload was malformed: {e}") from e

    async def delete_geofence(self, source: GeofenceSource, scope_key: str) -> None:
        # Already gone on the remote side counts as done
        await self._request(
            "DELETE", f"/geofences/{source.value}/{scope_key}", allow_missing=True
        )

    async def push_punch(self, log: TimeLog) -> None:
        path = (
            "/attendance/check-in"
            if log.punch_type == PunchType.CLOCK_IN
            else "/attendance/check-out"
        )
        payload = {
            "staffId": log.employee_id,
            "branchId": log.branch_id,
            "timestamp": format_utc_datetime(log.timestamp),
            "location": {"latitude": log.latitude, "longitude": log.longitude},
            "isWithinGeofence": log.is_within_geofence,
            "distance": log.distance_meters,
            "radius": log.radius_meters,
            "locationName": log.geofence_name,
            "customPremiseUsed": log.geofence_source == GeofenceSource.CUSTOM,
            "notes": log.notes,
        }
        await self._request("POST", path, json=payload)

    async def check_location(
        self, point: Coordinate, scope_key: str, source: GeofenceSource
    ) -> ContainmentResult:
        """Server-side re-verification; same shape as the local checker."""
        data = await self._request(
            "POST",
            "/geofences/check",
            json={
                "scope_key": scope_key,
                "source": source.value,
                "location": point.model_dump(mode="json"),
            },
        )
        try:
            return ContainmentResult.model_validate(data or {})
        except ValidationError as e:
            raise RemoteSyncFailed(f"Remote check payload was malformed: {e}") from e


def build_remote_client() -> Optional[RemoteAttendanceClient]:
    if not REMOTE_ATTENDANCE_URL:
        return None
    logger.info(f"[SYNC] Remote attendance service enabled at {REMOTE_ATTENDANCE_URL}")
    return RemoteAttendanceClient(REMOTE_ATTENDANCE_URL, token=REMOTE_API_TOKEN)
