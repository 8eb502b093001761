import asyncio
import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from core.config import ADMIN_ROLES
from core.firebase import get_user_profile, verify_id_token
from db.session import engine
from services.alerts import BreachAlertFeed
from services.location_provider import PositionReportBoard
from services.persistence import GeofenceStore, LocalStore
from services.presence_tracker import TrackerRegistry
from services.remote_sync import build_remote_client

logger = logging.getLogger(__name__)

# Standard credentials exception
CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)

# --- Process-wide engine components ---

_store = GeofenceStore(LocalStore(engine), remote=build_remote_client())
_position_board = PositionReportBoard()
_tracker_registry = TrackerRegistry(_store, _position_board.provider_for)
_breach_alerts = BreachAlertFeed()
_tracker_registry.subscribe(_breach_alerts)


def get_store() -> GeofenceStore:
    return _store


def get_position_board() -> PositionReportBoard:
    return _position_board


def get_tracker_registry() -> TrackerRegistry:
    return _tracker_registry


def get_breach_alerts() -> BreachAlertFeed:
    return _breach_alerts


# --- Auth ---

def _split_ids(raw) -> list[str]:
    if isinstance(raw, list):
        return [str(s).strip() for s in raw if str(s).strip()]
    return [s.strip() for s in (raw or "").split(",") if s.strip()]


async def get_current_user(
    request: Request,
    x_device_id: Annotated[str | None, Header(alias="X-Device-Id")] = None,
):
    # 1) Extract & Analyze Authorization Header
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise CREDENTIALS_EXCEPTION
    token = auth_header.split(" ", 1)[1]

    # 2) Verify This Points to a Real User Account
    try:
        decoded = await asyncio.to_thread(verify_id_token, token)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token"
        )
    uid = decoded.get("uid")
    if not uid:
        raise CREDENTIALS_EXCEPTION

    # 3) Fetch the Firestore user profile
    try:
        profile = await asyncio.to_thread(get_user_profile, uid)
    except Exception as e:
        logger.error(f"Firestore error fetching profile for {uid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not fetch user profile.",
        )
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found in Firestore",
        )

    # 4) Branches the user may punch at
    branches = list(dict.fromkeys(_split_ids(profile.get("branches"))))

    return {
        "uid": uid,
        "name": profile.get("displayName", ""),
        "email": profile.get("email", ""),
        "branches": branches,
        "role": profile.get("role", ""),
        "device_id": x_device_id,
    }


# Admin Role Check Dependency
async def require_admin_role(
    current_user: Annotated[dict, Depends(get_current_user)]
):
    if current_user.get("role") not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User doesn't have sufficient privileges for this action",
        )
    return current_user
