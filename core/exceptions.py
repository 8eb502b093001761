from enum import Enum


class GeofenceError(Exception):
    """Base class for errors raised by the geofence engine."""


class InvalidCoordinate(GeofenceError):
    """Latitude/longitude outside the valid range (never clamped)."""

    def __init__(self, latitude, longitude):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(
            f"Invalid coordinate ({latitude}, {longitude}): latitude must be in "
            f"[-90, 90] and longitude in [-180, 180]"
        )


class NoGeofenceConfigured(GeofenceError):
    """Neither a custom premise nor a branch geofence could be resolved."""


class LocationFailureReason(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"


class LocationUnavailable(GeofenceError):
    """The location provider could not supply a position."""

    reason = LocationFailureReason.UNAVAILABLE

    def __init__(self, message: str = "Location information is unavailable."):
        super().__init__(message)


class LocationPermissionDenied(LocationUnavailable):
    reason = LocationFailureReason.PERMISSION_DENIED

    def __init__(self, message: str = "Location access denied."):
        super().__init__(message)


class LocationTimeout(LocationUnavailable):
    reason = LocationFailureReason.TIMEOUT

    def __init__(self, message: str = "Location request timed out."):
        super().__init__(message)


class RemoteSyncFailed(GeofenceError):
    """Non-fatal: the remote attendance service could not be reached."""


class PersistenceError(GeofenceError):
    """Local storage failed. Fatal to the calling operation."""
