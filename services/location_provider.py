import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol

from core.config import POSITION_MAX_AGE_SECONDS
from core.exceptions import (
    LocationFailureReason,
    LocationPermissionDenied,
    LocationTimeout,
    LocationUnavailable,
)
from models.coordinate import Coordinate
from utils.datetime_helpers import ensure_utc


class LocationProvider(Protocol):
    """
    Source of the current position. Implementations either return a
    Coordinate or raise LocationPermissionDenied / LocationUnavailable /
    LocationTimeout.
    """

    async def get_current_position(self) -> Coordinate: ...


def failure_for(reason: LocationFailureReason, message: Optional[str] = None) -> LocationUnavailable:
    if reason == LocationFailureReason.PERMISSION_DENIED:
        return LocationPermissionDenied(message) if message else LocationPermissionDenied()
    if reason == LocationFailureReason.TIMEOUT:
        return LocationTimeout(message) if message else LocationTimeout()
    return LocationUnavailable(message) if message else LocationUnavailable()


@dataclass
class _PositionReport:
    received_at: datetime
    coordinate: Optional[Coordinate] = None
    failure: Optional[LocationFailureReason] = None
    message: Optional[str] = None


class PositionReportBoard:
    """
    Latest position (or failure) each employee's device has reported.

    On the server the device is the only thing that knows where it is, so a
    tracker tick "acquires" a position by reading the newest report. Reports
    older than `max_age_seconds` count as unavailable.
    """

    def __init__(
        self,
        max_age_seconds: float = POSITION_MAX_AGE_SECONDS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.max_age_seconds = max_age_seconds
        self.clock = clock
        self._reports: Dict[str, _PositionReport] = {}

    def report_position(self, employee_id: str, coordinate: Coordinate) -> None:
        self._reports[employee_id] = _PositionReport(
            received_at=self.clock(), coordinate=coordinate
        )

    def report_failure(
        self, employee_id: str, reason: LocationFailureReason, message: Optional[str] = None
    ) -> None:
        self._reports[employee_id] = _PositionReport(
            received_at=self.clock(), failure=reason, message=message
        )

    def latest(self, employee_id: str) -> Coordinate:
        report = self._reports.get(employee_id)
        if report is None:
            raise LocationUnavailable(f"No position reported for {employee_id}.")
        if report.failure is not None:
            raise failure_for(report.failure, report.message)
        age = (self.clock() - ensure_utc(report.received_at)).total_seconds()
        if age > self.max_age_seconds:
            raise LocationUnavailable(
                f"Last position for {employee_id} is {age:.0f}s old."
            )
        return report.coordinate

    def provider_for(self, employee_id: str) -> "ReportedLocationProvider":
        return ReportedLocationProvider(self, employee_id)


class ReportedLocationProvider:
    def __init__(self, board: PositionReportBoard, employee_id: str):
        self.board = board
        self.employee_id = employee_id

    async def get_current_position(self) -> Coordinate:
        # Yield once so a tick always has a real suspension point
        await asyncio.sleep(0)
        return self.board.latest(self.employee_id)
