import asyncio
import inspect
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set, Union

from core.config import DEFAULT_TRACKING_INTERVAL_MINUTES, LOCATION_TIMEOUT_SECONDS
from core.exceptions import (
    InvalidCoordinate,
    LocationFailureReason,
    LocationUnavailable,
    PersistenceError,
)
from models.coordinate import GeofenceDefinition
from models.presence_record import PresenceRecord
from services.containment import check
from services.location_provider import LocationProvider
from utils.geofence import format_coordinates

logger = logging.getLogger(__name__)

INVALID_COORDINATE_MARKER = "invalid_coordinate"

BreachListener = Callable[[PresenceRecord], Union[None, Awaitable[None]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrackerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class PresenceTracker:
    """
    Periodic presence checks for one employee against one geofence.

    start() runs a tick immediately and then one every `interval_minutes` on
    the running event loop. A tick that fires while the previous location
    acquisition is still pending is skipped. stop() may be called at any
    time; anything acquired after it is discarded.
    """

    def __init__(
        self,
        employee_id: str,
        fence: GeofenceDefinition,
        provider: LocationProvider,
        store,
        interval_minutes: float = DEFAULT_TRACKING_INTERVAL_MINUTES,
        location_timeout: float = LOCATION_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")
        self.employee_id = employee_id
        self.fence = fence
        self.provider = provider
        self.store = store
        self.interval_minutes = interval_minutes
        self.location_timeout = location_timeout
        self.clock = clock

        self.state = TrackerState.IDLE
        self.started_at: Optional[datetime] = None
        self._log: List[PresenceRecord] = []
        self._listeners: List[BreachListener] = []
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        # Strong references so running async breach listeners are not collected
        self._listener_tasks: Set[asyncio.Future] = set()
        # Bumped on every start/stop so late results from an old session are dropped
        self._generation = 0

    @property
    def is_running(self) -> bool:
        return self.state == TrackerState.RUNNING

    @property
    def tick_in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def subscribe(self, listener: BreachListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_log(self) -> List[PresenceRecord]:
        return list(self._log)

    def start(self) -> "PresenceTracker":
        if self.is_running:
            return self
        self.state = TrackerState.RUNNING
        self.started_at = self.clock()
        self._generation += 1
        self._log = []
        self._loop_task = asyncio.get_running_loop().create_task(
            self._run(self._generation)
        )
        logger.info(
            f"[TRACKER] Started for {self.employee_id} against '{self.fence.name}' "
            f"every {self.interval_minutes} min"
        )
        return self

    def stop(self) -> List[PresenceRecord]:
        if self.is_running:
            self.state = TrackerState.IDLE
            self._generation += 1
            if self._loop_task is not None:
                self._loop_task.cancel()
            if self.tick_in_flight:
                self._inflight.cancel()
            self._loop_task = None
            self._inflight = None
            logger.info(
                f"[TRACKER] Stopped for {self.employee_id} after {len(self._log)} checks"
            )
        return list(self._log)

    async def check_now(self) -> Optional[PresenceRecord]:
        """Run one tick immediately; returns None if one is already in flight."""
        if not self.is_running:
            raise RuntimeError(f"Tracker for {self.employee_id} is not running")
        task = self._launch_tick(self._generation)
        if task is None:
            return None
        return await task

    async def _run(self, generation: int) -> None:
        self._launch_tick(generation)
        while self.is_running and generation == self._generation:
            await asyncio.sleep(self.interval_minutes * 60)
            if generation != self._generation:
                break
            self._launch_tick(generation)

    def _launch_tick(self, generation: int) -> Optional[asyncio.Task]:
        if self.tick_in_flight:
            logger.warning(
                f"[TRACKER] Previous check for {self.employee_id} still in flight, skipping tick"
            )
            return None
        task = asyncio.get_running_loop().create_task(self._tick(generation))
        task.add_done_callback(self._log_tick_failure)
        self._inflight = task
        return task

    def _log_tick_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[TRACKER] Check for {self.employee_id} failed: {error}")

    async def _tick(self, generation: int) -> Optional[PresenceRecord]:
        timestamp = self.clock()
        try:
            point = await asyncio.wait_for(
                self.provider.get_current_position(), timeout=self.location_timeout
            )
            result = check(point, self.fence)
        except asyncio.TimeoutError:
            record = self._gap_record(timestamp, LocationFailureReason.TIMEOUT.value)
        except LocationUnavailable as e:
            record = self._gap_record(timestamp, e.reason.value)
        except InvalidCoordinate:
            record = self._gap_record(timestamp, INVALID_COORDINATE_MARKER)
        else:
            record = PresenceRecord(
                employee_id=self.employee_id,
                timestamp=timestamp,
                latitude=point.latitude,
                longitude=point.longitude,
                accuracy=point.accuracy,
                is_within_geofence=result.is_within,
                distance_meters=result.distance_meters,
                geofence_name=result.geofence_name,
                interval_minutes=self.interval_minutes,
            )

        if generation != self._generation or not self.is_running:
            logger.info(f"[TRACKER] Discarding late check for {self.employee_id}")
            return None

        try:
            record = await self.store.append_presence_record(record)
        except PersistenceError:
            logger.exception(f"[TRACKER] Could not persist check for {self.employee_id}")
            raise
        # Only stored records belong to the session log
        self._log.append(record)

        if record.is_within_geofence is False:
            self._emit_breach(record)
        return record

    def _gap_record(self, timestamp: datetime, marker: str) -> PresenceRecord:
        logger.warning(f"[TRACKER] No usable position for {self.employee_id}: {marker}")
        return PresenceRecord(
            employee_id=self.employee_id,
            timestamp=timestamp,
            geofence_name=self.fence.name,
            interval_minutes=self.interval_minutes,
            error=marker,
        )

    def _emit_breach(self, record: PresenceRecord) -> None:
        logger.warning(
            f"[TRACKER] Employee {self.employee_id} is outside '{self.fence.name}' "
            f"({record.distance_meters:.0f} m from center) at {format_coordinates(record.coordinate)}"
        )
        for listener in list(self._listeners):
            try:
                outcome = listener(record)
            except Exception:
                logger.exception(f"[TRACKER] Breach listener failed for {self.employee_id}")
                continue
            if inspect.isawaitable(outcome):
                # Async listeners run on their own; a slow alert never delays ticks
                alert = asyncio.ensure_future(outcome)
                self._listener_tasks.add(alert)
                alert.add_done_callback(self._log_listener_failure)

    def _log_listener_failure(self, task: asyncio.Future) -> None:
        self._listener_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                f"[TRACKER] Async breach listener failed for {self.employee_id}: {task.exception()}"
            )


class TrackerRegistry:
    """At most one running PresenceTracker per employee id."""

    def __init__(
        self,
        store,
        provider_factory: Callable[[str], LocationProvider],
        location_timeout: float = LOCATION_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.provider_factory = provider_factory
        self.location_timeout = location_timeout
        self.clock = clock
        self._trackers: Dict[str, PresenceTracker] = {}
        self._listeners: List[BreachListener] = []

    def subscribe(self, listener: BreachListener) -> None:
        """Breach listener attached to every tracker started from now on."""
        self._listeners.append(listener)

    def get(self, employee_id: str) -> Optional[PresenceTracker]:
        return self._trackers.get(employee_id)

    def running(self) -> List[PresenceTracker]:
        return [t for t in self._trackers.values() if t.is_running]

    def start(
        self,
        employee_id: str,
        fence: GeofenceDefinition,
        interval_minutes: float = DEFAULT_TRACKING_INTERVAL_MINUTES,
    ) -> PresenceTracker:
        existing = self._trackers.get(employee_id)
        if existing is not None and existing.is_running:
            return existing

        tracker = PresenceTracker(
            employee_id,
            fence,
            self.provider_factory(employee_id),
            self.store,
            interval_minutes=interval_minutes,
            location_timeout=self.location_timeout,
            clock=self.clock,
        )
        for listener in self._listeners:
            tracker.subscribe(listener)
        self._trackers[employee_id] = tracker
        return tracker.start()

    def stop(self, employee_id: str) -> List[PresenceRecord]:
        tracker = self._trackers.pop(employee_id, None)
        if tracker is None:
            return []
        return tracker.stop()

    def stop_all(self) -> None:
        for employee_id in list(self._trackers):
            self.stop(employee_id)
