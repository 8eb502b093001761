import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Awaitable, Callable, Deque, List, NamedTuple, Optional, Tuple, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.config import PERSISTENCE_TIMEOUT_SECONDS
from core.exceptions import InvalidCoordinate, PersistenceError, RemoteSyncFailed
from models.coordinate import GeofenceDefinition, GeofenceSource
from models.geofence import Geofence
from models.presence_record import PresenceRecord
from models.time_log import TimeLog
from services.remote_sync import RemoteAttendanceClient
from utils.datetime_helpers import ensure_utc
from utils.geofence import validate_coordinate

logger = logging.getLogger(__name__)

T = TypeVar("T")
SyncKey = Tuple[GeofenceSource, str]


class _PendingSync(NamedTuple):
    description: str
    push: Callable[[], Awaitable[None]]
    # Set for geofence writes and deletes so a read can tell the remote copy is stale
    key: Optional[SyncKey] = None


class LocalStore:
    """
    Blocking SQLModel storage. Every write commits before returning; any
    database error surfaces as PersistenceError.
    """

    def __init__(self, engine):
        self.engine = engine

    # --- Geofence definitions ---

    def save_geofence_definition(
        self, scope_key: str, definition: GeofenceDefinition
    ) -> GeofenceDefinition:
        try:
            with Session(self.engine) as session:
                row = session.exec(
                    select(Geofence)
                    .where(Geofence.source == definition.source)
                    .where(Geofence.scope_key == scope_key)
                ).first()
                if row is None:
                    row = Geofence(
                        source=definition.source,
                        scope_key=scope_key,
                        name=definition.name,
                        center_lat=definition.center.latitude,
                        center_lng=definition.center.longitude,
                        radius_meters=definition.radius_meters,
                    )
                else:
                    # Whole-definition replacement, never a partial patch
                    row.name = definition.name
                    row.center_lat = definition.center.latitude
                    row.center_lng = definition.center.longitude
                    row.radius_meters = definition.radius_meters
                    row.updated_at = datetime.now(timezone.utc)
                session.add(row)
                session.commit()
                session.refresh(row)
                return row.to_definition()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not save geofence {scope_key}: {e}") from e

    def load_geofence_definition(
        self, source: GeofenceSource, scope_key: str
    ) -> Optional[GeofenceDefinition]:
        try:
            with Session(self.engine) as session:
                row = session.exec(
                    select(Geofence)
                    .where(Geofence.source == source)
                    .where(Geofence.scope_key == scope_key)
                ).first()
                return row.to_definition() if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load geofence {scope_key}: {e}") from e

    def delete_geofence_definition(self, source: GeofenceSource, scope_key: str) -> bool:
        try:
            with Session(self.engine) as session:
                row = session.exec(
                    select(Geofence)
                    .where(Geofence.source == source)
                    .where(Geofence.scope_key == scope_key)
                ).first()
                if row is None:
                    return False
                session.delete(row)
                session.commit()
                return True
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not delete geofence {scope_key}: {e}") from e

    def list_geofence_definitions(
        self, source: Optional[GeofenceSource] = None
    ) -> List[Tuple[str, GeofenceDefinition]]:
        statement = select(Geofence)
        if source is not None:
            statement = statement.where(Geofence.source == source)
        statement = statement.order_by(Geofence.source, Geofence.scope_key)
        try:
            with Session(self.engine) as session:
                return [(row.scope_key, row.to_definition()) for row in session.exec(statement).all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not list geofences: {e}") from e

    # --- Presence log ---

    def append_presence_record(self, record: PresenceRecord) -> PresenceRecord:
        record.timestamp = ensure_utc(record.timestamp)
        try:
            with Session(self.engine) as session:
                session.add(record)
                session.commit()
                session.refresh(record)
                return record
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Could not append presence record for {record.employee_id}: {e}"
            ) from e

    def load_presence_records(
        self,
        employee_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[PresenceRecord]:
        statement = select(PresenceRecord).where(PresenceRecord.employee_id == employee_id)
        if start is not None:
            statement = statement.where(PresenceRecord.timestamp >= ensure_utc(start))
        if end is not None:
            statement = statement.where(PresenceRecord.timestamp <= ensure_utc(end))
        statement = statement.order_by(PresenceRecord.timestamp, PresenceRecord.id)
        try:
            with Session(self.engine) as session:
                return list(session.exec(statement).all())
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Could not load presence records for {employee_id}: {e}"
            ) from e

    # --- Punches ---

    def append_time_log(self, log: TimeLog) -> TimeLog:
        log.timestamp = ensure_utc(log.timestamp)
        try:
            with Session(self.engine) as session:
                session.add(log)
                session.commit()
                session.refresh(log)
                return log
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not save punch for {log.employee_id}: {e}") from e

    def load_time_logs(
        self, employee_id: str, since: Optional[datetime] = None
    ) -> List[TimeLog]:
        statement = select(TimeLog).where(TimeLog.employee_id == employee_id)
        if since is not None:
            statement = statement.where(TimeLog.timestamp >= ensure_utc(since))
        statement = statement.order_by(TimeLog.timestamp.desc(), TimeLog.id.desc())
        try:
            with Session(self.engine) as session:
                return list(session.exec(statement).all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load punches for {employee_id}: {e}") from e

    def last_time_log(self, employee_id: str) -> Optional[TimeLog]:
        try:
            with Session(self.engine) as session:
                return session.exec(
                    select(TimeLog)
                    .where(TimeLog.employee_id == employee_id)
                    .order_by(TimeLog.timestamp.desc(), TimeLog.id.desc())
                    .limit(1)
                ).first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load last punch for {employee_id}: {e}") from e


class GeofenceStore:
    """
    Async persistence adapter used by the resolver, tracker and punch flows.

    Local storage is authoritative: blocking work runs off the event loop,
    bounded by `timeout`, and is awaited to completion. When a remote client
    is configured, geofence definitions, deletes and punches are mirrored
    after the local commit; a remote failure is logged and queued for
    retry_pending_sync, never rolled back. A definition with a queued remote
    write is read from local storage only, since the remote copy is stale.
    """

    def __init__(
        self,
        local: LocalStore,
        remote: Optional[RemoteAttendanceClient] = None,
        timeout: float = PERSISTENCE_TIMEOUT_SECONDS,
    ):
        self.local = local
        self.remote = remote
        self.timeout = timeout
        self._pending: Deque[_PendingSync] = deque()

    @property
    def pending_sync_count(self) -> int:
        return len(self._pending)

    def has_pending_sync(self, source: GeofenceSource, scope_key: str) -> bool:
        return any(p.key == (source, scope_key) for p in self._pending)

    async def _run_local(self, fn: Callable[..., T], *args) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise PersistenceError(
                f"Local storage did not answer {fn.__name__} within {self.timeout}s"
            ) from e

    async def _mirror(
        self,
        description: str,
        push: Callable[[], Awaitable[None]],
        key: Optional[SyncKey] = None,
    ) -> bool:
        if self.remote is None:
            return False
        if key is not None:
            # The newest write for a definition supersedes anything still queued for it
            for stale in [p for p in self._pending if p.key == key]:
                self._pending.remove(stale)
        try:
            await push()
            return True
        except RemoteSyncFailed as e:
            logger.warning(f"[SYNC] ⚠️ {description} not mirrored, queued for retry: {e}")
            self._pending.append(_PendingSync(description, push, key))
            return False

    async def retry_pending_sync(self) -> int:
        """Replay queued remote writes once; returns how many went through."""
        synced = 0
        for _ in range(len(self._pending)):
            pending = self._pending.popleft()
            try:
                await pending.push()
                synced += 1
            except RemoteSyncFailed as e:
                logger.warning(f"[SYNC] Retry of {pending.description} failed again: {e}")
                self._pending.append(pending)
        return synced

    # --- Geofence definitions ---

    async def save_geofence_definition(
        self, scope_key: str, definition: GeofenceDefinition
    ) -> GeofenceDefinition:
        saved = await self._run_local(self.local.save_geofence_definition, scope_key, definition)
        await self._mirror(
            f"geofence {saved.source.value}/{scope_key}",
            lambda: self.remote.push_geofence(scope_key, saved),
            key=(saved.source, scope_key),
        )
        return saved

    async def _fetch_remote(
        self, source: GeofenceSource, scope_key: str
    ) -> Optional[GeofenceDefinition]:
        fetched = await self.remote.fetch_geofence(source, scope_key)
        if fetched is None:
            return None
        if fetched.source != source:
            raise RemoteSyncFailed(
                f"Remote returned a {fetched.source.value} geofence for {source.value}/{scope_key}"
            )
        try:
            validate_coordinate(fetched.center)
        except InvalidCoordinate as e:
            raise RemoteSyncFailed(f"Remote geofence {source.value}/{scope_key}: {e}") from e
        if not fetched.radius_meters > 0:
            raise RemoteSyncFailed(
                f"Remote geofence {source.value}/{scope_key} has radius {fetched.radius_meters}"
            )
        return fetched

    async def load_geofence_definition(
        self, source: GeofenceSource, scope_key: str
    ) -> Optional[GeofenceDefinition]:
        if self.remote is not None and not self.has_pending_sync(source, scope_key):
            try:
                fetched = await self._fetch_remote(source, scope_key)
            except RemoteSyncFailed as e:
                logger.warning(
                    f"[SYNC] Remote read of {source.value}/{scope_key} failed, using local snapshot: {e}"
                )
            else:
                if fetched is not None:
                    # Refresh the local snapshot so later offline reads see it
                    return await self._run_local(
                        self.local.save_geofence_definition, scope_key, fetched
                    )
        return await self._run_local(self.local.load_geofence_definition, source, scope_key)

    async def delete_geofence_definition(self, source: GeofenceSource, scope_key: str) -> bool:
        deleted = await self._run_local(self.local.delete_geofence_definition, source, scope_key)
        if deleted:
            await self._mirror(
                f"delete of geofence {source.value}/{scope_key}",
                lambda: self.remote.delete_geofence(source, scope_key),
                key=(source, scope_key),
            )
        return deleted

    async def list_geofence_definitions(
        self, source: Optional[GeofenceSource] = None
    ) -> List[Tuple[str, GeofenceDefinition]]:
        return await self._run_local(self.local.list_geofence_definitions, source)

    # --- Presence log (local only) ---

    async def append_presence_record(self, record: PresenceRecord) -> PresenceRecord:
        return await self._run_local(self.local.append_presence_record, record)

    async def load_presence_records(
        self,
        employee_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[PresenceRecord]:
        return await self._run_local(self.local.load_presence_records, employee_id, start, end)

    # --- Punches ---

    async def append_time_log(self, log: TimeLog) -> TimeLog:
        saved = await self._run_local(self.local.append_time_log, log)
        await self._mirror(
            f"{saved.punch_type.value} #{saved.id} for {saved.employee_id}",
            lambda: self.remote.push_punch(saved),
        )
        return saved

    async def load_time_logs(
        self, employee_id: str, since: Optional[datetime] = None
    ) -> List[TimeLog]:
        return await self._run_local(self.local.load_time_logs, employee_id, since)

    async def last_time_log(self, employee_id: str) -> Optional[TimeLog]:
        return await self._run_local(self.local.last_time_log, employee_id)


async def run_sync_retry_loop(store: GeofenceStore, interval_seconds: float) -> None:
    """Periodically replay remote writes that failed; runs until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        if store.pending_sync_count == 0:
            continue
        synced = await store.retry_pending_sync()
        logger.info(
            f"[SYNC] Retry pass mirrored {synced} write(s), {store.pending_sync_count} still pending"
        )
