"""
Offline-first sync engine.

SyncEngine moves local changes to AniList and AniList changes into the
local library:

    push: enqueue() appends a durable QueuedOperation; process_queue()
          drains the queue FIFO through the remote client.
    pull: sync_user_lists() / sync_all() fetch the user's list and
          reconcile it into the local store.

Queue item lifecycle:
    Pending -> InFlight -> Applied (row deleted)
                        -> Failed (attempts + 1, back to Pending)

Items are never dropped automatically. A failed item keeps its place and
is retried on the next drain.

Reconciliation rule (per remote entry):
    - local entry dirty               -> local wins, remote ignored
    - deleteEntry queued for the media -> remote ignored (no resurrection)
    - local entry clean               -> overwritten by remote
    - no local entry                  -> created clean at the end of its list
    - local entry missing remotely    -> kept (remote deletions are not pulled)

Usage:
    engine = SyncEngine(database, client, config.sync, events=bus)
    engine.enqueue(OperationKind.UPDATE_PROGRESS, 21, {"progress": 5})

    report = await engine.process_queue()
    await engine.sync_user_lists()
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from anitrack.anilist.models import ListStatus, RemoteListEntry
from anitrack.anilist.operations import (
    DeleteMediaListEntryMutation,
    FetchMediaListEntryQuery,
    FetchUserAnimeListQuery,
    FetchViewerQuery,
    SaveMediaListEntryMutation,
)
from anitrack.core.config import SyncSettings
from anitrack.core.database import Database
from anitrack.core.events import EventBus, QueueDrained, SyncCompleted, SyncFailed
from anitrack.core.exceptions import (
    AniTrackError,
    ApiError,
    DecodingError,
    QueueWriteError,
    RateLimitExceededError,
    StoreError,
)
from anitrack.core.logger import get_logger, log_sync_failure
from anitrack.library.store import LibraryStore
from anitrack.sync.models import (
    OperationKind,
    QueuedOperation,
    QueueReport,
    ReconcileReport,
    SyncCursor,
)

logger = get_logger(__name__)


UserIdProvider = Callable[[], int | None]


class SyncEngine:
    """
    Push/pull synchronization between the local store and AniList.

    Attributes:
        database: Shared entity store (entries, catalog and queue).
        client: Anything with `async execute(operation)`, normally an
                AniListClient.
        settings: Retry budget and periodic sync behaviour.
        store: LibraryStore used to apply pulled entries.
        cursor: Pull bookkeeping for this engine's lifetime.
    """

    def __init__(
        self,
        database: Database,
        client: Any,
        settings: SyncSettings,
        user_id_provider: UserIdProvider | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.database = database
        self.client = client
        self.settings = settings
        self.events = events
        self.store = LibraryStore(database, events=events)
        self.cursor = SyncCursor()
        self._user_id_provider = user_id_provider
        self._viewer_id: int | None = None
        self._draining = False
        self._drain_task: asyncio.Task | None = None

    # =========================================================================
    # Queue
    # =========================================================================

    def enqueue(self, kind: OperationKind, media_id: int, payload: dict[str, Any]) -> QueuedOperation:
        """
        Durably append an operation to the queue.

        Raises:
            QueueWriteError: The operation could not be persisted.
        """
        try:
            row = self.database.append_operation(kind.value, media_id, payload)
        except StoreError as e:
            raise QueueWriteError(
                f"Failed to queue {kind.value} for media {media_id}: {e.message}",
                details={"kind": kind.value, "media_id": media_id, **e.details}
            ) from e

        logger.debug(f"Queued {kind.value} for media {media_id}")
        return QueuedOperation.from_database_dict(row)

    def pending_operations(self) -> list[QueuedOperation]:
        """Queued operations in drain order."""
        return [QueuedOperation.from_database_dict(row) for row in self.database.list_operations()]

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def process_queue(self) -> QueueReport:
        """
        Drain the queue once, oldest operation first.

        Only one drain runs at a time: a call made while another is in
        progress returns immediately with report.skipped set.

        A failed operation stays queued with attempts + 1 and the drain
        moves on to other media; later operations for the same media wait
        for the next pass. After the pass, the first surfaced failure is
        raised: any non-transient error, an exhausted rate limit, or a
        transient error whose operation has now failed max_attempts times.

        Raises:
            AniTrackError: The first surfaced failure of this pass.
            asyncio.CancelledError: The in-flight operation stays queued
                                    with its attempts unchanged.
        """
        if self._draining:
            logger.debug("Sync queue drain already running, skipping")
            return QueueReport(skipped=True, remaining=self.database.count_operations())

        self._draining = True
        try:
            report, surfaced = await self._drain()
        finally:
            self._draining = False

        self._publish(QueueDrained(report=report))
        if surfaced is not None:
            self._publish(SyncFailed(error=surfaced))
            raise surfaced
        return report

    async def _drain(self) -> tuple[QueueReport, AniTrackError | None]:
        report = QueueReport()
        surfaced: AniTrackError | None = None
        blocked: set[int] = set()

        operations = self.pending_operations()
        if operations:
            logger.info(f"Processing {len(operations)} queued operation(s)")

        for operation in operations:
            # Later writes for a media must not overtake a failed earlier one
            if operation.media_id in blocked:
                report.deferred += 1
                continue

            try:
                remote_id = await self._apply(operation)
            except AniTrackError as e:
                attempts = self.database.record_operation_failure(operation.id, str(e))
                surface = self._should_surface(e, attempts)
                log_sync_failure(
                    logger,
                    operation=operation.kind.value,
                    media_id=operation.media_id,
                    attempts=attempts,
                    reason=str(e),
                    surfaced=surface,
                )
                report.failed += 1
                report.errors.append(e)
                blocked.add(operation.media_id)
                if surface and surfaced is None:
                    surfaced = e
                continue

            with self.database.transaction():
                self.database.delete_operation(operation.id)
                if operation.kind is not OperationKind.DELETE_ENTRY:
                    still_pending = self.database.count_operations(media_id=operation.media_id)
                    self.store.mark_synced(
                        operation.media_id, remote_id, clear_dirty=still_pending == 0
                    )
            report.applied += 1
            logger.debug(f"Applied {operation.kind.value} for media {operation.media_id}")

        report.remaining = self.database.count_operations()
        if operations:
            logger.info(
                f"Sync queue pass done: {report.applied} applied, {report.failed} failed, "
                f"{report.deferred} deferred, {report.remaining} remaining"
            )
        return report, surfaced

    def _should_surface(self, error: AniTrackError, attempts: int) -> bool:
        if isinstance(error, RateLimitExceededError):
            return True
        if error.is_transient:
            return attempts >= self.settings.max_attempts
        return True

    async def _apply(self, operation: QueuedOperation) -> int | None:
        """Send one operation. Returns the AniList entry id when one is known."""
        if operation.kind is OperationKind.DELETE_ENTRY:
            await self._delete_remote(operation)
            return None

        mutation = self._build_save_mutation(operation)
        saved = await self.client.execute(mutation)
        return saved.id

    def _build_save_mutation(self, operation: QueuedOperation) -> SaveMediaListEntryMutation:
        payload = operation.payload
        try:
            if operation.kind is OperationKind.UPDATE_STATUS:
                return SaveMediaListEntryMutation(
                    media_id=operation.media_id,
                    status=ListStatus(payload["status"]),
                )

            score = None
            if "score" in payload:
                # A null score clears the remote one (scoreRaw 0)
                score = 0.0 if payload["score"] is None else float(payload["score"])
            status = payload.get("status")
            return SaveMediaListEntryMutation(
                media_id=operation.media_id,
                progress=int(payload["progress"]),
                status=ListStatus(status) if status is not None else None,
                score=score,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecodingError(
                f"Invalid {operation.kind.value} payload: {payload!r}",
                details={"operation_id": operation.id, "original_error": repr(e)}
            ) from e

    async def _delete_remote(self, operation: QueuedOperation) -> None:
        remote_id = operation.payload.get("remote_id")
        try:
            if remote_id is None:
                user_id = await self._resolve_user_id()
                entry = await self.client.execute(
                    FetchMediaListEntryQuery(user_id=user_id, media_id=operation.media_id)
                )
                remote_id = entry.id
            await self.client.execute(DeleteMediaListEntryMutation(entry_id=int(remote_id)))
        except ApiError as e:
            if e.status_code != 404:
                raise
            logger.debug(f"Media {operation.media_id} has no AniList entry, nothing to delete")

    async def _resolve_user_id(self) -> int:
        if self._user_id_provider is not None:
            user_id = self._user_id_provider()
            if user_id is not None:
                return user_id

        if self._viewer_id is None:
            viewer = await self.client.execute(FetchViewerQuery())
            self._viewer_id = viewer.id
            logger.info(f"Syncing as AniList user {viewer.name} ({viewer.id})")
        return self._viewer_id

    def trigger_process_queue(self) -> asyncio.Task | None:
        """
        Start a background drain if none is running.

        Returns the task, or None when a drain is already in progress or
        there is no running event loop. Failures of the background drain
        are logged, never raised.
        """
        if self._draining or (self._drain_task is not None and not self._drain_task.done()):
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, background drain deferred")
            return None

        self._drain_task = loop.create_task(self._background_drain())
        return self._drain_task

    async def _background_drain(self) -> None:
        try:
            await self.process_queue()
        except AniTrackError as e:
            logger.warning(f"Background sync failed: {e}")

    # =========================================================================
    # Pull
    # =========================================================================

    async def sync_user_lists(self) -> ReconcileReport:
        """
        Incremental pull.

        Reconciles the remote entries updated after the last pull (minus
        settings.incremental_skew seconds). Without a previous pull every
        entry is reconciled.
        """
        return await self._pull(full=False)

    async def sync_all(self) -> ReconcileReport:
        """Full pull: reconcile every remote entry."""
        return await self._pull(full=True)

    async def rebuild_from_remote(self) -> ReconcileReport:
        """
        Recovery path for corrupted local data.

        Destroys the database (queued operations included), then runs a
        full pull into the fresh store.
        """
        logger.warning("Rebuilding local library from AniList")
        self.database.destroy_and_recreate()
        self.cursor = SyncCursor()
        return await self.sync_all()

    async def _pull(self, full: bool) -> ReconcileReport:
        started = datetime.now(timezone.utc)
        window_start = None
        if not full and self.cursor.last_sync_at is not None:
            window_start = self.cursor.last_sync_at - timedelta(seconds=self.settings.incremental_skew)

        try:
            user_id = await self._resolve_user_id()
            collection = await self.client.execute(FetchUserAnimeListQuery(user_id=user_id))

            report = ReconcileReport(full=full, fetched=len(collection.entries))
            for remote in collection.entries:
                if (
                    window_start is not None
                    and remote.updated_at is not None
                    and remote.updated_at <= window_start
                ):
                    continue
                self._reconcile(remote, report)
        except AniTrackError as e:
            logger.error(f"{'Full' if full else 'Incremental'} sync failed: {e}")
            self._publish(SyncFailed(error=e))
            raise

        self.cursor.last_sync_at = started
        if full:
            self.cursor.last_full_sync_at = started

        logger.info(
            f"{'Full' if full else 'Incremental'} sync: {report.fetched} remote entries, "
            f"{report.created} created, {report.updated} updated, {report.kept_local} kept local"
        )
        self._publish(SyncCompleted(report=report))
        return report

    def _reconcile(self, remote: RemoteListEntry, report: ReconcileReport) -> None:
        media_id = remote.media.id
        with self.database.transaction():
            local = self.database.get_entry_by_media(media_id)

            if local is not None and local["dirty"]:
                self.database.upsert_media(remote.media.to_database_dict())
                report.kept_local += 1
                logger.debug(f"Media {media_id}: local changes pending, remote ignored")
                return

            if self.database.count_operations(media_id=media_id, kind=OperationKind.DELETE_ENTRY.value):
                self.database.upsert_media(remote.media.to_database_dict())
                report.skipped_pending_delete += 1
                logger.debug(f"Media {media_id}: delete pending, remote ignored")
                return

            if local is not None and _matches(local, remote):
                self.database.upsert_media(remote.media.to_database_dict())
                report.unchanged += 1
                return

            self.store.apply_remote(remote)
            if local is None:
                report.created += 1
            else:
                report.updated += 1

    # =========================================================================
    # Periodic sync
    # =========================================================================

    async def run_periodic(self, interval: float | None = None) -> None:
        """
        Drain the queue and pull when stale, every `interval` seconds.

        Runs until cancelled. Errors are logged and the loop continues.
        """
        interval = interval or self.settings.auto_sync_interval
        logger.info(f"Periodic sync every {interval:g}s")
        while True:
            try:
                await self.process_queue()
                if self.cursor.is_stale(interval):
                    await self.sync_user_lists()
            except AniTrackError as e:
                logger.warning(f"Periodic sync failed: {e}")
            await asyncio.sleep(interval)

    def _publish(self, event: Any) -> None:
        if self.events is not None:
            self.events.publish(event)


def _matches(local: dict[str, Any], remote: RemoteListEntry) -> bool:
    return (
        local["status"] == remote.status.value
        and local["progress"] == remote.progress
        and local["score"] == remote.score
        and local["remote_id"] == remote.id
    )
