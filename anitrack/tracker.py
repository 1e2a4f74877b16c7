"""
Tracker facade.

Tracker is what a UI host calls. Each mutation is applied locally through
LibraryStore first, then mirrored into the sync queue, then (with
auto_sync on) a background drain is started. The local change is visible
immediately whether or not AniList is reachable.

    Tracker call                       Queued operation
    add                                updateProgress {progress, status, score}
    update_progress                    updateProgress {progress, status}
    update_score                       updateProgress {progress, status, score}
    update_status, move_between_lists  updateStatus {status}
    reorder                            nothing (order is local only)
    delete                             deleteEntry {remote_id}

Usage:
    tracker = Tracker.from_config(load_config())
    entry = tracker.add(media, ListStatus.PLAN_TO_WATCH)
    tracker.update_progress(entry.id, 1)
    ...
    await tracker.close()
"""

from contextlib import contextmanager
from typing import Callable, Generator

from anitrack.anilist.client import AniListClient
from anitrack.anilist.models import ListStatus, MediaItem
from anitrack.anilist.operations import SearchAnimeQuery
from anitrack.core.config import Config, token_from_environment
from anitrack.core.database import Database
from anitrack.core.events import EventBus
from anitrack.library.models import LibraryEntry
from anitrack.library.store import LibraryStore
from anitrack.sync.engine import SyncEngine
from anitrack.sync.models import OperationKind


class Tracker:
    """
    Local mutations paired with their queued remote writes.

    Attributes:
        store: Local library store.
        engine: Sync engine that owns the queue.
        auto_sync: Start a background drain after each mutation.
        events: Bus shared by store and engine, for UI subscribers.
    """

    def __init__(
        self,
        store: LibraryStore,
        engine: SyncEngine,
        auto_sync: bool = True,
        events: EventBus | None = None,
    ) -> None:
        self.store = store
        self.engine = engine
        self.auto_sync = auto_sync
        self.events = events

    @classmethod
    def from_config(
        cls,
        config: Config,
        token_provider: Callable[[], str | None] = token_from_environment,
        user_id_provider: Callable[[], int | None] | None = None,
    ) -> "Tracker":
        """Wire database, client, store and engine from a loaded Config."""
        events = EventBus()
        database = Database(config.storage.database_path)
        client = AniListClient(config.anilist, config.retry, token_provider)
        engine = SyncEngine(
            database, client, config.sync, user_id_provider=user_id_provider, events=events
        )
        return cls(
            store=engine.store,
            engine=engine,
            auto_sync=config.sync.auto_sync,
            events=events,
        )

    async def close(self) -> None:
        """Close the remote client session and the database."""
        close = getattr(self.engine.client, "close", None)
        if close is not None:
            await close()
        self.engine.database.close()

    @contextmanager
    def _mutation(self) -> Generator[None, None, None]:
        """
        Commit a local change together with its queued operation.

        A failed enqueue rolls the local change back, so an entry is never
        left dirty without a queued write. The drain starts after commit.
        """
        with self.engine.database.transaction():
            yield
        if self.auto_sync:
            self.engine.trigger_process_queue()

    # =========================================================================
    # Mutations
    # =========================================================================

    def add(
        self,
        media: MediaItem,
        status: ListStatus,
        progress: int = 0,
        score: float | None = None
    ) -> LibraryEntry:
        with self._mutation():
            entry = self.store.add(media, status, progress=progress, score=score)
            self.engine.enqueue(OperationKind.UPDATE_PROGRESS, entry.media_id, {
                "progress": entry.progress,
                "status": entry.status.value,
                "score": entry.score,
            })
        return entry

    def update_progress(self, entry_id: int, progress: int) -> LibraryEntry:
        with self._mutation():
            entry = self.store.update_progress(entry_id, progress)
            self.engine.enqueue(OperationKind.UPDATE_PROGRESS, entry.media_id, {
                "progress": entry.progress,
                "status": entry.status.value,
            })
        return entry

    def update_score(self, entry_id: int, score: float | None) -> LibraryEntry:
        with self._mutation():
            entry = self.store.update_score(entry_id, score)
            self.engine.enqueue(OperationKind.UPDATE_PROGRESS, entry.media_id, {
                "progress": entry.progress,
                "status": entry.status.value,
                "score": entry.score,
            })
        return entry

    def update_status(self, entry_id: int, status: ListStatus) -> LibraryEntry:
        with self._mutation():
            entry = self.store.update_status(entry_id, status)
            self.engine.enqueue(OperationKind.UPDATE_STATUS, entry.media_id, {"status": entry.status.value})
        return entry

    def move_between_lists(self, entry_id: int, to_status: ListStatus) -> LibraryEntry:
        with self._mutation():
            entry = self.store.move_between_lists(entry_id, to_status)
            self.engine.enqueue(OperationKind.UPDATE_STATUS, entry.media_id, {"status": entry.status.value})
        return entry

    def reorder(self, status: ListStatus, from_index: int, to_index: int) -> list[LibraryEntry]:
        return self.store.reorder(status, from_index, to_index)

    def delete(self, entry_id: int) -> LibraryEntry:
        with self._mutation():
            entry = self.store.delete(entry_id)
            self.engine.enqueue(OperationKind.DELETE_ENTRY, entry.media_id, {"remote_id": entry.remote_id})
        return entry

    # =========================================================================
    # Reads and remote passthroughs
    # =========================================================================

    def library(self, status: ListStatus | None = None) -> list[LibraryEntry]:
        if status is None:
            return self.store.fetch_all()
        return self.store.fetch_by_status(status)

    async def search(self, text: str, per_page: int = 20) -> tuple[MediaItem, ...]:
        """Search the AniList catalog. Results are not added to the library."""
        return await self.engine.client.execute(SearchAnimeQuery(search=text, per_page=per_page))
