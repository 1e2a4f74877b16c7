"""
Local library store.

LibraryStore owns the user's library entries in the local database and
keeps, for every status, a gap-free `sort_position` sequence 0..n-1
across add, move, reorder and delete. It is local only: it never calls
AniList and never touches the sync queue. The Tracker facade pairs each
mutation with the matching queued operation.

Every mutation runs in one database transaction and, when it commits,
publishes an EntryChanged event.

Usage:
    store = LibraryStore(database, events=bus)

    entry = store.add(media, ListStatus.WATCHING)
    store.update_progress(entry.id, 3)
    store.reorder(ListStatus.WATCHING, from_index=2, to_index=0)
"""

from datetime import datetime, timezone

from anitrack.anilist.models import STATUS_ORDER, ListStatus, MediaItem, RemoteListEntry
from anitrack.core.database import Database, now_iso
from anitrack.core.events import EntryChanged, EventBus
from anitrack.core.exceptions import (
    DuplicateEntryError,
    InvalidIndexError,
    NotFoundError,
    ValidationError,
)
from anitrack.core.logger import get_logger
from anitrack.library.models import LibraryEntry

logger = get_logger(__name__)


class LibraryStore:
    """
    CRUD and ordering for library entries.

    Attributes:
        database: The shared entity store.
        events: Optional bus that receives EntryChanged events.
    """

    def __init__(self, database: Database, events: EventBus | None = None) -> None:
        self.database = database
        self.events = events

    # =========================================================================
    # Reads
    # =========================================================================

    def _to_entry(self, row: dict) -> LibraryEntry:
        media_row = self.database.get_media(row["media_id"])
        media = MediaItem.from_database_dict(media_row) if media_row else None
        return LibraryEntry.from_database_dict(row, media=media)

    def get(self, entry_id: int) -> LibraryEntry | None:
        row = self.database.get_entry(entry_id)
        return self._to_entry(row) if row else None

    def get_by_media(self, media_id: int) -> LibraryEntry | None:
        row = self.database.get_entry_by_media(media_id)
        return self._to_entry(row) if row else None

    def fetch_by_status(self, status: ListStatus) -> list[LibraryEntry]:
        """Entries of one list, ordered by sort_position."""
        return [self._to_entry(row) for row in self.database.query_entries(status=status.value)]

    def fetch_all(self) -> list[LibraryEntry]:
        """Every entry, grouped in list order (Watching first), then by position."""
        entries: list[LibraryEntry] = []
        for status in STATUS_ORDER:
            entries.extend(self.fetch_by_status(status))
        return entries

    def fetch_dirty(self) -> list[LibraryEntry]:
        return [self._to_entry(row) for row in self.database.query_entries(dirty=True)]

    def _require(self, entry_id: int) -> dict:
        row = self.database.get_entry(entry_id)
        if row is None:
            raise NotFoundError(entry_id)
        return row

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate_progress(self, progress: int, episodes: int | None) -> None:
        if isinstance(progress, bool) or not isinstance(progress, int) or progress < 0:
            raise ValidationError(
                f"Progress must be a non-negative integer, got {progress!r}",
                details={"progress": progress}
            )
        if episodes is not None and progress > episodes:
            raise ValidationError(
                f"Progress {progress} exceeds the episode count ({episodes})",
                details={"progress": progress, "episodes": episodes}
            )

    def _validate_score(self, score: float | None) -> None:
        if score is None:
            return
        if isinstance(score, bool) or not isinstance(score, (int, float)) or not 0 <= score <= 100:
            raise ValidationError(
                f"Score must be between 0 and 100, got {score!r}",
                details={"score": score}
            )

    def _episodes(self, media_id: int) -> int | None:
        media = self.database.get_media(media_id)
        return media["episodes"] if media else None

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
        """
        Add a media item to the end of a list.

        The catalog cache is refreshed with `media`, and the new entry is
        dirty until the queued save reaches AniList.

        Raises:
            DuplicateEntryError: The media is already in the library.
            ValidationError: progress or score is out of range.
        """
        self._validate_progress(progress, media.episodes)
        self._validate_score(score)

        with self.database.transaction():
            if self.database.get_entry_by_media(media.id) is not None:
                raise DuplicateEntryError(media.id)

            self.database.upsert_media(media.to_database_dict())
            entry_id = self.database.insert_entry({
                "media_id": media.id,
                "status": status.value,
                "progress": progress,
                "score": float(score) if score is not None else None,
                "sort_position": self.database.count_entries(status.value),
                "dirty": True,
                "last_modified": now_iso(),
            })

        logger.debug(f"Added media {media.id} to {status.display_name}")
        self._publish(entry_id, media.id, "created")
        return self.get(entry_id)

    def update_progress(self, entry_id: int, progress: int) -> LibraryEntry:
        row = self._require(entry_id)
        self._validate_progress(progress, self._episodes(row["media_id"]))
        return self._touch(row, "updated", progress=progress)

    def update_status(self, entry_id: int, status: ListStatus) -> LibraryEntry:
        """Change the status without repositioning (see move_between_lists)."""
        row = self._require(entry_id)
        return self._touch(row, "updated", status=status.value)

    def update_score(self, entry_id: int, score: float | None) -> LibraryEntry:
        row = self._require(entry_id)
        self._validate_score(score)
        return self._touch(row, "updated", score=float(score) if score is not None else None)

    def _touch(self, row: dict, change: str, **fields) -> LibraryEntry:
        self.database.update_entry(row["id"], dirty=True, last_modified=now_iso(), **fields)
        self._publish(row["id"], row["media_id"], change)
        return self.get(row["id"])

    def move_between_lists(self, entry_id: int, to_status: ListStatus) -> LibraryEntry:
        """
        Move an entry to the end of another list and close the gap it left.

        Moving to the status it already has only marks it dirty.
        """
        row = self._require(entry_id)
        from_status = row["status"]
        if from_status == to_status.value:
            return self._touch(row, "updated")

        with self.database.transaction():
            self.database.update_entry(
                entry_id,
                status=to_status.value,
                sort_position=self.database.count_entries(to_status.value),
                dirty=True,
                last_modified=now_iso(),
            )
            self._recompact(from_status)

        self._publish(entry_id, row["media_id"], "moved")
        return self.get(entry_id)

    def reorder(self, status: ListStatus, from_index: int, to_index: int) -> list[LibraryEntry]:
        """
        Move the entry at from_index to to_index within one list.

        Every entry of the list is renumbered by its new index. AniList
        has no list order, so reordered entries are not marked dirty.

        Returns:
            The list in its new order.

        Raises:
            InvalidIndexError: Either index is outside [0, count).
        """
        with self.database.transaction():
            rows = self.database.query_entries(status=status.value)
            for index in (from_index, to_index):
                if not 0 <= index < len(rows):
                    raise InvalidIndexError(index, len(rows), details={"status": status.value})

            moved = rows.pop(from_index)
            rows.insert(to_index, moved)
            for position, row in enumerate(rows):
                if row["sort_position"] != position:
                    self.database.update_entry(row["id"], sort_position=position)

        if from_index != to_index:
            self._publish(moved["id"], moved["media_id"], "reordered")
        return self.fetch_by_status(status)

    def delete(self, entry_id: int) -> LibraryEntry:
        """
        Remove an entry and close the gap in its list.

        Returns:
            The entry as it was before deletion (its remote_id is what a
            queued remote delete needs).
        """
        row = self._require(entry_id)
        entry = self._to_entry(row)

        with self.database.transaction():
            self.database.delete_entry(entry_id)
            self._recompact(row["status"])

        logger.debug(f"Deleted media {row['media_id']} from {entry.status.display_name}")
        self._publish(entry_id, row["media_id"], "deleted")
        return entry

    def _recompact(self, status: str) -> None:
        """Renumber one list to 0..n-1, keeping relative order."""
        for position, row in enumerate(self.database.query_entries(status=status)):
            if row["sort_position"] != position:
                self.database.update_entry(row["id"], sort_position=position)

    # =========================================================================
    # Sync support
    # =========================================================================

    def apply_remote(self, remote: RemoteListEntry) -> LibraryEntry:
        """
        Overwrite (or create) the local entry for a remote list entry.

        The result is clean. A status change appends the entry to its new
        list and recompacts the old one. Callers decide beforehand whether
        local state should win (dirty entry, pending delete).
        """
        media_id = remote.media.id
        last_modified = (remote.updated_at or datetime.now(timezone.utc)).isoformat()

        with self.database.transaction():
            self.database.upsert_media(remote.media.to_database_dict())
            row = self.database.get_entry_by_media(media_id)

            if row is None:
                entry_id = self.database.insert_entry({
                    "media_id": media_id,
                    "remote_id": remote.id,
                    "status": remote.status.value,
                    "progress": remote.progress,
                    "score": remote.score,
                    "sort_position": self.database.count_entries(remote.status.value),
                    "dirty": False,
                    "last_modified": last_modified,
                })
                change = "created"
            else:
                entry_id = row["id"]
                fields = {
                    "remote_id": remote.id,
                    "progress": remote.progress,
                    "score": remote.score,
                    "dirty": False,
                    "last_modified": last_modified,
                }
                if row["status"] != remote.status.value:
                    fields["status"] = remote.status.value
                    fields["sort_position"] = self.database.count_entries(remote.status.value)
                self.database.update_entry(entry_id, **fields)
                if "status" in fields:
                    self._recompact(row["status"])
                change = "updated"

        self._publish(entry_id, media_id, change)
        return self.get(entry_id)

    def mark_synced(self, media_id: int, remote_id: int | None, clear_dirty: bool) -> None:
        """Record a successful remote write for media_id, if it is still tracked."""
        row = self.database.get_entry_by_media(media_id)
        if row is None:
            return

        fields = {}
        if remote_id is not None and row["remote_id"] != remote_id:
            fields["remote_id"] = remote_id
        if clear_dirty and row["dirty"]:
            fields["dirty"] = False
        if fields:
            self.database.update_entry(row["id"], **fields)

    def _publish(self, entry_id: int, media_id: int, change: str) -> None:
        if self.events is not None:
            self.events.publish(EntryChanged(entry_id=entry_id, media_id=media_id, change=change))
