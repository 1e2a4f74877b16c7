"""
Data model for the user's library entries.

A LibraryEntry is one anime in one of the user's lists, with the local
bookkeeping the sync engine needs (dirty flag, remote id, ordering).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from anitrack.anilist.models import ListStatus, MediaItem


@dataclass
class LibraryEntry:
    """
    One tracked anime.

    Attributes:
        id: Local integer key.
        media_id: AniList media id. Unique across the library.
        status: List the entry belongs to.
        progress: Episodes watched, >= 0 and <= episodes when known.
        score: 0-100, None when unscored.
        sort_position: Index within its status list. Per status the
                       positions are exactly 0..n-1.
        dirty: A local change has not reached AniList yet.
        last_modified: Aware UTC time of the last local or pulled change.
        remote_id: AniList MediaList id, once known.
        media: Cached catalog item, attached by LibraryStore reads.
    """
    id: int
    media_id: int
    status: ListStatus
    progress: int
    score: float | None
    sort_position: int
    dirty: bool
    last_modified: datetime
    remote_id: int | None = None
    media: MediaItem | None = None

    @classmethod
    def from_database_dict(
        cls,
        data: dict[str, Any],
        media: MediaItem | None = None
    ) -> "LibraryEntry":
        return cls(
            id=data["id"],
            media_id=data["media_id"],
            status=ListStatus(data["status"]),
            progress=data["progress"],
            score=data["score"],
            sort_position=data["sort_position"],
            dirty=bool(data["dirty"]),
            last_modified=datetime.fromisoformat(data["last_modified"]),
            remote_id=data["remote_id"],
            media=media,
        )
