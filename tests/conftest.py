"""Test configuration and fixtures"""

import asyncio
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from anitrack.anilist.models import (
    CoverImage,
    ListStatus,
    MediaFormat,
    MediaItem,
    MediaListCollection,
    MediaTitle,
    RemoteListEntry,
    SavedListEntry,
    Viewer,
)
from anitrack.anilist.operations import (
    DeleteMediaListEntryMutation,
    FetchMediaListEntryQuery,
    FetchUserAnimeListQuery,
    FetchViewerQuery,
    SaveMediaListEntryMutation,
    SearchAnimeQuery,
)
from anitrack.core.config import SyncSettings
from anitrack.core.database import Database
from anitrack.core.events import EventBus
from anitrack.core.exceptions import ApiError
from anitrack.library.store import LibraryStore


def make_media(media_id: int, episodes: int | None = 12, genres=("Action",)) -> MediaItem:
    return MediaItem(
        id=media_id,
        title=MediaTitle(romaji=f"Anime {media_id}", english=f"Show {media_id}"),
        cover_image=CoverImage(large=f"https://img.example/{media_id}/l.jpg"),
        episodes=episodes,
        format=MediaFormat.TV,
        genres=tuple(genres),
        site_url=f"https://anilist.co/anime/{media_id}",
    )


def make_remote(
    media_id: int,
    status: ListStatus = ListStatus.WATCHING,
    progress: int = 0,
    score: float | None = None,
    remote_id: int | None = None,
    updated_at: datetime | None = None,
) -> RemoteListEntry:
    return RemoteListEntry(
        id=remote_id if remote_id is not None else 5000 + media_id,
        status=status,
        progress=progress,
        score=score,
        updated_at=updated_at or datetime.now(timezone.utc),
        media=make_media(media_id),
    )


class FakeRemoteClient:
    """
    In-memory stand-in for AniListClient.

    Keeps a remote list keyed by media id. `failures` is consumed one
    item per execute() call: an exception is raised, None lets the call
    through. `gate`, when set, is awaited before every call.
    """

    def __init__(self) -> None:
        self.entries: dict[int, RemoteListEntry] = {}
        self.executed: list = []
        self.failures: list = []
        self.gate: asyncio.Event | None = None
        self.viewer = Viewer(id=7, name="tester")
        self._next_id = 9000

    def calls(self, operation_type) -> list:
        return [op for op in self.executed if isinstance(op, operation_type)]

    async def execute(self, operation):
        self.executed.append(operation)
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            error = self.failures.pop(0)
            if error is not None:
                raise error

        if isinstance(operation, SaveMediaListEntryMutation):
            return self._save(operation)
        if isinstance(operation, DeleteMediaListEntryMutation):
            for media_id, entry in list(self.entries.items()):
                if entry.id == operation.entry_id:
                    del self.entries[media_id]
                    return True
            raise ApiError("Not Found.", status_code=404)
        if isinstance(operation, FetchMediaListEntryQuery):
            if operation.media_id not in self.entries:
                raise ApiError("Not Found.", status_code=404)
            return self.entries[operation.media_id]
        if isinstance(operation, FetchUserAnimeListQuery):
            return MediaListCollection(entries=tuple(self.entries.values()))
        if isinstance(operation, FetchViewerQuery):
            return self.viewer
        if isinstance(operation, SearchAnimeQuery):
            return tuple(entry.media for entry in self.entries.values())
        raise AssertionError(f"Unexpected operation {operation!r}")

    def _save(self, mutation: SaveMediaListEntryMutation) -> SavedListEntry:
        current = self.entries.get(mutation.media_id)
        if current is None:
            self._next_id += 1
            current = make_remote(mutation.media_id, remote_id=self._next_id)

        score = current.score
        if mutation.score is not None:
            score = mutation.score or None
        entry = RemoteListEntry(
            id=current.id,
            status=mutation.status or current.status,
            progress=mutation.progress if mutation.progress is not None else current.progress,
            score=score,
            updated_at=datetime.now(timezone.utc),
            media=current.media,
        )
        self.entries[mutation.media_id] = entry
        return SavedListEntry(id=entry.id, status=entry.status, progress=entry.progress, score=entry.score)


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def database(temp_dir):
    """Fresh SQLite store in a temporary directory"""
    db = Database(temp_dir / "anitrack.db")
    yield db
    db.close()


@pytest.fixture
def events():
    """Event bus that records every published event"""
    bus = EventBus()
    bus.received = []
    bus.subscribe(bus.received.append)
    return bus


@pytest.fixture
def store(database, events):
    return LibraryStore(database, events=events)


@pytest.fixture
def remote():
    return FakeRemoteClient()


@pytest.fixture
def media_factory():
    return make_media


@pytest.fixture
def remote_factory():
    return make_remote


@pytest.fixture
def sync_settings():
    return SyncSettings(max_attempts=3, auto_sync=False, auto_sync_interval=900.0, incremental_skew=0.0)


@pytest.fixture
def sample_media_data():
    """A GraphQL `media` object as AniList returns it"""
    return {
        "id": 154587,
        "title": {
            "romaji": "Sousou no Frieren",
            "english": "Frieren: Beyond Journey's End",
            "native": "葬送のフリーレン",
        },
        "coverImage": {
            "large": "https://s4.anilist.co/file/anilistcdn/media/anime/cover/medium/bx154587.jpg",
            "medium": "https://s4.anilist.co/file/anilistcdn/media/anime/cover/small/bx154587.jpg",
        },
        "episodes": 28,
        "format": "TV",
        "genres": ["Adventure", "Drama", "Fantasy"],
        "description": "The adventure is over but life goes on for an elf mage.",
        "siteUrl": "https://anilist.co/anime/154587",
    }


@pytest.fixture
def sample_list_entry_data(sample_media_data):
    """A GraphQL `MediaList` object as AniList returns it"""
    return {
        "id": 377212345,
        "status": "CURRENT",
        "progress": 10,
        "score": 85,
        "updatedAt": 1700000000,
        "media": sample_media_data,
    }
