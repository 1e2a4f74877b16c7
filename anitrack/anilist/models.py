"""
Data models for AniList entities.

This module defines the dataclasses the remote client decodes GraphQL
responses into, and the status/format enums shared with the local
library.

Design Decisions:
    - Catalog models are frozen (immutable) to prevent accidental modification
    - Enum values are AniList's own wire values (MediaListStatus, MediaFormat)
    - from_api_data() never substitutes defaults for required fields: a
      missing key raises KeyError/TypeError, which the client wraps in
      DecodingError
    - A remote score of 0 means "unscored" and decodes as None

Usage:
    from anitrack.anilist.models import MediaItem, ListStatus

    media = MediaItem.from_api_data(response["Media"])
    print(media.title.preferred)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ListStatus(Enum):
    """Which list of the user's library an entry belongs to."""
    WATCHING = "CURRENT"
    COMPLETED = "COMPLETED"
    PLAN_TO_WATCH = "PLANNING"
    ON_HOLD = "PAUSED"
    DROPPED = "DROPPED"

    @property
    def display_name(self) -> str:
        return _STATUS_DISPLAY_NAMES[self]

    @classmethod
    def from_remote(cls, value: str) -> "ListStatus":
        """
        Decode an AniList MediaListStatus.

        REPEATING (a rewatch in progress) has no list of its own and is
        treated as WATCHING. Any other unknown value raises ValueError.
        """
        if value == "REPEATING":
            return cls.WATCHING
        return cls(value)


_STATUS_DISPLAY_NAMES = {
    ListStatus.WATCHING: "Watching",
    ListStatus.COMPLETED: "Completed",
    ListStatus.PLAN_TO_WATCH: "Plan to Watch",
    ListStatus.ON_HOLD: "On Hold",
    ListStatus.DROPPED: "Dropped",
}

# Canonical list order, used by fetch_all()
STATUS_ORDER: tuple[ListStatus, ...] = tuple(ListStatus)


class MediaFormat(Enum):
    TV = "TV"
    TV_SHORT = "TV_SHORT"
    MOVIE = "MOVIE"
    SPECIAL = "SPECIAL"
    OVA = "OVA"
    ONA = "ONA"
    MUSIC = "MUSIC"

    @classmethod
    def parse(cls, value: str | None) -> "MediaFormat":
        """Unknown or missing formats decode as TV."""
        try:
            return cls(value)
        except ValueError:
            return cls.TV


@dataclass(frozen=True)
class MediaTitle:
    romaji: str
    english: str | None = None
    native: str | None = None

    @property
    def preferred(self) -> str:
        """English title when AniList has one, else romaji."""
        return self.english or self.romaji


@dataclass(frozen=True)
class CoverImage:
    large: str | None = None
    medium: str | None = None


@dataclass(frozen=True)
class MediaItem:
    """
    Immutable catalog entry for one anime.

    Attributes:
        id: AniList media id. Example: 21 (One Piece)
        title: Romaji, English and native titles.
        cover_image: Large and medium cover URLs.
        episodes: Total episode count, None while unknown (airing shows).
        format: TV, MOVIE, OVA, ...
        genres: Genre names, in AniList's order.
        synopsis: HTML description from AniList, if any.
        site_url: Link to the anime's AniList page.

    Class Methods:
        from_api_data: Create from a GraphQL `media` object.
        from_database_dict: Rebuild from Database.get_media().
    """
    id: int
    title: MediaTitle
    cover_image: CoverImage = field(default_factory=CoverImage)
    episodes: int | None = None
    format: MediaFormat = MediaFormat.TV
    genres: tuple[str, ...] = field(default_factory=tuple)
    synopsis: str | None = None
    site_url: str = ""

    @classmethod
    def from_api_data(cls, data: dict[str, Any]) -> "MediaItem":
        title = data["title"]
        cover = data.get("coverImage") or {}
        return cls(
            id=int(data["id"]),
            title=MediaTitle(
                romaji=title["romaji"],
                english=title.get("english"),
                native=title.get("native"),
            ),
            cover_image=CoverImage(large=cover.get("large"), medium=cover.get("medium")),
            episodes=data.get("episodes"),
            format=MediaFormat.parse(data.get("format")),
            genres=tuple(data.get("genres") or ()),
            synopsis=data.get("description"),
            site_url=data.get("siteUrl") or "",
        )

    def to_database_dict(self) -> dict[str, Any]:
        """Convert to the column dict accepted by Database.upsert_media()."""
        return {
            "id": self.id,
            "title_romaji": self.title.romaji,
            "title_english": self.title.english,
            "title_native": self.title.native,
            "cover_large": self.cover_image.large,
            "cover_medium": self.cover_image.medium,
            "episodes": self.episodes,
            "format": self.format.value,
            "synopsis": self.synopsis,
            "site_url": self.site_url,
            "genres": list(self.genres),
        }

    @classmethod
    def from_database_dict(cls, data: dict[str, Any]) -> "MediaItem":
        return cls(
            id=data["id"],
            title=MediaTitle(
                romaji=data["title_romaji"],
                english=data.get("title_english"),
                native=data.get("title_native"),
            ),
            cover_image=CoverImage(large=data.get("cover_large"), medium=data.get("cover_medium")),
            episodes=data.get("episodes"),
            format=MediaFormat.parse(data.get("format")),
            genres=tuple(data.get("genres") or ()),
            synopsis=data.get("synopsis"),
            site_url=data.get("site_url") or "",
        )


def _score(raw: Any) -> float | None:
    if raw is None or float(raw) == 0:
        return None
    return float(raw)


def _timestamp(raw: Any) -> datetime | None:
    # AniList reports updatedAt as Unix seconds
    if raw is None:
        return None
    return datetime.fromtimestamp(int(raw), tz=timezone.utc)


@dataclass(frozen=True)
class RemoteListEntry:
    """
    One entry of the user's AniList list (a MediaList object).

    Attributes:
        id: AniList MediaList id, stored locally as LibraryEntry.remote_id.
        status: List the entry is in.
        progress: Episodes watched.
        score: 0-100 score, None when unscored.
        updated_at: Last remote modification, bounds incremental pulls.
        media: The catalog item this entry tracks.
    """
    id: int
    status: ListStatus
    progress: int
    score: float | None
    updated_at: datetime | None
    media: MediaItem

    @classmethod
    def from_api_data(cls, data: dict[str, Any]) -> "RemoteListEntry":
        return cls(
            id=int(data["id"]),
            status=ListStatus.from_remote(data["status"]),
            progress=int(data.get("progress") or 0),
            score=_score(data.get("score")),
            updated_at=_timestamp(data.get("updatedAt")),
            media=MediaItem.from_api_data(data["media"]),
        )


@dataclass(frozen=True)
class MediaListCollection:
    """All of a user's anime list entries, flattened across AniList's lists."""
    entries: tuple[RemoteListEntry, ...]

    @classmethod
    def from_api_data(cls, data: dict[str, Any]) -> "MediaListCollection":
        collection = data["MediaListCollection"]
        entries = []
        for media_list in collection["lists"] or ():
            for entry in media_list["entries"] or ():
                entries.append(RemoteListEntry.from_api_data(entry))
        return cls(entries=tuple(entries))


@dataclass(frozen=True)
class SavedListEntry:
    """Result of SaveMediaListEntry."""
    id: int
    status: ListStatus
    progress: int
    score: float | None

    @classmethod
    def from_api_data(cls, data: dict[str, Any]) -> "SavedListEntry":
        saved = data["SaveMediaListEntry"]
        return cls(
            id=int(saved["id"]),
            status=ListStatus.from_remote(saved["status"]),
            progress=int(saved.get("progress") or 0),
            score=_score(saved.get("score")),
        )


@dataclass(frozen=True)
class Viewer:
    """The authenticated AniList user."""
    id: int
    name: str
    avatar: str | None = None

    @classmethod
    def from_api_data(cls, data: dict[str, Any]) -> "Viewer":
        viewer = data["Viewer"]
        return cls(
            id=int(viewer["id"]),
            name=viewer["name"],
            avatar=(viewer.get("avatar") or {}).get("large"),
        )
