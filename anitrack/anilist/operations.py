"""
Typed GraphQL operations for the AniList API.

Each operation bundles its document, its variables and a decode() that
turns the response's `data` object into a typed result. AniListClient
executes any of them:

    collection = await client.execute(FetchUserAnimeListQuery(user_id=42))
    saved = await client.execute(SaveMediaListEntryMutation(media_id=21, progress=5))

decode() raises KeyError, TypeError or ValueError on a body of the wrong
shape; the client turns those into DecodingError.
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from anitrack.anilist.models import (
    ListStatus,
    MediaItem,
    MediaListCollection,
    RemoteListEntry,
    SavedListEntry,
    Viewer,
)

T = TypeVar("T")


# Fields every catalog fetch requests, so a pull refreshes the cache fully
MEDIA_FIELDS = """
    id
    title { romaji english native }
    coverImage { large medium }
    episodes
    format
    genres
    description
    siteUrl
"""

LIST_ENTRY_FIELDS = f"""
    id
    status
    progress
    score(format: POINT_100)
    updatedAt
    media {{ {MEDIA_FIELDS} }}
"""


class GraphQLOperation(Generic[T]):
    """
    Base class for a query or mutation returning T.

    Subclasses set `name` and `document` and implement variables() and
    decode().
    """

    name: str = ""
    document: str = ""

    def variables(self) -> dict[str, Any]:
        return {}

    def decode(self, data: dict[str, Any]) -> T:
        raise NotImplementedError

    def to_payload(self) -> dict[str, Any]:
        """The JSON body POSTed to the endpoint."""
        return {"query": self.document, "variables": self.variables()}


@dataclass(frozen=True)
class FetchUserAnimeListQuery(GraphQLOperation[MediaListCollection]):
    """The user's whole anime list, or one status of it."""

    user_id: int
    status: ListStatus | None = None

    name = "FetchUserAnimeList"
    document = f"""
query ($userId: Int, $status: MediaListStatus) {{
  MediaListCollection(userId: $userId, type: ANIME, status: $status) {{
    lists {{
      entries {{ {LIST_ENTRY_FIELDS} }}
    }}
  }}
}}
""".strip()

    def variables(self) -> dict[str, Any]:
        variables: dict[str, Any] = {"userId": self.user_id}
        if self.status is not None:
            variables["status"] = self.status.value
        return variables

    def decode(self, data: dict[str, Any]) -> MediaListCollection:
        return MediaListCollection.from_api_data(data)


@dataclass(frozen=True)
class FetchMediaListEntryQuery(GraphQLOperation[RemoteListEntry]):
    """
    The user's list entry for one media item.

    AniList answers with a 404 error envelope when the user has no entry.
    """

    user_id: int
    media_id: int

    name = "FetchMediaListEntry"
    document = f"""
query ($userId: Int, $mediaId: Int) {{
  MediaList(userId: $userId, mediaId: $mediaId, type: ANIME) {{ {LIST_ENTRY_FIELDS} }}
}}
""".strip()

    def variables(self) -> dict[str, Any]:
        return {"userId": self.user_id, "mediaId": self.media_id}

    def decode(self, data: dict[str, Any]) -> RemoteListEntry:
        return RemoteListEntry.from_api_data(data["MediaList"])


@dataclass(frozen=True)
class FetchViewerQuery(GraphQLOperation[Viewer]):
    """The authenticated user. Requires a bearer token."""

    name = "FetchViewer"
    document = "query { Viewer { id name avatar { large } } }"

    def decode(self, data: dict[str, Any]) -> Viewer:
        return Viewer.from_api_data(data)


@dataclass(frozen=True)
class SearchAnimeQuery(GraphQLOperation[tuple[MediaItem, ...]]):
    """Title search over the AniList anime catalog."""

    search: str
    per_page: int = 20

    name = "SearchAnime"
    document = f"""
query ($search: String, $perPage: Int) {{
  Page(page: 1, perPage: $perPage) {{
    media(search: $search, type: ANIME) {{ {MEDIA_FIELDS} }}
  }}
}}
""".strip()

    def variables(self) -> dict[str, Any]:
        return {"search": self.search, "perPage": self.per_page}

    def decode(self, data: dict[str, Any]) -> tuple[MediaItem, ...]:
        return tuple(MediaItem.from_api_data(item) for item in data["Page"]["media"])


@dataclass(frozen=True)
class SaveMediaListEntryMutation(GraphQLOperation[SavedListEntry]):
    """
    Create or update the user's entry for a media item.

    Only the fields that are not None are sent. AniList treats a missing
    field as "leave unchanged", so replaying the same mutation is
    idempotent. score is on the 0-100 scale (scoreRaw); 0 clears it.
    """

    media_id: int
    progress: int | None = None
    status: ListStatus | None = None
    score: float | None = None

    name = "SaveMediaListEntry"
    document = """
mutation ($mediaId: Int, $progress: Int, $status: MediaListStatus, $scoreRaw: Int) {
  SaveMediaListEntry(mediaId: $mediaId, progress: $progress, status: $status, scoreRaw: $scoreRaw) {
    id
    status
    progress
    score(format: POINT_100)
  }
}
""".strip()

    def variables(self) -> dict[str, Any]:
        variables: dict[str, Any] = {"mediaId": self.media_id}
        if self.progress is not None:
            variables["progress"] = self.progress
        if self.status is not None:
            variables["status"] = self.status.value
        if self.score is not None:
            variables["scoreRaw"] = round(self.score)
        return variables

    def decode(self, data: dict[str, Any]) -> SavedListEntry:
        return SavedListEntry.from_api_data(data)


@dataclass(frozen=True)
class DeleteMediaListEntryMutation(GraphQLOperation[bool]):
    """Delete a list entry by its AniList MediaList id."""

    entry_id: int

    name = "DeleteMediaListEntry"
    document = """
mutation ($id: Int) {
  DeleteMediaListEntry(id: $id) { deleted }
}
""".strip()

    def variables(self) -> dict[str, Any]:
        return {"id": self.entry_id}

    def decode(self, data: dict[str, Any]) -> bool:
        return bool(data["DeleteMediaListEntry"]["deleted"])
