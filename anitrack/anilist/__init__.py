"""
AniList module for anitrack.

This module handles everything that crosses the network:
    - models: Typed results decoded from GraphQL responses
    - operations: Query and mutation documents with their variables
    - client: Async executor with rate limiting and retries

Usage:
    from anitrack.anilist import AniListClient, SaveMediaListEntryMutation
"""

from anitrack.anilist.client import AniListClient
from anitrack.anilist.models import (
    CoverImage,
    ListStatus,
    MediaFormat,
    MediaItem,
    MediaListCollection,
    MediaTitle,
    RemoteListEntry,
    SavedListEntry,
    STATUS_ORDER,
    Viewer,
)
from anitrack.anilist.operations import (
    DeleteMediaListEntryMutation,
    FetchMediaListEntryQuery,
    FetchUserAnimeListQuery,
    FetchViewerQuery,
    GraphQLOperation,
    SaveMediaListEntryMutation,
    SearchAnimeQuery,
)

__all__ = [
    # Client
    "AniListClient",
    # Models
    "CoverImage",
    "ListStatus",
    "MediaFormat",
    "MediaItem",
    "MediaListCollection",
    "MediaTitle",
    "RemoteListEntry",
    "SavedListEntry",
    "STATUS_ORDER",
    "Viewer",
    # Operations
    "GraphQLOperation",
    "FetchUserAnimeListQuery",
    "FetchMediaListEntryQuery",
    "FetchViewerQuery",
    "SearchAnimeQuery",
    "SaveMediaListEntryMutation",
    "DeleteMediaListEntryMutation",
]
