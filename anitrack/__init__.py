"""
anitrack: Offline-first AniList watch-list tracking.

This package keeps a local copy of the user's AniList anime list and
keeps it in sync with AniList under intermittent connectivity. Local
changes apply immediately and are queued; the queue is drained whenever
AniList is reachable, and remote changes are pulled back in.

Architecture:
    core/       - Configuration, SQLite entity store, logging, exceptions, events
    anilist/    - Typed GraphQL operations and the async AniList client
    library/    - LibraryEntry and LibraryStore (local CRUD and list ordering)
    sync/       - Sync queue models and SyncEngine (drain and reconcile)
    tracker.py  - Tracker facade: local mutation + queued remote write

Usage:
    from anitrack import Tracker, ListStatus, load_config, setup_logging

    config = load_config()
    setup_logging(config.storage.log_directory)
    tracker = Tracker.from_config(config)

    results = await tracker.search("Frieren")
    entry = tracker.add(results[0], ListStatus.WATCHING)
    tracker.update_progress(entry.id, 4)

    await tracker.engine.process_queue()
    await tracker.engine.sync_user_lists()
    await tracker.close()

Configuration:
    Requires a config.yaml file in the current directory:

        storage:
          directory: "~/.anitrack"

    The AniList token is read from ANILIST_ACCESS_TOKEN (or a .env file).

Dependencies:
    - aiohttp: Async HTTP client for the GraphQL endpoint
    - asyncio-throttle: Request-per-minute admission control
    - pyyaml: Configuration file parsing
    - python-dotenv: .env loading for the access token
    - tqdm: Progress-bar-safe console logging
"""

__version__ = "0.1.0"
__author__ = "anitrack"
__license__ = "MIT"

# Convenience imports for common usage
from anitrack.anilist import AniListClient, ListStatus, MediaFormat, MediaItem
from anitrack.core import (
    AniTrackError,
    Config,
    ConfigError,
    Database,
    EventBus,
    get_logger,
    load_config,
    setup_logging,
)
from anitrack.library import LibraryEntry, LibraryStore
from anitrack.sync import OperationKind, SyncEngine
from anitrack.tracker import Tracker

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "Database",
    "EventBus",
    "setup_logging",
    "get_logger",
    # Exceptions
    "AniTrackError",
    "ConfigError",
    # AniList
    "AniListClient",
    "ListStatus",
    "MediaFormat",
    "MediaItem",
    # Library and sync
    "LibraryEntry",
    "LibraryStore",
    "OperationKind",
    "SyncEngine",
    "Tracker",
]
