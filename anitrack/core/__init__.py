"""
Core module for anitrack.

This module provides the foundational components used throughout the library:
    - exceptions: Custom exception classes and error categories
    - config: Configuration loading and validation
    - database: Thread-safe SQLite entity store
    - logger: Logging system with multiple outputs
    - events: Publish/subscribe channel for UI hosts

Usage:
    from anitrack.core import (
        Config, load_config,
        Database,
        setup_logging, get_logger,
        AniTrackError, ConfigError, StoreError
    )
"""

from anitrack.core.config import (
    AniListConfig,
    Config,
    RetryConfig,
    StorageConfig,
    SyncSettings,
    load_config,
    token_from_environment,
)
from anitrack.core.database import Database
from anitrack.core.events import (
    EntryChanged,
    EventBus,
    QueueDrained,
    SyncCompleted,
    SyncFailed,
)
from anitrack.core.exceptions import (
    AniTrackError,
    ApiError,
    AuthenticationError,
    ConfigError,
    DecodingError,
    DuplicateEntryError,
    ErrorCategory,
    InvalidIndexError,
    NetworkError,
    NotFoundError,
    QueueWriteError,
    RateLimitExceededError,
    StoreError,
    ValidationError,
)
from anitrack.core.logger import (
    get_logger,
    log_sync_failure,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    # Config
    "Config",
    "AniListConfig",
    "RetryConfig",
    "SyncSettings",
    "StorageConfig",
    "load_config",
    "token_from_environment",
    # Database
    "Database",
    # Events
    "EventBus",
    "EntryChanged",
    "QueueDrained",
    "SyncCompleted",
    "SyncFailed",
    # Exceptions
    "AniTrackError",
    "ErrorCategory",
    "ConfigError",
    "ValidationError",
    "DuplicateEntryError",
    "NotFoundError",
    "InvalidIndexError",
    "StoreError",
    "QueueWriteError",
    "NetworkError",
    "ApiError",
    "AuthenticationError",
    "RateLimitExceededError",
    "DecodingError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_sync_failure",
    "shutdown_logging",
]
