"""
Exception classes for anitrack.

This module defines every custom exception raised by the library. Each
exception carries a human-readable message, an optional details dictionary
and a stable error category that the presentation layer maps to its own
wording and recovery path.

Exception Hierarchy:
    AniTrackError (base)
        ConfigError - Configuration file issues
        ValidationError - Rejected local input (progress, score)
        DuplicateEntryError - Media already in the library
        NotFoundError - Library entry does not exist
        InvalidIndexError - Reorder index outside the status list
        StoreError - SQLite entity store failure
            QueueWriteError - Sync queue could not be persisted
        NetworkError - Transport failure or timeout
        ApiError - AniList reported an error
            AuthenticationError - Missing, expired or rejected token
        RateLimitExceededError - Rate limit retries exhausted
        DecodingError - Response body did not match the expected shape

Recovery Paths:
    Network and rate limit errors are transient: the sync queue keeps the
    operation and a later drain retries it. Decoding and store errors are
    data corruption: the caller should destroy the local store and run a
    full resync. Everything else is reported to the user as-is.
"""

from enum import Enum


class ErrorCategory(Enum):
    """Stable categories the presentation layer maps to user-facing messages."""
    VALIDATION = "validation"
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    AUTHENTICATION = "authentication"
    SERVER = "server"
    DATA_CORRUPTION = "data_corruption"
    STORAGE = "storage"
    CONFIG = "config"


USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.VALIDATION: "That change is not allowed.",
    ErrorCategory.NETWORK: (
        "Network connection unavailable. Changes will be synced when the "
        "connection is restored."
    ),
    ErrorCategory.RATE_LIMIT: "Too many requests. Please wait a moment before trying again.",
    ErrorCategory.AUTHENTICATION: "Authentication failed. Please log in again.",
    ErrorCategory.SERVER: "AniList reported an error. Please try again later.",
    ErrorCategory.DATA_CORRUPTION: (
        "Local data appears to be corrupted. Please re-sync from AniList."
    ),
    ErrorCategory.STORAGE: "A local database error occurred. Your data is safe.",
    ErrorCategory.CONFIG: "The configuration file is invalid.",
}


class AniTrackError(Exception):
    """
    Base exception for all anitrack errors.

    All custom exceptions in this library inherit from this class, so a
    caller can catch every anitrack failure with a single except clause.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (media ids,
                 HTTP status, the original error).
        category: ErrorCategory used for user-facing messaging.

    Example:
        try:
            await engine.process_queue()
        except AniTrackError as e:
            show_banner(e.user_message)
            if e.requires_resync:
                database.destroy_and_recreate()
    """

    category: ErrorCategory = ErrorCategory.SERVER

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional context about
                     the error. Common keys include:
                     - 'media_id': AniList media id involved in the error
                     - 'entry_id': Local library entry id
                     - 'original_error': The wrapped exception, as a string
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message

    @property
    def user_message(self) -> str:
        """Stable, human-readable text for this error's category."""
        return USER_MESSAGES[self.category]

    @property
    def is_transient(self) -> bool:
        """True when retrying the same operation later may succeed."""
        return self.category in (ErrorCategory.NETWORK, ErrorCategory.RATE_LIMIT)

    @property
    def requires_resync(self) -> bool:
        """True when local state can no longer be trusted."""
        return self.category is ErrorCategory.DATA_CORRUPTION


class ConfigError(AniTrackError):
    """
    Raised when the configuration file is missing or invalid.

    This is a CRITICAL error raised at startup by load_config().

    Example:
        raise ConfigError(
            "'storage.directory' must be a non-empty string",
            details={'field': 'storage.directory'}
        )
    """
    category = ErrorCategory.CONFIG


class ValidationError(AniTrackError):
    """Raised when a local mutation carries a value outside its allowed range."""
    category = ErrorCategory.VALIDATION


class DuplicateEntryError(AniTrackError):
    """
    Raised when adding a media item that already has a library entry.

    Attributes:
        media_id: The AniList media id that is already tracked.
    """
    category = ErrorCategory.VALIDATION

    def __init__(self, media_id: int, details: dict | None = None) -> None:
        super().__init__(
            f"Media {media_id} is already in the library",
            details={"media_id": media_id, **(details or {})}
        )
        self.media_id = media_id


class NotFoundError(AniTrackError):
    """
    Raised when a library entry lookup by id finds nothing.

    Attributes:
        entry_id: The local entry id that was requested.
    """
    category = ErrorCategory.VALIDATION

    def __init__(self, entry_id: int, details: dict | None = None) -> None:
        super().__init__(
            f"Library entry {entry_id} not found",
            details={"entry_id": entry_id, **(details or {})}
        )
        self.entry_id = entry_id


class InvalidIndexError(AniTrackError):
    """
    Raised when reorder() receives an index outside [0, count).

    Attributes:
        index: The offending index.
        count: Number of entries in the status list.
    """
    category = ErrorCategory.VALIDATION

    def __init__(self, index: int, count: int, details: dict | None = None) -> None:
        super().__init__(
            f"Index {index} is out of range for a list of {count} entries",
            details={"index": index, "count": count, **(details or {})}
        )
        self.index = index
        self.count = count


class StoreError(AniTrackError):
    """
    Raised when the SQLite entity store fails.

    Common causes:
        - Database file corrupted
        - Schema version mismatch
        - Disk full or permission denied
    """
    category = ErrorCategory.DATA_CORRUPTION


class QueueWriteError(StoreError):
    """
    Raised when a queued operation cannot be persisted.

    enqueue() never swallows this: a lost queue write would silently drop
    a local change that the user expects to reach AniList.
    """
    category = ErrorCategory.STORAGE


class NetworkError(AniTrackError):
    """
    Raised on transport failures and request timeouts.

    The remote client never retries these itself; the sync queue keeps
    the operation for the next drain.
    """
    category = ErrorCategory.NETWORK


class ApiError(AniTrackError):
    """
    Raised when AniList answers with an error.

    Covers both non-2xx HTTP responses and GraphQL error envelopes on a
    successful response. For envelopes, all messages are joined with
    ", " and status_code is the first error's status.

    Attributes:
        status_code: HTTP or GraphQL status, when one was reported.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict | None = None
    ) -> None:
        super().__init__(message, details={"status_code": status_code, **(details or {})})
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        return self.status_code is not None and self.status_code >= 500


class AuthenticationError(ApiError):
    """Raised on HTTP 401: the bearer token is missing, expired or rejected."""
    category = ErrorCategory.AUTHENTICATION

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message, status_code=401, details=details)

    @property
    def is_transient(self) -> bool:
        return False


class RateLimitExceededError(AniTrackError):
    """
    Raised when rate-limited responses outlast the retry budget.

    Attributes:
        retry_after: Seconds the server asked us to wait, if it said.
    """
    category = ErrorCategory.RATE_LIMIT

    def __init__(
        self,
        message: str = "AniList rate limit exceeded",
        retry_after: float | None = None,
        details: dict | None = None
    ) -> None:
        super().__init__(message, details={"retry_after": retry_after, **(details or {})})
        self.retry_after = retry_after


class DecodingError(AniTrackError):
    """
    Raised when a response body does not match the expected type.

    The underlying exception is chained with `raise ... from` and its text
    kept in details['original_error'].
    """
    category = ErrorCategory.DATA_CORRUPTION
