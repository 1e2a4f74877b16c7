"""Test exception categories and recovery flags"""

import pytest

from anitrack.core.exceptions import (
    USER_MESSAGES,
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


class TestErrorCategories:

    @pytest.mark.parametrize("error, category", [
        (ConfigError("bad"), ErrorCategory.CONFIG),
        (ValidationError("bad"), ErrorCategory.VALIDATION),
        (DuplicateEntryError(21), ErrorCategory.VALIDATION),
        (NotFoundError(3), ErrorCategory.VALIDATION),
        (InvalidIndexError(5, 2), ErrorCategory.VALIDATION),
        (StoreError("disk"), ErrorCategory.DATA_CORRUPTION),
        (QueueWriteError("disk"), ErrorCategory.STORAGE),
        (NetworkError("offline"), ErrorCategory.NETWORK),
        (ApiError("boom", status_code=400), ErrorCategory.SERVER),
        (AuthenticationError("expired"), ErrorCategory.AUTHENTICATION),
        (RateLimitExceededError(), ErrorCategory.RATE_LIMIT),
        (DecodingError("shape"), ErrorCategory.DATA_CORRUPTION),
    ])
    def test_category(self, error, category):
        assert error.category is category
        assert error.user_message == USER_MESSAGES[category]
        assert isinstance(error, AniTrackError)

    def test_every_category_has_a_message(self):
        assert set(USER_MESSAGES) == set(ErrorCategory)


class TestRecoveryFlags:

    def test_network_and_rate_limit_are_transient(self):
        assert NetworkError("offline").is_transient
        assert RateLimitExceededError().is_transient

    def test_server_errors_are_transient(self):
        assert ApiError("bad gateway", status_code=502).is_transient
        assert not ApiError("bad request", status_code=400).is_transient
        assert not ApiError("no status").is_transient

    def test_authentication_is_not_transient(self):
        error = AuthenticationError("expired")

        assert error.status_code == 401
        assert not error.is_transient

    def test_corruption_requires_resync(self):
        assert DecodingError("shape").requires_resync
        assert StoreError("corrupt").requires_resync
        assert not NetworkError("offline").requires_resync


class TestPayloadFields:

    def test_duplicate_entry_carries_media_id(self):
        error = DuplicateEntryError(21)

        assert error.media_id == 21
        assert error.details["media_id"] == 21
        assert "21" in str(error)

    def test_invalid_index_carries_bounds(self):
        error = InvalidIndexError(4, 3, details={"status": "CURRENT"})

        assert (error.index, error.count) == (4, 3)
        assert error.details == {"index": 4, "count": 3, "status": "CURRENT"}

    def test_rate_limit_carries_retry_after(self):
        error = RateLimitExceededError(retry_after=12.0)

        assert error.retry_after == 12.0
        assert error.details["retry_after"] == 12.0

    def test_queue_write_error_is_a_store_error(self):
        assert issubclass(QueueWriteError, StoreError)
