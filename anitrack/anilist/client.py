"""
Async AniList GraphQL client.

This module provides the AniListClient class, the only component that
talks to AniList. It POSTs typed operations (see operations.py), applies
the retry policy for rate-limited and server-error responses and maps
every failure onto the anitrack exception hierarchy.

Error mapping:
    HTTP 429 or envelope status 429  -> retried, then RateLimitExceededError
    HTTP 5xx                         -> retried (if enabled), then ApiError
    HTTP 401 / auth envelope         -> AuthenticationError
    other non-2xx                    -> ApiError(status_code)
    errors in a 2xx envelope         -> ApiError (messages joined by ", ")
    transport failure or timeout     -> NetworkError (never retried here)
    non-JSON body / missing data /
    decode failure                   -> DecodingError

Usage:
    async with AniListClient(config.anilist, config.retry, token_from_environment) as client:
        viewer = await client.execute(FetchViewerQuery())
        collection = await client.execute(FetchUserAnimeListQuery(user_id=viewer.id))

The client is stateless apart from the shared aiohttp session and the
request throttler, so one instance may serve concurrent callers.
"""

import asyncio
import json
from typing import Any, Callable, TypeVar

import aiohttp
from asyncio_throttle import Throttler

from anitrack.anilist.operations import GraphQLOperation
from anitrack.core.config import AniListConfig, RetryConfig, token_from_environment
from anitrack.core.exceptions import (
    ApiError,
    AuthenticationError,
    DecodingError,
    NetworkError,
    RateLimitExceededError,
)
from anitrack.core.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TokenProvider = Callable[[], str | None]

# Envelope messages AniList uses for a bad or expired token
_AUTH_MARKERS = ("unauthorized", "authentication", "invalid token")


class AniListClient:
    """
    Rate-limited, retrying executor for AniList GraphQL operations.

    Attributes:
        config: Endpoint, timeout and request budget.
        retry: Backoff policy for 429 and 5xx responses.
        token_provider: Zero-argument callable returning the bearer token,
                        or None to send the request unauthenticated. Called
                        before every request so a refreshed token is used
                        immediately.
    """

    def __init__(
        self,
        config: AniListConfig,
        retry: RetryConfig,
        token_provider: TokenProvider = token_from_environment,
    ) -> None:
        self.config = config
        self.retry = retry
        self.token_provider = token_provider
        self._session: aiohttp.ClientSession | None = None
        self._throttler = Throttler(rate_limit=config.max_requests_per_minute, period=60.0)

    async def __aenter__(self) -> "AniListClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        # Created lazily so it binds to the running event loop
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout)
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session. Safe to call multiple times."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        token = self.token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def execute(self, operation: GraphQLOperation[T]) -> T:
        """
        Execute an operation and return its decoded result.

        Args:
            operation: Any GraphQLOperation, e.g. SaveMediaListEntryMutation.

        Returns:
            The value built by operation.decode().

        Raises:
            RateLimitExceededError: 429 responses outlasted max_retries.
            AuthenticationError: The token is missing, expired or rejected.
            ApiError: Any other error reported by AniList.
            NetworkError: Transport failure or timeout.
            DecodingError: The body could not be decoded into the result type.
        """
        retry_index = 0
        while True:
            status, retry_after, body = await self._send(operation)
            envelope = _parse_json(body)
            errors = _envelope_errors(envelope)

            if status == 429 or _first_status(errors) == 429:
                if retry_index >= self.retry.max_retries:
                    raise RateLimitExceededError(
                        retry_after=retry_after,
                        details={"operation": operation.name, "attempts": retry_index + 1}
                    )
                delay = retry_after if retry_after is not None else self.retry.delay_for(retry_index)
                logger.warning(
                    f"{operation.name}: rate limited, retrying in {delay:.1f}s "
                    f"({retry_index + 1}/{self.retry.max_retries})"
                )
                await asyncio.sleep(delay)
                retry_index += 1
                continue

            if status >= 500:
                message = _error_message(errors) or f"AniList server error (HTTP {status})"
                if self.retry.retry_server_errors and retry_index < self.retry.max_retries:
                    delay = self.retry.delay_for(retry_index)
                    logger.warning(
                        f"{operation.name}: HTTP {status}, retrying in {delay:.1f}s "
                        f"({retry_index + 1}/{self.retry.max_retries})"
                    )
                    await asyncio.sleep(delay)
                    retry_index += 1
                    continue
                raise ApiError(message, status_code=status, details={"operation": operation.name})

            if status == 401 or (errors and _is_auth_failure(errors)):
                raise AuthenticationError(
                    _error_message(errors) or "Session expired or invalid token",
                    details={"operation": operation.name}
                )

            if not 200 <= status < 300:
                message = _error_message(errors) or _body_text(body) or f"HTTP {status}"
                raise ApiError(message, status_code=status, details={"operation": operation.name})

            if errors:
                raise ApiError(
                    _error_message(errors),
                    status_code=_first_status(errors),
                    details={"operation": operation.name}
                )

            return self._decode(operation, envelope)

    async def _send(self, operation: GraphQLOperation[Any]) -> tuple[int, float | None, bytes]:
        """POST one request. Returns (status, Retry-After seconds, raw body)."""
        session = self._get_session()
        try:
            async with self._throttler:
                logger.debug(f"POST {operation.name} -> {self.config.api_endpoint}")
                async with session.post(
                    self.config.api_endpoint,
                    json=operation.to_payload(),
                    headers=self._headers(),
                ) as response:
                    body = await response.read()
                    return response.status, _retry_after(response.headers), body
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Request timed out after {self.config.request_timeout:g}s",
                details={"operation": operation.name, "original_error": repr(e)}
            ) from e
        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error: {e}",
                details={"operation": operation.name, "original_error": str(e)}
            ) from e

    def _decode(self, operation: GraphQLOperation[T], envelope: Any) -> T:
        if not isinstance(envelope, dict):
            raise DecodingError(
                "Response body is not a JSON object",
                details={"operation": operation.name}
            )

        data = envelope.get("data")
        if not isinstance(data, dict):
            raise DecodingError(
                "Response has no data",
                details={"operation": operation.name}
            )

        try:
            return operation.decode(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodingError(
                f"Failed to decode {operation.name} response: {e!r}",
                details={"operation": operation.name, "original_error": repr(e)}
            ) from e


def _parse_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        return None


def _envelope_errors(envelope: Any) -> list[dict[str, Any]]:
    if not isinstance(envelope, dict):
        return []
    errors = envelope.get("errors")
    if not isinstance(errors, list):
        return []
    return [e for e in errors if isinstance(e, dict)]


def _first_status(errors: list[dict[str, Any]]) -> int | None:
    if not errors:
        return None
    status = errors[0].get("status")
    return status if isinstance(status, int) else None


def _error_message(errors: list[dict[str, Any]]) -> str:
    return ", ".join(str(e.get("message", "")) for e in errors)


def _is_auth_failure(errors: list[dict[str, Any]]) -> bool:
    if _first_status(errors) == 401:
        return True
    message = _error_message(errors).lower()
    return any(marker in message for marker in _AUTH_MARKERS)


def _body_text(body: bytes) -> str:
    return body.decode("utf-8", errors="replace").strip()


def _retry_after(headers: Any) -> float | None:
    raw = headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None
