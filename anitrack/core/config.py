"""
Configuration management for anitrack.

This module handles loading, validating, and providing access to the
library configuration stored in config.yaml.

The configuration file contains:
    - AniList endpoint, request timeout and request budget
    - Retry policy for rate-limited and server-error responses
    - Sync queue and periodic sync behaviour
    - Storage directory for the SQLite database and logs

Secrets never live in config.yaml. The access token comes from the
credential provider injected into AniListClient; token_from_environment()
is the default provider and reads ANILIST_ACCESS_TOKEN (a .env file in the
working directory is loaded once, when this module is imported).

Example config.yaml:
    anilist:
      api_endpoint: "https://graphql.anilist.co"
      request_timeout: 30
      max_requests_per_minute: 90

    retry:
      max_retries: 3
      base_delay: 1.0
      multiplier: 2.0
      max_delay: 60.0

    sync:
      max_attempts: 3
      auto_sync: true
      auto_sync_interval: 900

    storage:
      directory: "~/.anitrack"
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from anitrack.core.exceptions import ConfigError

# Secrets from .env in the working directory, loaded once at import
load_dotenv()


# Default configuration file name (always in current working directory)
CONFIG_FILENAME = "config.yaml"

DATABASE_FILENAME = "anitrack.db"

TOKEN_ENV_VAR = "ANILIST_ACCESS_TOKEN"

DEFAULT_API_ENDPOINT = "https://graphql.anilist.co"


@dataclass(frozen=True)
class AniListConfig:
    """
    AniList API connection settings.

    Attributes:
        api_endpoint: GraphQL endpoint that receives every POST.
        request_timeout: Total seconds allowed per HTTP request. A timeout
                         surfaces as NetworkError, never as a rate limit.
        max_requests_per_minute: Client-side admission budget. AniList
                                 currently allows 90 requests per minute.
    """
    api_endpoint: str = DEFAULT_API_ENDPOINT
    request_timeout: float = 30.0
    max_requests_per_minute: int = 90


@dataclass(frozen=True)
class RetryConfig:
    """
    Backoff policy for rate-limited (and optionally 5xx) responses.

    The delay before retry n (0-indexed) is
    min(base_delay * multiplier ** n, max_delay), unless the server sent a
    Retry-After header, which wins.

    Attributes:
        max_retries: Extra attempts after the first request. Default: 3.
        base_delay: Seconds before the first retry.
        multiplier: Growth factor between retries.
        max_delay: Upper bound for a single delay.
        retry_server_errors: Also retry HTTP 5xx responses with the same
                             budget before raising ApiError.
    """
    max_retries: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    retry_server_errors: bool = True

    def delay_for(self, retry_index: int) -> float:
        """Backoff delay in seconds before retry number retry_index (0-indexed)."""
        return min(self.base_delay * (self.multiplier ** retry_index), self.max_delay)


@dataclass(frozen=True)
class SyncSettings:
    """
    Sync engine behaviour.

    Attributes:
        max_attempts: Failed drains after which a transient failure is
                      surfaced to the caller. The item stays queued.
        auto_sync: Trigger a background drain after each local mutation.
        auto_sync_interval: Seconds between periodic pulls and drains.
        incremental_skew: Seconds subtracted from the sync cursor when
                          selecting the incremental window, to absorb
                          clock differences with AniList.
    """
    max_attempts: int = 3
    auto_sync: bool = True
    auto_sync_interval: float = 900.0
    incremental_skew: float = 300.0


@dataclass(frozen=True)
class StorageConfig:
    """
    Local storage location.

    Attributes:
        directory: Absolute directory holding the database and logs/.
                   ~ is expanded. Created on first use.
    """
    directory: Path

    @property
    def database_path(self) -> Path:
        return self.directory / DATABASE_FILENAME

    @property
    def log_directory(self) -> Path:
        return self.directory / "logs"


@dataclass(frozen=True)
class Config:
    """
    Complete library configuration.

    Created by load_config() and treated as immutable.

    Example:
        config = load_config()
        database = Database(config.storage.database_path)
        client = AniListClient(config.anilist, config.retry, token_from_environment)
    """
    anilist: AniListConfig
    retry: RetryConfig
    sync: SyncSettings
    storage: StorageConfig


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If the file is missing, is not valid YAML, lacks the
                     storage section, or holds a value of the wrong type
                     or range. details names the offending field.
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    _validate_config(raw_config)

    return Config(
        anilist=_parse_anilist_config(raw_config.get("anilist")),
        retry=_parse_retry_config(raw_config.get("retry")),
        sync=_parse_sync_settings(raw_config.get("sync")),
        storage=_parse_storage_config(raw_config["storage"]),
    )


def _validate_config(raw_config: dict[str, Any]) -> None:
    """Check required sections exist and every present section is a mapping."""
    if raw_config.get("storage") is None:
        raise ConfigError(
            "Missing required section: 'storage'",
            details={"missing_section": "storage"}
        )

    for section in ("anilist", "retry", "sync", "storage"):
        value = raw_config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )


def _number(section: dict[str, Any], name: str, default: float, prefix: str,
            minimum: float = 0.0, integer: bool = False) -> Any:
    """Read a numeric field, applying the default and a lower bound."""
    raw = section.get(name)
    if raw is None:
        return default

    allowed = (int,) if integer else (int, float)
    if isinstance(raw, bool) or not isinstance(raw, allowed) or raw < minimum:
        kind = "an integer" if integer else "a number"
        raise ConfigError(
            f"'{prefix}.{name}' must be {kind} >= {minimum:g}",
            details={"field": f"{prefix}.{name}", "value": raw}
        )
    return raw if integer else float(raw)


def _flag(section: dict[str, Any], name: str, default: bool, prefix: str) -> bool:
    raw = section.get(name)
    if raw is None:
        return default
    if not isinstance(raw, bool):
        raise ConfigError(
            f"'{prefix}.{name}' must be true or false",
            details={"field": f"{prefix}.{name}", "value": raw}
        )
    return raw


def _parse_anilist_config(section: dict[str, Any] | None) -> AniListConfig:
    """Parse the optional 'anilist' section, applying defaults."""
    section = section or {}

    endpoint = section.get("api_endpoint", DEFAULT_API_ENDPOINT)
    if not isinstance(endpoint, str) or not endpoint.startswith(("http://", "https://")):
        raise ConfigError(
            "'anilist.api_endpoint' must be an http(s) URL",
            details={"field": "anilist.api_endpoint", "value": endpoint}
        )

    return AniListConfig(
        api_endpoint=endpoint.strip(),
        request_timeout=_number(section, "request_timeout", 30.0, "anilist", minimum=1),
        max_requests_per_minute=_number(
            section, "max_requests_per_minute", 90, "anilist", minimum=1, integer=True
        ),
    )


def _parse_retry_config(section: dict[str, Any] | None) -> RetryConfig:
    """Parse the optional 'retry' section, applying defaults."""
    section = section or {}
    return RetryConfig(
        max_retries=_number(section, "max_retries", 3, "retry", integer=True),
        base_delay=_number(section, "base_delay", 1.0, "retry"),
        multiplier=_number(section, "multiplier", 2.0, "retry", minimum=1),
        max_delay=_number(section, "max_delay", 60.0, "retry"),
        retry_server_errors=_flag(section, "retry_server_errors", True, "retry"),
    )


def _parse_sync_settings(section: dict[str, Any] | None) -> SyncSettings:
    """Parse the optional 'sync' section, applying defaults."""
    section = section or {}
    return SyncSettings(
        max_attempts=_number(section, "max_attempts", 3, "sync", minimum=1, integer=True),
        auto_sync=_flag(section, "auto_sync", True, "sync"),
        auto_sync_interval=_number(section, "auto_sync_interval", 900.0, "sync", minimum=1),
        incremental_skew=_number(section, "incremental_skew", 300.0, "sync"),
    )


def _parse_storage_config(section: dict[str, Any]) -> StorageConfig:
    """
    Parse and validate the storage section.

    Expands ~ and converts to an absolute Path. Does NOT create the
    directory (Database does that on first open).
    """
    directory = section.get("directory", "")

    if not isinstance(directory, str) or not directory.strip():
        raise ConfigError(
            "'storage.directory' must be a non-empty string",
            details={"field": "storage.directory"}
        )

    return StorageConfig(directory=Path(directory.strip()).expanduser().resolve())


def token_from_environment() -> str | None:
    """
    Default credential provider: read the AniList token from the environment.

    The .env file is read once when this module is imported, without
    overriding variables that are already set. Blank values count as no
    token, so public queries go out unauthenticated.
    """
    token = os.getenv(TOKEN_ENV_VAR, "").strip()
    return token or None
