"""Test configuration loading"""

import pytest

from anitrack.core.config import (
    DEFAULT_API_ENDPOINT,
    TOKEN_ENV_VAR,
    RetryConfig,
    load_config,
    token_from_environment,
)
from anitrack.core.exceptions import ConfigError


def write_config(temp_dir, text):
    path = temp_dir / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    """Test load_config()"""

    def test_minimal_config_uses_defaults(self, temp_dir):
        path = write_config(temp_dir, f'storage:\n  directory: "{temp_dir}"\n')

        config = load_config(path)

        assert config.anilist.api_endpoint == DEFAULT_API_ENDPOINT
        assert config.anilist.request_timeout == 30.0
        assert config.anilist.max_requests_per_minute == 90
        assert config.retry.max_retries == 3
        assert config.retry.retry_server_errors is True
        assert config.sync.max_attempts == 3
        assert config.sync.auto_sync_interval == 900.0
        assert config.storage.directory == temp_dir.resolve()
        assert config.storage.database_path.name == "anitrack.db"

    def test_full_config(self, temp_dir):
        path = write_config(temp_dir, f"""
anilist:
  api_endpoint: "http://localhost:8080/graphql"
  request_timeout: 10
  max_requests_per_minute: 30
retry:
  max_retries: 5
  base_delay: 0.5
  multiplier: 3
  max_delay: 20
  retry_server_errors: false
sync:
  max_attempts: 4
  auto_sync: false
  auto_sync_interval: 60
  incremental_skew: 0
storage:
  directory: "{temp_dir}"
""")

        config = load_config(path)

        assert config.anilist.api_endpoint == "http://localhost:8080/graphql"
        assert config.anilist.request_timeout == 10.0
        assert config.anilist.max_requests_per_minute == 30
        assert config.retry.max_retries == 5
        assert config.retry.multiplier == 3.0
        assert config.retry.retry_server_errors is False
        assert config.sync.max_attempts == 4
        assert config.sync.auto_sync is False
        assert config.sync.incremental_skew == 0.0

    def test_missing_file(self, temp_dir):
        with pytest.raises(ConfigError, match="not found"):
            load_config(temp_dir / "missing.yaml")

    def test_invalid_yaml(self, temp_dir):
        path = write_config(temp_dir, "storage: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, temp_dir):
        path = write_config(temp_dir, "- just\n- a list\n")

        with pytest.raises(ConfigError, match="dictionary"):
            load_config(path)

    @pytest.mark.parametrize("text", [
        "sync:\n  max_attempts: 3\n",
        "storage:\nsync:\n  max_attempts: 3\n",
    ])
    def test_storage_section_required(self, temp_dir, text):
        path = write_config(temp_dir, text)

        with pytest.raises(ConfigError) as exc_info:
            load_config(path)

        assert exc_info.value.details["missing_section"] == "storage"

    def test_empty_storage_directory(self, temp_dir):
        path = write_config(temp_dir, 'storage:\n  directory: "  "\n')

        with pytest.raises(ConfigError) as exc_info:
            load_config(path)

        assert exc_info.value.details["field"] == "storage.directory"

    @pytest.mark.parametrize("section, field, value", [
        ("retry", "max_retries", "three"),
        ("retry", "max_retries", 1.5),
        ("sync", "max_attempts", 0),
        ("anilist", "request_timeout", -1),
        ("sync", "auto_sync", "yes"),
    ])
    def test_invalid_values(self, temp_dir, section, field, value):
        path = write_config(temp_dir, (
            f"{section}:\n  {field}: {value!r}\n"
            f'storage:\n  directory: "{temp_dir}"\n'
        ))

        with pytest.raises(ConfigError) as exc_info:
            load_config(path)

        assert exc_info.value.details["field"] == f"{section}.{field}"

    def test_endpoint_must_be_http(self, temp_dir):
        path = write_config(temp_dir, (
            'anilist:\n  api_endpoint: "ftp://example.com"\n'
            f'storage:\n  directory: "{temp_dir}"\n'
        ))

        with pytest.raises(ConfigError, match="http"):
            load_config(path)


class TestRetryConfig:

    def test_delay_grows_exponentially(self):
        retry = RetryConfig(base_delay=1.0, multiplier=2.0, max_delay=60.0)

        assert [retry.delay_for(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_delay_is_capped(self):
        retry = RetryConfig(base_delay=10.0, multiplier=10.0, max_delay=30.0)

        assert retry.delay_for(3) == 30.0


class TestTokenFromEnvironment:

    def test_reads_token(self, monkeypatch):
        monkeypatch.setenv(TOKEN_ENV_VAR, "  secret-token  ")

        assert token_from_environment() == "secret-token"

    def test_blank_token_is_none(self, monkeypatch):
        monkeypatch.setenv(TOKEN_ENV_VAR, "   ")

        assert token_from_environment() is None

    def test_does_not_reread_dotenv(self, monkeypatch):
        def unexpected(*args, **kwargs):
            raise AssertionError(".env read on a token lookup")

        monkeypatch.setattr("anitrack.core.config.load_dotenv", unexpected)
        monkeypatch.setenv(TOKEN_ENV_VAR, "secret-token")

        assert token_from_environment() == "secret-token"
