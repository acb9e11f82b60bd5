"""Tests for market_sentinel.core.config."""

import os

import pytest
from pydantic import ValidationError

from market_sentinel.core.config import (
    APIConfig,
    CacheConfig,
    SchedulerConfig,
    SentinelConfig,
    SourcesConfig,
    load_config,
    _auto_cast,
    _merge_env_vars,
)
from market_sentinel.core.exceptions import ConfigError
from market_sentinel.core.models import StorageBackend


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    """No stray MARKET_SENTINEL_* vars and no ./market-sentinel.yml."""
    for key in list(os.environ):
        if key.startswith("MARKET_SENTINEL_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


class TestSourcesConfig:
    def test_defaults(self):
        config = SourcesConfig()
        assert config.enabled is None
        assert config.request_timeout == 15.0
        assert config.retries == 1
        assert config.default_currency == "NGN"
        assert "Mozilla/5.0" in config.user_agent

    def test_enabled_lowercased(self):
        assert SourcesConfig(enabled=["NNPC", " Jumia "]).enabled == ["nnpc", "jumia"]

    def test_enabled_from_comma_string(self):
        assert SourcesConfig(enabled="nnpc,punch,").enabled == ["nnpc", "punch"]

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            SourcesConfig(request_timeout=0)

    def test_retries_bounded(self):
        with pytest.raises(ValidationError):
            SourcesConfig(retries=4)
        with pytest.raises(ValidationError):
            SourcesConfig(retries=-1)

    def test_default_currency_normalized(self):
        assert SourcesConfig(default_currency="usd").default_currency == "USD"
        with pytest.raises(ValidationError):
            SourcesConfig(default_currency="naira")


class TestCacheConfig:
    def test_defaults(self):
        config = CacheConfig()
        assert config.hot_window_minutes == 60
        assert config.retention_hours == 24

    def test_hot_window_cannot_exceed_retention(self):
        with pytest.raises(ValidationError, match="retention"):
            CacheConfig(hot_window_minutes=180, retention_hours=2)

    def test_windows_positive(self):
        with pytest.raises(ValidationError):
            CacheConfig(hot_window_minutes=0)


class TestSchedulerAndApiConfig:
    def test_scheduler_interval_positive(self):
        assert SchedulerConfig().interval_hours == 4.0
        with pytest.raises(ValidationError):
            SchedulerConfig(interval_hours=0)

    def test_api_defaults(self):
        config = APIConfig()
        assert config.api_key is None
        assert config.rate_limit == "100/15minutes"
        assert config.max_limit == 1000

    def test_default_limit_within_max(self):
        with pytest.raises(ValidationError):
            APIConfig(default_limit=50, max_limit=10)


class TestLoadConfig:
    def test_defaults(self):
        config = load_config()
        assert config.storage.backend == StorageBackend.SQLITE
        assert config.log_level == "INFO"

    def test_yaml_loading(self, tmp_path):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text(
            "sources:\n  enabled: [nnpc, abokifx]\n  retries: 2\n"
            "cache:\n  hot_window_minutes: 30\n"
        )
        config = load_config(config_path=str(yaml_file))
        assert config.sources.enabled == ["nnpc", "abokifx"]
        assert config.sources.retries == 2
        assert config.cache.hot_window_minutes == 30

    def test_default_file_in_cwd(self, tmp_path):
        (tmp_path / "market-sentinel.yml").write_text("log_level: debug\n")
        assert load_config().log_level == "DEBUG"

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        yaml_file = tmp_path / "elsewhere.yml"
        yaml_file.write_text("api:\n  port: 9000\n")
        monkeypatch.setenv("MARKET_SENTINEL_CONFIG", str(yaml_file))
        assert load_config().api.port == 9000

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text("cache:\n  retention_hours: 12\n")
        monkeypatch.setenv("MARKET_SENTINEL_CACHE__RETENTION_HOURS", "48")
        config = load_config(config_path=str(yaml_file))
        assert config.cache.retention_hours == 48

    def test_nested_env_vars(self, monkeypatch):
        monkeypatch.setenv("MARKET_SENTINEL_API__API_KEY", "s3cret")
        monkeypatch.setenv("MARKET_SENTINEL_SCHEDULER__ENABLED", "false")
        config = load_config()
        assert config.api.api_key == "s3cret"
        assert config.scheduler.enabled is False

    def test_user_agent_with_commas_kept_whole(self, monkeypatch):
        ua = "Mozilla/5.0 (KHTML, like Gecko)"
        monkeypatch.setenv("MARKET_SENTINEL_SOURCES__USER_AGENT", ua)
        assert load_config().sources.user_agent == ua

    def test_enabled_sources_from_env(self, monkeypatch):
        monkeypatch.setenv("MARKET_SENTINEL_SOURCES__ENABLED", "NNPC,jumia")
        assert load_config().sources.enabled == ["nnpc", "jumia"]

    def test_invalid_value_wrapped(self, monkeypatch):
        monkeypatch.setenv("MARKET_SENTINEL_LOG_LEVEL", "chatty")
        with pytest.raises(ConfigError):
            load_config()

    def test_missing_config_file_raises(self):
        with pytest.raises(ConfigError, match="not found"):
            load_config(config_path="/nonexistent/file.yml")

    def test_non_mapping_yaml_raises(self, tmp_path):
        yaml_file = tmp_path / "config.yml"
        yaml_file.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(config_path=str(yaml_file))

    def test_config_is_frozen(self):
        config = load_config()
        with pytest.raises(ValidationError):
            config.log_level = "DEBUG"


class TestAutoCast:
    def test_bools(self):
        assert _auto_cast("true") is True
        assert _auto_cast("FALSE") is False

    def test_numbers(self):
        assert _auto_cast("42") == 42
        assert _auto_cast("2.5") == 2.5

    def test_string(self):
        assert _auto_cast("nnpc,jumia") == "nnpc,jumia"


class TestMergeEnvVars:
    def test_simple_override(self, monkeypatch):
        monkeypatch.setenv("TEST_CACHE__HOT_WINDOW_MINUTES", "15")
        result = _merge_env_vars({"cache": {"hot_window_minutes": 60}}, "TEST_")
        assert result["cache"]["hot_window_minutes"] == 15

    def test_creates_nested_structure(self, monkeypatch):
        monkeypatch.setenv("TEST_SOURCES__RETRIES", "0")
        result = _merge_env_vars({}, "TEST_")
        assert result["sources"]["retries"] == 0

    def test_replaces_scalar_with_section(self, monkeypatch):
        monkeypatch.setenv("TEST_API__PORT", "8080")
        result = _merge_env_vars({"api": None}, "TEST_")
        assert result["api"] == {"port": 8080}

    def test_skips_config_key(self, monkeypatch):
        monkeypatch.setenv("TEST_CONFIG", "/tmp/x.yml")
        assert "config" not in _merge_env_vars({}, "TEST_")


def test_sentinel_config_log_level_validated():
    with pytest.raises(ValidationError):
        SentinelConfig(log_level="verbose")
