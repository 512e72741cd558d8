"""
Tests for configuration management in `sleepcore/config.py`.

Covers:
- Environment parsing and debug defaults
- Logging level coercion to the expected Literal
- Duration parsing and validation
- Test-mode sleep duration selection
- get_config cache behavior
- AppConfig validation (debug only allowed in development)
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import timedelta

import pytest

from sleepcore.config import (
    AlarmConfig,
    AppConfig,
    LoggingConfig,
    configure_logging,
    get_config,
    load_config_from_env,
)


@pytest.fixture(autouse=True)
def clear_config_cache() -> Iterator[None]:
    """Ensure get_config cache is cleared before and after each test."""
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "ENVIRONMENT",
        "LOG_LEVEL",
        "SLEEP_DURATION_HOURS",
        "TEST_SLEEP_DURATION_SECONDS",
        "GRACE_WINDOW_MINUTES",
        "SESSION_STATE_FILE",
    ):
        monkeypatch.delenv(name, raising=False)


def test_load_config_dev_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "development")

    config = load_config_from_env()

    assert config.environment == "development"
    assert config.debug is True
    assert config.logging.format == "console"
    assert config.alarm.sleep_duration == timedelta(hours=8)
    assert config.alarm.test_sleep_duration == timedelta(minutes=1)
    assert config.alarm.grace_window == timedelta(hours=1)
    assert config.storage.state_file == "./data/sleep_session.json"


def test_production_uses_json_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "prod")

    config = load_config_from_env()

    assert config.environment == "production"
    assert config.debug is False
    assert config.logging.format == "json"


def test_duration_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SLEEP_DURATION_HOURS", "7.5")
    monkeypatch.setenv("TEST_SLEEP_DURATION_SECONDS", "5")
    monkeypatch.setenv("GRACE_WINDOW_MINUTES", "45")
    monkeypatch.setenv("SESSION_STATE_FILE", "/tmp/sleep.json")

    config = load_config_from_env()

    assert config.alarm.sleep_duration == timedelta(hours=7, minutes=30)
    assert config.alarm.test_sleep_duration == timedelta(seconds=5)
    assert config.alarm.grace_window == timedelta(minutes=45)
    assert config.storage.state_file == "/tmp/sleep.json"


def test_logging_level_literal_coercion(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "staging")

    # Unknown level should coerce to INFO
    monkeypatch.setenv("LOG_LEVEL", "unknown")
    config = load_config_from_env()
    assert config.logging.level == "INFO"

    # Known level should pass through
    monkeypatch.setenv("LOG_LEVEL", "error")
    config = load_config_from_env()
    assert config.logging.level == "ERROR"


def test_effective_sleep_duration_depends_on_test_mode() -> None:
    alarm = AlarmConfig()

    assert alarm.effective_sleep_duration(test_mode=False) == timedelta(hours=8)
    assert alarm.effective_sleep_duration(test_mode=True) == timedelta(minutes=1)


@pytest.mark.parametrize(
    "field", ["sleep_duration", "test_sleep_duration", "grace_window", "immediate_delay"]
)
def test_non_positive_durations_rejected(field: str) -> None:
    with pytest.raises(ValueError, match=f"{field} must be positive"):
        AlarmConfig(**{field: timedelta(0)})


def test_get_config_cache() -> None:
    c1 = get_config()
    c2 = get_config()
    assert c1 is c2  # same object due to lru_cache


def test_app_config_debug_only_in_dev_validation() -> None:
    with pytest.raises(ValueError, match="debug mode is only allowed"):
        AppConfig(environment="production", debug=True)


def test_configure_logging_sets_stdlib_level(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, object]] = []
    monkeypatch.setattr("logging.basicConfig", lambda **kwargs: calls.append(kwargs))

    configure_logging(LoggingConfig(level="DEBUG", format="console"))

    assert calls == [{"level": "DEBUG", "format": "%(message)s"}]
