"""Unit tests for configuration."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from durable_orchestration.core.config import (
    CUSTOM_STATUS_LIMIT_BYTES,
    DurableConfig,
    LoggingConfig,
    ReplayConfig,
)


def test_replay_config_defaults() -> None:
    """Test replay config default values."""
    config = ReplayConfig()

    assert config.http_poll_interval_seconds == 30.0
    assert config.http_poll_interval == timedelta(seconds=30)
    assert config.custom_status_max_bytes == CUSTOM_STATUS_LIMIT_BYTES == 16384
    assert config.log_replay_events is False


def test_replay_config_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test replay config picks up prefixed environment variables."""
    monkeypatch.setenv("DURABLE_REPLAY_HTTP_POLL_INTERVAL_SECONDS", "2.5")
    monkeypatch.setenv("DURABLE_REPLAY_LOG_REPLAY_EVENTS", "true")

    config = ReplayConfig()

    assert config.http_poll_interval == timedelta(seconds=2.5)
    assert config.log_replay_events is True


def test_custom_status_cap_cannot_be_raised() -> None:
    """Test the custom status limit is bounded."""
    with pytest.raises(ValidationError):
        ReplayConfig(custom_status_max_bytes=CUSTOM_STATUS_LIMIT_BYTES + 1)


def test_poll_interval_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        ReplayConfig(http_poll_interval_seconds=0)


def test_logging_config_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test logging config picks up environment variables."""
    monkeypatch.setenv("DURABLE_LOG_LEVEL", "debug")
    monkeypatch.setenv("DURABLE_LOG_JSON", "false")

    config = LoggingConfig()

    assert config.level == "debug"
    assert config.json_output is False


def test_durable_config_composition(logging_config: LoggingConfig, replay_config: ReplayConfig) -> None:
    """Test durable config with nested configs."""
    config = DurableConfig(replay=replay_config, logging=logging_config)

    assert config.replay.http_poll_interval_seconds == 10
    assert config.logging.level == "DEBUG"
    assert config.logging.json_output is False
