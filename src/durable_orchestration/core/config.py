"""Core configuration for the replay engine."""

from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from durable_orchestration.orchestrator.logging import configure_logging

CUSTOM_STATUS_LIMIT_BYTES = 16 * 1024


class ReplayConfig(BaseSettings):
    """Configuration for orchestration replay."""

    http_poll_interval_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Polling interval for asynchronous HTTP calls without a Retry-After header",
    )
    custom_status_max_bytes: int = Field(
        default=CUSTOM_STATUS_LIMIT_BYTES,
        gt=0,
        le=CUSTOM_STATUS_LIMIT_BYTES,
        description="Size cap for the UTF-16 encoded custom status",
    )
    log_replay_events: bool = Field(
        default=False,
        description="Log every history event as it is replayed (debug level)",
    )

    model_config = SettingsConfigDict(
        env_prefix="DURABLE_REPLAY_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def http_poll_interval(self) -> timedelta:
        return timedelta(seconds=self.http_poll_interval_seconds)


class LoggingConfig(BaseSettings):
    """Configuration for logging output."""

    level: str = Field(
        default="INFO",
        description="Root logging level",
    )
    json_output: bool = Field(
        default=True,
        validation_alias="DURABLE_LOG_JSON",
        description="Emit structured JSON log lines",
    )

    model_config = SettingsConfigDict(
        env_prefix="DURABLE_LOG_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


class DurableConfig(BaseSettings):
    """Main configuration."""

    replay: ReplayConfig = Field(
        default_factory=ReplayConfig,
        description="Replay configuration",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )

    model_config = SettingsConfigDict(
        env_prefix="DURABLE_",
        env_file=".env",
        extra="ignore",
    )

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        configure_logging(self.logging.level, json_output=self.logging.json_output)
