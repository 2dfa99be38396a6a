"""Core package initialization."""

from durable_orchestration.core.config import DurableConfig, LoggingConfig, ReplayConfig

__all__ = [
    "DurableConfig",
    "LoggingConfig",
    "ReplayConfig",
]
