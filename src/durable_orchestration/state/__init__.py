"""Orchestration status models."""

__all__: list[str] = []
