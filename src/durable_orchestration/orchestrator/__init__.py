"""Orchestrator-side components.

- The replay engine (``orchestrator.replay``)
- Activity and entity executors
- The function registry
- Structured logging
"""
