"""Scheduling backends for the rule pool.

- ``EventBridgeBackend``: AWS EventBridge + Lambda (boto3)
- ``InMemoryBackend``: ordered in-process model for tests and dry runs
- ``RetryingBackend``: wraps either one with backoff for transient errors
"""

from __future__ import annotations

from rulepool.backends.eventbridge import EventBridgeBackend
from rulepool.backends.memory import InMemoryBackend
from rulepool.backends.retrying import RetryingBackend
from rulepool.protocol import SchedulingBackend
from rulepool.settings import PoolSettings


def build_backend(settings: PoolSettings, kind: str = "eventbridge") -> SchedulingBackend:
    """Create the backend named by ``kind`` from settings."""
    if kind == "eventbridge":
        return EventBridgeBackend(region=settings.region, page_size=settings.page_size)
    if kind == "memory":
        return InMemoryBackend()
    raise ValueError(f"Unknown backend: {kind!r} (expected 'eventbridge' or 'memory')")


__all__ = [
    "EventBridgeBackend",
    "InMemoryBackend",
    "RetryingBackend",
    "build_backend",
]
