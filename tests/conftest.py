"""
Shared pytest fixtures for rulepool tests.

This module provides:
- Settings/logging isolation between tests
- A mock allocator (plain in-process buses named ``event-bus-{n}``) for the
  placement scenarios, with no default bus in its inventory
- ``InMemoryBackend`` + ``EventBusPool`` fixtures with fast retries

Usage:
    def test_something(memory_backend, pool):
        await pool.place(make_rule())
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any

import pytest
import structlog

from rulepool.abstract import Allocator, Container, SchedulableUnit
from rulepool.backends.memory import InMemoryBackend
from rulepool.pool import EventBusPool
from rulepool.rule import EventBusRule
from rulepool.settings import PoolSettings, clear_settings_cache

LAMBDA_ARN = "arn:aws:lambda:us-east-1:000000000000:function:ett-dev-reminder"


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Fresh settings cache and default structlog config for every test."""
    for key in ("RULEPOOL_APP_NAME", "RULEPOOL_LANDSCAPE", "RULEPOOL_RULE_LIMIT"):
        monkeypatch.delenv(key, raising=False)
    clear_settings_cache()
    structlog.reset_defaults()
    yield
    clear_settings_cache()
    structlog.reset_defaults()


# =============================================================================
# Mock allocator
# =============================================================================


class MockBus(Container):
    """Bus that only exists in its pool's ``backend_buses`` dict."""

    def __init__(self, pool: MockPool, index: int) -> None:
        super().__init__(index)
        self.pool = pool

    def get_name(self) -> str:
        return f"event-bus-{self.index}"

    async def create(self) -> MockBus:
        self.pool.created.append(self.get_name())
        self.pool.backend_buses.setdefault(self.get_name(), [])
        return self

    async def delete(self) -> bool:
        self.pool.deleted.append(self.get_name())
        self.pool.backend_buses.pop(self.get_name(), None)
        return True


class MockRule(SchedulableUnit):
    async def create(self, container: Container) -> MockRule:
        pool = container.pool
        pool.backend_buses[container.get_name()].append(self.get_name(container))
        self.attach(container)
        return self

    async def withdraw(self, container: Container) -> None:
        container.pool.backend_buses[container.get_name()].remove(self.get_name())
        self.detach(container)


class MockPool(Allocator):
    """Allocator over an in-process dict of bus name → rule names."""

    def __init__(self, rule_limit: int = 3, **kwargs: Any) -> None:
        super().__init__(rule_limit, **kwargs)
        self.backend_buses: OrderedDict[str, list[str]] = OrderedDict()
        self.created: list[str] = []
        self.deleted: list[str] = []

    def new_container(self, index: int) -> MockBus:
        return MockBus(self, index)

    def index_from_name(self, name: str) -> int:
        return int(name.rsplit("-", 1)[1])

    async def load_inventory(self) -> None:
        self.inventory = OrderedDict()
        for name in sorted(self.backend_buses, key=self.index_from_name):
            self.load_container(self.index_from_name(name))
            for rule_name in self.backend_buses[name]:
                self.load_rule(MockRule(rule_name), name)

    def seed(self, *counts: int) -> None:
        """Create ``event-bus-1..n`` holding the given numbers of rules."""
        for index, count in enumerate(counts, start=1):
            name = f"event-bus-{index}"
            self.backend_buses[name] = [f"{name}-rule-{i}" for i in range(count)]


@pytest.fixture
def mock_pool() -> MockPool:
    return MockPool(rule_limit=3)


@pytest.fixture
def make_mock_pool():
    return MockPool


# =============================================================================
# Event bus pool over the in-memory backend
# =============================================================================


@pytest.fixture
def settings() -> PoolSettings:
    """Small pool, fast retries."""
    return PoolSettings(
        app_name="ett",
        landscape="test",
        rule_limit=3,
        max_buses=10,
        retry_base_delay=0,
        retry_max_delay=0,
    )


@pytest.fixture
def memory_backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def pool(memory_backend, settings) -> EventBusPool:
    return EventBusPool(memory_backend, settings)


@pytest.fixture
def make_rule():
    """Factory for rules targeting a dummy Lambda, scheduled far in the future."""

    def factory(payload: Any = None, **kwargs: Any) -> EventBusRule:
        return EventBusRule("cron(0 12 1 8 ? 2030)", LAMBDA_ARN, payload or {"id": 1}, **kwargs)

    return factory
