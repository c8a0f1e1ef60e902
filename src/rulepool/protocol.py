"""Scheduling backend protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULING BACKEND PROTOCOL                                                  │
│                                                                               │
│  The pool never talks to EventBridge directly. Buses and rules go through   │
│  this minimal async contract, so placement can be exercised against an      │
│  in-memory model and run unchanged against AWS.                              │
│                                                                               │
│   ┌─────────────────┐   list / create / delete   ┌──────────────────────┐    │
│   │  EventBusPool   │ ─────────────────────────► │  SchedulingBackend   │    │
│   │  EventBus       │                            │                      │    │
│   │  EventBusRule   │                            │  • EventBridge       │    │
│   └─────────────────┘                            │  • InMemory          │    │
│                                                  └──────────────────────┘    │
│   ┌─────────────────┐   remove_targets / delete_rule        ▲               │
│   │ compute target  │ ──────────────────────────────────────┘               │
│   │ (after firing)  │                                                        │
│   └─────────────────┘                                                        │
│                                                                               │
│  Responsibility Split:                                                        │
│  - Backend: wire calls, pagination, error-code mapping                       │
│  - Pool: capacity bookkeeping and placement decisions                        │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

DEFAULT_BUS_NAME = "default"


class ContainerOutcome(str, Enum):
    """Result of an idempotent bus create/delete call."""

    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    DELETED = "deleted"
    IN_USE = "in_use"


@dataclass(frozen=True)
class ContainerSummary:
    """One entry of a bus listing."""

    name: str
    arn: str | None = None


@dataclass(frozen=True)
class RuleSummary:
    """One entry of a rule listing."""

    name: str
    bus_name: str
    schedule_expression: str | None = None
    description: str | None = None
    arn: str | None = None
    state: str | None = None


@dataclass(frozen=True)
class RuleHandle:
    """What the backend hands back after creating a rule."""

    name: str
    bus_name: str
    arn: str


@dataclass(frozen=True)
class TargetSummary:
    """A target attached to a rule."""

    id: str
    arn: str
    input: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)


@runtime_checkable
class SchedulingBackend(Protocol):
    """Async contract over the event-rule scheduling service.

    Every listing returns the complete result set; implementations paginate
    internally and raise if any page fails. Errors are raised as
    ``rulepool.errors.BackendError`` (or ``TransientBackendError``); the two
    idempotency conflicts are returned as ``ContainerOutcome`` values instead.

    Implementations:
        - EventBridgeBackend: boto3 ``events`` + ``lambda`` clients
        - InMemoryBackend: ordered in-process model (tests, dry runs)
    """

    name: str

    async def list_containers(self, name_prefix: str) -> list[ContainerSummary]:
        """List every bus whose name starts with ``name_prefix``."""
        ...

    async def list_rules(self, container_name: str, name_prefix: str) -> list[RuleSummary]:
        """List every rule on ``container_name`` whose name starts with ``name_prefix``."""
        ...

    async def create_container(self, name: str) -> ContainerOutcome:
        """Create a bus. Returns ALREADY_EXISTS instead of raising on conflict."""
        ...

    async def delete_container(self, name: str) -> ContainerOutcome:
        """Delete a bus. Returns IN_USE instead of raising if rules remain."""
        ...

    async def create_rule(
        self,
        container_name: str,
        name: str,
        schedule_expression: str,
        description: str | None = None,
    ) -> RuleHandle:
        """Create (or overwrite) an enabled scheduled rule on a bus."""
        ...

    async def attach_target(
        self,
        rule_name: str,
        container_name: str,
        target_id: str,
        target_arn: str,
        payload: str,
    ) -> None:
        """Attach the compute target that the rule invokes, with its JSON input."""
        ...

    async def grant_invoke_permission(self, target_arn: str, rule: RuleHandle) -> None:
        """Allow the scheduling service to invoke ``target_arn`` for ``rule``."""
        ...

    async def list_targets(self, rule_name: str, container_name: str) -> list[TargetSummary]:
        """List targets attached to a rule."""
        ...

    async def remove_targets(
        self, rule_name: str, container_name: str, target_ids: list[str]
    ) -> list[str]:
        """Detach targets from a rule. Returns ids the backend failed to remove."""
        ...

    async def delete_rule(self, rule_name: str, container_name: str) -> bool:
        """Force-delete a rule. Returns False if the rule did not exist."""
        ...


def backend_bus_name(container_name: str) -> str | None:
    """Bus name as the AWS APIs want it (``None`` addresses the default bus)."""
    return None if container_name == DEFAULT_BUS_NAME else container_name


__all__ = [
    "DEFAULT_BUS_NAME",
    "ContainerOutcome",
    "ContainerSummary",
    "RuleSummary",
    "RuleHandle",
    "TargetSummary",
    "SchedulingBackend",
    "backend_bus_name",
]
