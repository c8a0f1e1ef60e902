"""In-memory scheduling backend.

An ordered, in-process model of buses, rules and targets. It behaves like
EventBridge where the pool can observe the difference (already-exists on
create, in-use on delete, rule quota per bus, the undeletable default bus)
and adds hooks for tests: call recording, failure injection and ``fire()``
to simulate a rule triggering and deleting itself.

Example:
    >>> backend = InMemoryBackend()
    >>> backend.seed("ett-dev-1", ["ett-dev-1-rule-a", "ett-dev-1-rule-b"])
    >>> pool = EventBusPool(backend, PoolSettings(landscape="dev", rule_limit=3))
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any

from rulepool.errors import BackendError
from rulepool.protocol import (
    DEFAULT_BUS_NAME,
    ContainerOutcome,
    ContainerSummary,
    RuleHandle,
    RuleSummary,
    TargetSummary,
)

_ARN_ROOT = "arn:aws:events:us-east-1:000000000000"


@dataclass
class _StoredRule:
    name: str
    bus_name: str
    schedule_expression: str
    description: str | None = None
    targets: OrderedDict[str, TargetSummary] = field(default_factory=OrderedDict)

    @property
    def arn(self) -> str:
        if self.bus_name == DEFAULT_BUS_NAME:
            return f"{_ARN_ROOT}:rule/{self.name}"
        return f"{_ARN_ROOT}:rule/{self.bus_name}/{self.name}"


class InMemoryBackend:
    """Ordered in-process implementation of ``SchedulingBackend``.

    Args:
        rule_quota: Rules the "service" accepts per bus before rejecting
            ``create_rule`` (None = unlimited).
    """

    name = "memory"

    def __init__(self, rule_quota: int | None = None) -> None:
        self.rule_quota = rule_quota
        self.buses: OrderedDict[str, OrderedDict[str, _StoredRule]] = OrderedDict()
        self.buses[DEFAULT_BUS_NAME] = OrderedDict()
        self.permissions: list[tuple[str, str]] = []
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self._failures: dict[str, list[Exception]] = {}

    # === Test hooks ===

    def seed(self, bus_name: str, rule_names: list[str] | None = None) -> None:
        """Create a bus (if needed) holding the given rules, bypassing call recording."""
        rules = self.buses.setdefault(bus_name, OrderedDict())
        for rule_name in rule_names or []:
            rules[rule_name] = _StoredRule(rule_name, bus_name, "rate(1 day)")

    def fail_next(self, operation: str, error: Exception, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``."""
        self._failures.setdefault(operation, []).extend([error] * times)

    def fire(self, rule_name: str) -> None:
        """Simulate a rule firing: its target removes the target and the rule."""
        for rules in self.buses.values():
            if rule_name in rules:
                del rules[rule_name]
                return
        raise KeyError(rule_name)

    def counts(self) -> dict[str, int]:
        return {name: len(rules) for name, rules in self.buses.items()}

    def operations(self, operation: str) -> list[tuple[Any, ...]]:
        """Arguments of every recorded call to ``operation``."""
        return [args for op, args in self.calls if op == operation]

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _bus(self, name: str, operation: str) -> OrderedDict[str, _StoredRule]:
        try:
            return self.buses[name]
        except KeyError:
            raise BackendError(f"Event bus {name} does not exist").with_context(
                bus=name, operation=operation, error_code="ResourceNotFoundException"
            ) from None

    # === SchedulingBackend ===

    async def list_containers(self, name_prefix: str) -> list[ContainerSummary]:
        self._record("list_containers", name_prefix)
        return [
            ContainerSummary(name=name, arn=f"{_ARN_ROOT}:event-bus/{name}")
            for name in self.buses
            if name.startswith(name_prefix)
        ]

    async def list_rules(self, container_name: str, name_prefix: str) -> list[RuleSummary]:
        self._record("list_rules", container_name, name_prefix)
        rules = self._bus(container_name, "list_rules")
        return [
            RuleSummary(
                name=rule.name,
                bus_name=container_name,
                schedule_expression=rule.schedule_expression,
                description=rule.description,
                arn=rule.arn,
                state="ENABLED",
            )
            for rule in rules.values()
            if rule.name.startswith(name_prefix)
        ]

    async def create_container(self, name: str) -> ContainerOutcome:
        self._record("create_container", name)
        if name in self.buses:
            return ContainerOutcome.ALREADY_EXISTS
        self.buses[name] = OrderedDict()
        return ContainerOutcome.CREATED

    async def delete_container(self, name: str) -> ContainerOutcome:
        self._record("delete_container", name)
        if name == DEFAULT_BUS_NAME:
            raise BackendError("The default event bus cannot be deleted").with_context(
                bus=name, operation="delete_container", error_code="ValidationException"
            )
        if self.buses.get(name):
            return ContainerOutcome.IN_USE
        self.buses.pop(name, None)
        return ContainerOutcome.DELETED

    async def create_rule(
        self,
        container_name: str,
        name: str,
        schedule_expression: str,
        description: str | None = None,
    ) -> RuleHandle:
        self._record("create_rule", container_name, name, schedule_expression, description)
        rules = self._bus(container_name, "create_rule")
        if name not in rules and self.rule_quota is not None and len(rules) >= self.rule_quota:
            raise BackendError(f"Rule quota reached on {container_name}").with_context(
                bus=container_name, rule=name, error_code="LimitExceededException"
            )
        rule = rules.get(name) or _StoredRule(name, container_name, schedule_expression)
        rule.schedule_expression = schedule_expression
        rule.description = description
        rules[name] = rule
        return RuleHandle(name=name, bus_name=container_name, arn=rule.arn)

    async def attach_target(
        self,
        rule_name: str,
        container_name: str,
        target_id: str,
        target_arn: str,
        payload: str,
    ) -> None:
        self._record("attach_target", rule_name, container_name, target_id, target_arn, payload)
        rule = self._rule(rule_name, container_name, "attach_target")
        rule.targets[target_id] = TargetSummary(id=target_id, arn=target_arn, input=payload)

    async def grant_invoke_permission(self, target_arn: str, rule: RuleHandle) -> None:
        self._record("grant_invoke_permission", target_arn, rule)
        self.permissions.append((target_arn, rule.arn))

    async def list_targets(self, rule_name: str, container_name: str) -> list[TargetSummary]:
        self._record("list_targets", rule_name, container_name)
        return list(self._rule(rule_name, container_name, "list_targets").targets.values())

    async def remove_targets(
        self, rule_name: str, container_name: str, target_ids: list[str]
    ) -> list[str]:
        self._record("remove_targets", rule_name, container_name, target_ids)
        rule = self._rule(rule_name, container_name, "remove_targets")
        failed = [target_id for target_id in target_ids if target_id not in rule.targets]
        for target_id in target_ids:
            rule.targets.pop(target_id, None)
        return failed

    async def delete_rule(self, rule_name: str, container_name: str) -> bool:
        self._record("delete_rule", rule_name, container_name)
        rules = self._bus(container_name, "delete_rule")
        return rules.pop(rule_name, None) is not None

    def _rule(self, rule_name: str, container_name: str, operation: str) -> _StoredRule:
        rules = self._bus(container_name, operation)
        try:
            return rules[rule_name]
        except KeyError:
            raise BackendError(f"Rule {rule_name} does not exist").with_context(
                bus=container_name,
                rule=rule_name,
                operation=operation,
                error_code="ResourceNotFoundException",
            ) from None
