"""Event bus rule: one scheduled, one-shot task with a compute target."""

from __future__ import annotations

from typing import Any

from rulepool.abstract import Container, SchedulableUnit
from rulepool.bus import EventBus
from rulepool.cleanup import delete_rule_and_target
from rulepool.errors import BackendError
from rulepool.logging import get_logger
from rulepool.payload import ScheduledTaskInput, target_id_for
from rulepool.protocol import RuleSummary

logger = get_logger(__name__)


class EventBusRule(SchedulableUnit):
    """A scheduled rule that invokes a compute target (Lambda) when it fires.

    The schedule expression, target ARN and payload are opaque to the pool;
    they are handed to the backend verbatim.

    Args:
        schedule_expression: e.g. ``cron(30 14 2 7 ? 2026)``
        target_arn: ARN of the compute target the rule invokes
        payload: Caller-defined input for the target (JSON-serializable)
        description: Free text stored on the rule
        put_invoke_privileges: Grant the events service permission to invoke
            the target. Leave False when the target's role or resource policy
            already allows it.
        name: Pre-assigned rule name (otherwise generated on placement)
    """

    def __init__(
        self,
        schedule_expression: str,
        target_arn: str | None = None,
        payload: Any = None,
        *,
        description: str | None = None,
        put_invoke_privileges: bool = False,
        name: str | None = None,
    ) -> None:
        super().__init__(name)
        self.schedule_expression = schedule_expression
        self.target_arn = target_arn
        self.payload = payload
        self.description = description
        self.put_invoke_privileges = put_invoke_privileges
        self.arn: str | None = None

    @classmethod
    def from_summary(cls, summary: RuleSummary) -> EventBusRule:
        """Rehydrate a rule seen in a backend listing."""
        rule = cls(
            summary.schedule_expression or "",
            description=summary.description,
            name=summary.name,
        )
        rule.arn = summary.arn
        return rule

    @property
    def target_id(self) -> str:
        return target_id_for(self.get_name())

    def target_input(self, container: Container) -> ScheduledTaskInput:
        """Input document delivered to the target when the rule fires."""
        return ScheduledTaskInput(
            lambda_input=self.payload,
            rule_name=self.get_name(container),
            target_id=target_id_for(self.get_name(container)),
            bus_name=container.get_name(),
        )

    async def create(self, container: Container) -> EventBusRule:
        """Create the rule, attach its target, optionally grant invoke rights.

        The parent bus is recorded only after every backend call succeeded.
        A rule whose target or permission could not be set up is deleted
        again before the error propagates.
        """
        if not isinstance(container, EventBus):
            raise TypeError(f"EventBusRule can only be placed on an EventBus, got {container!r}")
        if self.target_arn is None:
            raise ValueError(f"Rule {self.get_name(container)!r} has no target to invoke")

        backend = container.backend
        name = self.get_name(container)
        bus_name = container.get_name()

        # 1) The rule itself
        handle = await backend.create_rule(
            bus_name, name, self.schedule_expression, self.description
        )
        self.arn = handle.arn

        try:
            # 2) The compute target, told how to find and delete this rule
            task_input = self.target_input(container)
            await backend.attach_target(
                name, bus_name, task_input.target_id, self.target_arn, task_input.to_json()
            )

            # 3) Invoke permission, only if the target doesn't already grant it
            if self.put_invoke_privileges:
                await backend.grant_invoke_permission(self.target_arn, handle)
        except Exception as e:
            logger.error("rule_setup_failed", rule=name, bus=bus_name, error=str(e))
            await self.withdraw(container)
            raise

        self.attach(container)
        logger.debug("rule_created", rule=name, bus=bus_name, arn=handle.arn)
        return self

    async def withdraw(self, container: Container) -> None:
        """Delete the rule and its target from the backend and forget the bus.

        A failing delete is logged, not raised.
        """
        name = self.get_name(container)
        bus_name = container.get_name()
        try:
            await delete_rule_and_target(
                container.backend, name, target_id_for(name), bus_name
            )
        except BackendError as e:
            logger.error("rule_withdraw_failed", rule=name, bus=bus_name, error=str(e))
        self.arn = None
        self.detach(container)
