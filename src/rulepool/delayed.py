"""Delayed execution of a compute target when an egg timer goes off.

The countdown itself is delegated to EventBridge: ``start_countdown`` returns
as soon as the rule is placed in the pool, and the rule invokes the target at
the timer's expiration. The target receives a ``ScheduledTaskInput`` and is
expected to delete its own rule afterwards (see ``rulepool.cleanup``).

Example:
    >>> execution = DelayedExecution(pool, reminder_lambda_arn, {"invitation": "abc-123"})
    >>> await execution.start_countdown(
    ...     EggTimer.set_for(7, PeriodType.DAYS), name="disclosure-reminder"
    ... )
"""

from __future__ import annotations

from typing import Any

from rulepool.abstract import Container
from rulepool.logging import get_logger
from rulepool.pool import EventBusPool
from rulepool.rule import EventBusRule
from rulepool.timer import EggTimer

logger = get_logger(__name__)


class DelayedExecution:
    """Run ``target_arn`` with ``payload`` once a timer expires.

    Args:
        pool: Pool the rule is placed into
        target_arn: Compute target (Lambda ARN) to invoke
        payload: Caller-defined input for the target
        put_invoke_privileges: Override the pool setting for this target
    """

    def __init__(
        self,
        pool: EventBusPool,
        target_arn: str,
        payload: Any = None,
        *,
        put_invoke_privileges: bool | None = None,
    ) -> None:
        self.pool = pool
        self.target_arn = target_arn
        self.payload = payload
        self.put_invoke_privileges = (
            pool.settings.put_invoke_privileges
            if put_invoke_privileges is None
            else put_invoke_privileges
        )

    def build_rule(
        self, timer: EggTimer, name: str | None = None, description: str | None = None
    ) -> EventBusRule:
        if description is None and name:
            description = f"{self.pool.name_prefix}{name}"
        return EventBusRule(
            timer.cron_expression(),
            self.target_arn,
            self.payload,
            description=description,
            put_invoke_privileges=self.put_invoke_privileges,
        )

    async def start_countdown(
        self,
        timer: EggTimer,
        name: str | None = None,
        description: str | None = None,
    ) -> Container | None:
        """Place a rule that fires at the timer's expiration.

        Returns:
            The bus the rule landed on, or None if the timer is deactivated.
        """
        if timer.is_deactivated:
            logger.info(
                "delayed_execution_not_scheduled",
                task=name,
                reason="timer deactivated",
            )
            return None

        rule = self.build_rule(timer, name, description)
        bus = await self.pool.place(rule)
        logger.info(
            "delayed_execution_scheduled",
            task=name,
            rule=rule.get_name(),
            bus=bus.get_name(),
            schedule_expression=rule.schedule_expression,
            expires_at=timer.expiration.isoformat(),
            target=self.target_arn,
        )
        return bus
