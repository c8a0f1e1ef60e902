"""Tests for DelayedExecution."""

from datetime import UTC, datetime

import pytest

from rulepool.delayed import DelayedExecution
from rulepool.payload import ScheduledTaskInput
from rulepool.pool import EventBusPool
from rulepool.protocol import DEFAULT_BUS_NAME
from rulepool.timer import EggTimer, PeriodType

from conftest import LAMBDA_ARN


class TestStartCountdown:
    """Test scheduling a delayed execution through the pool."""

    @pytest.mark.asyncio
    async def test_schedules_rule_at_expiration(self, pool, memory_backend):
        """The rule fires at the timer's expiration minute."""
        timer = EggTimer.set_for(7, PeriodType.DAYS, offset=datetime(2030, 3, 1, 8, 15, tzinfo=UTC))
        execution = DelayedExecution(pool, LAMBDA_ARN, {"invitation": "abc-123"})

        bus = await execution.start_countdown(timer, name="disclosure-reminder")

        assert bus.get_name() == DEFAULT_BUS_NAME
        (rule,) = memory_backend.buses[DEFAULT_BUS_NAME].values()
        assert rule.schedule_expression == "cron(15 8 8 3 ? 2030)"
        assert rule.description == "ett-test-disclosure-reminder"
        (target,) = rule.targets.values()
        assert target.arn == LAMBDA_ARN
        assert ScheduledTaskInput.from_event(target.input).lambda_input == {"invitation": "abc-123"}

    @pytest.mark.asyncio
    async def test_explicit_description_wins(self, pool, memory_backend):
        """A caller-supplied description is stored as is."""
        execution = DelayedExecution(pool, LAMBDA_ARN, None)

        await execution.start_countdown(
            EggTimer.set_for(1, PeriodType.HOURS), name="x", description="custom"
        )

        (rule,) = memory_backend.buses[DEFAULT_BUS_NAME].values()
        assert rule.description == "custom"

    @pytest.mark.asyncio
    async def test_deactivated_timer_schedules_nothing(self, pool, memory_backend):
        """A zero timer returns None without touching the backend."""
        execution = DelayedExecution(pool, LAMBDA_ARN, {"id": 1})

        result = await execution.start_countdown(EggTimer.set_for(0, PeriodType.DAYS))

        assert result is None
        assert memory_backend.calls == []

    @pytest.mark.asyncio
    async def test_invoke_privileges_from_settings(self, memory_backend, settings):
        """The pool setting decides whether invoke permission is granted."""
        pool = EventBusPool(memory_backend, settings.model_copy(update={"put_invoke_privileges": True}))

        await DelayedExecution(pool, LAMBDA_ARN).start_countdown(EggTimer.set_for(1, PeriodType.DAYS))

        assert len(memory_backend.permissions) == 1

    def test_invoke_privileges_override(self, pool):
        """An explicit flag overrides the pool setting."""
        execution = DelayedExecution(pool, LAMBDA_ARN, put_invoke_privileges=True)

        rule = execution.build_rule(EggTimer.set_for(1, PeriodType.DAYS))

        assert rule.put_invoke_privileges is True
        assert rule.target_arn == LAMBDA_ARN
