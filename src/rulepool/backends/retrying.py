"""Backend wrapper that retries transient failures with backoff."""

from __future__ import annotations

from typing import Any

from rulepool.logging import get_logger
from rulepool.protocol import (
    ContainerOutcome,
    ContainerSummary,
    RuleHandle,
    RuleSummary,
    SchedulingBackend,
    TargetSummary,
)
from rulepool.retry import RetryContext, RetryStrategy

logger = get_logger(__name__)


class RetryingBackend:
    """Wrap every call of ``inner`` in a fresh ``RetryContext``.

    Only errors the strategy considers retryable are retried
    (``TransientBackendError`` by default). ALREADY_EXISTS / IN_USE are
    outcomes, not errors, so they pass straight through.
    """

    def __init__(self, inner: SchedulingBackend, strategy: RetryStrategy) -> None:
        self.inner = inner
        self.strategy = strategy
        self.name = f"retrying:{inner.name}"

    def _on_retry(self, operation: str):
        def log(attempt: int, error: Exception, delay: float) -> None:
            logger.warning(
                "backend_call_retry",
                operation=operation,
                attempt=attempt,
                delay=round(delay, 3),
                error=str(error),
            )

        return log

    async def _call(self, operation: str, *args: Any) -> Any:
        func = getattr(self.inner, operation)
        ctx = RetryContext(self.strategy, on_retry=self._on_retry(operation))
        return await ctx.run_async(func, *args)

    async def list_containers(self, name_prefix: str) -> list[ContainerSummary]:
        return await self._call("list_containers", name_prefix)

    async def list_rules(self, container_name: str, name_prefix: str) -> list[RuleSummary]:
        return await self._call("list_rules", container_name, name_prefix)

    async def create_container(self, name: str) -> ContainerOutcome:
        return await self._call("create_container", name)

    async def delete_container(self, name: str) -> ContainerOutcome:
        return await self._call("delete_container", name)

    async def create_rule(
        self,
        container_name: str,
        name: str,
        schedule_expression: str,
        description: str | None = None,
    ) -> RuleHandle:
        return await self._call(
            "create_rule", container_name, name, schedule_expression, description
        )

    async def attach_target(
        self,
        rule_name: str,
        container_name: str,
        target_id: str,
        target_arn: str,
        payload: str,
    ) -> None:
        await self._call(
            "attach_target", rule_name, container_name, target_id, target_arn, payload
        )

    async def grant_invoke_permission(self, target_arn: str, rule: RuleHandle) -> None:
        await self._call("grant_invoke_permission", target_arn, rule)

    async def list_targets(self, rule_name: str, container_name: str) -> list[TargetSummary]:
        return await self._call("list_targets", rule_name, container_name)

    async def remove_targets(
        self, rule_name: str, container_name: str, target_ids: list[str]
    ) -> list[str]:
        return await self._call("remove_targets", rule_name, container_name, target_ids)

    async def delete_rule(self, rule_name: str, container_name: str) -> bool:
        return await self._call("delete_rule", rule_name, container_name)
