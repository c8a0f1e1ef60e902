"""Post-execution cleanup: a fired rule's target deletes the rule that fired it.

Pool rules are one-shot. The compute target receives a ``ScheduledTaskInput``
naming its own rule, target id and bus, and removes both when it is done.
This is what keeps rule counts falling, and what lets the pool collect empty
buses on its next placement cycle.

Example:
    >>> @self_deleting(lambda: EventBridgeBackend(region="us-east-2"))
    ... def handler(payload, context):
    ...     send_reminder(payload["invitation"])
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from typing import Any, Callable

from rulepool.errors import BackendError
from rulepool.logging import get_logger
from rulepool.payload import ScheduledTaskInput
from rulepool.protocol import DEFAULT_BUS_NAME, RuleSummary, SchedulingBackend, TargetSummary

logger = get_logger(__name__)


async def delete_rule_and_target(
    backend: SchedulingBackend,
    rule_name: str | None,
    target_id: str | None,
    bus_name: str = DEFAULT_BUS_NAME,
) -> bool:
    """Remove the target from a rule, then force-delete the rule.

    The task the rule triggered has already run, so a target that cannot be
    removed or a rule that is already gone is logged and not raised.

    Returns:
        True if the rule was deleted by this call.
    """
    if not target_id or not rule_name:
        logger.error(
            "rule_cleanup_skipped",
            rule=rule_name,
            target_id=target_id,
            reason="missing rule name" if not rule_name else "missing target id",
        )
        return False

    logger.info("rule_target_removing", rule=rule_name, target_id=target_id, bus=bus_name)
    try:
        failed = await backend.remove_targets(rule_name, bus_name, [target_id])
    except BackendError as e:
        logger.error("rule_target_remove_failed", rule=rule_name, bus=bus_name, error=str(e))
    else:
        if failed:
            logger.error("rule_target_remove_failed", rule=rule_name, bus=bus_name, failed=failed)

    logger.info("rule_deleting", rule=rule_name, bus=bus_name)
    deleted = await backend.delete_rule(rule_name, bus_name)
    if not deleted:
        logger.warning("rule_not_found", rule=rule_name, bus=bus_name)
    return deleted


async def lookup_target(
    backend: SchedulingBackend, rule_name: str, bus_name: str = DEFAULT_BUS_NAME
) -> TargetSummary | None:
    """The rule's target. Pool rules have exactly one."""
    logger.debug("target_lookup", rule=rule_name, bus=bus_name)
    targets = await backend.list_targets(rule_name, bus_name)
    return targets[0] if targets else None


async def lookup_rules(
    backend: SchedulingBackend, name_prefix: str, bus_name: str = DEFAULT_BUS_NAME
) -> list[RuleSummary]:
    """Every rule on ``bus_name`` whose name starts with ``name_prefix``."""
    logger.debug("rules_lookup", bus=bus_name, prefix=name_prefix)
    return await backend.list_rules(bus_name, name_prefix)


async def cleanup_task(backend: SchedulingBackend, task: ScheduledTaskInput) -> bool:
    return await delete_rule_and_target(backend, task.rule_name, task.target_id, task.bus_name)


def self_deleting(backend_factory: Callable[[], SchedulingBackend]):
    """Decorate a ``handler(event, context)`` invoked by a pool rule.

    The wrapped handler receives the caller's payload (``lambdaInput``)
    instead of the raw event. Whatever the handler does, the rule and its
    target are deleted afterwards. Sync and async handlers are supported.
    """

    def decorator(handler: Callable[..., Any]) -> Callable[..., Any]:
        if inspect.iscoroutinefunction(handler):

            @functools.wraps(handler)
            async def async_wrapper(event: Any, context: Any = None) -> Any:
                task = ScheduledTaskInput.from_event(event)
                try:
                    return await handler(task.lambda_input, context)
                finally:
                    await cleanup_task(backend_factory(), task)

            return async_wrapper

        @functools.wraps(handler)
        def wrapper(event: Any, context: Any = None) -> Any:
            task = ScheduledTaskInput.from_event(event)
            try:
                return handler(task.lambda_input, context)
            finally:
                asyncio.run(cleanup_task(backend_factory(), task))

        return wrapper

    return decorator


__all__ = [
    "delete_rule_and_target",
    "lookup_target",
    "lookup_rules",
    "cleanup_task",
    "self_deleting",
]
