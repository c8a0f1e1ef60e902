"""EventBusPool: the allocator bound to a scheduling backend.

Manifesto:
    The pool keeps no state between invocations. Fired rules delete
    themselves out of band, so the only trustworthy rule count is the one the
    backend reports right now. Every placement cycle therefore starts with a
    full reconciliation of buses and rules.

Architecture:
    ::

        place(rule)
          │
          ├─► load_inventory()           list buses (prefix) ─► list rules per bus
          │                              + default bus, swapped in atomically
          │
          ├─► Allocator.add_rule(rule)   scan ─► (create bus) ─► put rule ─► recount ─► collect
          │
          └─► PlacementConflictError?    retry the whole cycle with backoff

Examples:
    >>> backend = EventBridgeBackend(region="us-east-2")
    >>> pool = EventBusPool(backend, PoolSettings(landscape="dev"))
    >>> await pool.place(EventBusRule("cron(0 12 1 8 ? 2026)", lambda_arn, {"id": 7}))

Tags:
    rulepool, eventbridge, reconciliation, allocator, pagination
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Iterable

from rulepool.abstract import Allocator, Container, SchedulableUnit
from rulepool.backends.retrying import RetryingBackend
from rulepool.bus import EventBus
from rulepool.errors import InvalidContainerNameError, InvalidRuleNameError, PlacementConflictError
from rulepool.logging import LogContext, get_logger
from rulepool.protocol import DEFAULT_BUS_NAME, SchedulingBackend
from rulepool.retry import ExponentialBackoff, RetryContext
from rulepool.rule import EventBusRule
from rulepool.settings import PoolSettings

logger = get_logger(__name__)


class EventBusPool(Allocator):
    """Pool of event buses for one app/landscape.

    Args:
        backend: Scheduling backend (EventBridge or in-memory)
        settings: Pool settings; defaults to environment-derived settings
    """

    def __init__(self, backend: SchedulingBackend, settings: PoolSettings | None = None) -> None:
        settings = settings or PoolSettings()
        super().__init__(
            settings.rule_limit,
            max_containers=settings.max_buses,
            optimistic_check=settings.optimistic_check,
        )
        self.settings = settings
        self.name_prefix = settings.name_prefix
        self.retry_strategy = ExponentialBackoff(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )
        self.conflict_strategy = ExponentialBackoff(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            retryable=lambda error: isinstance(error, PlacementConflictError),
        )
        if settings.max_retries > 0:
            backend = RetryingBackend(backend, self.retry_strategy)
        self.backend = backend

    def new_container(self, index: int) -> EventBus:
        return EventBus(self.backend, self.name_prefix, index)

    def index_from_name(self, name: str) -> int:
        if name == DEFAULT_BUS_NAME:
            return 0
        suffix = name[len(self.name_prefix):] if name.startswith(self.name_prefix) else ""
        if not suffix.isdigit() or int(suffix) < 1:
            raise InvalidContainerNameError(name).with_context(pool=self.name_prefix)
        return int(suffix)

    def check_rule(self, rule: SchedulableUnit) -> None:
        name = rule.assigned_name
        if name is not None and not name.startswith(self.name_prefix):
            raise InvalidRuleNameError(name).with_context(pool=self.name_prefix)

    # === Reconciliation ===

    async def load_inventory(self) -> None:
        """Rebuild the inventory from the backend.

        Buses are ordered by index, with the default bus last. The previous
        inventory is only replaced once every listing has succeeded.
        """
        logger.info("inventory_loading", pool=self.name_prefix)
        summaries = await self.backend.list_containers(self.name_prefix)

        indexes: list[int] = []
        for summary in summaries:
            try:
                indexes.append(self.index_from_name(summary.name))
            except InvalidContainerNameError:
                logger.warning("bus_ignored_unparseable_name", bus=summary.name)

        inventory: OrderedDict[str, Container] = OrderedDict()
        for index in sorted(set(indexes)) + [0]:
            bus = await self._load_bus(index)
            inventory[bus.get_name()] = bus

        self.inventory = inventory
        logger.info(
            "inventory_loaded",
            pool=self.name_prefix,
            bus_count=len(inventory),
            rule_count=sum(bus.get_rule_count() for bus in inventory.values()),
        )

    async def _load_bus(self, index: int) -> EventBus:
        bus = self.new_container(index)
        for summary in await self.backend.list_rules(bus.get_name(), self.name_prefix):
            rule = EventBusRule.from_summary(summary)
            rule.parent_bus = bus
            bus.set_rule(rule)
        return bus

    async def live_rule_count(self, container: Container) -> int | None:
        rules = await self.backend.list_rules(container.get_name(), self.name_prefix)
        return len(rules)

    # === Placement cycles ===

    async def place(self, rule: EventBusRule) -> Container:
        """Reconcile, then place one rule; retried when the target filled up."""
        return (await self.place_many([rule]))[0]

    async def place_many(self, rules: Iterable[EventBusRule]) -> list[Container]:
        """Reconcile once, then place each rule in order.

        A ``PlacementConflictError`` restarts the cycle (reconciling again) for
        the rules not yet placed. Every pre-assigned name is checked against
        the pool prefix before anything is placed.
        """
        pending = list(rules)
        for rule in pending:
            self.check_rule(rule)
        placed: list[Container] = []

        async def cycle() -> None:
            await self.load_inventory()
            while pending:
                placed.append(await self.add_rule(pending[0]))
                pending.pop(0)

        def on_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.warning(
                "placement_cycle_retry",
                attempt=attempt,
                delay=round(delay, 3),
                error=str(error),
            )

        async with LogContext(pool=self.name_prefix):
            await RetryContext(self.conflict_strategy, on_retry=on_retry).run_async(cycle)
        return placed
