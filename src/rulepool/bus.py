"""Event bus: one member of the pool, living in the scheduling backend."""

from __future__ import annotations

from rulepool.abstract import Container
from rulepool.protocol import DEFAULT_BUS_NAME, ContainerOutcome, SchedulingBackend
from rulepool.logging import get_logger

logger = get_logger(__name__)


class EventBus(Container):
    """An event bus for the delayed-execution rules of one landscape.

    Bus ``n`` is named ``{name_prefix}{n}``; index 0 is the account's
    ``default`` bus, which the pool uses but never creates or deletes.

    Example:
        >>> bus = EventBus(backend, "ett-dev-", 2)
        >>> bus.get_name()
        'ett-dev-2'
    """

    def __init__(self, backend: SchedulingBackend, name_prefix: str, index: int) -> None:
        super().__init__(index)
        self.backend = backend
        self.name_prefix = name_prefix

    def get_name(self) -> str:
        if self.is_default:
            return DEFAULT_BUS_NAME
        return f"{self.name_prefix}{self.index}"

    def rule_stem(self) -> str:
        # Rules on the default bus still carry the pool prefix so that
        # prefix-filtered listings find them.
        return f"{self.name_prefix}{self.index}-rule-"

    async def create(self) -> EventBus:
        if self.is_default:
            logger.debug("default_bus_create_skipped")
            return self
        outcome = await self.backend.create_container(self.get_name())
        if outcome is ContainerOutcome.ALREADY_EXISTS:
            logger.warning("bus_already_exists", bus=self.get_name())
        return self

    async def delete(self) -> bool:
        if self.is_default:
            logger.debug("default_bus_delete_skipped")
            return False
        outcome = await self.backend.delete_container(self.get_name())
        if outcome is ContainerOutcome.IN_USE:
            logger.warning(
                "bus_delete_skipped_in_use",
                bus=self.get_name(),
                reason="bus still has rules associated with it",
            )
            return False
        logger.info("bus_deleted", bus=self.get_name())
        return True
