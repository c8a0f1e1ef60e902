"""Role interfaces for the rule pool: ``Allocator``, ``Container``, ``SchedulableUnit``.

All event bridge rules are deleted by the compute target they invoke as the
final step of its execution. Most of those rules are scheduled far in the
future, so the natural attrition of fired rules does not keep up with new
ones and a single bus eventually hits its rule quota. The allocator spreads
rules over a pool of buses that are added and removed as needed.

Manifesto:
    The placement algorithm is written exactly once, here, against the three
    role interfaces. Concrete classes only supply I/O (how to list, create and
    delete buses and rules); they never re-implement placement.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │  Allocator.add_rule(rule)                                     │
        │                                                               │
        │   SCANNING ──► TARGET_FOUND ───────────┐                      │
        │       │                                ▼                      │
        │       └────► CREATING_CONTAINER ──► PLACING_RULE              │
        │                                        │                      │
        │                                        ▼                      │
        │                          COLLECTING_EMPTY_CONTAINERS ──► DONE │
        │                                                               │
        │   Any step raising aborts the call. No retry state.           │
        └──────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ Deleting an empty bus before the new rule is safely placed
    ✅ Collect only after ``rule.create()`` returned
    ❌ Creating or deleting the default bus (index 0)
    ✅ ``Container.is_default`` is checked before every create/delete
    ❌ Trusting the inventory across invocations
    ✅ ``load_inventory()`` before every placement cycle
    ❌ Keeping a rule the live count shows over the limit
    ✅ Withdraw it and raise ``PlacementConflictError`` for a fresh cycle

Tags:
    rulepool, allocator, capacity, bin-packing, reconciliation, eventbridge
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import OrderedDict
from enum import Enum
from uuid import uuid4

from rulepool.errors import CapacityExhaustedError, PlacementConflictError
from rulepool.logging import LogContext, get_logger
from rulepool.placement import plan_placement, next_free_index

logger = get_logger(__name__)


class PlacementState(str, Enum):
    """Stages of one ``add_rule`` call (exposed for logging and tests)."""

    SCANNING = "scanning"
    TARGET_FOUND = "target_found"
    CREATING_CONTAINER = "creating_container"
    PLACING_RULE = "placing_rule"
    COLLECTING_EMPTY_CONTAINERS = "collecting_empty_containers"
    DONE = "done"


class Container(ABC):
    """A named, capacity-bounded holder of rules (an event bus)."""

    def __init__(self, index: int) -> None:
        self.index = index
        self.rules: OrderedDict[str, SchedulableUnit] = OrderedDict()

    @property
    def is_default(self) -> bool:
        """Index 0 is the pre-existing default bus."""
        return self.index == 0

    def get_index(self) -> int:
        return self.index

    def set_rule(self, rule: SchedulableUnit) -> None:
        """Upsert a rule reference, keyed by rule name."""
        self.rules[rule.get_name(self)] = rule

    def get_rule_count(self) -> int:
        return len(self.rules)

    def rule_stem(self) -> str:
        """Leading part of generated rule names on this bus."""
        return f"{self.get_name()}-rule-"

    @abstractmethod
    def get_name(self) -> str: ...

    @abstractmethod
    async def create(self) -> Container:
        """Provision the bus. An already existing bus is not an error."""
        ...

    @abstractmethod
    async def delete(self) -> bool:
        """Remove the bus. Returns False if it was left in place (still in use)."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.get_name()!r}, rules={self.get_rule_count()})"


class SchedulableUnit(ABC):
    """One scheduled task waiting to be placed on (or already living on) a bus."""

    def __init__(self, name: str | None = None) -> None:
        self.parent_bus: Container | None = None
        self._name = name
        self._generated = False

    @property
    def assigned_name(self) -> str | None:
        """The name given or generated so far, without generating one."""
        return self._name

    def get_name(self, container: Container | None = None) -> str:
        """Pre-assigned name, else a memoized name scoped to the bus.

        Args:
            container: Bus to scope a generated name to. Defaults to the
                rule's parent bus.

        Raises:
            ValueError: The rule has no name and no bus to derive one from.
        """
        if self._name is None:
            bus = container or self.parent_bus
            if bus is None:
                raise ValueError("Cannot name a rule that has not been assigned to a bus")
            self._name = f"{bus.rule_stem()}{uuid4()}"
            self._generated = True
        return self._name

    def attach(self, container: Container) -> None:
        """Record the parent bus. Set once, at successful creation."""
        if self.parent_bus is not None and self.parent_bus is not container:
            raise ValueError(
                f"Rule {self.get_name()!r} already lives on {self.parent_bus.get_name()!r}"
            )
        self.parent_bus = container
        container.set_rule(self)

    def detach(self, container: Container) -> None:
        """Undo ``attach``. A generated name is dropped so the next bus renames the rule."""
        if self._name is not None:
            container.rules.pop(self._name, None)
        if self.parent_bus is container:
            self.parent_bus = None
        if self._generated:
            self._name = None
            self._generated = False

    @abstractmethod
    async def create(self, container: Container) -> SchedulableUnit:
        """Materialize the rule on ``container`` and register with it."""
        ...

    async def withdraw(self, container: Container) -> None:
        """Take back a rule created on ``container`` whose placement failed."""
        self.detach(container)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"


class Allocator(ABC):
    """The pool: inventory of buses plus the placement algorithm.

    Args:
        rule_limit: Rules allowed on one bus
        max_containers: Ceiling on inventoried buses (None = unbounded)
        optimistic_check: Re-read the target's live rule count before commit
    """

    def __init__(
        self,
        rule_limit: int,
        *,
        max_containers: int | None = None,
        optimistic_check: bool = False,
    ) -> None:
        self.rule_limit = rule_limit
        self.max_containers = max_containers
        self.optimistic_check = optimistic_check
        self.inventory: OrderedDict[str, Container] = OrderedDict()
        self.state = PlacementState.DONE
        self._lock = asyncio.Lock()

    # === I/O supplied by concrete pools ===

    @abstractmethod
    async def load_inventory(self) -> None:
        """Rebuild ``inventory`` from the backend."""
        ...

    @abstractmethod
    def new_container(self, index: int) -> Container:
        """Construct (not provision) the bus object for ``index``."""
        ...

    @abstractmethod
    def index_from_name(self, name: str) -> int: ...

    async def live_rule_count(self, container: Container) -> int | None:
        """Current backend rule count of ``container``; None if unknown."""
        return None

    def check_rule(self, rule: SchedulableUnit) -> None:
        """Reject a rule this pool could not account for. Accepts every rule by default."""

    # === Inventory ===

    def get_container(self, name: str) -> Container | None:
        return self.inventory.get(name)

    def get_container_count(self) -> int:
        return len(self.inventory)

    def rule_counts(self) -> dict[str, int]:
        """Bus name → rule count, in inventory order."""
        return {name: bus.get_rule_count() for name, bus in self.inventory.items()}

    def load_container(self, index: int) -> Container:
        """Register the bus for ``index`` without provisioning it."""
        bus = self.new_container(index)
        existing = self.inventory.get(bus.get_name())
        if existing is not None:
            return existing
        self.inventory[bus.get_name()] = bus
        return bus

    def load_rule(self, rule: SchedulableUnit, bus_name: str) -> None:
        """Record a rule observed on ``bus_name`` during reconciliation."""
        bus = self.get_container(bus_name) or self.load_container(self.index_from_name(bus_name))
        rule.parent_bus = bus
        bus.set_rule(rule)

    async def create_container(self, index: int) -> Container:
        bus = self.new_container(index)
        if bus.is_default:
            raise ValueError("The default bus is never created by the pool")
        await bus.create()
        self.inventory[bus.get_name()] = bus
        return bus

    async def remove_container(self, name: str) -> None:
        bus = self.inventory[name]
        if bus.is_default:
            logger.debug("default_bus_not_collected", bus=name)
            return
        await bus.delete()
        del self.inventory[name]

    # === Placement ===

    async def add_rule(self, rule: SchedulableUnit) -> Container:
        """Place ``rule`` on the fullest bus with room, spilling over if needed.

        Returns:
            The bus the rule was placed on.

        Raises:
            CapacityExhaustedError: A new bus is needed but the ceiling is reached.
            PlacementConflictError: The target filled up since reconciliation.
        """
        async with self._lock:
            async with LogContext(rule=rule.assigned_name):
                return await self._add_rule(rule)

    async def _add_rule(self, rule: SchedulableUnit) -> Container:
        self.check_rule(rule)
        self.state = PlacementState.SCANNING
        plan = plan_placement(self.inventory.items(), self.rule_limit)

        if plan.needs_new_container:
            self.state = PlacementState.CREATING_CONTAINER
            if self.max_containers is not None and len(self.inventory) >= self.max_containers:
                raise CapacityExhaustedError(
                    f"All {len(self.inventory)} buses are at the limit of "
                    f"{self.rule_limit} rules and no more buses may be created",
                    max_buses=self.max_containers,
                )
            index = next_free_index(bus.get_index() for bus in self.inventory.values())
            target = await self.create_container(index)
            logger.info("bus_created", bus=target.get_name(), bus_count=len(self.inventory))
        else:
            self.state = PlacementState.TARGET_FOUND
            target = self.inventory[plan.target_name]
            await self._verify_capacity(target)

        self.state = PlacementState.PLACING_RULE
        await rule.create(target)
        await self._confirm_capacity(rule, target)
        logger.info(
            "rule_placed",
            rule=rule.get_name(),
            bus=target.get_name(),
            rule_count=target.get_rule_count(),
        )

        self.state = PlacementState.COLLECTING_EMPTY_CONTAINERS
        for name in plan.collectable():
            await self.remove_container(name)

        self.state = PlacementState.DONE
        return target

    async def _verify_capacity(self, target: Container) -> None:
        if not self.optimistic_check:
            return
        live = await self.live_rule_count(target)
        if live is not None and live >= self.rule_limit:
            raise PlacementConflictError(
                f"Bus {target.get_name()} filled up since reconciliation "
                f"({live}/{self.rule_limit})"
            ).with_context(bus=target.get_name())

    async def _confirm_capacity(self, rule: SchedulableUnit, target: Container) -> None:
        """Re-read the live count after commit; withdraw the rule if it overflowed the bus."""
        if not self.optimistic_check:
            return
        live = await self.live_rule_count(target)
        if live is None or live <= self.rule_limit:
            return
        rule_name = rule.get_name()
        logger.warning(
            "rule_withdrawn_over_limit",
            rule=rule_name,
            bus=target.get_name(),
            live=live,
            rule_limit=self.rule_limit,
        )
        await rule.withdraw(target)
        raise PlacementConflictError(
            f"Bus {target.get_name()} went over its limit while placing {rule_name} "
            f"({live}/{self.rule_limit})"
        ).with_context(bus=target.get_name(), rule=rule_name)


__all__ = ["PlacementState", "Container", "SchedulableUnit", "Allocator"]
