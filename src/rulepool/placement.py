"""Pure placement decisions for the rule pool.

The two decisions the allocator makes on every ``add_rule`` call are kept
here as side-effect-free functions so they can be tested without any bus or
backend:

    plan_placement(containers, rule_limit)  → which bus gets the rule,
                                              which buses are collectable
    next_free_index(existing_indices)       → index for a spill-over bus

Placement policy ("fill the fullest eligible bus first")::

    counts (limit 3):   [1]  [1]  [3]  [2]
                         │    │    │    └── eligible, count 2  ◄── target
                         │    │    └─────── full, skipped
                         │    └──────────── eligible, count 1 (tie, not taken)
                         └───────────────── eligible, count 1 (first seen)

Packing the fullest bus concentrates free capacity in as few buses as
possible, so the rest drain to zero and can be deleted.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol


class Countable(Protocol):
    """Anything with a rule count (``Container`` satisfies it)."""

    def get_rule_count(self) -> int: ...


@dataclass
class PlacementPlan:
    """Outcome of one inventory scan.

    Attributes:
        target_name: Bus chosen for the rule, or None if a new bus is needed
        empty_names: Buses observed with zero rules, in inventory order
        full_names: Buses skipped because they were at or above the limit
    """

    target_name: str | None = None
    empty_names: list[str] = field(default_factory=list)
    full_names: list[str] = field(default_factory=list)

    @property
    def needs_new_container(self) -> bool:
        return self.target_name is None

    def collectable(self) -> list[str]:
        """Empty buses that may be deleted once the rule is placed."""
        return [name for name in self.empty_names if name != self.target_name]


def plan_placement(
    containers: Iterable[tuple[str, Countable]],
    rule_limit: int,
) -> PlacementPlan:
    """Scan ``(name, container)`` pairs once, in the order given.

    - Buses at or above ``rule_limit`` are skipped.
    - Buses with zero rules are recorded as collection candidates.
    - The target is the first eligible bus, replaced only by a later eligible
      bus with a strictly greater rule count.
    """
    plan = PlacementPlan()
    target_count = -1

    for name, container in containers:
        count = container.get_rule_count()

        if count >= rule_limit:
            plan.full_names.append(name)
            continue

        if count == 0:
            plan.empty_names.append(name)

        if plan.target_name is None or count > target_count:
            plan.target_name = name
            target_count = count

    return plan


def next_free_index(existing_indices: Iterable[int]) -> int:
    """Smallest positive index not already taken.

    Index 0 belongs to the default bus and is never handed out. Gaps left by
    collected buses are refilled before the sequence is extended.

    >>> next_free_index({0, 1, 2, 4})
    3
    >>> next_free_index(set())
    1
    """
    taken = set(existing_indices)
    index = 1
    while index in taken:
        index += 1
    return index


__all__ = ["Countable", "PlacementPlan", "plan_placement", "next_free_index"]
