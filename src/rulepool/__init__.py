"""
rulepool: a self-managing pool of EventBridge event buses for one-shot rules.

Delayed executions are scheduled as one-shot EventBridge rules that delete
themselves after they fire. A single bus holds a limited number of rules, so
rules are spread over a pool of buses named ``{app}-{landscape}-{n}``: the
fullest bus with room wins, a new bus is created only when every bus is full,
and buses left empty by fired rules are collected.

Quick start:
    >>> from rulepool import EventBusPool, EventBusRule, PoolSettings
    >>> from rulepool.backends import EventBridgeBackend
    >>> pool = EventBusPool(EventBridgeBackend(region="us-east-2"), PoolSettings(landscape="dev"))
    >>> await pool.place(EventBusRule("cron(0 12 1 8 ? 2026)", lambda_arn, {"id": 7}))
"""

from rulepool.abstract import Allocator, Container, PlacementState, SchedulableUnit
from rulepool.bus import EventBus
from rulepool.delayed import DelayedExecution
from rulepool.errors import (
    BackendError,
    CapacityError,
    CapacityExhaustedError,
    ConfigError,
    ErrorCategory,
    InvalidContainerNameError,
    InvalidRuleNameError,
    PlacementConflictError,
    RulePoolError,
    TransientBackendError,
)
from rulepool.payload import ScheduledTaskInput
from rulepool.placement import PlacementPlan, next_free_index, plan_placement
from rulepool.pool import EventBusPool
from rulepool.rule import EventBusRule
from rulepool.settings import PoolSettings, get_settings
from rulepool.timer import EggTimer, PeriodType

__version__ = "0.1.0"

__all__ = [
    # Roles
    "Allocator",
    "Container",
    "SchedulableUnit",
    "PlacementState",
    # Pool
    "EventBusPool",
    "EventBus",
    "EventBusRule",
    "PlacementPlan",
    "plan_placement",
    "next_free_index",
    # Delayed execution
    "DelayedExecution",
    "EggTimer",
    "PeriodType",
    "ScheduledTaskInput",
    # Settings
    "PoolSettings",
    "get_settings",
    # Errors
    "ErrorCategory",
    "RulePoolError",
    "BackendError",
    "TransientBackendError",
    "CapacityError",
    "CapacityExhaustedError",
    "PlacementConflictError",
    "ConfigError",
    "InvalidContainerNameError",
    "InvalidRuleNameError",
]
