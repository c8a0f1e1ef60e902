"""
Structured error types for the rule pool.

Every failure the pool can surface carries a category, an explicit retry
flag and a small structured context (bus, rule, operation) so callers can
decide whether to back off and try again or give up, and so logs carry the
same fields regardless of where the error was raised.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure mode the pool knows about
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry the bus/rule/operation they relate to
    - **Error Chaining:** botocore exceptions are preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                        RulePoolError                             │
        │  (category, retryable, retry_after, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  BackendError          CapacityError        ConfigError          │
        │  (BACKEND)             (CAPACITY)           (CONFIG)             │
        │       │                     │                    │               │
        │  TransientBackendError CapacityExhausted   InvalidContainerName  │
        │  (retryable=True)      PlacementConflict   InvalidRuleName       │
        │                        (retryable=True)                          │
        └─────────────────────────────────────────────────────────────────┘

    Conditions that are NOT errors:
        - A bus at its rule limit (skipped during the placement scan)
        - A bus that already exists on create (logged, create is idempotent)
        - A bus that still has rules on delete (logged, bus left in place)

Guardrails:
    ❌ DON'T: Raise BackendError for "already exists" / "in use" responses
    ✅ DO: Map them to ContainerOutcome values and log

    ❌ DON'T: Retry anything that isn't marked retryable
    ✅ DO: Let ``RetryContext`` consult ``error.retryable``

    ❌ DON'T: Swallow the original botocore exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context, rulepool

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for classification and log routing."""

    BACKEND = "BACKEND"  # Scheduling service rejected or failed a call
    CAPACITY = "CAPACITY"  # Pool or account quota reached
    CONFIG = "CONFIG"  # Missing or invalid settings
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to a ``RulePoolError``.

    Attributes:
        pool: Name prefix of the pool that raised the error
        bus: Event bus name involved, if any
        rule: Rule name involved, if any
        operation: Backend operation being performed (``put_rule``, ...)
        error_code: Backend error code (botocore ``Error.Code``)
        metadata: Additional key-value pairs
    """

    pool: str | None = None
    bus: str | None = None
    rule: str | None = None
    operation: str | None = None
    error_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["pool", "bus", "rule", "operation", "error_code"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class RulePoolError(Exception):
    """
    Base exception for all rule pool errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that the
    common case needs nothing but a message.

    Examples:
        >>> error = RulePoolError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False

        >>> error = BackendError("put_rule failed").with_context(bus="ett-dev-1")
        >>> error.context.bus
        'ett-dev-1'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> RulePoolError:
        """
        Add context to this error (fluent API).

        Usage:
            raise BackendError("Failed").with_context(bus="ett-dev-2", operation="put_targets")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logging."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context = self.context.to_dict()
        if context:
            result["context"] = context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# BACKEND ERRORS
# =============================================================================


class BackendError(RulePoolError):
    """The scheduling service failed a call (permissions, validation, ...)."""

    default_category = ErrorCategory.BACKEND
    default_retryable = False


class TransientBackendError(BackendError):
    """Throttling, service-side 5xx or connection failure. Safe to retry."""

    default_retryable = True


# =============================================================================
# CAPACITY ERRORS
# =============================================================================


class CapacityError(RulePoolError):
    """Base for quota-related failures."""

    default_category = ErrorCategory.CAPACITY
    default_retryable = False


class CapacityExhaustedError(CapacityError):
    """Every bus is full and the bus ceiling has been reached."""

    def __init__(self, message: str, *, max_buses: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.max_buses = max_buses
        if max_buses is not None:
            self.context.metadata["max_buses"] = max_buses


class PlacementConflictError(CapacityError):
    """The chosen bus filled up between reconciliation and commit.

    Raised by the optimistic capacity check; a fresh reconcile-and-place cycle
    usually succeeds.
    """

    default_retryable = True


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(RulePoolError):
    """Configuration error - missing or invalid settings."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidContainerNameError(ConfigError):
    """A listed bus name does not carry a parseable pool index."""

    def __init__(self, name: str, **kwargs: Any):
        super().__init__(f"Cannot derive a bus index from name: {name!r}", **kwargs)
        self.context.bus = name


class InvalidRuleNameError(ConfigError):
    """A pre-assigned rule name falls outside the pool's name prefix.

    Reconciliation only lists prefixed rules, so such a rule would never be
    counted against its bus.
    """

    def __init__(self, name: str, **kwargs: Any):
        super().__init__(f"Rule name {name!r} does not carry the pool prefix", **kwargs)
        self.context.rule = name


__all__ = [
    "ErrorCategory",
    "ErrorContext",
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
