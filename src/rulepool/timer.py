"""Egg timers: "N periods from now" as a one-shot EventBridge cron expression.

Example:
    >>> timer = EggTimer.set_for(3, PeriodType.DAYS, offset=datetime(2026, 7, 1, 9, 30, tzinfo=UTC))
    >>> timer.cron_expression()
    'cron(30 9 4 7 ? 2026)'
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import IntEnum


class PeriodType(IntEnum):
    """Length of one period, in milliseconds."""

    MILLISECONDS = 1
    SECONDS = 1000
    MINUTES = 60_000
    HOURS = 3_600_000
    DAYS = 86_400_000
    WEEKS = 604_800_000


class EggTimer:
    """A point in time reached by waiting a number of human-readable periods.

    A timer set for zero periods is considered deactivated: callers use that
    to switch off a delayed task without removing the code that schedules it.
    """

    def __init__(self, expiration: datetime, milliseconds: int = 0) -> None:
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=UTC)
        self.expiration = expiration.astimezone(UTC)
        self.milliseconds = milliseconds

    @classmethod
    def set_for(
        cls,
        periods: int | float,
        period_type: PeriodType,
        offset: datetime | None = None,
    ) -> EggTimer:
        """Timer expiring ``periods`` x ``period_type`` after ``offset`` (default: now).

        ``offset`` lets one timer take over from another whose countdown is
        already partly elapsed.
        """
        start = offset or datetime.now(UTC)
        if start.tzinfo is None:
            start = start.replace(tzinfo=UTC)
        milliseconds = int(periods * period_type)
        return cls(start + timedelta(milliseconds=milliseconds), milliseconds)

    @property
    def is_deactivated(self) -> bool:
        return self.milliseconds == 0

    def cron_expression(self) -> str:
        """Non-recurring cron for the expiration minute, in UTC."""
        e = self.expiration
        return f"cron({e.minute} {e.hour} {e.day} {e.month} ? {e.year})"

    def __repr__(self) -> str:
        return f"EggTimer(expiration={self.expiration.isoformat()}, milliseconds={self.milliseconds})"
