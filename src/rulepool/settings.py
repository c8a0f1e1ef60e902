"""Settings for the rule pool.

All knobs the pool needs (which landscape it serves, how many rules fit on a
bus, how many buses the account allows, how hard to retry the backend) are
read from ``RULEPOOL_*`` environment variables or a ``.env`` file and
validated once at startup.

Examples:
    >>> from rulepool.settings import PoolSettings
    >>> settings = PoolSettings(landscape="dev", rule_limit=3)
    >>> settings.name_prefix
    'ett-dev-'

Tags:
    settings, configuration, pydantic, environment, rulepool
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# EventBridge quotas
DEFAULT_RULE_LIMIT = 300
ACCOUNT_BUS_LIMIT = 100


class PoolSettings(BaseSettings):
    """Configuration consumed by ``EventBusPool`` and the CLI.

    Fields
    ──────
    app_name              : First segment of every bus name
    landscape             : Deployment landscape (dev, qa, prod ...)
    region                : AWS region of the event buses
    rule_limit            : Rules allowed on one bus
    max_buses             : Ceiling on the number of buses the pool may hold
    page_size             : Page size for list_event_buses / list_rules
    put_invoke_privileges : Grant events.amazonaws.com invoke rights per rule
    optimistic_check      : Re-read the target bus's live count before commit
    max_retries           : Retries for transient backend errors
    retry_base_delay      : First backoff delay (seconds)
    retry_max_delay       : Backoff cap (seconds)
    log_level             : Structlog log level
    log_json              : JSON logs (None = auto-detect from tty)
    """

    model_config = SettingsConfigDict(
        env_prefix="RULEPOOL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Naming ───────────────────────────────────────────────────
    app_name: str = Field(default="ett")
    landscape: str = Field(default="dev")
    region: str = Field(default="us-east-1")

    # ── Capacity ─────────────────────────────────────────────────
    rule_limit: int = Field(default=DEFAULT_RULE_LIMIT)
    max_buses: int = Field(default=ACCOUNT_BUS_LIMIT)
    page_size: int = Field(default=10)

    # ── Placement ────────────────────────────────────────────────
    put_invoke_privileges: bool = Field(default=False)
    optimistic_check: bool = Field(default=True)

    # ── Retry ────────────────────────────────────────────────────
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=0.5, ge=0)
    retry_max_delay: float = Field(default=8.0, ge=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_json: bool | None = Field(default=None)

    @field_validator("rule_limit", "max_buses", "page_size")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("app_name", "landscape")
    @classmethod
    def _no_dashes_at_edges(cls, value: str) -> str:
        value = value.strip()
        if not value or value.startswith("-") or value.endswith("-"):
            raise ValueError("must be non-empty and must not start or end with '-'")
        return value

    # ── Derived properties ───────────────────────────────────────

    @property
    def name_prefix(self) -> str:
        """Prefix shared by every bus (and rule) this pool owns."""
        return f"{self.app_name}-{self.landscape}-"


_settings_cache: dict[str, PoolSettings] = {}


def get_settings(*, _force_reload: bool = False) -> PoolSettings:
    """Load, validate, and cache a :class:`PoolSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = PoolSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "ACCOUNT_BUS_LIMIT",
    "DEFAULT_RULE_LIMIT",
    "PoolSettings",
    "get_settings",
    "clear_settings_cache",
]
