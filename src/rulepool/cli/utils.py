"""
CLI utility helpers: pool construction, async bridging and output formatting.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Coroutine
from dataclasses import asdict
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from rulepool.backends import build_backend
from rulepool.errors import RulePoolError
from rulepool.logging import configure_logging
from rulepool.pool import EventBusPool
from rulepool.protocol import SchedulingBackend
from rulepool.settings import PoolSettings, get_settings

T = TypeVar("T")

console = Console()
err_console = Console(stderr=True)


# ── Pool helper ──────────────────────────────────────────────────────────


def make_backend(settings: PoolSettings, kind: str) -> SchedulingBackend:
    """Create the backend for a CLI invocation."""
    return build_backend(settings, kind)


def make_pool(kind: str = "eventbridge") -> tuple[EventBusPool, SchedulingBackend]:
    """Load settings, configure logging and build an ``EventBusPool``."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    backend = make_backend(settings, kind)
    pool = EventBusPool(backend, settings)
    return pool, pool.backend


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a pool coroutine, turning pool errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except RulePoolError as e:
        code = e.context.error_code or e.category.value
        err_console.print(f"[bold red]Error[/bold red] ({code}): {e.message}")
        raise typer.Exit(code=1) from e


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def output_counts(counts: dict[str, int], rule_limit: int, *, title: str = "") -> None:
    """Render bus name → rule count as a Rich table."""
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    table.add_column("bus")
    table.add_column("rules", justify="right")
    table.add_column("free", justify="right")
    for name, count in counts.items():
        free = max(rule_limit - count, 0)
        style = "red" if free == 0 else None
        table.add_row(name, str(count), str(free), style=style)
    console.print(table)


def output_dict(data: Any, *, title: str = "") -> None:
    """Render a single record as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in _to_dict(data).items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
