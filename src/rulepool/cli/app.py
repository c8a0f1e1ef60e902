"""
Root Typer application for the rulepool CLI.

Every command reconciles against the live backend first; nothing is cached
between invocations.
"""

from __future__ import annotations

import json
from enum import Enum

import typer
from typer import Typer

from rulepool.cleanup import delete_rule_and_target
from rulepool.cli import utils
from rulepool.delayed import DelayedExecution
from rulepool.protocol import DEFAULT_BUS_NAME
from rulepool.timer import EggTimer, PeriodType

app = Typer(
    name="rulepool",
    help="Spread one-shot EventBridge rules over a pool of event buses.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


class Unit(str, Enum):
    seconds = "seconds"
    minutes = "minutes"
    hours = "hours"
    days = "days"
    weeks = "weeks"


BACKEND_OPTION = typer.Option(
    "eventbridge", "--backend", "-b", help="Scheduling backend: eventbridge or memory."
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("rulepool")
        except PackageNotFoundError:
            v = "0.1.0"
        typer.echo(f"rulepool {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Inspect the rule pool and schedule or clean up delayed executions."""


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("inventory")
def inventory(
    backend: str = BACKEND_OPTION,
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Reconcile and show rule counts per bus."""
    pool, _ = utils.make_pool(backend)
    utils.run(pool.load_inventory())
    counts = pool.rule_counts()

    if json_out:
        utils.output_json(
            {"pool": pool.name_prefix, "rule_limit": pool.rule_limit, "buses": counts}
        )
        return
    utils.output_counts(counts, pool.rule_limit, title=f"Pool {pool.name_prefix}*")


@app.command("schedule")
def schedule(
    target_arn: str = typer.Argument(..., help="ARN of the compute target to invoke"),
    periods: int = typer.Option(..., "--in", help="How many periods from now"),
    unit: Unit = typer.Option(Unit.minutes, "--unit", "-u"),
    payload: str | None = typer.Option(None, "--payload", "-p", help="JSON input for the target"),
    name: str | None = typer.Option(None, "--name", "-n", help="Task name (for the description)"),
    description: str | None = typer.Option(None, "--description"),
    backend: str = BACKEND_OPTION,
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Schedule one delayed execution of TARGET_ARN."""
    try:
        data = json.loads(payload) if payload else None
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"not valid JSON: {e}", param_hint="--payload") from e

    pool, _ = utils.make_pool(backend)
    timer = EggTimer.set_for(periods, PeriodType[unit.name.upper()])
    execution = DelayedExecution(pool, target_arn, data)
    bus = utils.run(execution.start_countdown(timer, name=name, description=description))

    if bus is None:
        utils.console.print("[yellow]Timer is deactivated (0 periods); nothing scheduled.[/yellow]")
        return

    result = {
        "bus": bus.get_name(),
        "rule_count": bus.get_rule_count(),
        "schedule_expression": timer.cron_expression(),
        "expires_at": timer.expiration.isoformat(),
    }
    if json_out:
        utils.output_json(result)
        return
    utils.output_dict(result, title="Scheduled")


@app.command("cleanup")
def cleanup(
    rule_name: str = typer.Argument(..., help="Rule to delete"),
    target_id: str = typer.Argument(..., help="Target id attached to the rule"),
    bus: str = typer.Option(DEFAULT_BUS_NAME, "--bus", help="Event bus holding the rule"),
    backend: str = BACKEND_OPTION,
) -> None:
    """Remove a rule's target and delete the rule."""
    _, scheduling_backend = utils.make_pool(backend)
    deleted = utils.run(delete_rule_and_target(scheduling_backend, rule_name, target_id, bus))
    if deleted:
        utils.console.print(f"[green]Deleted[/green] {rule_name} from {bus}")
    else:
        utils.console.print(f"[yellow]Rule {rule_name} not found on {bus}[/yellow]")
