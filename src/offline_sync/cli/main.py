"""CLI entry point for offline-sync.

Invoked as::

    offline-sync [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m offline_sync.cli.main

Commands
--------
- ``version``       Show version information.
- ``status``        Probe connectivity and show the coordinator state.
- ``offline-mode``  Persist the manual offline override (on/off).
- ``stale``         Check whether the last-online timestamp is too old.
- ``config``        Print the effective configuration.
"""
from __future__ import annotations

import asyncio
import datetime
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

console = Console()

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _load_context(ctx: click.Context):  # type: ignore[no-untyped-def]
    from offline_sync.convenience import OfflineContext

    return OfflineContext.from_config(ctx.obj["config"])


@click.group()
@click.version_option(package_name="offline-sync")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML configuration file with a top-level 'offline' section.",
)
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level for library output.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str) -> None:
    """Offline coordination and retry queue toolkit"""
    from offline_sync.config import load_config

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_path)
    except ValueError as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from offline_sync import __version__

    console.print(f"[bold]offline-sync[/bold] v{__version__}")


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command(name="status")
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output results as JSON.",
)
@click.pass_context
def status_command(ctx: click.Context, json_output: bool) -> None:
    """Probe connectivity once and show the coordinator state.

    Examples:

    \b
        offline-sync status
        offline-sync --config offline.yaml status --json-output
    """
    context = _load_context(ctx)

    async def _probe() -> None:
        await context.start()
        await context.stop()

    try:
        asyncio.run(_probe())
    except OSError as exc:
        raise click.ClickException(f"Connectivity check failed: {exc}") from exc

    coordinator = context.coordinator
    last_online = coordinator.last_online_at.isoformat() if coordinator.last_online_at else None
    output = {
        "status": coordinator.status.value,
        "state": coordinator.state.value,
        "offline_mode": coordinator.is_offline_mode,
        "can_go_online": coordinator.can_go_online,
        "last_online_at": last_online,
    }

    if json_output:
        console.print_json(json.dumps(output))
        return

    table = Table(title="Offline Coordinator", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    colour = "green" if coordinator.can_go_online else "yellow"
    table.add_row("Status", coordinator.status.value)
    table.add_row("State", f"[{colour}]{coordinator.state.value}[/{colour}]")
    table.add_row("Offline mode", "on" if coordinator.is_offline_mode else "off")
    table.add_row("Can go online", str(coordinator.can_go_online))
    table.add_row("Last online", last_online or "never")
    console.print(table)


# ---------------------------------------------------------------------------
# offline-mode
# ---------------------------------------------------------------------------


@cli.command(name="offline-mode")
@click.argument("mode", type=click.Choice(["on", "off"], case_sensitive=False))
@click.pass_context
def offline_mode_command(ctx: click.Context, mode: str) -> None:
    """Persist the manual offline override.

    Examples:

    \b
        offline-sync --config offline.yaml offline-mode on
        offline-sync --config offline.yaml offline-mode off
    """
    context = _load_context(ctx)
    enabled = mode.lower() == "on"
    asyncio.run(context.coordinator.set_offline_mode(enabled))

    if context.config.storage_path is None:
        console.print(
            "[yellow]Warning:[/yellow] no storage_path configured; "
            "the setting will not survive this process."
        )
    console.print(f"Offline mode: [bold]{'on' if enabled else 'off'}[/bold]")


# ---------------------------------------------------------------------------
# stale
# ---------------------------------------------------------------------------


@cli.command(name="stale")
@click.option(
    "--max-age-seconds",
    type=click.FloatRange(min=0),
    required=True,
    help="Maximum acceptable age of the last-online timestamp.",
)
@click.pass_context
def stale_command(ctx: click.Context, max_age_seconds: float) -> None:
    """Exit 0 when the last online time is fresh, 1 when stale or unknown."""
    context = _load_context(ctx)
    stale = context.coordinator.is_stale(datetime.timedelta(seconds=max_age_seconds))
    if stale:
        console.print("[red]STALE[/red]")
        sys.exit(1)
    console.print("[green]FRESH[/green]")


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.command(name="config")
@click.pass_context
def config_command(ctx: click.Context) -> None:
    """Print the effective configuration as JSON."""
    console.print_json(json.dumps(ctx.obj["config"].model_dump(mode="json")))


if __name__ == "__main__":
    cli()
