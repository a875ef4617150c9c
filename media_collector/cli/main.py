"""Media Collector CLI — Entry point.

Usage:
    media-collector run [--config config.yaml]
    media-collector check [--config config.yaml]
    media-collector version
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from media_collector import __version__
from media_collector.config import Settings
from media_collector.exceptions import ConfigLoadError
from media_collector.supervisor import ModuleStatus, StatusSnapshot

app = typer.Typer(
    name="media-collector",
    help="Media Collector — runs metadata provider modules under per-module rate limits.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

console = Console()

_STATUS_STYLE = {
    ModuleStatus.RUNNING: "green",
    ModuleStatus.STOPPED: "green",
    ModuleStatus.SKIPPED: "yellow",
    ModuleStatus.FAILED: "red",
}

ConfigOption = typer.Option(
    None, "--config", "-c", help="Path to a YAML or TOML configuration file."
)


def _load_settings(config: Optional[Path]) -> Settings:
    try:
        return Settings.load(config)
    except ConfigLoadError as exc:
        console.print(f"[red]Error: {exc.message}[/red]")
        raise typer.Exit(2)


def _status_table(title: str, statuses: dict[str, StatusSnapshot]) -> Table:
    table = Table(title=title)
    table.add_column("Module", style="cyan")
    table.add_column("Status")
    table.add_column("Reason")
    for snap in statuses.values():
        style = _STATUS_STYLE.get(snap.status, "white")
        table.add_row(snap.name, f"[{style}]{snap.status.value}[/{style}]", snap.reason or "")
    return table


@app.command()
def run(config: Optional[Path] = ConfigOption) -> None:
    """Start every valid module and run until stopped (Ctrl-C)."""
    from media_collector.daemon import configure_from_settings, run_collector

    settings = _load_settings(config)
    configure_from_settings(settings)
    try:
        statuses = asyncio.run(run_collector(settings))
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted.[/yellow]")
        raise typer.Exit(130)
    console.print(_status_table("Final module status", statuses))


@app.command()
def check(config: Optional[Path] = ConfigOption) -> None:
    """Validate every declared module without starting any of them."""
    from media_collector.modules.registry import default_registry
    from media_collector.modules.validator import ConfigValidator

    settings = _load_settings(config)
    validator = ConfigValidator(known_kinds=default_registry().kinds())

    table = Table(title="Module configuration")
    table.add_column("Module", style="cyan")
    table.add_column("Kind")
    table.add_column("Rate limit")
    table.add_column("Verdict")
    table.add_column("Reason")

    startable = 0
    for module in settings.modules:
        outcome = validator.validate(module)
        if outcome.valid:
            startable += 1
            verdict = "[green]start[/green]"
        else:
            verdict = "[yellow]skip[/yellow]"
        rate = "-" if module.rate_limit is None else f"{module.rate_limit:g}/{module.rate_interval:g}s"
        table.add_row(module.name, module.kind, rate, verdict, outcome.reason or "")
    console.print(table)

    if startable == 0:
        console.print("[red]No module would start.[/red]")
        raise typer.Exit(1)
    console.print(f"{startable} of {len(settings.modules)} module(s) would start.")


@app.command()
def version() -> None:
    """Print the installed version."""
    console.print(f"media-collector {__version__}")


if __name__ == "__main__":
    app()
