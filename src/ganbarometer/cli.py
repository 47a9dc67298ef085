# ABOUTME: Provides the ganbarometer command line for computing and inspecting the gauges.
# ABOUTME: Reads reviews and assignments from files and manages the persisted settings.

from pathlib import Path
from typing import Optional

import pandas as pd
import typer
from rich.console import Console
from rich.table import Table

from .dashboard import Ganbarometer
from .metrics import gauge_text
from .settings import SCRIPT_ID, Settings, YamlSettingsStore, load_settings, update_setting
from .sources import AssignmentStageCounts, DataUnavailable, FileEventSource

console = Console()
app = typer.Typer(help="Pace and difficulty gauges for a spaced-repetition review history.")


def _default_settings_dir() -> Path:
    return Path.home() / ".config" / SCRIPT_ID


SETTINGS_DIR_OPTION = typer.Option(_default_settings_dir(), "--settings-dir", help="Directory holding ganbarometer.yaml.")


@app.command()
def show(
    events: Path = typer.Option(..., "--events", exists=True, dir_okay=False, help="Reviews as csv, parquet, json, or jsonl."),
    assignments: Path = typer.Option(..., "--assignments", exists=True, dir_okay=False, help="Assignments JSON with srs_stage and subject_type."),
    settings_dir: Path = SETTINGS_DIR_OPTION,
    now: Optional[str] = typer.Option(None, "--now", help="Evaluate as of this ISO8601 time instead of the current time."),
) -> None:
    """Compute the gauges for the configured lookback window."""

    try:
        stage_counts = AssignmentStageCounts.from_json(assignments)
    except DataUnavailable as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    clock = None
    if now is not None:
        try:
            as_of = pd.Timestamp(now)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--now") from exc
        if as_of.tzinfo is None:
            as_of = as_of.tz_localize("UTC")
        fixed = as_of.tz_convert("UTC").to_pydatetime()
        clock = lambda: fixed

    meter = Ganbarometer(
        FileEventSource(events),
        stage_counts,
        YamlSettingsStore(settings_dir),
        clock=clock,
    )
    result = meter.render()
    if result.snapshot is None:
        console.print(f"[red]No gauges: {result.error}[/red]")
        raise typer.Exit(code=1)

    snapshot = result.snapshot
    console.rule(f"[bold]Ganbarometer[/bold] (past {result.settings.interval} hours)")

    gauges = Table(title="Gauges")
    gauges.add_column("Gauge")
    gauges.add_column("Value", justify="right")
    for name, value in gauge_text(snapshot).items():
        gauges.add_row(name, value)
    gauges.add_row("reviewed", str(snapshot.reviewed_count))
    gauges.add_row("apprentice", str(snapshot.apprentice_count))
    gauges.add_row("new kanji", str(snapshot.new_kanji_count))
    console.print(gauges)

    histogram = Table(title="Time between reviews")
    histogram.add_column("Gap")
    histogram.add_column("Reviews", justify="right")
    histogram.add_column("Share", justify="right")
    for row in snapshot.histogram.to_frame().itertuples(index=False):
        histogram.add_row(row.label, str(row.count), f"{row.share * 100:.0f}%")
    console.print(histogram)


@app.command("settings")
def show_settings(settings_dir: Path = SETTINGS_DIR_OPTION) -> None:
    """Print the current settings."""

    settings, notice = load_settings(YamlSettingsStore(settings_dir))
    if notice:
        console.print(f"[yellow]{notice}[/yellow]")
    _print_settings(settings)


@app.command("set")
def set_setting(
    key: str = typer.Argument(..., help="Setting name, e.g. session_interval_max."),
    value: str = typer.Argument(..., help="New value; numbers are clamped to their bounds."),
    settings_dir: Path = SETTINGS_DIR_OPTION,
) -> None:
    """Change one setting and save it."""

    try:
        settings = update_setting(YamlSettingsStore(settings_dir), key, value)
    except KeyError as exc:
        raise typer.BadParameter(f"Unknown setting {exc}", param_hint="KEY") from exc
    _print_settings(settings)


@app.command("reset-settings")
def reset_settings(settings_dir: Path = SETTINGS_DIR_OPTION) -> None:
    """Overwrite the stored settings with defaults."""

    store = YamlSettingsStore(settings_dir)
    store.save(SCRIPT_ID, Settings())
    console.print(f"[green]Settings reset to defaults in {store.path_for(SCRIPT_ID)}[/green]")


def _print_settings(settings: Settings) -> None:
    table = Table(title="Settings")
    table.add_column("Name")
    table.add_column("Value", justify="right")
    for name, value in settings.to_dict().items():
        table.add_row(name, str(value))
    console.print(table)


if __name__ == "__main__":
    app()
