"""CLI interface for boardintake."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from boardintake.config import load_config, merge_cli_overrides
from boardintake.errors import ExportFormatError, StoreError
from boardintake.intake.coordinator import ImportCoordinator, PendingImport
from boardintake.intake.detection import label_for
from boardintake.intake.models import ImportPhase, ImportProgress, StagedImportResult
from boardintake.intake.parsers.ics import parse_ics
from boardintake.intake.parsers.trello import load_board_export
from boardintake.intake.providers import default_provider
from boardintake.intake.store import BoardStore

app = typer.Typer(
    name="boardintake",
    help="Import Trello board exports and calendar files.",
)

console = Console()

_PHASE_LABELS = {
    ImportPhase.PARSING: "Parsing",
    ImportPhase.DETECTING_TYPES: "Detecting types",
    ImportPhase.ENRICHING: "Enriching",
    ImportPhase.FINALIZING: "Finalizing",
    ImportPhase.STAGED: "Staged",
    ImportPhase.ERROR: "Error",
}


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from boardintake import __version__

        console.print(f"boardintake {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """boardintake - stage Trello boards and calendar events for import."""


def _print_board(result: StagedImportResult) -> None:
    console.print(
        f"[bold]{result.goal_title}[/bold] "
        f"([cyan]{result.goal_type}[/cyan] / [cyan]{result.board_type}[/cyan])"
    )
    console.print(f"  {result.stats.summary()}")
    if result.background_image:
        console.print(f"  Background: {result.background_image}")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Task")
    table.add_column("Category")
    table.add_column("Type")
    table.add_column("Done", justify="center")
    table.add_column("New")
    for task in result.tasks:
        kind = ""
        if task.content_type is not None:
            kind = f"{task.content_type} ({task.content_type_confidence})"
        new = ""
        if task.has_new_content and task.upcoming_content is not None:
            new = f"{label_for(task.upcoming_content.kind)}: {task.upcoming_content.title}"
        table.add_row(task.text, task.category, kind, "x" if task.checked else "", new)
    console.print(table)


@app.command()
def board(
    export_file: Annotated[
        Path,
        typer.Argument(help="Trello board export (JSON).", exists=True, dir_okay=False),
    ],
    commit: Annotated[
        bool,
        typer.Option("--commit", help="Append the staged board to the store."),
    ] = False,
    enrich: Annotated[
        Optional[bool],
        typer.Option("--enrich/--no-enrich", help="Fetch metadata for classified tasks."),
    ] = None,
    threshold: Annotated[
        Optional[int],
        typer.Option("--threshold", min=0, max=100, help="Minimum confidence to enrich a task."),
    ] = None,
    delay: Annotated[
        Optional[float],
        typer.Option("--delay", min=0, help="Seconds between metadata requests."),
    ] = None,
    timeout: Annotated[
        Optional[int],
        typer.Option("--timeout", min=1, help="Metadata request timeout in seconds."),
    ] = None,
    store: Annotated[
        Optional[Path],
        typer.Option("--store", help="Board store file (JSON)."),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", help="Path to a .boardintake.toml file."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
) -> None:
    """Import a Trello board export and show the staged result."""
    _setup_logging(verbose)
    config = merge_cli_overrides(
        load_config(config_path),
        enrich=enrich,
        confidence_threshold=threshold,
        enrichment_delay=delay,
        timeout=timeout,
        store_path=str(store) if store else None,
    )
    import_config = config.to_import_config()

    try:
        data = load_board_export(export_file)
    except ExportFormatError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
        transient=True,
    ) as progress:
        bar = progress.add_task("Starting...", total=None)

        def on_progress(update: ImportProgress) -> None:
            label = _PHASE_LABELS.get(update.phase, str(update.phase))
            description = f"{label}: {update.status_text}" if update.status_text else label
            progress.update(
                bar,
                description=description,
                completed=update.current,
                total=update.total or None,
            )

        coordinator = ImportCoordinator.with_provider(
            default_provider(import_config.providers),
            import_config,
            on_progress=on_progress,
        )
        outcome = asyncio.run(coordinator.run(data))

    if not outcome.success or outcome.result is None:
        console.print(f"[red]Error:[/red] {outcome.message}")
        raise typer.Exit(1)

    _print_board(outcome.result)

    pending = PendingImport(outcome.result)
    if not commit:
        pending.discard()
        console.print("[dim]Dry run; pass --commit to save this board.[/dim]")
        return

    target = BoardStore(config.store.path)
    try:
        pending.commit(target)
    except StoreError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
    console.print(f"[green]Saved[/green] to {target.path}")


@app.command()
def calendar(
    ics_file: Annotated[
        Path,
        typer.Argument(help="Calendar file (.ics).", exists=True, dir_okay=False),
    ],
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
) -> None:
    """Parse a calendar file and list its events."""
    _setup_logging(verbose)
    content = ics_file.read_text(encoding="utf-8", errors="replace")
    events = parse_ics(content, ics_file.name)

    if not events:
        console.print("[yellow]No events found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Title")
    table.add_column("Location")
    for event in events:
        fmt = "%Y-%m-%d" if event.is_all_day else "%Y-%m-%d %H:%M"
        table.add_row(
            event.start.strftime(fmt),
            event.end.strftime(fmt),
            event.title,
            event.location or "",
        )
    console.print(table)
    console.print(f"{len(events)} events")


if __name__ == "__main__":
    app()
