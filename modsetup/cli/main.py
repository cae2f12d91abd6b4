"""Main CLI entry point using Typer."""

import signal
from pathlib import Path
from typing import Any

import anyio
import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from modsetup import __version__
from modsetup.core.config import Settings
from modsetup.core.errors import OperationCancelledError, SetupError
from modsetup.core.log import configure_logging
from modsetup.core.orchestrator import DecompileTask, PlannedModule, RunSummary
from modsetup.execution.scheduler import CancellationToken, ItemResult

app = typer.Typer(
    name="modsetup",
    help="modsetup - regenerate an editable source tree from compiled game modules",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()

EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold blue]modsetup[/bold blue] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    modsetup - decompile the client and server modules into one source tree.

    Reads both modules, de-duplicates their files and writes build
    descriptors so the tree can be rebuilt.
    """
    pass


def create_task(settings: Settings, token: CancellationToken) -> DecompileTask:
    """Build the decompile task for a CLI invocation."""
    return DecompileTask(settings, token=token)


def build_settings(**overrides: Any) -> Settings:
    """Environment settings with every explicitly given CLI option applied."""
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


def _option_values(
    client: Path | None,
    server: Path | None,
    search_dir: Path | None,
    output: Path | None,
    server_only: bool | None,
    precedence: str | None,
) -> dict[str, Any]:
    return {
        "client_path": client,
        "server_path": server,
        "search_dir": search_dir,
        "src_dir": output,
        "server_only": server_only,
        "precedence": precedence,
    }


def _fail(message: str) -> typer.Exit:
    console.print(f"[bold red]{escape(message)}[/bold red]")
    return typer.Exit(code=EXIT_FAILURE)


# =============================================================================
# COMMANDS
# =============================================================================


@app.command()
def decompile(
    client: Path | None = typer.Option(None, "--client", "-c", help="Client module path"),
    server: Path | None = typer.Option(None, "--server", "-s", help="Server module path"),
    search_dir: Path | None = typer.Option(
        None,
        "--search-dir",
        help="Directory searched for system-level dependencies",
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Source tree directory"),
    server_only: bool | None = typer.Option(
        None,
        "--server-only/--no-server-only",
        help="Skip the client module",
    ),
    single_thread: bool | None = typer.Option(
        None,
        "--single-thread/--no-single-thread",
        help="Run one work item at a time",
    ),
    parallelism: int | None = typer.Option(
        None,
        "--parallelism",
        "-j",
        min=0,
        help="Maximum concurrent work items (0 for all cores)",
    ),
    precedence: str | None = typer.Option(
        None,
        "--precedence",
        help="Module variant that claims shared files first: client or server",
    ),
) -> None:
    """
    Decompile the modules and write the source tree.

    Example:
        modsetup decompile --search-dir "C:/Games/Terraria" -o src/decompiled
    """
    try:
        settings = build_settings(
            **_option_values(client, server, search_dir, output, server_only, precedence),
            single_decompile_thread=single_thread,
            max_parallelism=parallelism,
        )
    except ValueError as e:
        raise _fail(f"Invalid configuration: {e}") from e

    configure_logging(settings)
    token = CancellationToken()
    task = create_task(settings, token)

    console.print(
        Panel(
            f"[bold]Output:[/bold] {task.output_dir}\n"
            f"[bold]Modules:[/bold] {', '.join(v.value for v in task.variants())}",
            title="[bold blue]modsetup[/bold blue]",
            border_style="blue",
        )
    )

    previous_handler = signal.signal(signal.SIGINT, lambda *_: token.cancel())
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            progress_id = progress.add_task("Reading modules...", total=None)

            def on_item(label: str, result: ItemResult) -> None:
                report = task.scheduler.last_report
                progress.update(
                    progress_id,
                    description=label,
                    total=report.total_items if report else None,
                    advance=1,
                )

            task.scheduler.add_callback(on_item)

            async def execute() -> RunSummary:
                return await task.run()

            summary = anyio.run(execute)
    except OperationCancelledError as e:
        console.print(f"[yellow]{escape(str(e))}[/yellow]")
        raise typer.Exit(code=EXIT_CANCELLED) from e
    except SetupError as e:
        raise _fail(f"Failed while {e.stage.value}: {e.message}") from e
    except OSError as e:
        raise _fail(f"Failed: {e}") from e
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    _print_summary(summary)


@app.command()
def plan(
    client: Path | None = typer.Option(None, "--client", "-c", help="Client module path"),
    server: Path | None = typer.Option(None, "--server", "-s", help="Server module path"),
    search_dir: Path | None = typer.Option(
        None,
        "--search-dir",
        help="Directory searched for system-level dependencies",
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Source tree directory"),
    server_only: bool | None = typer.Option(
        None,
        "--server-only/--no-server-only",
        help="Skip the client module",
    ),
    precedence: str | None = typer.Option(
        None,
        "--precedence",
        help="Module variant that claims shared files first: client or server",
    ),
) -> None:
    """
    Read and plan the modules without decompiling anything.

    Useful for previewing the file layout.
    """
    try:
        settings = build_settings(
            **_option_values(client, server, search_dir, output, server_only, precedence)
        )
    except ValueError as e:
        raise _fail(f"Invalid configuration: {e}") from e

    configure_logging(settings)
    task = create_task(settings, CancellationToken())

    try:
        planned, items = task.plan()
    except SetupError as e:
        raise _fail(f"Failed while {e.stage.value}: {e.message}") from e

    console.print(_plan_table(planned))
    console.print(f"\n[dim]{len(items)} work items would run[/dim]")


# =============================================================================
# OUTPUT
# =============================================================================


def _plan_table(planned: list[PlannedModule]) -> Table:
    table = Table(title="Module Plan")
    table.add_column("Module", style="bold")
    table.add_column("Version", style="cyan")
    table.add_column("Types", justify="right")
    table.add_column("Sources", justify="right")
    table.add_column("Resources", justify="right")
    table.add_column("Claimed", justify="right")
    table.add_column("Resolved", justify="right", style="green")
    table.add_column("Unresolved", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="dim")

    for module in planned:
        counts = module.resolution_counts()
        table.add_row(
            module.module.name,
            str(module.module.version),
            str(module.type_count),
            str(len(module.plan.sources)),
            str(len(module.plan.resources)),
            str(len(module.claimed)),
            str(counts["embedded"] + counts["search_path"]),
            str(counts["not_found"]),
            str(counts["skipped"]),
        )
    return table


def _print_summary(summary: RunSummary) -> None:
    console.print(_plan_table(summary.modules))

    table = Table(title="Run Summary", show_header=False)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Output", str(summary.output_dir))
    table.add_row("Files planned", str(summary.files_planned))
    table.add_row("Files written", str(summary.files_written))
    table.add_row("Items executed", str(summary.items_executed))
    table.add_row("Duration", f"{summary.duration_seconds:.1f}s")
    console.print(table)

    console.print("\n[bold green]Source tree regenerated successfully![/bold green]")


if __name__ == "__main__":
    app()
