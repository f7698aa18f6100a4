# shellcue/cli/main.py
"""
Main command-line interface for shellcue.

Shell integrations call `record` after each command and `suggest` (or
`--json` variants) while the user types.  The remaining commands manage the
learned data.
"""
import json
import os
import sys
from pathlib import Path
from typing import Optional

import tomli_w
import typer
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from shellcue import __version__
from shellcue.config import config_manager
from shellcue.engine import ShellCueEngine
from shellcue.exceptions import ShellCueError
from shellcue.utils.logging import setup_logging, get_logger

# Create the app
app = typer.Typer(help="shellcue: adaptive command-line prediction engine")
logger = get_logger(__name__)
console = Console()


def open_engine() -> ShellCueEngine:
    """Engine for one short-lived CLI invocation; closing it flushes."""
    return ShellCueEngine(config_manager.config, start_background=False)


def version_callback(value: bool):
    """Display version information and exit."""
    if value:
        console.print(f"shellcue version: {__version__}")
        raise typer.Exit()


def _fail(message: str, error: Exception) -> None:
    logger.exception(message)
    console.print(f"[bold red]Error:[/bold red] {error}")
    sys.exit(1)


@app.callback()
def main(
    debug: bool = typer.Option(
        False, "--debug", "-d", help="Enable debug mode"
    ),
    version: bool = typer.Option(
        False, "--version", "-v", callback=version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """shellcue: learns from your shell history and ranks suggestions"""
    if debug:
        config_manager.config.debug = True

    setup_logging(debug=config_manager.config.debug)


@app.command()
def record(
    line: str = typer.Argument(..., help="The executed command line"),
    failed: bool = typer.Option(False, "--failed", help="The command exited with an error"),
    cwd: Optional[str] = typer.Option(None, "--cwd", help="Directory the command ran in"),
):
    """Learn from an executed command."""
    with open_engine() as engine:
        parsed = engine.parser.parse(line)
        if parsed.is_empty:
            console.print("[yellow]Nothing to record.[/yellow]")
            return
        engine.record_command(
            parsed.verb, line, parsed.args, success=not failed, working_directory=cwd or os.getcwd()
        )


@app.command()
def suggest(
    line: str = typer.Argument(..., help="The partially typed command line"),
    max_results: int = typer.Option(10, "--max", "-n", help="Maximum number of suggestions"),
    as_json: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
):
    """Rank suggestions for a partially typed command line."""
    with open_engine() as engine:
        suggestions = engine.get_suggestions(line, max_results)

    if as_json:
        console.print_json(json.dumps([s.to_dict() for s in suggestions]))
        return

    if not suggestions:
        console.print("[yellow]No suggestions.[/yellow]")
        return

    table = Table(title=f"Suggestions for '{line.strip()}'")
    table.add_column("Suggestion", style="cyan")
    table.add_column("Score", style="green", justify="right")
    table.add_column("Source", style="magenta")
    table.add_column("Details")
    for suggestion in suggestions:
        table.add_row(
            suggestion.text,
            f"{suggestion.score:.2f}",
            suggestion.source.value,
            suggestion.description or "",
        )
    console.print(table)


@app.command("next")
def next_command(
    max_results: int = typer.Option(5, "--max", "-n", help="Maximum number of predictions"),
    as_json: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
):
    """Predict the next command from recent history."""
    with open_engine() as engine:
        suggestions = engine.predict_next_commands(max_results)

    if as_json:
        console.print_json(json.dumps([s.to_dict() for s in suggestions]))
        return

    if not suggestions:
        console.print("[yellow]No prediction yet, keep using your shell.[/yellow]")
        return

    table = Table(title="Likely next commands")
    table.add_column("Command", style="cyan")
    table.add_column("Score", style="green", justify="right")
    table.add_column("Why")
    for suggestion in suggestions:
        table.add_row(suggestion.text, f"{suggestion.score:.2f}", suggestion.description or "")
    console.print(table)


@app.command()
def jump(
    query: str = typer.Argument("", help="Part of the directory name"),
    cwd: Optional[str] = typer.Option(None, "--cwd", help="Current directory (defaults to the process cwd)"),
    max_results: int = typer.Option(20, "--max", "-n", help="Maximum number of directories"),
    first: bool = typer.Option(False, "--first", help="Print only the best path, for cd $(shellcue jump ...)"),
    as_json: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
):
    """Rank directories for a smart jump."""
    with open_engine() as engine:
        suggestions = engine.get_directory_suggestions(query, cwd, max_results)

    if first:
        if not suggestions:
            sys.exit(1)
        typer.echo(suggestions[0].display_path)
        return

    if as_json:
        console.print_json(json.dumps([s.to_dict() for s in suggestions]))
        return

    if not suggestions:
        console.print(f"[yellow]No directory matches '{query}'.[/yellow]")
        return

    table = Table(title="Directories")
    table.add_column("Path", style="cyan")
    table.add_column("Score", style="green", justify="right")
    table.add_column("Visits", style="blue", justify="right")
    table.add_column("Match", style="magenta")
    for suggestion in suggestions:
        table.add_row(
            suggestion.path, f"{suggestion.score:.2f}", str(suggestion.usage_count), suggestion.match_type
        )
    console.print(table)


@app.command()
def stats():
    """Show what shellcue has learned."""
    with open_engine() as engine:
        summary = engine.get_summary()
        workflows = engine.workflows.get_workflows()[:5]

    table = Table(title="Learning statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Commands in history", str(summary["total_commands_tracked"]))
    table.add_row("Commands learned", str(summary["unique_commands_learned"]))
    table.add_row("Arguments learned", str(summary["total_arguments_learned"]))
    table.add_row("Success rate", f"{summary['success_rate']:.0%}")
    table.add_row("Most common command", summary["most_common_command"] or "-")
    table.add_row("Learned workflows", str(summary["learned_workflows"]))
    console.print(table)

    if workflows:
        lines = [f"{' > '.join(w.steps)}  ({w.occurrences}x)" for w in workflows]
        console.print(Panel("\n".join(lines), title="Top workflows", expand=False))


@app.command("export")
def export_command(
    path: Path = typer.Argument(..., help="Destination JSON file"),
):
    """Export all learned data to a JSON file."""
    try:
        with open_engine() as engine:
            written = engine.export_data(path)
    except (ShellCueError, OSError) as e:
        _fail("Export failed", e)
        return
    console.print(f"[green]Exported learned data to {written}[/green]")


@app.command("import")
def import_command(
    path: Path = typer.Argument(..., help="JSON file produced by 'shellcue export'"),
    replace: bool = typer.Option(False, "--replace", help="Replace existing data instead of merging"),
):
    """Import learned data from a JSON export."""
    try:
        with open_engine() as engine:
            state = engine.import_data(path, merge=not replace)
    except ShellCueError as e:
        _fail("Import failed", e)
        return
    mode = "Replaced data with" if replace else "Merged"
    console.print(f"[green]{mode} {len(state.commands)} commands from {path}[/green]")


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Forget all learned data."""
    if not yes and not typer.confirm("Delete all learned data?", default=False):
        console.print("Cancelled.")
        return
    try:
        with open_engine() as engine:
            engine.clear()
    except ShellCueError as e:
        _fail("Clear failed", e)
        return
    console.print("[green]All learned data cleared.[/green]")


@app.command()
def config(
    save: bool = typer.Option(False, "--save", help="Write the effective configuration to the config file"),
):
    """Show the effective configuration."""
    if save:
        config_manager.save_config()
        console.print(f"[green]Configuration saved to {config_manager.config_file}[/green]")
        return
    console.print(Panel(
        Syntax(tomli_w.dumps(config_manager.config.model_dump()), "toml"),
        title=str(config_manager.config_file),
        expand=False,
    ))
