"""
planview CLI - Query execution plan viewer.

Supports PostgreSQL and MySQL EXPLAIN output in text, JSON and tabular
form, including psql/mysql client decoration.

Usage:
    planview parse explain.txt
    planview parse --json explain.txt
    psql -c "EXPLAIN ANALYZE ..." | planview parse -
    planview detect explain.txt
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel

from planview import __version__
from planview.config import LOG_LEVELS, get_config
from planview.exceptions import MalformedPlanError, PlanViewError
from planview.output import render_json, render_tree
from planview.parser import STRICT_CONFIG, Dialect, detect, normalize, parse_plan

app = typer.Typer(
    name="planview",
    help="Query execution plan viewer (PostgreSQL & MySQL)",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

STDIN = "-"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"planview version {__version__}")
        raise typer.Exit()


def setup_logging(level: str) -> None:
    """Send planview's log records to stderr through rich."""
    package_logger = logging.getLogger("planview")
    package_logger.handlers = [
        RichHandler(console=error_console, show_path=False, show_time=False),
    ]
    package_logger.setLevel(level.upper())


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option(
            "--log-level",
            help=f"Log level ({', '.join(LOG_LEVELS)}). Defaults to PLANVIEW_LOG_LEVEL.",
        ),
    ] = None,
) -> None:
    """planview - Query execution plan viewer."""
    try:
        level = log_level or get_config().log_level
    except PlanViewError as e:
        error_console.print(f"[red]Error:[/red] {escape(e.message)}")
        raise typer.Exit(code=1)

    if level.upper() not in LOG_LEVELS:
        error_console.print(f"[red]Error:[/red] Unknown log level: {escape(level)}")
        raise typer.Exit(code=1)

    setup_logging(level)


def read_source(plan_file: str) -> bytes:
    """Read plan text from a file, or stdin when the name is '-'."""
    if plan_file == STDIN:
        return typer.get_binary_stream("stdin").read()

    path = Path(plan_file)
    if not path.is_file():
        error_console.print(f"[red]Error:[/red] File not found: {escape(plan_file)}")
        raise typer.Exit(code=1)

    try:
        return path.read_bytes()
    except OSError as e:
        error_console.print(f"[red]Error:[/red] Cannot read {escape(plan_file)}: {escape(str(e))}")
        raise typer.Exit(code=1)


PlanFileArgument = Annotated[
    str,
    typer.Argument(
        help="Path to EXPLAIN output, or '-' for stdin",
        show_default=False,
    ),
]


@app.command()
def parse(
    plan_file: PlanFileArgument,
    dialect: Annotated[
        Optional[Dialect],
        typer.Option(
            "--dialect",
            "-d",
            help="Plan format (auto-detected when omitted)",
            case_sensitive=False,
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Print the parsed document as JSON",
        ),
    ] = False,
    strict: Annotated[
        bool,
        typer.Option(
            "--strict",
            help="Use tighter resource limits for untrusted input",
        ),
    ] = False,
) -> None:
    """
    Parse EXPLAIN output and show the plan tree.

    Examples:
        planview parse explain.txt
        planview parse --dialect json explain.json
        planview parse --json - < explain.txt
    """
    raw = read_source(plan_file)

    try:
        settings = get_config()
        config = STRICT_CONFIG if strict else settings.parser_config()
        document = parse_plan(raw, dialect=dialect or settings.default_dialect, config=config)
    except MalformedPlanError as e:
        error_console.print(f"[red]Error:[/red] {escape(e.message)}")
        if e.detail:
            error_console.print(f"\n[dim]{escape(e.detail)}[/dim]")
        error_console.print(
            Panel(
                escape(raw.decode("utf-8", errors="replace")),
                title="Could not parse plan - raw input",
                border_style="red",
            )
        )
        raise typer.Exit(code=1)
    except PlanViewError as e:
        error_console.print(f"[red]Error:[/red] {escape(e.message)}")
        raise typer.Exit(code=1)

    if json_output:
        typer.echo(render_json(document))
        return

    console.print(render_tree(document))


@app.command("normalize")
def normalize_command(plan_file: PlanFileArgument) -> None:
    """Print EXPLAIN output with client decoration removed."""
    raw = read_source(plan_file)
    typer.echo(normalize(raw.decode("utf-8", errors="replace")))


@app.command("detect")
def detect_command(plan_file: PlanFileArgument) -> None:
    """Print the detected plan dialect."""
    raw = read_source(plan_file)
    normalized = normalize(raw.decode("utf-8", errors="replace"))
    if not normalized:
        error_console.print("[red]Error:[/red] No plan content found")
        raise typer.Exit(code=1)
    typer.echo(detect(normalized).value)


if __name__ == "__main__":
    app()
