"""CLI interface for sqlnb.

Split into modules by command group for maintainability.
The Typer app and shared helpers live here; each module registers its commands.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.markup import escape

app = typer.Typer(
    name="sqlnb",
    help="Generate ordered, idempotent SQL from Python notebook classes.",
    no_args_is_help=True,
)
console = Console()
# Diagnostics go to stderr so generated SQL on stdout stays clean
err_console = Console(stderr=True)
logger = logging.getLogger("sqlnb.cli")


def _load_config(project_dir: Path | None, env: str | None = None):
    """Load project config (defaults when there is no sqlnb.yml)."""
    from sqlnb.config import load_project
    from sqlnb.engine.errors import ConfigError

    try:
        return load_project(project_dir or Path.cwd(), env=env)
    except ConfigError as e:
        err_console.print(f"[red]Config error:[/red] {e}")
        raise typer.Exit(1)


def _notebook_classes(reference: str | None, config) -> list[type]:
    """Classes named by REF, or every notebook listed in sqlnb.yml."""
    from sqlnb.engine.errors import NotebookLoadError
    from sqlnb.engine.loader import load_notebooks

    references = [reference] if reference else list(config.notebooks)
    if not references:
        err_console.print("[red]No notebook given.[/red] Pass module:Class or list notebooks in sqlnb.yml.")
        raise typer.Exit(1)

    classes: list[type] = []
    for ref in references:
        try:
            classes.extend(load_notebooks(ref, base_dir=config.project_dir))
        except NotebookLoadError as e:
            err_console.print(f"[red]Load error:[/red] {e}")
            raise typer.Exit(1)
    return classes


def _fail(error: Exception) -> NoReturn:
    """Report a generation failure and exit without writing anything."""
    logger.debug("Generation failed", exc_info=error)
    err_console.print(f"[red]Generation failed:[/red] {escape(str(error))}", highlight=False)
    if error.__cause__ is not None:
        cause = f"{type(error.__cause__).__name__}: {error.__cause__}"
        err_console.print(f"  [dim]caused by {escape(cause)}[/dim]", highlight=False)
    raise typer.Exit(1)


@app.callback()
def main(
    log_level: Annotated[str, typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING)")] = "WARNING",
) -> None:
    """Configure logging for every command."""
    from sqlnb import setup_logging

    setup_logging(log_level)


# Import submodules so they register their commands on `app`.
from sqlnb.cli import analysis  # noqa: E402, F401
from sqlnb.cli import generate  # noqa: E402, F401
