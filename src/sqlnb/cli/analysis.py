"""Inspection commands: cells, check."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.table import Table

from sqlnb.cli import _fail, _load_config, _notebook_classes, app, console


@app.command()
def cells(
    reference: Annotated[Optional[str], typer.Argument(help="Notebook as module:Class (default: notebooks in sqlnb.yml)")] = None,
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Environment to use")] = None,
    project_dir: Annotated[Optional[Path], typer.Option("--project", "-p", help="Project directory (default: current dir)")] = None,
) -> None:
    """List a notebook's cells in emission order without invoking them."""
    from sqlnb.engine.errors import SqlnbError
    from sqlnb.engine.registry import notebook_name, resolve
    from sqlnb.engine.resolver import emission_order

    config = _load_config(project_dir, env)
    for cls in _notebook_classes(reference, config):
        registry = resolve(cls)
        try:
            order = emission_order(registry)
        except SqlnbError as e:
            _fail(e)

        tbl = Table(title=notebook_name(cls))
        tbl.add_column("#", justify="right")
        tbl.add_column("Cell", style="bold")
        tbl.add_column("Kind")
        tbl.add_column("Emit")
        tbl.add_column("Idempotency")
        tbl.add_column("Depends on")
        tbl.add_column("Caption")
        for i, ident in enumerate(order, 1):
            meta = registry[ident]
            tbl.add_row(
                str(i),
                ident,
                meta.kind.value,
                meta.emit.value,
                meta.idempotency.value,
                ", ".join(meta.depends_on),
                meta.caption,
            )
        console.print(tbl)


@app.command()
def check(
    reference: Annotated[Optional[str], typer.Argument(help="Notebook as module:Class (default: notebooks in sqlnb.yml)")] = None,
    dialect: Annotated[Optional[str], typer.Option("--dialect", "-d", help="Target dialect: sqlite, duckdb, postgres")] = None,
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Environment to use")] = None,
    project_dir: Annotated[Optional[Path], typer.Option("--project", "-p", help="Project directory (default: current dir)")] = None,
) -> None:
    """Generate each notebook and verify every statement parses for the dialect."""
    from sqlnb.engine.errors import SqlnbError
    from sqlnb.engine.generator import generate_script
    from sqlnb.engine.sql_analysis import check_statements

    config = _load_config(project_dir, env)
    target = dialect or config.dialect
    failed = 0
    for cls in _notebook_classes(reference, config):
        try:
            script = generate_script(cls, dialect=target, provenance=False)
        except (SqlnbError, ValueError) as e:
            _fail(e)

        problems = check_statements(script.statements, target)
        label = f"[bold]{script.notebook_name}[/bold]"
        if not problems:
            console.print(f"  [green]pass[/green]  {label} ({len(script.statements)} statements)")
            continue
        failed += len(problems)
        console.print(f"  [red]FAIL[/red]  {label}")
        for p in problems:
            console.print(f"         statement {p['index'] + 1}: {p['error']}", highlight=False, markup=False)

    if failed:
        raise typer.Exit(1)
