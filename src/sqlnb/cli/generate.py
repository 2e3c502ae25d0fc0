"""Generation commands: generate, upserts."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer

from sqlnb.cli import _fail, _load_config, _notebook_classes, app, err_console

OUT_HELP = "Write everything to this file ('-' for stdout). Default: output.directory from sqlnb.yml, else stdout"


def _write_file(text: str, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    err_console.print(f"[green]Wrote[/green] {path}")


def _emit(outputs: list[tuple[str, str]], combined: str, out: Path | None, config, suffix: str) -> None:
    """Write generated SQL once every notebook has succeeded.

    ``--out FILE`` receives the combined text and ``--out -`` prints it.
    Without ``--out``, a project with a sqlnb.yml gets one file per notebook
    under ``output.directory``; otherwise the text goes to stdout.
    """
    if out is not None and str(out) == "-":
        typer.echo(combined, nl=False)
    elif out is not None:
        _write_file(combined, out)
    elif config.config_path is not None:
        for name, text in outputs:
            _write_file(text, config.output_dir / f"{name}{suffix}")
    else:
        typer.echo(combined, nl=False)


@app.command()
def generate(
    reference: Annotated[Optional[str], typer.Argument(help="Notebook as module:Class (default: notebooks in sqlnb.yml)")] = None,
    out: Annotated[Optional[Path], typer.Option("--out", "-o", help=OUT_HELP)] = None,
    dialect: Annotated[Optional[str], typer.Option("--dialect", "-d", help="Target dialect: sqlite, duckdb, postgres")] = None,
    no_provenance: Annotated[bool, typer.Option("--no-provenance", help="Omit provenance comment blocks")] = False,
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Environment to use")] = None,
    project_dir: Annotated[Optional[Path], typer.Option("--project", "-p", help="Project directory (default: current dir)")] = None,
) -> None:
    """Generate the full SQL script for one or more notebooks.

    Examples:
      sqlnb generate my_pkg.notebooks:Setup
      sqlnb generate my_pkg.notebooks:Setup --out build/setup.sql --dialect duckdb
      sqlnb generate --out -
    """
    from sqlnb.engine.errors import SqlnbError
    from sqlnb.engine.generator import generate_script

    config = _load_config(project_dir, env)
    classes = _notebook_classes(reference, config)
    provenance = config.provenance and not no_provenance

    scripts = []
    for cls in classes:
        try:
            scripts.append(generate_script(cls, dialect=dialect or config.dialect, provenance=provenance))
        except (SqlnbError, ValueError) as e:
            _fail(e)

    for script in scripts:
        for warning in script.warnings:
            err_console.print(f"[yellow]warn[/yellow]  {script.notebook_name}: {warning}", highlight=False)

    outputs = [(s.notebook_name, s.text) for s in scripts]
    _emit(outputs, "\n".join(s.text for s in scripts if s.text), out, config, ".sql")


def _join_batches(batches: dict[str, list[str]]) -> str:
    from sqlnb.engine.assembler import terminate

    blocks = ["\n".join(terminate(s) for s in statements) for statements in batches.values() if statements]
    return "\n\n".join(blocks) + "\n" if blocks else ""


@app.command()
def upserts(
    reference: Annotated[Optional[str], typer.Argument(help="Notebook as module:Class (default: notebooks in sqlnb.yml)")] = None,
    table: Annotated[str, typer.Option("--table", "-t", help="Storage table: code_cell, files, navigation, or all")] = "all",
    out: Annotated[Optional[Path], typer.Option("--out", "-o", help=OUT_HELP)] = None,
    dialect: Annotated[Optional[str], typer.Option("--dialect", "-d", help="Target dialect: sqlite, duckdb, postgres")] = None,
    env: Annotated[Optional[str], typer.Option("--env", "-e", help="Environment to use")] = None,
    project_dir: Annotated[Optional[Path], typer.Option("--project", "-p", help="Project directory (default: current dir)")] = None,
) -> None:
    """Generate upsert statements that store notebook cells as rows.

    Examples:
      sqlnb upserts my_pkg.notebooks:Pages --table files
      sqlnb upserts my_pkg.notebooks:Pages --table all --out build/pages.sql
    """
    from sqlnb.engine.errors import SqlnbError
    from sqlnb.engine.persistence import STORAGE_TABLES, get_storage_table, group_upserts
    from sqlnb.engine.registry import notebook_name
    from sqlnb.engine.resolver import resolve_all

    config = _load_config(project_dir, env)
    classes = _notebook_classes(reference, config)
    overrides = config.tables.overrides()

    try:
        if table == "all":
            tables = [get_storage_table(alias, overrides) for alias in STORAGE_TABLES]
        else:
            tables = [get_storage_table(table, overrides)]
    except ValueError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    per_notebook: list[tuple[str, dict[str, list[str]]]] = []
    for cls in classes:
        try:
            cells = resolve_all(cls(), dialect=dialect or config.dialect)
            per_notebook.append((notebook_name(cls), group_upserts(cells, tables, dialect or config.dialect)))
        except (SqlnbError, ValueError) as e:
            _fail(e)

    merged: dict[str, list[str]] = {}
    for _, batches in per_notebook:
        for name, statements in batches.items():
            merged.setdefault(name, []).extend(statements)

    outputs = [(name, _join_batches(batches)) for name, batches in per_notebook]
    _emit(outputs, _join_batches(merged), out, config, ".upserts.sql")
