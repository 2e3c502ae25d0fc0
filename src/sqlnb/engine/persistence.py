"""Persistence upserts: store cell content as rows instead of executing it.

Each stored cell becomes one ``INSERT ... ON CONFLICT`` keyed on a natural
key, so regenerating a notebook replaces its rows rather than duplicating
them. Statements are independent of each other; the execution layer is
expected to run each one atomically (a single statement is, on every
supported database).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any

from .dialects import Dialect, get_dialect
from .errors import TransformError
from .models import (
    CellKind,
    CodeFragment,
    FileFragment,
    NavigationEntry,
    ResolvedCell,
    ShellConfig,
)
from .utils import SQLExpr, sql_literal, validate_identifier, validate_table_name

NOW = SQLExpr("CURRENT_TIMESTAMP")


@dataclass(frozen=True)
class StorageTable:
    """Where stored cells go and which natural key identifies a row."""

    name: str
    key_columns: tuple[str, ...]
    columns: tuple[str, ...]
    kinds: frozenset[CellKind]

    def __post_init__(self) -> None:
        validate_table_name(self.name)
        for col in self.columns:
            validate_identifier(col, f"column of {self.name}")
        missing = [k for k in self.key_columns if k not in self.columns]
        if missing:
            raise ValueError(f"Key column(s) {', '.join(missing)} not in columns of {self.name}")

    def renamed(self, name: str) -> StorageTable:
        return dataclasses.replace(self, name=name)


CODE_CELL_TABLE = StorageTable(
    name="code_notebook_cell",
    key_columns=("notebook_name", "cell_name"),
    columns=("notebook_name", "cell_name", "interpretable_code", "language", "description"),
    kinds=frozenset({CellKind.SQL, CellKind.NON_SQL_CODE}),
)

FILES_TABLE = StorageTable(
    name="sqlpage_files",
    key_columns=("path",),
    columns=("path", "contents", "last_modified"),
    kinds=frozenset({CellKind.FILE_UPSERT, CellKind.SHELL_CONFIG}),
)

NAVIGATION_TABLE = StorageTable(
    name="sqlpage_aide_navigation",
    key_columns=("namespace", "path"),
    columns=(
        "namespace",
        "parent_path",
        "sibling_order",
        "path",
        "url",
        "caption",
        "abbreviated_caption",
        "title",
        "description",
    ),
    kinds=frozenset({CellKind.NAVIGATION_ENTRY}),
)

# Config / CLI aliases for the built-in tables
STORAGE_TABLES: dict[str, StorageTable] = {
    "code_cell": CODE_CELL_TABLE,
    "files": FILES_TABLE,
    "navigation": NAVIGATION_TABLE,
}


def get_storage_table(
    table: StorageTable | str,
    overrides: dict[str, str] | None = None,
) -> StorageTable:
    """Look up a built-in table by alias or table name, applying name overrides."""
    if isinstance(table, StorageTable):
        return table
    overrides = overrides or {}
    for alias, builtin in STORAGE_TABLES.items():
        name = overrides.get(alias, builtin.name)
        if table in (alias, name, builtin.name):
            return builtin.renamed(name)
    raise ValueError(
        f"Unknown storage table {table!r} (known: {', '.join(sorted(STORAGE_TABLES))})"
    )


def storage_row(cell: ResolvedCell) -> dict[str, Any] | None:
    """Row representing a stored cell, or None when it has nothing to store."""
    meta = cell.metadata
    fragment = cell.fragment

    if meta.kind is CellKind.SQL:
        if cell.is_empty:
            return None
        return {
            "notebook_name": cell.notebook_name,
            "cell_name": cell.identifier,
            "interpretable_code": cell.sql_text,
            "language": "sql",
            "description": meta.caption or None,
        }
    if meta.kind is CellKind.NON_SQL_CODE:
        if not isinstance(fragment, CodeFragment) or not fragment.source.strip():
            return None
        return {
            "notebook_name": cell.notebook_name,
            "cell_name": cell.identifier,
            "interpretable_code": fragment.source,
            "language": fragment.language,
            "description": meta.caption or None,
        }
    if meta.kind is CellKind.FILE_UPSERT:
        if not isinstance(fragment, FileFragment):
            return None
        return {"path": fragment.path, "contents": fragment.contents, "last_modified": NOW}
    if meta.kind is CellKind.SHELL_CONFIG:
        if not isinstance(fragment, ShellConfig):
            return None
        return {
            "path": meta.path or "shell/shell.json",
            "contents": fragment.to_json(),
            "last_modified": NOW,
        }
    if meta.kind is CellKind.NAVIGATION_ENTRY:
        if not isinstance(fragment, NavigationEntry):
            return None
        return fragment.model_dump()
    return None


def _upsert_statement(cell: ResolvedCell, table: StorageTable, row: dict[str, Any], d: Dialect) -> str:
    for key in table.key_columns:
        if row.get(key) is None:
            raise TransformError(cell.identifier, f"no value for natural key column {key!r} of {table.name}")
    columns = ", ".join(table.columns)
    values = ", ".join(sql_literal(row.get(c)) for c in table.columns)
    return (
        f"INSERT INTO {table.name} ({columns})\n"
        f"VALUES ({values})\n"
        f"{d.upsert_clause(table.key_columns, table.columns)}"
    )


def build_upserts(
    cells: list[ResolvedCell],
    target_table: StorageTable | str,
    dialect: Dialect | str = "sqlite",
) -> list[str]:
    """One upsert per stored cell whose kind the target table accepts.

    Statements follow the cells' emission order and carry no terminator.
    """
    table = get_storage_table(target_table)
    d = get_dialect(dialect)
    statements: list[str] = []
    for cell in cells:
        if not cell.metadata.stores or cell.metadata.kind not in table.kinds:
            continue
        row = storage_row(cell)
        if row is None:
            continue
        statements.append(_upsert_statement(cell, table, row, d))
    return statements


def group_upserts(
    cells: list[ResolvedCell],
    tables: list[StorageTable | str] | None = None,
    dialect: Dialect | str = "sqlite",
) -> dict[str, list[str]]:
    """Upserts batched per target table (tables without rows are omitted)."""
    selected = [get_storage_table(t) for t in (tables or list(STORAGE_TABLES.values()))]
    batches: dict[str, list[str]] = {}
    for table in selected:
        statements = build_upserts(cells, table, dialect)
        if statements:
            batches[table.name] = statements
    return batches
