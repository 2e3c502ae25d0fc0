"""Data classes for notebook cells, fragments and generated scripts."""

from __future__ import annotations

import json
import math
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .errors import DeclarationError, ResolutionError
from .utils import sql_literal, validate_identifier, validate_table_name

logger = logging.getLogger("sqlnb.resolver")

_CELL_ID_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")


class CellKind(str, Enum):
    """What a cell produces."""

    SQL = "sql"
    NON_SQL_CODE = "non-sql-code"
    SHELL_CONFIG = "shell-config"
    NAVIGATION_ENTRY = "navigation-entry"
    FILE_UPSERT = "file-upsert"


class IdempotencyMode(str, Enum):
    """How a cell's statements are made safe to re-run."""

    NONE = "none"
    UPSERT = "upsert"
    REPLACE = "replace"


class EmitMode(str, Enum):
    """Whether a cell is executed as part of the script, stored as a row, or both."""

    EXECUTE = "execute"
    STORE = "store"
    BOTH = "both"


def _as_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(v.strip() for v in value.split(",") if v.strip())
    return tuple(value)


@dataclass(frozen=True)
class CellMetadata:
    """Declared configuration of one notebook cell."""

    identifier: str
    kind: CellKind = CellKind.SQL
    caption: str = ""
    depends_on: tuple[str, ...] = ()
    idempotency: IdempotencyMode = IdempotencyMode.NONE
    target_table: str | None = None
    natural_key: tuple[str, ...] = ()
    emit: EmitMode | None = None
    method_name: str = ""
    path: str | None = None  # for path-addressed content (files, shell, navigation)
    language: str | None = None  # for non-sql-code cells
    declared_in: str = ""

    def __post_init__(self) -> None:
        try:
            kind = CellKind(self.kind)
            idempotency = IdempotencyMode(self.idempotency)
            emit = EmitMode(self.emit) if self.emit is not None else None
        except ValueError as e:
            raise DeclarationError(f"Cell {self.identifier!r}: {e}") from e

        if not isinstance(self.identifier, str) or not _CELL_ID_RE.match(self.identifier):
            raise DeclarationError(
                f"Invalid cell identifier: {self.identifier!r} "
                "(must match [A-Za-z_][A-Za-z0-9_.-]*)"
            )

        if emit is None:
            emit = EmitMode.EXECUTE if kind is CellKind.SQL else EmitMode.STORE
        if kind is not CellKind.SQL and emit is not EmitMode.STORE:
            raise DeclarationError(
                f"Cell {self.identifier!r}: {kind.value} cells can only be stored, not executed"
            )
        if kind is not CellKind.SQL and idempotency is not IdempotencyMode.NONE:
            raise DeclarationError(
                f"Cell {self.identifier!r}: idempotency mode {idempotency.value!r} "
                f"does not apply to {kind.value} cells"
            )

        depends_on = _as_tuple(self.depends_on)
        if self.identifier in depends_on:
            raise DeclarationError(f"Cell {self.identifier!r} depends on itself")
        natural_key = _as_tuple(self.natural_key)
        try:
            for col in natural_key:
                validate_identifier(col, f"natural key column of {self.identifier}")
            if self.target_table is not None:
                validate_table_name(self.target_table, f"target table of {self.identifier}")
        except ValueError as e:
            raise DeclarationError(str(e)) from e

        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "idempotency", idempotency)
        object.__setattr__(self, "emit", emit)
        object.__setattr__(self, "depends_on", depends_on)
        object.__setattr__(self, "natural_key", natural_key)

    @property
    def executes(self) -> bool:
        return self.emit in (EmitMode.EXECUTE, EmitMode.BOTH)

    @property
    def stores(self) -> bool:
        return self.emit in (EmitMode.STORE, EmitMode.BOTH)


# --- Fragments returned by cell methods ---


@dataclass(frozen=True)
class SQLFragment:
    """Raw SQL statements, optionally with the natural key they write on."""

    text: str
    natural_key: tuple[str, ...] = ()
    depends_on: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "natural_key", _as_tuple(self.natural_key))
        object.__setattr__(self, "depends_on", _as_tuple(self.depends_on))


@dataclass(frozen=True)
class RowsFragment:
    """Structured rows destined for one table.

    The idempotency stage renders these as plain inserts, upserts, or
    delete-then-insert pairs without having to parse SQL text.
    """

    table: str
    columns: tuple[str, ...]
    rows: tuple[tuple[Any, ...], ...]
    natural_key: tuple[str, ...] = ()
    depends_on: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        validate_table_name(self.table)
        columns = _as_tuple(self.columns)
        if not columns:
            raise ValueError(f"RowsFragment for {self.table} has no columns")
        for col in columns:
            validate_identifier(col, f"column of {self.table}")
        rows = tuple(tuple(r) for r in self.rows)
        for row in rows:
            if len(row) != len(columns):
                raise ValueError(
                    f"Row {row!r} has {len(row)} values, expected {len(columns)} for {self.table}"
                )
            for value in row:
                if isinstance(value, float) and not math.isfinite(value):
                    raise ValueError(f"Row {row!r} for {self.table} holds non-finite value {value!r}")
        natural_key = _as_tuple(self.natural_key)
        missing = [k for k in natural_key if k not in columns]
        if missing:
            raise ValueError(f"Natural key columns not in {self.table}: {', '.join(missing)}")
        object.__setattr__(self, "columns", columns)
        object.__setattr__(self, "rows", rows)
        object.__setattr__(self, "natural_key", natural_key)
        object.__setattr__(self, "depends_on", _as_tuple(self.depends_on))

    @classmethod
    def from_records(
        cls,
        table: str,
        records: list[dict[str, Any]],
        natural_key: tuple[str, ...] | list[str] | str = (),
        depends_on: tuple[str, ...] | list[str] = (),
    ) -> RowsFragment:
        """Build from a list of dicts; column order follows the first record."""
        if not records:
            raise ValueError(f"No records given for {table}")
        columns = tuple(records[0].keys())
        for rec in records[1:]:
            if set(rec) != set(columns):
                raise ValueError(f"Record {rec!r} for {table} does not have columns {', '.join(columns)}")
        rows = tuple(tuple(rec[c] for c in columns) for rec in records)
        return cls(table, columns, rows, natural_key=natural_key, depends_on=depends_on)

    def values_sql(self) -> str:
        return ",\n  ".join(
            "(" + ", ".join(sql_literal(v) for v in row) + ")" for row in self.rows
        )

    def insert_sql(self) -> str:
        if not self.rows:
            return ""
        cols = ", ".join(self.columns)
        return f"INSERT INTO {self.table} ({cols}) VALUES\n  {self.values_sql()}"


@dataclass(frozen=True)
class CodeFragment:
    """Non-SQL source code (shell, python, ...). Stored, never executed."""

    source: str
    language: str = "shell"


@dataclass(frozen=True)
class FileFragment:
    """Content for a path-addressed file table (e.g. web-UI pages)."""

    path: str
    contents: str


class ShellConfig(BaseModel):
    """Presentation wrapper for generated web-UI content.

    Arbitrary extra properties are kept and serialised as-is.
    """

    model_config = ConfigDict(extra="allow")

    title: str = ""
    icon: str | None = None
    link: str = "/"
    menu_item: list[dict[str, Any]] = Field(default_factory=list)
    javascript: list[str] = Field(default_factory=list)
    stylesheet: list[str] = Field(default_factory=list)
    footer: str | None = None

    def to_json(self) -> str:
        return json.dumps(self.model_dump(exclude_none=True), sort_keys=True, indent=2)


class NavigationEntry(BaseModel):
    """One menu entry of generated web-UI content."""

    model_config = ConfigDict(extra="ignore")

    path: str
    caption: str
    namespace: str = "prime"
    parent_path: str | None = None
    sibling_order: int | None = None
    url: str | None = None
    abbreviated_caption: str | None = None
    title: str | None = None
    description: str | None = None


def fragment_sql(fragment: Any) -> str:
    """Plain SQL text of a fragment, empty for non-SQL fragments."""
    if isinstance(fragment, SQLFragment):
        return fragment.text.strip()
    if isinstance(fragment, RowsFragment):
        return fragment.insert_sql()
    return ""


# --- Resolution results ---


@dataclass(frozen=True)
class ResolvedCell:
    """A cell after its method has been invoked on a notebook instance."""

    identifier: str
    metadata: CellMetadata
    fragment: Any
    sql_text: str
    source_location: str  # "module:Class.method"
    notebook_name: str
    position: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.sql_text.strip()


@dataclass
class EmitContext:
    """Mutable state of a single generation run.

    Owned by the resolver for the duration of one ``generate`` call; cell
    methods receive it to read earlier results or record warnings.
    """

    notebook_name: str
    dialect: str = "sqlite"
    order: list[str] = field(default_factory=list)
    results: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    _seen: set[str] = field(default_factory=set, repr=False)

    def record(self, identifier: str, fragment: Any) -> None:
        """Record an invoked cell; the same identifier twice is an error."""
        if identifier in self._seen:
            raise ResolutionError(
                f"Duplicate cell identifier {identifier!r} in {self.notebook_name}",
                [identifier],
            )
        self._seen.add(identifier)
        self.order.append(identifier)
        self.results[identifier] = fragment

    def result(self, identifier: str) -> Any:
        """Fragment returned by an already-invoked cell."""
        if identifier not in self.results:
            raise ResolutionError(
                f"Cell {identifier!r} has not been resolved yet in {self.notebook_name}",
                [identifier],
            )
        return self.results[identifier]

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning("%s: %s", self.notebook_name, message)


@dataclass(frozen=True)
class GeneratedScript:
    """Ordered, annotated and transformed SQL for one notebook."""

    notebook_name: str
    statements: tuple[str, ...]
    cells: tuple[ResolvedCell, ...]
    text: str
    statement_counts: tuple[tuple[str, int], ...] = ()
    warnings: tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.text

    def manifest(self) -> list[dict[str, Any]]:
        """Bookkeeping rows for every cell in emission order, including empty ones."""
        counts = dict(self.statement_counts)
        return [
            {
                "identifier": c.identifier,
                "kind": c.metadata.kind.value,
                "emit": c.metadata.emit.value,
                "idempotency": c.metadata.idempotency.value,
                "source": c.source_location,
                "statements": counts.get(c.identifier, 0),
            }
            for c in self.cells
        ]
