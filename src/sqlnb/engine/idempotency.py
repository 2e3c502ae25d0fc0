"""Idempotency transforms: make a cell's statements safe to run repeatedly.

Modes:
    none:    statements pass through unchanged.
    upsert:  inserts resolve key conflicts by updating in place; CREATE/DROP
             statements are guarded with IF [NOT] EXISTS.
    replace: rows matching the natural key are deleted before being
             inserted again; CREATE statements drop the object first.

Structured ``RowsFragment`` values are rendered directly. Raw SQL is
classified with sqlglot so DDL and INSERT statements can be guarded without
hand-written parsing.
"""

from __future__ import annotations

import sqlglot
from sqlglot import exp
from sqlglot.tokens import TokenType

from .dialects import Dialect, get_dialect
from .errors import TransformError
from .models import CellKind, IdempotencyMode, ResolvedCell, RowsFragment, SQLFragment
from .sql_analysis import parse_statement, split_statements, tokenize
from .utils import sql_literal

_GUARDED_KINDS = ("TABLE", "VIEW", "INDEX", "SCHEMA")
_PASS_THROUGH = (exp.Query, exp.Update, exp.Delete)


def transform(cell: ResolvedCell, dialect: Dialect | str = "sqlite") -> list[str]:
    """Statements (without terminators) to execute for a cell.

    Non-SQL cells, stored-only cells and empty bodies yield no statements.
    """
    meta = cell.metadata
    if meta.kind is not CellKind.SQL or not meta.executes or cell.is_empty:
        return []

    d = get_dialect(dialect)
    fragment = cell.fragment
    mode = meta.idempotency

    if isinstance(fragment, RowsFragment):
        return _transform_rows(cell, fragment, mode, d)

    try:
        statements = split_statements(cell.sql_text, d)
    except sqlglot.errors.SqlglotError as e:
        raise TransformError(cell.identifier, f"cannot split statements: {e}") from e
    if mode is IdempotencyMode.NONE:
        return statements

    key = fragment.natural_key if isinstance(fragment, SQLFragment) and fragment.natural_key else meta.natural_key
    out: list[str] = []
    for statement in statements:
        out.extend(_guard_statement(cell, statement, mode, key, d))
    return out


# --- Structured rows ---


def _delete_matching(table: str, columns: tuple[str, ...], key: tuple[str, ...], rows: tuple[tuple, ...]) -> str:
    """DELETE statement removing every row whose natural key appears in ``rows``."""
    idx = [columns.index(k) for k in key]
    if len(key) == 1:
        values = ", ".join(dict.fromkeys(sql_literal(row[idx[0]]) for row in rows))
        return f"DELETE FROM {table} WHERE {key[0]} IN ({values})"
    conditions = dict.fromkeys(
        "(" + " AND ".join(f"{k} = {sql_literal(row[i])}" for k, i in zip(key, idx)) + ")"
        for row in rows
    )
    return f"DELETE FROM {table} WHERE " + "\n   OR ".join(conditions)


def _transform_rows(
    cell: ResolvedCell,
    fragment: RowsFragment,
    mode: IdempotencyMode,
    d: Dialect,
) -> list[str]:
    meta = cell.metadata
    if not fragment.rows:
        return []
    if meta.target_table and meta.target_table != fragment.table:
        raise TransformError(
            cell.identifier,
            f"rows target {fragment.table!r} but the cell declares target table {meta.target_table!r}",
        )

    insert = fragment.insert_sql()
    if mode is IdempotencyMode.NONE:
        return [insert]

    key = fragment.natural_key or meta.natural_key
    if not key:
        raise TransformError(cell.identifier, f"{mode.value} requires a natural key for {fragment.table}")
    missing = [k for k in key if k not in fragment.columns]
    if missing:
        raise TransformError(
            cell.identifier,
            f"natural key column(s) {', '.join(missing)} not among the columns of {fragment.table}",
        )

    if mode is IdempotencyMode.UPSERT:
        return [f"{insert}\n{d.upsert_clause(key, fragment.columns)}"]
    return [_delete_matching(fragment.table, fragment.columns, key, fragment.rows), insert]


# --- Raw SQL ---


def _splice_after_kind(statement: str, kind: str, guard: str, d: Dialect) -> str | None:
    """Insert ``guard`` after the object-kind keyword, leaving the rest as written."""
    tokens = tokenize(statement, d)
    for i, token in enumerate(tokens):
        if token.token_type.name != kind:
            continue
        if i + 1 < len(tokens) and tokens[i + 1].text.upper() == "CONCURRENTLY":
            token = tokens[i + 1]
        pos = token.end + 1
        return f"{statement[:pos]} {guard}{statement[pos:]}"
    return None


def _with_conflict_clause(statement: str, clause: str, d: Dialect) -> str:
    """Add an ON CONFLICT clause to an INSERT, ahead of a top-level RETURNING."""
    depth = 0
    for token in tokenize(statement, d):
        if token.token_type is TokenType.L_PAREN:
            depth += 1
        elif token.token_type is TokenType.R_PAREN:
            depth -= 1
        elif token.token_type is TokenType.RETURNING and depth == 0:
            head = statement[:token.start].rstrip()
            return f"{head}\n{clause}\n{statement[token.start:]}"
    return f"{statement.rstrip()}\n{clause}"


def _object_name(create: exp.Create, d: Dialect) -> str:
    target = create.this
    if isinstance(target, exp.Schema):
        target = target.this
    if isinstance(target, exp.Table):
        return target.sql(dialect=d.sqlglot_dialect)
    return target.name


def _guard_create(
    cell: ResolvedCell,
    statement: str,
    parsed: exp.Create,
    mode: IdempotencyMode,
    d: Dialect,
) -> list[str]:
    kind = str(parsed.args.get("kind") or "").upper()
    if kind not in _GUARDED_KINDS:
        raise TransformError(cell.identifier, f"cannot make CREATE {kind or '?'} idempotent")
    if parsed.args.get("exists") or parsed.args.get("replace"):
        return [statement]

    if mode is IdempotencyMode.REPLACE and kind != "SCHEMA":
        guarded = f"DROP {kind} IF EXISTS {_object_name(parsed, d)}"
        return [guarded, statement]

    spliced = _splice_after_kind(statement, kind, "IF NOT EXISTS", d)
    if spliced is not None:
        return [spliced]
    parsed.set("exists", True)
    return [parsed.sql(dialect=d.sqlglot_dialect)]


def _insert_columns(parsed: exp.Insert) -> tuple[exp.Expression, list[str]] | None:
    schema = parsed.this
    if not isinstance(schema, exp.Schema):
        return None
    return schema.this, [col.name for col in schema.expressions]


def _guard_insert(
    cell: ResolvedCell,
    statement: str,
    parsed: exp.Insert,
    mode: IdempotencyMode,
    key: tuple[str, ...],
    d: Dialect,
) -> list[str]:
    if parsed.args.get("conflict") or parsed.args.get("alternative"):
        # Already carries ON CONFLICT / INSERT OR REPLACE
        return [statement]

    target = _insert_columns(parsed)
    if target is None:
        raise TransformError(cell.identifier, f"{mode.value} requires INSERT with an explicit column list")
    table, columns = target
    if not key:
        raise TransformError(
            cell.identifier,
            f"{mode.value} requires a natural key for {table.sql(dialect=d.sqlglot_dialect)}",
        )
    missing = [k for k in key if k not in columns]
    if missing:
        raise TransformError(
            cell.identifier,
            f"natural key column(s) {', '.join(missing)} not in the INSERT column list",
        )

    source = parsed.expression
    if mode is IdempotencyMode.UPSERT:
        clause = d.upsert_clause(key, columns)
        if isinstance(source, exp.Values):
            return [_with_conflict_clause(statement, clause, d)]
        if d.select_upsert_needs_where:
            if not isinstance(source, exp.Select):
                raise TransformError(
                    cell.identifier,
                    f"upsert from a compound query is not supported on {d.name}",
                )
            if not source.args.get("where"):
                parsed.set("expression", source.where("TRUE"))
                return [_with_conflict_clause(parsed.sql(dialect=d.sqlglot_dialect), clause, d)]
        return [_with_conflict_clause(statement, clause, d)]

    # replace: delete the keyed rows, then insert them again
    if not isinstance(source, exp.Values):
        raise TransformError(cell.identifier, "replace requires INSERT ... VALUES (or a RowsFragment)")
    idx = [columns.index(k) for k in key]
    table_sql = table.sql(dialect=d.sqlglot_dialect)
    conditions = []
    for row in source.expressions:
        values = row.expressions
        conditions.append(
            "(" + " AND ".join(
                f"{k} = {values[i].sql(dialect=d.sqlglot_dialect)}" for k, i in zip(key, idx)
            ) + ")"
        )
    delete = f"DELETE FROM {table_sql} WHERE " + "\n   OR ".join(dict.fromkeys(conditions))
    return [delete, statement]


def _guard_statement(
    cell: ResolvedCell,
    statement: str,
    mode: IdempotencyMode,
    key: tuple[str, ...],
    d: Dialect,
) -> list[str]:
    try:
        parsed = parse_statement(statement, d)
    except sqlglot.errors.SqlglotError as e:
        raise TransformError(cell.identifier, f"cannot parse statement for {mode.value}: {e}") from e

    if isinstance(parsed, exp.Create):
        return _guard_create(cell, statement, parsed, mode, d)
    if isinstance(parsed, exp.Insert):
        return _guard_insert(cell, statement, parsed, mode, key, d)
    if isinstance(parsed, exp.Drop):
        if parsed.args.get("exists"):
            return [statement]
        spliced = _splice_after_kind(statement, str(parsed.args.get("kind") or "").upper(), "IF EXISTS", d)
        if spliced is not None:
            return [spliced]
        parsed.set("exists", True)
        return [parsed.sql(dialect=d.sqlglot_dialect)]
    if isinstance(parsed, _PASS_THROUGH):
        return [statement]
    raise TransformError(
        cell.identifier,
        f"cannot make {type(parsed).__name__.upper()} statement idempotent ({mode.value})",
    )
