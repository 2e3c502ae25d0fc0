"""Target database dialects.

The engine only needs one dialect-specific piece of syntax: the upsert clause.
Every supported target uses ``INSERT ... ON CONFLICT (...) DO UPDATE``.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Dialect:
    name: str
    sqlglot_dialect: str  # name understood by sqlglot's read=/dialect=
    select_upsert_needs_where: bool = False  # sqlite parses "SELECT ... ON CONFLICT" ambiguously

    def upsert_clause(self, key: tuple[str, ...] | list[str], columns: tuple[str, ...] | list[str]) -> str:
        """``ON CONFLICT`` clause updating every non-key column from ``excluded``."""
        updates = [c for c in columns if c not in key]
        conflict = ", ".join(key)
        if not updates:
            return f"ON CONFLICT ({conflict}) DO NOTHING"
        assignments = ", ".join(f"{c} = excluded.{c}" for c in updates)
        return f"ON CONFLICT ({conflict}) DO UPDATE SET {assignments}"


DIALECTS: dict[str, Dialect] = {
    "sqlite": Dialect("sqlite", "sqlite", select_upsert_needs_where=True),
    "duckdb": Dialect("duckdb", "duckdb"),
    "postgres": Dialect("postgres", "postgres"),
}


def get_dialect(dialect: Dialect | str) -> Dialect:
    """Look up a dialect by name (case-insensitive)."""
    if isinstance(dialect, Dialect):
        return dialect
    try:
        return DIALECTS[dialect.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown dialect {dialect!r} (supported: {', '.join(sorted(DIALECTS))})"
        ) from None
