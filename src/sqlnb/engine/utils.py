"""Shared utility functions for the sqlnb engine layer."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_QUALIFIED_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def validate_identifier(value: str, label: str = "identifier") -> str:
    """Validate that a value is a safe SQL identifier.

    Only allows alphanumeric characters and underscores, starting with a letter
    or underscore. Raises ValueError if the identifier is unsafe.
    """
    if not _IDENTIFIER_RE.match(value):
        raise ValueError(f"Invalid {label}: {value!r} (must match [A-Za-z_][A-Za-z0-9_]*)")
    return value


def validate_table_name(value: str, label: str = "table name") -> str:
    """Validate a table name, optionally schema-qualified (``schema.table``)."""
    if not _QUALIFIED_RE.match(value):
        raise ValueError(f"Invalid {label}: {value!r} (expected name or schema.name)")
    return value


@dataclass(frozen=True)
class SQLExpr:
    """Raw SQL expression rendered verbatim by sql_literal (e.g. CURRENT_TIMESTAMP)."""

    text: str


def sql_literal(value: Any) -> str:
    """Render a Python value as a SQL literal.

    Strings are single-quoted with embedded quotes doubled; ``None`` becomes
    ``NULL``. Anything else that is not a number or bool is rendered via ``str``
    and quoted. Non-finite floats have no portable literal and raise ValueError.
    """
    if isinstance(value, SQLExpr):
        return value.text
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"Cannot render non-finite float {value!r} as a SQL literal")
    if isinstance(value, (int, float)):
        return repr(value)
    text = str(value)
    return "'" + text.replace("'", "''") + "'"


def one_line(text: str) -> str:
    """Collapse whitespace (including newlines) to single spaces."""
    return re.sub(r"\s+", " ", text).strip()
