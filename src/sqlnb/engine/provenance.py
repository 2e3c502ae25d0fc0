"""Provenance comments identifying which notebook cell produced a block of SQL.

The header is a pure function of the cell (no timestamps, no filesystem
paths), so regenerating an unchanged notebook yields byte-identical output.
"""

from __future__ import annotations

from .models import ResolvedCell
from .utils import one_line

PROVENANCE_PREFIX = "-- sqlnb:"


def provenance_header(cell: ResolvedCell) -> str:
    """Comment block naming the notebook, cell, kind, source and caption."""
    lines = [
        f"{PROVENANCE_PREFIX} notebook={one_line(cell.notebook_name)} "
        f"cell={one_line(cell.identifier)} kind={cell.metadata.kind.value}",
        f"-- source: {one_line(cell.source_location)}",
    ]
    if cell.metadata.caption.strip():
        lines.append(f"-- caption: {one_line(cell.metadata.caption)}")
    return "\n".join(lines)


def annotate(cell: ResolvedCell, body: str | None = None) -> str:
    """Prefix a cell body (default: its resolved SQL) with its provenance header.

    Empty bodies stay empty so they never produce a stray comment block.
    """
    text = cell.sql_text if body is None else body
    if not text.strip():
        return ""
    return f"{provenance_header(cell)}\n{text}"
