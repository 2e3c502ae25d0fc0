"""Script assembly: one emittable SQL document from ordered, resolved cells."""

from __future__ import annotations

import logging

from .dialects import Dialect, get_dialect
from .idempotency import transform
from .models import GeneratedScript, ResolvedCell
from .provenance import annotate

logger = logging.getLogger("sqlnb.generate")

TERMINATOR = ";"


def terminate(statement: str) -> str:
    """Append exactly one terminator to a statement.

    A statement whose last line holds a ``--`` comment gets the terminator on
    its own line so the comment cannot swallow it.
    """
    body = statement.rstrip()
    while body.endswith(TERMINATOR):
        body = body[:-1].rstrip()
    if "--" in body.rsplit("\n", 1)[-1]:
        return f"{body}\n{TERMINATOR}"
    return f"{body}{TERMINATOR}"


def assemble(
    cells: list[ResolvedCell],
    *,
    dialect: Dialect | str = "sqlite",
    provenance: bool = True,
    warnings: list[str] | tuple[str, ...] = (),
) -> GeneratedScript:
    """Transform and annotate each cell, then join them in the given order.

    Cells are never reordered. Cells without statements (configuration-only
    or empty bodies) add no text but are kept in the script's bookkeeping.
    """
    d = get_dialect(dialect)
    blocks: list[str] = []
    statements: list[str] = []
    counts: list[tuple[str, int]] = []

    for cell in cells:
        cell_statements = transform(cell, d)
        counts.append((cell.identifier, len(cell_statements)))
        if not cell_statements:
            continue
        body = "\n".join(terminate(s) for s in cell_statements)
        blocks.append(annotate(cell, body) if provenance else body)
        statements.extend(s.strip() for s in cell_statements)

    text = "\n\n".join(blocks) + "\n" if blocks else ""
    notebook = cells[0].notebook_name if cells else ""
    logger.debug("Assembled %s: %d statements from %d cells", notebook, len(statements), len(cells))
    return GeneratedScript(
        notebook_name=notebook,
        statements=tuple(statements),
        cells=tuple(cells),
        text=text,
        statement_counts=tuple(counts),
        warnings=tuple(warnings),
    )
