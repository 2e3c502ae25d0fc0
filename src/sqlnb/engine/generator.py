"""Generation pipeline: resolve a notebook, then assemble a script or build upserts.

A run either returns a complete result or raises; nothing partial is ever
handed back to the caller.
"""

from __future__ import annotations

import logging
from typing import Any

from .assembler import assemble
from .dialects import Dialect, get_dialect
from .models import EmitContext, GeneratedScript, ResolvedCell
from .persistence import StorageTable, build_upserts
from .registry import notebook_name
from .resolver import aresolve_all, resolve_all

logger = logging.getLogger("sqlnb.generate")


def _instantiate(notebook: Any) -> Any:
    """Accept a notebook class (instantiated without arguments) or an instance."""
    if isinstance(notebook, type):
        return notebook()
    return notebook


def _context(instance: Any, dialect: Dialect) -> EmitContext:
    return EmitContext(notebook_name=notebook_name(type(instance)), dialect=dialect.name)


def _script(cells: list[ResolvedCell], ctx: EmitContext, d: Dialect, provenance: bool) -> GeneratedScript:
    script = assemble(cells, dialect=d, provenance=provenance, warnings=ctx.warnings)
    logger.info(
        "Generated %s: %d cells, %d statements",
        ctx.notebook_name, len(script.cells), len(script.statements),
    )
    return script


def generate_script(
    notebook: Any,
    *,
    dialect: Dialect | str = "sqlite",
    provenance: bool = True,
) -> GeneratedScript:
    """Full execute-as-script output for a notebook class or instance."""
    d = get_dialect(dialect)
    instance = _instantiate(notebook)
    ctx = _context(instance, d)
    cells = resolve_all(instance, dialect=d.name, context=ctx)
    return _script(cells, ctx, d, provenance)


def generate_upserts(
    notebook: Any,
    table: StorageTable | str,
    *,
    dialect: Dialect | str = "sqlite",
) -> list[str]:
    """Upsert statements persisting a notebook's stored cells into ``table``."""
    d = get_dialect(dialect)
    instance = _instantiate(notebook)
    ctx = _context(instance, d)
    cells = resolve_all(instance, dialect=d.name, context=ctx)
    statements = build_upserts(cells, table, d)
    logger.info("Built %d upserts for %s", len(statements), ctx.notebook_name)
    return statements


async def agenerate_script(
    notebook: Any,
    *,
    dialect: Dialect | str = "sqlite",
    provenance: bool = True,
) -> GeneratedScript:
    """Async variant of generate_script for notebooks with async cell methods."""
    d = get_dialect(dialect)
    instance = _instantiate(notebook)
    ctx = _context(instance, d)
    cells = await aresolve_all(instance, dialect=d.name, context=ctx)
    return _script(cells, ctx, d, provenance)


async def agenerate_upserts(
    notebook: Any,
    table: StorageTable | str,
    *,
    dialect: Dialect | str = "sqlite",
) -> list[str]:
    """Async variant of generate_upserts."""
    d = get_dialect(dialect)
    instance = _instantiate(notebook)
    ctx = _context(instance, d)
    cells = await aresolve_all(instance, dialect=d.name, context=ctx)
    statements = build_upserts(cells, table, d)
    logger.info("Built %d upserts for %s", len(statements), ctx.notebook_name)
    return statements
