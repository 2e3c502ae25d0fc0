"""Cell resolution: validate, order and invoke the cells of a notebook instance."""

from __future__ import annotations

import heapq
import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from graphlib import CycleError, TopologicalSorter
from typing import Any

from pydantic import ValidationError

from .errors import InvocationError, ResolutionError
from .models import (
    CellKind,
    CellMetadata,
    CodeFragment,
    EmitContext,
    FileFragment,
    NavigationEntry,
    ResolvedCell,
    RowsFragment,
    ShellConfig,
    SQLFragment,
    fragment_sql,
)
from .registry import notebook_name, resolve

logger = logging.getLogger("sqlnb.resolver")


def emission_order(
    registry: Mapping[str, CellMetadata],
    extra_edges: Mapping[str, tuple[str, ...]] | None = None,
) -> list[str]:
    """Stable topological order of a registry.

    Among cells whose dependencies are satisfied, the one declared first is
    emitted first. Raises ResolutionError for unknown dependencies and cycles.
    """
    positions = {ident: i for i, ident in enumerate(registry)}
    edges: dict[str, set[str]] = {}
    for ident, meta in registry.items():
        if meta.identifier != ident:
            raise ResolutionError(
                f"Registry key {ident!r} holds metadata for {meta.identifier!r}",
                [ident, meta.identifier],
            )
        edges[ident] = set(meta.depends_on)
    for ident, deps in (extra_edges or {}).items():
        edges.setdefault(ident, set()).update(deps)

    for ident, deps in edges.items():
        unknown = sorted(d for d in deps if d not in positions)
        if unknown:
            raise ResolutionError(
                f"Cell {ident!r} depends on unknown cell(s): {', '.join(unknown)}",
                [ident, *unknown],
            )

    sorter: TopologicalSorter[str] = TopologicalSorter()
    for ident in registry:
        sorter.add(ident, *sorted(edges.get(ident, ()), key=positions.__getitem__))
    try:
        sorter.prepare()
    except CycleError as e:
        cycle = list(e.args[1])
        members = list(dict.fromkeys(cycle))
        raise ResolutionError(
            f"Dependency cycle between cells: {' -> '.join(cycle)}",
            members,
        ) from e

    ready: list[tuple[int, str]] = []
    order: list[str] = []
    while sorter.is_active():
        for ident in sorter.get_ready():
            heapq.heappush(ready, (positions[ident], ident))
        _, ident = heapq.heappop(ready)
        order.append(ident)
        sorter.done(ident)
    return order


@dataclass
class _Plan:
    name: str
    registry: Mapping[str, CellMetadata]
    order: list[str]
    methods: dict[str, Callable[..., Any]]


def _plan(instance: Any) -> _Plan:
    """Everything that can be checked before a single cell is invoked."""
    cls = type(instance)
    registry = resolve(cls)
    order = emission_order(registry)

    methods: dict[str, Callable[..., Any]] = {}
    for ident, meta in registry.items():
        method_name = meta.method_name or ident
        method = getattr(instance, method_name, None)
        if not callable(method):
            raise ResolutionError(
                f"Cell {ident!r} is registered on {cls.__qualname__} "
                f"but has no method {method_name!r}",
                [ident],
            )
        methods[ident] = method

    return _Plan(name=notebook_name(cls), registry=registry, order=order, methods=methods)


def _coerce(meta: CellMetadata, result: Any) -> Any:
    """Normalise a cell method's return value into a fragment for its kind."""
    kind = meta.kind
    if kind is CellKind.SQL:
        if result is None:
            return SQLFragment("")
        if isinstance(result, str):
            return SQLFragment(result, natural_key=meta.natural_key)
        if isinstance(result, (SQLFragment, RowsFragment)):
            return result
    elif kind is CellKind.NON_SQL_CODE:
        if result is None:
            return CodeFragment("", meta.language or "shell")
        if isinstance(result, str):
            return CodeFragment(result, meta.language or "shell")
        if isinstance(result, CodeFragment):
            return result
    elif kind is CellKind.SHELL_CONFIG:
        if result is None or isinstance(result, ShellConfig):
            return result
        if isinstance(result, dict):
            return ShellConfig(**result)
    elif kind is CellKind.NAVIGATION_ENTRY:
        if result is None or isinstance(result, NavigationEntry):
            return result
        if isinstance(result, dict):
            data = dict(result)
            if meta.path and "path" not in data:
                data["path"] = meta.path
            data.setdefault("caption", meta.caption)
            return NavigationEntry(**data)
    elif kind is CellKind.FILE_UPSERT:
        if result is None or isinstance(result, FileFragment):
            return result
        if isinstance(result, str):
            if not meta.path:
                raise ValueError("file cells returning plain text must declare a path")
            return FileFragment(meta.path, result)
    raise TypeError(f"{kind.value} cell returned unsupported {type(result).__name__}")


def _accept(plan: _Plan, ctx: EmitContext, ident: str, result: Any) -> None:
    meta = plan.registry[ident]
    try:
        fragment = _coerce(meta, result)
    except (TypeError, ValueError, ValidationError) as e:
        raise InvocationError(ident, str(e)) from e
    ctx.record(ident, fragment)
    logger.debug("Resolved %s.%s", plan.name, ident)


def _finish(plan: _Plan, ctx: EmitContext) -> list[ResolvedCell]:
    """Merge fragment-declared dependencies, re-order, build resolved cells."""
    extra: dict[str, tuple[str, ...]] = {}
    for ident, fragment in ctx.results.items():
        deps = tuple(getattr(fragment, "depends_on", ()) or ())
        if deps:
            extra[ident] = deps
    order = emission_order(plan.registry, extra) if extra else plan.order
    positions = {ident: i for i, ident in enumerate(plan.registry)}

    cells: list[ResolvedCell] = []
    for ident in order:
        meta = plan.registry[ident]
        fragment = ctx.results[ident]
        func = getattr(plan.methods[ident], "__func__", plan.methods[ident])
        location = f"{func.__module__}:{getattr(func, '__qualname__', meta.method_name or ident)}"
        cells.append(
            ResolvedCell(
                identifier=ident,
                metadata=meta,
                fragment=fragment,
                sql_text=fragment_sql(fragment) if meta.kind is CellKind.SQL else "",
                source_location=location,
                notebook_name=plan.name,
                position=positions[ident],
            )
        )
    return cells


def resolve_all(
    instance: Any,
    *,
    dialect: str = "sqlite",
    context: EmitContext | None = None,
) -> list[ResolvedCell]:
    """Invoke every cell of a notebook instance in emission order.

    Cells are invoked one at a time. Any failure aborts the whole run; no
    partial result is returned. Cell methods returning awaitables need
    ``aresolve_all``.
    """
    plan = _plan(instance)
    ctx = context or EmitContext(notebook_name=plan.name, dialect=dialect)

    for ident in plan.order:
        try:
            result = plan.methods[ident](ctx)
        except Exception as e:
            raise InvocationError(ident, f"{type(e).__name__}: {e}") from e
        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            raise InvocationError(ident, "cell method is asynchronous; use aresolve_all()")
        _accept(plan, ctx, ident, result)

    return _finish(plan, ctx)


async def aresolve_all(
    instance: Any,
    *,
    dialect: str = "sqlite",
    context: EmitContext | None = None,
) -> list[ResolvedCell]:
    """Async variant of resolve_all.

    Awaitable results are awaited to completion before the next cell is
    invoked; cells never run concurrently.
    """
    plan = _plan(instance)
    ctx = context or EmitContext(notebook_name=plan.name, dialect=dialect)

    for ident in plan.order:
        try:
            result = plan.methods[ident](ctx)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            raise InvocationError(ident, f"{type(e).__name__}: {e}") from e
        _accept(plan, ctx, ident, result)

    return _finish(plan, ctx)
