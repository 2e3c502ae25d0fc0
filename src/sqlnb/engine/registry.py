"""Metadata registry: which cells a notebook class declares.

Cell methods are tagged with decorators; when a ``Notebook`` subclass is
created, ``__init_subclass__`` turns those tags into explicit ``register()``
calls. Generation only ever reads the registry through ``resolve()``, which
composes a class's own entries over its bases' effective registries.

Example:
    class Setup(Notebook):
        @sql_cell(caption="Create the events table", idempotency="upsert")
        def init(self, ctx):
            return "CREATE TABLE events (id INTEGER PRIMARY KEY, name TEXT)"

        @sql_cell(depends_on=["init"], idempotency="upsert", natural_key="id")
        def seed(self, ctx):
            return RowsFragment("events", ("id", "name"), [(1, "boot")], natural_key="id")
"""

from __future__ import annotations

import logging
import threading
import weakref
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any, ClassVar

from .errors import DeclarationError
from .models import CellKind, CellMetadata, EmitMode, IdempotencyMode

logger = logging.getLogger("sqlnb.registry")

_CELL_ATTR = "__sqlnb_cell__"

_lock = threading.RLock()
_own: weakref.WeakKeyDictionary[type, dict[str, CellMetadata]] = weakref.WeakKeyDictionary()
_effective: weakref.WeakKeyDictionary[type, Mapping[str, CellMetadata]] = weakref.WeakKeyDictionary()


def register(notebook_class: type, identifier: str, metadata: CellMetadata) -> None:
    """Register one cell on a notebook class.

    Registering identical metadata again is a no-op; registering different
    metadata under an identifier the class already declares raises
    DeclarationError.
    """
    if metadata.identifier != identifier:
        raise DeclarationError(
            f"Identifier mismatch on {notebook_class.__qualname__}: "
            f"{identifier!r} registered with metadata for {metadata.identifier!r}"
        )
    with _lock:
        own = _own.setdefault(notebook_class, {})
        existing = own.get(identifier)
        if existing is not None:
            if existing == metadata:
                return
            raise DeclarationError(
                f"Cell {identifier!r} is already declared on {notebook_class.__qualname__} "
                f"(by {existing.method_name or '?'}; now by {metadata.method_name or '?'})"
            )
        own[identifier] = metadata
        _invalidate(notebook_class)
    logger.debug("Registered %s.%s (%s)", notebook_class.__qualname__, identifier, metadata.kind.value)


def _invalidate(notebook_class: type) -> None:
    for cls in list(_effective.keys()):
        if issubclass(cls, notebook_class):
            del _effective[cls]


def resolve(notebook_class: type) -> Mapping[str, CellMetadata]:
    """Effective registry of a notebook class, in declaration order.

    Bases are overlaid right-to-left so the first (closest) base wins, then
    the class's own declarations override. An overriding entry keeps the
    position of the entry it replaces.
    """
    with _lock:
        cached = _effective.get(notebook_class)
        if cached is not None:
            return cached

        merged: dict[str, CellMetadata] = {}
        for base in reversed(notebook_class.__bases__):
            if base is object:
                continue
            merged.update(resolve(base))
        merged.update(_own.get(notebook_class, {}))

        result = MappingProxyType(merged)
        _effective[notebook_class] = result
        return result


# --- Decorators ---


def cell(
    func: Callable | None = None,
    *,
    kind: CellKind | str = CellKind.SQL,
    identifier: str | None = None,
    caption: str | None = None,
    depends_on: list[str] | tuple[str, ...] | str = (),
    idempotency: IdempotencyMode | str = IdempotencyMode.NONE,
    target_table: str | None = None,
    natural_key: list[str] | tuple[str, ...] | str = (),
    emit: EmitMode | str | None = None,
    path: str | None = None,
    language: str | None = None,
) -> Any:
    """Mark a notebook method as a cell.

    Can be used bare (``@cell``) or with arguments. The identifier defaults to
    the method name and the caption to the first line of the docstring.

    The default idempotency is ``none``: statements are emitted exactly as
    returned, so a plain ``CREATE TABLE`` fails when the script runs a second
    time. Declare ``idempotency="upsert"`` (or ``"replace"``) for setup cells
    that must survive re-runs.
    """

    def decorator(fn: Callable) -> Callable:
        doc_lines = (fn.__doc__ or "").strip().splitlines()
        doc_caption = doc_lines[0].strip() if doc_lines else ""
        setattr(fn, _CELL_ATTR, {
            "identifier": identifier,
            "kind": kind,
            "caption": caption if caption is not None else doc_caption,
            "depends_on": depends_on,
            "idempotency": idempotency,
            "target_table": target_table,
            "natural_key": natural_key,
            "emit": emit,
            "path": path,
            "language": language,
        })
        return fn

    if func is not None:
        return decorator(func)
    return decorator


def sql_cell(func: Callable | None = None, **kwargs: Any) -> Any:
    """Shortcut for ``@cell(kind="sql", ...)``.

    Without ``idempotency=...`` the SQL passes through unchanged (see ``cell``).
    """
    return cell(func, kind=CellKind.SQL, **kwargs)


def code_cell(func: Callable | None = None, *, language: str = "shell", **kwargs: Any) -> Any:
    """Shortcut for non-SQL code cells, stored in the code cell table."""
    return cell(func, kind=CellKind.NON_SQL_CODE, language=language, **kwargs)


def shell_cell(func: Callable | None = None, *, path: str = "shell/shell.json", **kwargs: Any) -> Any:
    """Shortcut for the web-UI shell configuration cell."""
    return cell(func, kind=CellKind.SHELL_CONFIG, path=path, **kwargs)


def navigation_cell(func: Callable | None = None, **kwargs: Any) -> Any:
    """Shortcut for a navigation menu entry."""
    return cell(func, kind=CellKind.NAVIGATION_ENTRY, **kwargs)


def file_cell(func: Callable | None = None, *, path: str | None = None, **kwargs: Any) -> Any:
    """Shortcut for path-addressed file content (e.g. a web-UI page)."""
    return cell(func, kind=CellKind.FILE_UPSERT, path=path, **kwargs)


class Notebook:
    """Base class for notebooks.

    Subclasses declare cells with the decorators above. Each cell method is
    called with the run's ``EmitContext`` and returns a fragment (or a plain
    string, or ``None`` for an empty body).
    """

    notebook_name: ClassVar[str | None] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        declared: dict[str, str] = {}
        for attr, value in list(vars(cls).items()):
            decl = getattr(value, _CELL_ATTR, None)
            if decl is None:
                continue
            decl = dict(decl)
            ident = decl.pop("identifier") or attr
            if ident in declared:
                raise DeclarationError(
                    f"Cell {ident!r} declared twice on {cls.__qualname__} "
                    f"(methods {declared[ident]!r} and {attr!r})"
                )
            declared[ident] = attr
            metadata = CellMetadata(
                identifier=ident,
                method_name=attr,
                declared_in=cls.__qualname__,
                **decl,
            )
            register(cls, ident, metadata)


def notebook_name(notebook_class: type) -> str:
    """Notebook identity used in provenance and storage keys."""
    return notebook_class.__dict__.get("notebook_name") or notebook_class.__name__
