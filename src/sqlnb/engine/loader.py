"""Load notebook classes from ``module:Class`` or ``path/to/file.py:Class`` references."""

from __future__ import annotations

import importlib
import importlib.util
import sys
from pathlib import Path
from types import ModuleType

from .errors import NotebookLoadError
from .registry import Notebook


def _load_module_from_path(path: Path) -> ModuleType:
    """Dynamically load a Python module from a file path."""
    spec = importlib.util.spec_from_file_location(path.stem, path)
    if spec is None or spec.loader is None:
        raise NotebookLoadError(f"Cannot load module from {path}")
    module = importlib.util.module_from_spec(spec)
    sys.modules[path.stem] = module
    spec.loader.exec_module(module)
    return module


def _import(target: str, base_dir: Path | None) -> ModuleType:
    if target.endswith(".py"):
        path = Path(target)
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        if not path.exists():
            raise NotebookLoadError(f"Notebook file not found: {path}")
        return _load_module_from_path(path)
    if base_dir is not None and str(base_dir) not in sys.path:
        sys.path.insert(0, str(base_dir))
    return importlib.import_module(target)


def notebooks_in_module(module: ModuleType) -> list[type[Notebook]]:
    """Notebook subclasses defined in a module, in definition order."""
    return [
        obj for obj in vars(module).values()
        if isinstance(obj, type)
        and issubclass(obj, Notebook)
        and obj is not Notebook
        and obj.__module__ == module.__name__
    ]


def load_notebooks(reference: str, base_dir: Path | None = None) -> list[type[Notebook]]:
    """Resolve a reference to notebook classes.

    ``module:Class`` yields one class; a bare module (or ``.py`` file) yields
    every notebook it defines.
    """
    target, _, class_name = reference.partition(":")
    try:
        module = _import(target, base_dir)
    except NotebookLoadError:
        raise
    except Exception as e:
        raise NotebookLoadError(f"Cannot import {target!r}: {e}") from e

    if not class_name:
        found = notebooks_in_module(module)
        if not found:
            raise NotebookLoadError(f"No notebooks defined in {target!r}")
        return found

    obj = getattr(module, class_name, None)
    if not (isinstance(obj, type) and issubclass(obj, Notebook)):
        raise NotebookLoadError(f"{reference!r} is not a Notebook subclass")
    return [obj]


def load_notebook_class(reference: str, base_dir: Path | None = None) -> type[Notebook]:
    """Resolve a reference that must name exactly one notebook."""
    found = load_notebooks(reference, base_dir)
    if len(found) != 1:
        names = ", ".join(cls.__name__ for cls in found)
        raise NotebookLoadError(f"{reference!r} defines several notebooks ({names}); use module:Class")
    return found[0]
