"""Notebook metadata collection and SQL emission engine.

Pipeline: registry -> resolver -> idempotency + provenance -> assembler
(execute-as-script) or persistence (upsert-as-rows).

This package re-exports the public symbols:
    from sqlnb.engine import resolve_all, assemble, build_upserts, ...
"""

from __future__ import annotations

# Data models
from .models import (
    CellKind,
    CellMetadata,
    CodeFragment,
    EmitContext,
    EmitMode,
    FileFragment,
    GeneratedScript,
    IdempotencyMode,
    NavigationEntry,
    ResolvedCell,
    RowsFragment,
    ShellConfig,
    SQLFragment,
)

# Errors
from .errors import (
    ConfigError,
    DeclarationError,
    InvocationError,
    NotebookLoadError,
    ResolutionError,
    SqlnbError,
    TransformError,
)

# Registry
from .registry import Notebook, notebook_name, register, resolve

# Resolution
from .resolver import aresolve_all, emission_order, resolve_all

# Emission
from .provenance import annotate, provenance_header
from .idempotency import transform
from .assembler import assemble
from .persistence import (
    CODE_CELL_TABLE,
    FILES_TABLE,
    NAVIGATION_TABLE,
    StorageTable,
    build_upserts,
    group_upserts,
)

# Pipeline
from .generator import agenerate_script, agenerate_upserts, generate_script, generate_upserts

__all__ = [
    # Models
    "CellKind",
    "CellMetadata",
    "CodeFragment",
    "EmitContext",
    "EmitMode",
    "FileFragment",
    "GeneratedScript",
    "IdempotencyMode",
    "NavigationEntry",
    "ResolvedCell",
    "RowsFragment",
    "ShellConfig",
    "SQLFragment",
    # Errors
    "ConfigError",
    "DeclarationError",
    "InvocationError",
    "NotebookLoadError",
    "ResolutionError",
    "SqlnbError",
    "TransformError",
    # Registry
    "Notebook",
    "notebook_name",
    "register",
    "resolve",
    # Resolution
    "aresolve_all",
    "emission_order",
    "resolve_all",
    # Emission
    "annotate",
    "assemble",
    "build_upserts",
    "group_upserts",
    "provenance_header",
    "transform",
    "StorageTable",
    "CODE_CELL_TABLE",
    "FILES_TABLE",
    "NAVIGATION_TABLE",
    # Pipeline
    "agenerate_script",
    "agenerate_upserts",
    "generate_script",
    "generate_upserts",
]
