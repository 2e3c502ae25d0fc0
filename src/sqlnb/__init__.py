"""sqlnb - SQL notebooks: ordered, idempotent SQL generated from Python classes."""

from __future__ import annotations

import logging

__version__ = "0.1.0"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured logging for sqlnb.

    Sets up a consistent log format with timestamps, logger names, and levels.
    Call this once at application startup (CLI or build script).
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger("sqlnb")
    root_logger.setLevel(log_level)
    # Avoid duplicate handlers on repeated calls
    if not root_logger.handlers:
        root_logger.addHandler(handler)


from sqlnb.engine.generator import (  # noqa: E402
    agenerate_script,
    agenerate_upserts,
    generate_script,
    generate_upserts,
)
from sqlnb.engine.models import (  # noqa: E402
    CellKind,
    CodeFragment,
    EmitContext,
    EmitMode,
    FileFragment,
    GeneratedScript,
    IdempotencyMode,
    NavigationEntry,
    RowsFragment,
    ShellConfig,
    SQLFragment,
)
from sqlnb.engine.registry import (  # noqa: E402
    Notebook,
    cell,
    code_cell,
    file_cell,
    navigation_cell,
    shell_cell,
    sql_cell,
)

__all__ = [
    "setup_logging",
    # Notebook definition
    "Notebook",
    "cell",
    "code_cell",
    "file_cell",
    "navigation_cell",
    "shell_cell",
    "sql_cell",
    # Fragments and models
    "CellKind",
    "CodeFragment",
    "EmitContext",
    "EmitMode",
    "FileFragment",
    "GeneratedScript",
    "IdempotencyMode",
    "NavigationEntry",
    "RowsFragment",
    "ShellConfig",
    "SQLFragment",
    # Generation
    "agenerate_script",
    "agenerate_upserts",
    "generate_script",
    "generate_upserts",
]
