"""Exception types raised while declaring, resolving and emitting notebooks."""

from __future__ import annotations


class SqlnbError(Exception):
    """Base class for all sqlnb errors."""


class DeclarationError(SqlnbError):
    """A notebook class declares invalid or conflicting cell metadata.

    Raised at class-definition time, before any generation is attempted.
    """


class ResolutionError(SqlnbError):
    """The effective registry of a notebook cannot be ordered.

    ``identifiers`` names the offending cells (unknown dependency, cycle
    members, duplicates).
    """

    def __init__(self, message: str, identifiers: list[str] | tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.identifiers = tuple(identifiers)


class InvocationError(SqlnbError):
    """A cell method raised while producing its fragment.

    The original exception is attached as ``__cause__``.
    """

    def __init__(self, identifier: str, message: str) -> None:
        super().__init__(f"Cell {identifier!r} failed: {message}")
        self.identifier = identifier


class TransformError(SqlnbError):
    """A cell cannot be made idempotent with the information it declares."""

    def __init__(self, identifier: str, message: str) -> None:
        super().__init__(f"Cell {identifier!r}: {message}")
        self.identifier = identifier


class ConfigError(SqlnbError):
    """The project configuration file is invalid."""


class NotebookLoadError(SqlnbError):
    """A ``module:Class`` notebook reference cannot be loaded."""
