# File: schemasync/exceptions.py
"""Common exception hierarchy for schemasync."""

from __future__ import annotations

from typing import List, Optional


class SchemaSyncError(Exception):
    """Base error for all schemasync exceptions."""


# ---------------------------------------------------------------------------
# Formula evaluation
# ---------------------------------------------------------------------------


class FormulaError(SchemaSyncError):
    """Base error raised while evaluating a formula."""


class UnsupportedFunctionError(FormulaError):
    """Raised when a formula names a function that is not registered."""

    def __init__(self, name: str) -> None:
        self.name: str = name
        super().__init__(f"Function {name} not supported")


class MalformedArgumentError(FormulaError, ValueError):
    """Raised on arity mismatch or an argument that cannot be converted."""

    def __init__(
        self,
        function: str,
        message: str,
        argument: Optional[object] = None,
    ) -> None:
        self.function: str = function
        self.argument: Optional[object] = argument
        super().__init__(f"{function}: {message}")


# ---------------------------------------------------------------------------
# Manifest / archive / schema loading
# ---------------------------------------------------------------------------


class ManifestFormatError(SchemaSyncError, ValueError):
    """Raised when a file manifest cannot be read or has the wrong shape."""


class ArchiveError(SchemaSyncError):
    """Raised when a generated bundle cannot be opened or extracted."""


class SchemaFormatError(SchemaSyncError, ValueError):
    """Raised when a schema definition file cannot be parsed."""


class ConfigError(SchemaSyncError, ValueError):
    """Raised when configuration cannot be loaded or fails validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        self.errors: List[str] = list(errors or [])
        super().__init__(message)


__all__: List[str] = [
    "SchemaSyncError",
    "FormulaError",
    "UnsupportedFunctionError",
    "MalformedArgumentError",
    "ManifestFormatError",
    "ArchiveError",
    "SchemaFormatError",
    "ConfigError",
]
