# File: schemasync/validators.py
"""
schemasync - Cross-entity Validators
=====================================
Pydantic checks each model on its own.  This module adds checks that need
the whole collection: duplicate manifest destinations, schema identity
fields, and formulas naming functions that do not exist.

Every validator is a pure function returning a ``ValidationResult``.
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from schemasync.exceptions import UnsupportedFunctionError
from schemasync.formula import get_function
from schemasync.manifest import ManifestItem
from schemasync.models import DocumentField, FieldKind, InvalidEntry, ManifestFormat

logger: logging.Logger = logging.getLogger("schemasync.validators")

_IDENTIFIER_RE: re.Pattern[str] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_FUNCTION_NAME_RE: re.Pattern[str] = re.compile(r"([A-Za-z_]\w*)\(")


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------


class ValidationIssue:
    """One finding: level, machine code, message and optional context."""

    __slots__ = ("level", "code", "message", "context")

    def __init__(
        self,
        level: str,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.level: str = level  # "error" | "warning" | "info"
        self.code: str = code
        self.message: str = message
        self.context: Dict[str, Any] = context or {}

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    @property
    def is_warning(self) -> bool:
        return self.level == "warning"

    def __repr__(self) -> str:
        return f"[{self.level.upper()}] {self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class ValidationResult:
    """Accumulates ``ValidationIssue`` instances."""

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[ValidationIssue] = []

    def add_error(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._items.append(ValidationIssue("error", code, message, context))

    def add_warning(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._items.append(ValidationIssue("warning", code, message, context))

    def add_info(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._items.append(ValidationIssue("info", code, message, context))

    def merge(self, other: "ValidationResult") -> None:
        self._items.extend(other._items)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self._items if i.is_error]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self._items if i.is_warning]

    @property
    def all_items(self) -> List[ValidationIssue]:
        return list(self._items)

    @property
    def is_valid(self) -> bool:
        return not any(i.is_error for i in self._items)

    def codes(self) -> List[str]:
        return [i.code for i in self._items]

    def summary(self) -> str:
        return (
            f"Validation: {len(self.errors)} error(s), "
            f"{len(self.warnings)} warning(s), "
            f"{len(self._items)} total item(s)."
        )

    def format_report(self, include_info: bool = False) -> str:
        lines: List[str] = [self.summary()]
        for item in self._items:
            if not include_info and item.level == "info":
                continue
            lines.append(f"  {item.level.upper():7s} [{item.code}] {item.message}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        """Truthy when there are no errors."""
        return self.is_valid

    def __len__(self) -> int:
        return len(self._items)


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


def validate_manifest_entries(entries: Iterable[ManifestItem]) -> ValidationResult:
    """
    Invalid entries are warnings (the reconciler records and skips them).
    Two entries writing the same destination are an error: the outcome would
    depend on processing order.
    """
    result: ValidationResult = ValidationResult()
    destinations: Dict[str, Tuple[str, str]] = {}
    count: int = 0

    for item in entries:
        count += 1
        if isinstance(item, InvalidEntry):
            result.add_warning(
                "INVALID_ENTRY",
                f"Entry '{item.label}' in [{item.category}] is invalid: {item.reason}.",
                {"category": item.category},
            )
            continue

        if item.format is ManifestFormat.LEGACY:
            result.add_info(
                "LEGACY_ENTRY",
                f"Entry '{item.source}' uses the legacy {{path, replace}} form.",
                {"category": item.category},
            )

        normalised: str = PurePosixPath(item.destination.replace("\\", "/")).as_posix()
        previous: Optional[Tuple[str, str]] = destinations.get(normalised)
        if previous is not None:
            result.add_error(
                "DUPLICATE_DESTINATION",
                f"Destination '{item.destination}' is written by both "
                f"'{previous[1]}' [{previous[0]}] and '{item.source}' [{item.category}].",
                {"destination": item.destination},
            )
        else:
            destinations[normalised] = (item.category, item.source)

    if count == 0:
        result.add_warning("EMPTY_MANIFEST", "Manifest contains no entries.")

    logger.debug("Manifest validation: %s", result.summary())
    return result


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


def validate_schemas(schemas: Mapping[str, Mapping[str, Any]]) -> ValidationResult:
    """Check identity fields and section shapes of aggregated schemas."""
    result: ValidationResult = ValidationResult()

    for key, schema in schemas.items():
        ctx: Dict[str, Any] = {"schema": key}
        object_name: Any = schema.get("objectName")
        group_name: Any = schema.get("groupName")

        if not isinstance(object_name, str) or not object_name:
            result.add_error("MISSING_OBJECT_NAME", f"Schema '{key}' has no objectName.", ctx)
        elif not _IDENTIFIER_RE.match(object_name):
            result.add_warning(
                "OBJECT_NAME_NOT_IDENTIFIER",
                f"objectName '{object_name}' is not a valid identifier.",
                ctx,
            )
        elif object_name != key:
            result.add_error(
                "OBJECT_NAME_MISMATCH",
                f"Schema stored under '{key}' declares objectName '{object_name}'.",
                ctx,
            )

        if not isinstance(group_name, str) or not group_name:
            result.add_error("MISSING_GROUP_NAME", f"Schema '{key}' has no groupName.", ctx)

        for section in ("attributes", "options"):
            if section in schema and not isinstance(schema[section], Mapping):
                result.add_error(
                    "SECTION_NOT_MAPPING",
                    f"Schema '{key}': '{section}' must be a mapping, "
                    f"got {type(schema[section]).__name__}.",
                    ctx,
                )

    if not schemas:
        result.add_warning("NO_SCHEMAS", "No schemas were found.")

    logger.debug("Schema validation: %s", result.summary())
    return result


# ---------------------------------------------------------------------------
# Document fields
# ---------------------------------------------------------------------------


def validate_document_fields(fields: Iterable[DocumentField]) -> ValidationResult:
    """Duplicate field names per kind and formulas calling unknown functions."""
    result: ValidationResult = ValidationResult()
    seen: Set[Tuple[FieldKind, str]] = set()

    for field in fields:
        ctx: Dict[str, Any] = {"field": field.name, "kind": field.kind.value}
        if (field.kind, field.name) in seen:
            result.add_error(
                "DUPLICATE_FIELD",
                f"{field.kind.value} field '{field.name}' is defined more than once.",
                ctx,
            )
        seen.add((field.kind, field.name))

        if field.combination_formula:
            match: Optional[re.Match[str]] = _FUNCTION_NAME_RE.search(field.combination_formula)
            if match is None:
                result.add_warning(
                    "FORMULA_NOT_A_CALL",
                    f"Formula of '{field.name}' is not a function call and is used verbatim.",
                    ctx,
                )
            else:
                try:
                    get_function(match.group(1))
                except UnsupportedFunctionError as exc:
                    result.add_error("UNSUPPORTED_FUNCTION", f"Field '{field.name}': {exc}.", ctx)

        if field.kind is FieldKind.IMAGE and field.action_type is None:
            result.add_warning(
                "IMAGE_WITHOUT_ACTION",
                f"Image field '{field.name}' has no action_type.",
                ctx,
            )

    return result


__all__: List[str] = [
    "ValidationIssue",
    "ValidationResult",
    "validate_manifest_entries",
    "validate_schemas",
    "validate_document_fields",
]
