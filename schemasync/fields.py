# File: schemasync/fields.py
"""
schemasync - Field Value Resolution
====================================
Computes the value of every placeholder field of a generated document.

For each ``DocumentField`` the combination variable (``$customer.city`` or
``customer.city``) is looked up in the datasource built from the document's
combination; when the field carries a formula, the looked-up value becomes
``$record`` for that formula.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from schemasync.formula import FormulaParser
from schemasync.models import Candidate, DocumentField, FieldActionType, FieldKind
from schemasync.utils import get_value_from_path, strip_reference_marker, to_text

logger: logging.Logger = logging.getLogger("schemasync.fields")

_PLACEHOLDER_RE: re.Pattern[str] = re.compile(r"\{\{(.*?)\}\}")


@dataclass(frozen=True, slots=True)
class FieldValue:
    """Resolved value of one field, plus what a renderer needs to place it."""

    name: str
    value: Any
    kind: FieldKind
    coordinate: Optional[str] = None
    action_type: Optional[FieldActionType] = None


def build_datasource(combination: Mapping[str, Candidate]) -> Dict[str, Dict[str, Any]]:
    """Map each parameter name to its candidate's attributes (``id`` and ``title`` included)."""
    return {name: candidate.as_datasource() for name, candidate in combination.items()}


def resolve_field(field: DocumentField, datasource: Mapping[str, Any]) -> FieldValue:
    value: Any = None
    if field.combination_variable:
        path: str = strip_reference_marker(field.combination_variable.strip())
        value = get_value_from_path(path.lstrip("$"), datasource)

    if field.combination_formula:
        value = FormulaParser(value, datasource).parse(field.combination_formula)

    return FieldValue(
        name=field.name,
        value=value,
        kind=field.kind,
        coordinate=field.coordinate,
        action_type=field.action_type,
    )


def resolve_field_values(
    fields: Iterable[DocumentField],
    datasource: Mapping[str, Any],
) -> Dict[FieldKind, Dict[str, FieldValue]]:
    """
    Resolve every field, grouped by kind then by field name.

    Both kinds are always present in the result, possibly empty.  Formula
    errors propagate.
    """
    grouped: Dict[FieldKind, Dict[str, FieldValue]] = {kind: {} for kind in FieldKind}
    count: int = 0
    for field in fields:
        grouped[field.kind][field.name] = resolve_field(field, datasource)
        count += 1
    logger.debug("Resolved %d field values.", count)
    return grouped


def fill_placeholders(template: str, values: Mapping[str, FieldValue]) -> str:
    """Replace ``{{name}}`` placeholders with the text form of resolved values; unknown names become empty."""

    def _sub(match: re.Match[str]) -> str:
        resolved: Optional[FieldValue] = values.get(match.group(1).strip())
        return to_text(resolved.value) if resolved is not None else ""

    return _PLACEHOLDER_RE.sub(_sub, template)


__all__: List[str] = [
    "FieldValue",
    "build_datasource",
    "resolve_field",
    "resolve_field_values",
    "fill_placeholders",
]
