# File: schemasync/models.py
"""
schemasync - Core Data Models
==============================
Pydantic V2 models shared by the manifest reconciler, the combinatorial
document expander and the field resolver, plus the runtime configuration
model.  These models are the single source of truth for data flowing
between modules:

    filelist.json → NormalizedEntry → ReconciliationReport
    Candidate sets → combinations → GeneratedDocumentRecord
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemasync.models")

# Candidate / owner identifiers coming from an ORM are either ints or strings.
Identifier = Union[int, str]

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EntryStatus(str, Enum):
    """Outcome of reconciling a single manifest entry."""

    COPIED = "copied"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    FAILED = "failed"


class ManifestFormat(str, Enum):
    """On-the-wire shapes a manifest entry can take."""

    LEGACY = "legacy"  # {path, replace}
    EXPLICIT = "explicit"  # {path, destination, replace}
    SECURE = "secure"  # {source_path, destination_path, replace}


class DocumentState(str, Enum):
    """Lifecycle state of a generated-document record."""

    NONEXISTENT = "nonexistent"
    ACTIVE = "active"
    SOFT_DELETED = "soft_deleted"


class PlanAction(str, Enum):
    """Action a reconciliation plan schedules for one record."""

    CREATE = "create"
    UPDATE = "update"
    RESTORE = "restore"
    SOFT_DELETE = "soft_delete"
    NOOP = "noop"


class FieldKind(str, Enum):
    """Kind of placeholder a document field fills."""

    TEXT = "TEXT"
    IMAGE = "IMAGE"


class FieldActionType(str, Enum):
    """How an image field is applied by the renderer."""

    REPLACE = "REPLACE"
    VISIBILITY = "VISIBILITY"


# ---------------------------------------------------------------------------
# Shared model configuration
# ---------------------------------------------------------------------------

_SHARED_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    validate_assignment=True,
    frozen=False,
    extra="forbid",
)

_FROZEN_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    frozen=True,
    extra="forbid",
)


# ---------------------------------------------------------------------------
# Manifest entries
# ---------------------------------------------------------------------------


class NormalizedEntry(BaseModel):
    """
    A manifest entry in explicit form.

    Every on-the-wire shape is converted to this one at the boundary, so the
    reconciler never derives a destination on its own.
    """

    model_config = _FROZEN_CONFIG

    category: str = Field(..., description="Manifest-provided grouping key.")
    source: str = Field(..., min_length=1, description="Path relative to the source root.")
    destination: str = Field(
        ..., min_length=1, description="Path relative to the destination root."
    )
    replace: bool = Field(..., description="Overwrite an existing destination?")
    format: ManifestFormat = Field(
        default=ManifestFormat.SECURE, description="Shape the entry arrived in."
    )

    def __repr__(self) -> str:
        flag: str = "replace" if self.replace else "keep"
        return f"<Entry [{self.category}] {self.source} → {self.destination} ({flag})>"


class InvalidEntry(BaseModel):
    """A manifest entry that is missing required fields or is unsafe."""

    model_config = _FROZEN_CONFIG

    category: str
    raw: Any = Field(default=None, description="The entry exactly as it appeared.")
    reason: str = Field(..., min_length=1)

    @property
    def label(self) -> str:
        """Best-effort human-readable locator for reports."""
        if isinstance(self.raw, dict):
            for key in ("destination_path", "destination", "source_path", "path"):
                value: Any = self.raw.get(key)
                if isinstance(value, str) and value:
                    return value
        return "<unknown>"


# ---------------------------------------------------------------------------
# Combinatorial generation
# ---------------------------------------------------------------------------


class Candidate(BaseModel):
    """An entity eligible for inclusion in a parameter set."""

    model_config = _FROZEN_CONFIG

    id: Identifier = Field(..., description="Entity identifier.")
    title: str = Field(default="", description="Human-readable title.")
    type: str = Field(default="", description="Entity type (e.g. ORM class name).")
    data: Dict[str, Any] = Field(
        default_factory=dict,
        description="Attribute values exposed to formulas through the datasource.",
    )

    def as_datasource(self) -> Dict[str, Any]:
        """Return the mapping formulas see for this candidate."""
        merged: Dict[str, Any] = dict(self.data)
        merged.setdefault("id", self.id)
        merged.setdefault("title", self.title)
        return merged


class MappingTarget(BaseModel):
    """Child row linking a generated document to one chosen candidate."""

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Parameter name.")
    mapping_type: str = Field(default="", description="Candidate entity type.")
    mapping_id: Identifier = Field(..., description="Candidate identifier.")


class GeneratedDocumentRecord(BaseModel):
    """Persisted generated document, keyed by its dedup key, soft-deletable."""

    model_config = _SHARED_CONFIG

    id: Optional[int] = Field(default=None, description="Storage identifier.")
    key: str = Field(..., min_length=1, description="Dedup key.")
    owner_type: str = Field(..., description="Owning record type.")
    owner_id: Identifier = Field(..., description="Owning record identifier.")
    document_id: Optional[Identifier] = Field(
        default=None, description="Template document this record was generated from."
    )
    name: str = Field(default="")
    description: str = Field(default="")
    mapping_targets: List[MappingTarget] = Field(default_factory=list)
    deleted_at: Optional[datetime] = Field(default=None)

    @property
    def state(self) -> DocumentState:
        if self.deleted_at is not None:
            return DocumentState.SOFT_DELETED
        return DocumentState.ACTIVE

    @property
    def trashed(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<GeneratedDocument {self.key[:10]} {self.name!r} {self.state.value}>"


class DocumentField(BaseModel):
    """A placeholder in a document template and how its value is derived."""

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1)
    kind: FieldKind = Field(default=FieldKind.TEXT)
    coordinate: Optional[str] = Field(default=None, description="Cell coordinate, e.g. 'B3'.")
    combination_variable: Optional[str] = Field(
        default=None, description="Datasource path, e.g. '$customer.address.city'."
    )
    combination_formula: Optional[str] = Field(
        default=None, description="Formula applied to the resolved value."
    )
    action_type: Optional[FieldActionType] = Field(default=None)


# ---------------------------------------------------------------------------
# Runtime configuration
# ---------------------------------------------------------------------------


class SyncConfig(BaseModel):
    """Settings for schema aggregation and bundle installation."""

    model_config = _SHARED_CONFIG

    schema_paths: List[str] = Field(
        default_factory=lambda: ["database/schemas"],
        description="Roots holding <group>/<object>.yaml schema files.",
    )
    manifest_search_paths: List[str] = Field(
        default_factory=lambda: ["build/filelist.json", "filelist.json"],
        min_length=1,
        description="Manifest locations inside an extracted bundle, tried in order.",
    )
    default_replace: Optional[bool] = Field(
        default=None,
        description="Replace flag for entries that omit one (None = entry is invalid).",
    )
    workers: int = Field(default=1, ge=1, le=64, description="Copy worker threads.")
    audit_dir: Optional[str] = Field(
        default=None, description="Directory receiving a verbatim copy of each manifest."
    )

    @field_validator("manifest_search_paths")
    @classmethod
    def _relative_search_paths(cls, v: List[str]) -> List[str]:
        for item in v:
            path: PurePosixPath = PurePosixPath(item)
            if path.is_absolute() or ".." in path.parts:
                raise ValueError(
                    f"Manifest search path must be relative to the bundle: {item!r}"
                )
        return v


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "Identifier",
    "EntryStatus",
    "ManifestFormat",
    "DocumentState",
    "PlanAction",
    "FieldKind",
    "FieldActionType",
    "NormalizedEntry",
    "InvalidEntry",
    "Candidate",
    "MappingTarget",
    "GeneratedDocumentRecord",
    "DocumentField",
    "SyncConfig",
]
