# File: schemasync/__init__.py
"""
schemasync — Schema Bundle Sync Toolkit
========================================

Support library for applications that ship their data-model schemas to a
remote code generator and install the bundle it returns.

Architecture overview::

    ┌──────────────┐     ┌─────────────────┐     ┌─────────────────────┐
    │  CLI / Entry │────▶│ BundleInstaller │────▶│ ManifestReconciler  │
    │   (cli.py)   │     │  (archive.py)   │     │    (manifest.py)    │
    └──────┬───────┘     └─────────────────┘     └─────────────────────┘
           │
           ├──────────▶ aggregate_schemas (schemas.py)
           │
           └──────────▶ expand_combinations → reconcile_generated_documents
                        (combinations.py)         │
                                                  ▼
                        resolve_field_values ──▶ FormulaParser
                        (fields.py)              (formula.py)

Usage::

    from schemasync import evaluate, BundleInstaller, SyncConfig
    evaluate('ROUND($order.total, 2)', datasource={"order": {"total": 3.14159}})
    BundleInstaller(Path("."), SyncConfig(workers=4)).install(Path("bundle.zip"))

    # From the command line
    python -m schemasync install bundle.zip --dest .
"""

from __future__ import annotations

__version__: str = "1.0.0"
__license__: str = "MIT"

from schemasync.exceptions import (
    ArchiveError,
    ConfigError,
    FormulaError,
    MalformedArgumentError,
    ManifestFormatError,
    SchemaFormatError,
    SchemaSyncError,
    UnsupportedFunctionError,
)
from schemasync.models import (
    Candidate,
    DocumentField,
    DocumentState,
    EntryStatus,
    FieldActionType,
    FieldKind,
    GeneratedDocumentRecord,
    InvalidEntry,
    ManifestFormat,
    MappingTarget,
    NormalizedEntry,
    PlanAction,
    SyncConfig,
)
from schemasync.formula import FormulaParser, evaluate, register_function
from schemasync.fields import FieldValue, build_datasource, resolve_field_values
from schemasync.manifest import (
    ManifestReconciler,
    ReconciliationReport,
    load_manifest,
    normalize_entry,
    parse_manifest,
    reconcile,
)
from schemasync.archive import BundleInstaller, InstallResult
from schemasync.combinations import (
    DocumentRepository,
    InMemoryDocumentRepository,
    ReconciliationPlan,
    apply_plan,
    build_label,
    compute_dedup_key,
    expand_combinations,
    generate_documents,
    reconcile_generated_documents,
)
from schemasync.schemas import aggregate_schemas
from schemasync.config import load_config
from schemasync.validators import ValidationResult
from schemasync.utils import Timer

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    "__version__",
    "__license__",
    # Errors
    "SchemaSyncError",
    "FormulaError",
    "UnsupportedFunctionError",
    "MalformedArgumentError",
    "ManifestFormatError",
    "ArchiveError",
    "SchemaFormatError",
    "ConfigError",
    # Models
    "Candidate",
    "DocumentField",
    "DocumentState",
    "EntryStatus",
    "FieldActionType",
    "FieldKind",
    "GeneratedDocumentRecord",
    "InvalidEntry",
    "ManifestFormat",
    "MappingTarget",
    "NormalizedEntry",
    "PlanAction",
    "SyncConfig",
    # Formulas and fields
    "FormulaParser",
    "evaluate",
    "register_function",
    "FieldValue",
    "build_datasource",
    "resolve_field_values",
    # Manifest and bundles
    "ManifestReconciler",
    "ReconciliationReport",
    "load_manifest",
    "normalize_entry",
    "parse_manifest",
    "reconcile",
    "BundleInstaller",
    "InstallResult",
    # Generated documents
    "DocumentRepository",
    "InMemoryDocumentRepository",
    "ReconciliationPlan",
    "apply_plan",
    "build_label",
    "compute_dedup_key",
    "expand_combinations",
    "generate_documents",
    "reconcile_generated_documents",
    # Schemas, config, validation
    "aggregate_schemas",
    "load_config",
    "ValidationResult",
    "Timer",
]
