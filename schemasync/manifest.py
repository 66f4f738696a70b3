# File: schemasync/manifest.py
"""
schemasync - Manifest Reconciler
=================================

A generated bundle ships a ``filelist.json`` manifest describing where each
generated file belongs in the host project.  This module:

    1. Parses the manifest (a JSON array, or an object of arrays keyed by
       category).
    2. Normalises every entry to the explicit ``NormalizedEntry`` form at the
       boundary.  Legacy ``{path, replace}`` entries use ``path`` for both
       source and destination; nothing downstream derives a destination.
    3. Decides, per entry, whether to copy, skip or report the source as
       missing, and copies atomically.
    4. Aggregates per-category statistics into a ``ReconciliationReport``.

Per-entry problems (missing fields, missing source, I/O errors) never abort
the run; only a structurally broken manifest raises ``ManifestFormatError``.

Complexity: O(E) where E = number of manifest entries.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from schemasync.exceptions import ManifestFormatError
from schemasync.models import EntryStatus, InvalidEntry, ManifestFormat, NormalizedEntry
from schemasync.utils import Timer, atomic_copy, is_safe_relative_path

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemasync.manifest")

DEFAULT_CATEGORY: str = "files"
SKIP_REASON_EXISTS: str = "exists"

ManifestItem = Union[NormalizedEntry, InvalidEntry]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_manifest(text: Union[str, bytes]) -> Dict[str, List[Any]]:
    """
    Parse manifest JSON into ``{category: [raw entries]}``.

    A top-level array becomes the single ``"files"`` category.

    Raises:
        ManifestFormatError: Invalid JSON, or a top level / category value of
            the wrong type.
    """
    try:
        data: Any = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ManifestFormatError(f"Manifest is not valid JSON: {exc}") from exc

    if isinstance(data, list):
        categories: Dict[str, List[Any]] = {DEFAULT_CATEGORY: data}
    elif isinstance(data, dict):
        categories = {}
        for name, items in data.items():
            if not isinstance(items, list):
                raise ManifestFormatError(
                    f"Manifest category {name!r} must be an array, "
                    f"got {type(items).__name__}"
                )
            categories[str(name)] = items
    else:
        raise ManifestFormatError(
            f"Manifest must be an array or an object of arrays, got {type(data).__name__}"
        )

    if not any(categories.values()):
        logger.warning("Manifest contains no entries.")
    return categories


def _coerce_replace(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    return None


def _non_empty_string(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def normalize_entry(
    raw: Any,
    category: str = DEFAULT_CATEGORY,
    default_replace: Optional[bool] = None,
) -> ManifestItem:
    """
    Convert one on-the-wire entry into a ``NormalizedEntry``.

    Recognised shapes:
        - secure:   ``{source_path, destination_path, replace}``
        - explicit: ``{path, destination, replace}``
        - legacy:   ``{path, replace}`` (destination = path)

    Returns an ``InvalidEntry`` instead of raising when a required field is
    missing or a path is absolute or escapes its root.
    """

    def invalid(reason: str) -> InvalidEntry:
        return InvalidEntry(category=category, raw=raw, reason=reason)

    if not isinstance(raw, dict):
        return invalid(f"entry must be an object, got {type(raw).__name__}")

    fmt: ManifestFormat
    if "source_path" in raw:
        fmt = ManifestFormat.SECURE
        source: Optional[str] = _non_empty_string(raw.get("source_path"))
        destination: Optional[str] = _non_empty_string(raw.get("destination_path"))
        if source is None:
            return invalid("missing source_path")
        if destination is None:
            return invalid("missing destination_path")
    elif "destination" in raw:
        fmt = ManifestFormat.EXPLICIT
        source = _non_empty_string(raw.get("path"))
        destination = _non_empty_string(raw.get("destination"))
        if source is None:
            return invalid("missing path")
        if destination is None:
            return invalid("missing destination")
    else:
        fmt = ManifestFormat.LEGACY
        source = _non_empty_string(raw.get("path"))
        if source is None:
            return invalid("missing path")
        destination = source

    if "replace" in raw and raw["replace"] is not None:
        replace: Optional[bool] = _coerce_replace(raw["replace"])
        if replace is None:
            return invalid(f"replace flag must be a boolean, got {raw['replace']!r}")
    elif default_replace is not None:
        replace = default_replace
    else:
        return invalid("missing replace flag")

    for label, value in (("source", source), ("destination", destination)):
        if not is_safe_relative_path(value):
            return invalid(f"{label} path escapes its root: {value!r}")

    return NormalizedEntry(
        category=category,
        source=source,
        destination=destination,
        replace=replace,
        format=fmt,
    )


def normalize_manifest(
    categories: Dict[str, List[Any]],
    default_replace: Optional[bool] = None,
) -> List[ManifestItem]:
    """Normalise every entry of a parsed manifest, preserving manifest order."""
    items: List[ManifestItem] = []
    for category, raw_entries in categories.items():
        for raw in raw_entries:
            items.append(normalize_entry(raw, category, default_replace))
    invalid_count: int = sum(1 for item in items if isinstance(item, InvalidEntry))
    logger.debug(
        "Normalised %d manifest entries (%d invalid) across %d categories.",
        len(items),
        invalid_count,
        len(categories),
    )
    return items


def load_manifest(path: Path, default_replace: Optional[bool] = None) -> List[ManifestItem]:
    """Read, parse and normalise a manifest file."""
    try:
        content: bytes = Path(path).read_bytes()
    except OSError as exc:
        raise ManifestFormatError(f"Cannot read manifest {path}: {exc}") from exc
    return normalize_manifest(parse_manifest(content), default_replace)


# ---------------------------------------------------------------------------
# Report data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EntryOutcome:
    """Result of reconciling a single manifest entry."""

    category: str
    source: str
    destination: str
    status: EntryStatus
    reason: Optional[str] = None
    bytes_copied: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "source": self.source,
            "destination": self.destination,
            "status": self.status.value,
            "reason": self.reason,
            "bytes_copied": self.bytes_copied,
        }


@dataclass(slots=True)
class CategoryStats:
    """Counters for one manifest category."""

    copied: int = 0
    skipped: int = 0
    not_found: int = 0
    invalid: int = 0
    failed: int = 0
    total: int = 0

    def record(self, status: EntryStatus) -> None:
        self.total += 1
        if status is EntryStatus.COPIED:
            self.copied += 1
        elif status is EntryStatus.SKIPPED:
            self.skipped += 1
        elif status is EntryStatus.NOT_FOUND:
            self.not_found += 1
        elif status is EntryStatus.INVALID:
            self.invalid += 1
        else:
            self.failed += 1

    def merge(self, other: "CategoryStats") -> None:
        self.copied += other.copied
        self.skipped += other.skipped
        self.not_found += other.not_found
        self.invalid += other.invalid
        self.failed += other.failed
        self.total += other.total

    def to_dict(self) -> Dict[str, int]:
        return {
            "copied": self.copied,
            "skipped": self.skipped,
            "not_found": self.not_found,
            "invalid": self.invalid,
            "failed": self.failed,
            "total": self.total,
        }


@dataclass(slots=True)
class ReconciliationReport:
    """
    Outcome of a reconciliation run.

    ``outcomes`` keeps manifest order; ``categories`` keeps first-seen
    category order.
    """

    source_root: str = ""
    dest_root: str = ""
    outcomes: List[EntryOutcome] = field(default_factory=list)
    categories: Dict[str, CategoryStats] = field(default_factory=dict)
    elapsed_seconds: float = 0.0

    def add(self, outcome: EntryOutcome) -> None:
        self.outcomes.append(outcome)
        self.categories.setdefault(outcome.category, CategoryStats()).record(outcome.status)

    @property
    def totals(self) -> CategoryStats:
        overall: CategoryStats = CategoryStats()
        for stats in self.categories.values():
            overall.merge(stats)
        return overall

    @property
    def success_rate(self) -> float:
        """Percentage of entries that ended up copied or skipped."""
        totals: CategoryStats = self.totals
        if totals.total == 0:
            return 100.0
        return (totals.copied + totals.skipped) / totals.total * 100.0

    @property
    def has_failures(self) -> bool:
        return self.totals.failed > 0

    def by_status(self, status: EntryStatus) -> List[EntryOutcome]:
        return [o for o in self.outcomes if o.status is status]

    def skip_reasons(self) -> Dict[str, int]:
        """Count of skipped entries per skip reason."""
        reasons: Dict[str, int] = {}
        for outcome in self.by_status(EntryStatus.SKIPPED):
            key: str = outcome.reason or "unknown"
            reasons[key] = reasons.get(key, 0) + 1
        return reasons

    def summary(self) -> str:
        totals: CategoryStats = self.totals
        lines: List[str] = [
            f"Reconciled {totals.total} entries in {self.elapsed_seconds:.3f}s: "
            f"{totals.copied} copied, {totals.skipped} skipped, "
            f"{totals.not_found} not found, {totals.invalid} invalid, "
            f"{totals.failed} failed ({self.success_rate:.1f}% ok)."
        ]
        for name, stats in self.categories.items():
            lines.append(
                f"  [{name}] copied={stats.copied} skipped={stats.skipped} "
                f"not_found={stats.not_found} invalid={stats.invalid} "
                f"failed={stats.failed} total={stats.total}"
            )
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_root": self.source_root,
            "dest_root": self.dest_root,
            "elapsed_seconds": round(self.elapsed_seconds, 6),
            "success_rate": round(self.success_rate, 2),
            "totals": self.totals.to_dict(),
            "categories": {name: s.to_dict() for name, s in self.categories.items()},
            "skip_reasons": self.skip_reasons(),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }

    def to_json(self, indent_size: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent_size, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class ManifestReconciler:
    """
    Applies normalised manifest entries from *source_root* to *dest_root*.

    Usage::

        reconciler = ManifestReconciler(Path("bundle/build"), Path("."))
        report = reconciler.reconcile(load_manifest(Path("bundle/build/filelist.json")))
        print(report.summary())

    Nothing is ever written under *source_root*.  With ``workers > 1`` entries
    are copied on a thread pool; statistics are reduced afterwards in
    manifest order.
    """

    def __init__(self, source_root: Path, dest_root: Path, workers: int = 1) -> None:
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self._source_root: Path = Path(source_root).resolve()
        self._dest_root: Path = Path(dest_root).resolve()
        self._workers: int = workers

    @property
    def source_root(self) -> Path:
        return self._source_root

    @property
    def dest_root(self) -> Path:
        return self._dest_root

    def reconcile(self, entries: Iterable[ManifestItem]) -> ReconciliationReport:
        items: List[ManifestItem] = list(entries)
        report: ReconciliationReport = ReconciliationReport(
            source_root=str(self._source_root),
            dest_root=str(self._dest_root),
        )

        with Timer("reconcile") as timer:
            if self._workers > 1 and len(items) > 1:
                with ThreadPoolExecutor(
                    max_workers=self._workers,
                    thread_name_prefix="schemasync-copy",
                ) as pool:
                    outcomes: List[EntryOutcome] = list(pool.map(self.reconcile_entry, items))
            else:
                outcomes = [self.reconcile_entry(item) for item in items]

        for outcome in outcomes:
            report.add(outcome)
        report.elapsed_seconds = timer.elapsed

        totals: CategoryStats = report.totals
        logger.info(
            "Reconciled %d entries: %d copied, %d skipped, %d not found, "
            "%d invalid, %d failed (%.3fs).",
            totals.total,
            totals.copied,
            totals.skipped,
            totals.not_found,
            totals.invalid,
            totals.failed,
            timer.elapsed,
        )
        return report

    def reconcile_entry(self, item: ManifestItem) -> EntryOutcome:
        """Decide and perform the action for one entry.  Never raises for I/O."""
        if isinstance(item, InvalidEntry):
            logger.warning("Invalid manifest entry in [%s]: %s", item.category, item.reason)
            return EntryOutcome(
                category=item.category,
                source=item.label,
                destination=item.label,
                status=EntryStatus.INVALID,
                reason=item.reason,
            )

        def outcome(status: EntryStatus, reason: Optional[str] = None, size: int = 0) -> EntryOutcome:
            return EntryOutcome(
                category=item.category,
                source=item.source,
                destination=item.destination,
                status=status,
                reason=reason,
                bytes_copied=size,
            )

        # Entries built directly (not via normalize_entry) are checked again.
        if not (is_safe_relative_path(item.source) and is_safe_relative_path(item.destination)):
            return outcome(EntryStatus.INVALID, "path escapes its root")

        source: Path = self._source_root / item.source
        target: Path = self._dest_root / item.destination

        if not source.is_file():
            logger.warning("Source not found: %s", item.source)
            return outcome(EntryStatus.NOT_FOUND)

        if not item.replace and target.exists():
            logger.debug("Skipping existing destination: %s", item.destination)
            return outcome(EntryStatus.SKIPPED, SKIP_REASON_EXISTS)

        try:
            size: int = atomic_copy(source, target)
        except OSError as exc:
            logger.error("Failed to copy %s → %s: %s", item.source, item.destination, exc)
            return outcome(EntryStatus.FAILED, f"{type(exc).__name__}: {exc}")

        return outcome(EntryStatus.COPIED, size=size)


def reconcile(
    entries: Sequence[ManifestItem],
    source_root: Path,
    dest_root: Path,
    workers: int = 1,
) -> ReconciliationReport:
    """Convenience wrapper around ``ManifestReconciler.reconcile``."""
    return ManifestReconciler(source_root, dest_root, workers=workers).reconcile(entries)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "DEFAULT_CATEGORY",
    "SKIP_REASON_EXISTS",
    "ManifestItem",
    "parse_manifest",
    "normalize_entry",
    "normalize_manifest",
    "load_manifest",
    "EntryOutcome",
    "CategoryStats",
    "ReconciliationReport",
    "ManifestReconciler",
    "reconcile",
]
