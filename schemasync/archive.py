# File: schemasync/archive.py
"""
schemasync - Bundle Installer
==============================

Installs a generated bundle (a ZIP archive returned by the code-generation
service) into a project directory:

    1. Reject payloads that are really a JSON error body, or not a ZIP.
    2. Extract into a temporary directory, refusing members that would land
       outside it.
    3. Locate ``filelist.json`` (``build/filelist.json`` first by default).
    4. Once the manifest parses, optionally keep a verbatim copy for audit.
    5. Reconcile the manifest entries into the destination root.

Archive-level problems are fatal and raised once as ``ArchiveError``; the
temporary directory is removed whatever happens.
"""

from __future__ import annotations

import io
import json
import logging
import tempfile
import zipfile
import zlib
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from schemasync.exceptions import ArchiveError, ManifestFormatError
from schemasync.manifest import (
    ManifestItem,
    ManifestReconciler,
    ReconciliationReport,
    load_manifest,
)
from schemasync.models import SyncConfig
from schemasync.utils import Timer, atomic_copy, is_safe_relative_path

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemasync.archive")

_ZIP_MAGIC: tuple = (b"PK\x03\x04", b"PK\x05\x06")


@dataclass(frozen=True, slots=True)
class InstallResult:
    """What ``BundleInstaller.install`` did."""

    report: ReconciliationReport
    manifest_path: str
    audit_path: Optional[str]
    member_count: int
    elapsed_seconds: float

    def summary(self) -> str:
        lines: List[str] = [
            f"Installed bundle ({self.member_count} members, manifest {self.manifest_path}) "
            f"in {self.elapsed_seconds:.3f}s.",
        ]
        if self.audit_path:
            lines.append(f"Manifest archived to {self.audit_path}")
        lines.append(self.report.summary())
        return "\n".join(lines)


def _raise_for_error_body(data: bytes) -> None:
    """The generation service answers failures with a JSON object instead of a ZIP."""
    if not data.lstrip().startswith(b"{"):
        return
    try:
        body: Any = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return
    if isinstance(body, dict):
        message: Any = body.get("error") or body.get("message") or "unknown error"
        raise ArchiveError(f"Generation service returned an error: {message}")


class BundleInstaller:
    """
    Extracts a bundle and reconciles its manifest into *dest_root*.

    Usage::

        installer = BundleInstaller(Path("."), SyncConfig(workers=4))
        result = installer.install(Path("bundle.zip"))
        print(result.summary())
    """

    def __init__(self, dest_root: Path, config: Optional[SyncConfig] = None) -> None:
        self._dest_root: Path = Path(dest_root)
        self._config: SyncConfig = config if config is not None else SyncConfig()

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def install(self, zip_path: Path) -> InstallResult:
        path: Path = Path(zip_path)
        if not path.is_file():
            raise ArchiveError(f"Bundle does not exist: {path}")
        try:
            data: bytes = path.read_bytes()
        except OSError as exc:
            raise ArchiveError(f"Cannot read bundle {path}: {exc}") from exc
        logger.info("Installing bundle %s (%d bytes).", path, len(data))
        return self.install_bytes(data)

    def install_bytes(self, data: bytes) -> InstallResult:
        _raise_for_error_body(data)
        if not data.startswith(_ZIP_MAGIC):
            raise ArchiveError(
                f"Bundle is not a ZIP archive (magic bytes {data[:4].hex() or 'empty'})"
            )

        with Timer("install") as timer:
            with tempfile.TemporaryDirectory(prefix="schemasync-bundle-") as tmp:
                extract_root: Path = Path(tmp)
                member_count: int = self._extract(data, extract_root)
                manifest_path: Path = self._find_manifest(extract_root)
                entries: List[ManifestItem] = load_manifest(
                    manifest_path, default_replace=self._config.default_replace
                )
                audit_path: Optional[Path] = self._archive_manifest(manifest_path)

                reconciler: ManifestReconciler = ManifestReconciler(
                    manifest_path.parent,
                    self._dest_root,
                    workers=self._config.workers,
                )
                report: ReconciliationReport = reconciler.reconcile(entries)
                manifest_rel: str = manifest_path.relative_to(extract_root).as_posix()

        return InstallResult(
            report=report,
            manifest_path=manifest_rel,
            audit_path=str(audit_path) if audit_path else None,
            member_count=member_count,
            elapsed_seconds=timer.elapsed,
        )

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    def _extract(self, data: bytes, target: Path) -> int:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                names: List[str] = archive.namelist()
                for name in names:
                    if not is_safe_relative_path(name):
                        raise ArchiveError(f"Bundle member escapes extraction root: {name!r}")
                archive.extractall(target)
        except (zipfile.BadZipFile, zlib.error, RuntimeError) as exc:
            raise ArchiveError(f"Bundle is corrupt: {exc}") from exc
        except OSError as exc:
            raise ArchiveError(f"Failed to extract bundle: {exc}") from exc

        logger.debug("Extracted %d members into %s.", len(names), target)
        return len(names)

    def _find_manifest(self, root: Path) -> Path:
        for relative in self._config.manifest_search_paths:
            candidate: Path = root / relative
            if candidate.is_file():
                logger.debug("Found manifest at %s.", relative)
                return candidate
        raise ManifestFormatError(
            "filelist.json not found in bundle (looked in: "
            + ", ".join(self._config.manifest_search_paths)
            + ")"
        )

    def _archive_manifest(self, manifest_path: Path) -> Optional[Path]:
        if not self._config.audit_dir:
            return None
        stamp: str = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        target: Path = Path(self._config.audit_dir) / f"filelist-{stamp}.json"
        try:
            atomic_copy(manifest_path, target)
        except OSError as exc:
            raise ArchiveError(f"Cannot write audit copy to {target}: {exc}") from exc
        logger.info("Manifest archived to %s.", target)
        return target


def install_bundle(
    zip_path: Path,
    dest_root: Path,
    config: Optional[SyncConfig] = None,
) -> InstallResult:
    """Convenience wrapper around ``BundleInstaller.install``."""
    return BundleInstaller(dest_root, config).install(zip_path)


__all__: List[str] = [
    "InstallResult",
    "BundleInstaller",
    "install_bundle",
]
