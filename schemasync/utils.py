# File: schemasync/utils.py
"""
schemasync - Utility Functions & Helpers
=========================================
Small, dependency-free helpers shared by every module:

- dotted-path lookup into nested mappings/objects;
- the dynamic-truthiness predicate used by formulas (``is_empty``);
- numeric-string detection and text coercion;
- canonical hashing for dedup keys;
- atomic file copy and directory helpers;
- the ``Timer`` context manager used for step timing in reports.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import shutil
import tempfile
import time
from collections.abc import Mapping, Sequence
from pathlib import Path, PurePosixPath
from typing import Any, List, Optional

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemasync.utils")

# ---------------------------------------------------------------------------
# Pre-compiled regex patterns (compiled once at module load)
# ---------------------------------------------------------------------------

# Leading/trailing whitespace is tolerated, as with PHP-style numeric strings.
_NUMERIC_RE: re.Pattern[str] = re.compile(
    r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?\s*$"
)
_DATASOURCE_PATH_RE: re.Pattern[str] = re.compile(r"^\$(\w+)(\.\w+)+$")

_MISSING: object = object()


# ---------------------------------------------------------------------------
# Path lookup
# ---------------------------------------------------------------------------


def is_datasource_reference(token: str) -> bool:
    """True for ``$group.field[.sub...]`` style references."""
    return bool(_DATASOURCE_PATH_RE.match(token))


def strip_reference_marker(token: str) -> str:
    """Turn ``$a.b.c`` into ``a.b.c``; other strings are returned as-is."""
    if is_datasource_reference(token):
        return token[1:]
    return token


def _step(current: Any, key: str) -> Any:
    """Resolve one path segment; returns ``_MISSING`` when absent."""
    if isinstance(current, Mapping):
        return current.get(key, _MISSING)
    if isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
        if key.lstrip("-").isdigit():
            index: int = int(key)
            if -len(current) <= index < len(current):
                return current[index]
        return _MISSING
    return getattr(current, key, _MISSING)


def get_value_from_path(path: str, data: Any) -> Any:
    """
    Walk *data* key by key along a dotted *path*.

    Mappings are indexed by key, sequences by integer position and any other
    object by attribute.  A missing segment yields ``None``; no exception is
    raised.

    Examples:
        >>> get_value_from_path("a.b.c", {"a": {"b": {"c": 42}}})
        42
        >>> get_value_from_path("a.b.x", {"a": {"b": {"c": 42}}}) is None
        True
    """
    current: Any = data
    for key in path.split("."):
        if current is None:
            return None
        current = _step(current, key)
        if current is _MISSING:
            return None
    return current


# ---------------------------------------------------------------------------
# Dynamic value semantics
# ---------------------------------------------------------------------------


def is_empty(value: Any) -> bool:
    """
    Loose emptiness test used by ``IF`` and ``ISEMPTY``.

    ``None``, ``False``, ``0``, ``0.0``, ``""``, ``"0"`` and empty
    containers are empty; everything else is not.
    """
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, str):
        return value == "" or value == "0"
    if isinstance(value, (list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


def is_numeric(value: Any) -> bool:
    """True for ints/floats (not bools) and numeric strings."""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        return bool(_NUMERIC_RE.match(value))
    return False


def to_text(value: Any) -> str:
    """
    Coerce a formula value to text.

    ``None`` → ``""``, ``True`` → ``"1"``, ``False`` → ``""`` and integral
    floats lose their trailing ``.0``.
    """
    if value is None or value is False:
        return ""
    if value is True:
        return "1"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------------------------------------------------------
# Checksums
# ---------------------------------------------------------------------------


def canonical_json(data: Any) -> str:
    """Serialise *data* with sorted keys and no insignificant whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def sha1_hex(content: str) -> str:
    """Return SHA-1 hex digest of a string."""
    return hashlib.sha1(content.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# File I/O helpers
# ---------------------------------------------------------------------------


def ensure_directory(path: Path) -> None:
    """Create directory (and parents) if it doesn't exist."""
    path.mkdir(parents=True, exist_ok=True)
    logger.debug("Ensured directory exists: %s", path)


def is_safe_relative_path(value: str) -> bool:
    """
    True when *value* is a non-empty relative path that stays inside its
    root (no absolute path, drive letter or ``..`` component).
    """
    if not value or not value.strip():
        return False
    normalised: str = value.replace("\\", "/")
    posix: PurePosixPath = PurePosixPath(normalised)
    if posix.is_absolute() or ".." in posix.parts:
        return False
    if re.match(r"^[A-Za-z]:", normalised):
        return False
    return True


def atomic_copy(source: Path, target: Path) -> int:
    """
    Copy *source* over *target* atomically and return the bytes copied.

    The data is written to a temporary file in the target directory, then
    renamed into place with ``os.replace``, so readers never observe a
    partially written destination.
    """
    ensure_directory(target.parent)

    fd: int
    tmp_path: str
    fd, tmp_path = tempfile.mkstemp(
        dir=str(target.parent),
        prefix=f".{target.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "wb") as out_fh, open(source, "rb") as in_fh:
            shutil.copyfileobj(in_fh, out_fh)
            out_fh.flush()
            os.fsync(out_fh.fileno())
        shutil.copymode(str(source), tmp_path)
        os.replace(tmp_path, str(target))
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    size: int = target.stat().st_size
    logger.debug("Copied %s → %s (%d bytes)", source, target, size)
    return size


def write_text_atomic(path: Path, content: str) -> int:
    """Write *content* to *path* via temp-file-and-rename; returns bytes written."""
    ensure_directory(path.parent)
    encoded: bytes = content.encode("utf-8")

    fd: int
    tmp_path: str
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
        os.replace(tmp_path, str(path))
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    logger.debug("Wrote %d bytes to %s", len(encoded), path)
    return len(encoded)


# ---------------------------------------------------------------------------
# Timer context manager
# ---------------------------------------------------------------------------


class Timer:
    """
    Simple context-manager timer for profiling pipeline steps.

    Usage:
        with Timer("reconcile") as t:
            ...
        print(t.elapsed)
    """

    __slots__ = ("label", "start_time", "end_time", "elapsed")

    def __init__(self, label: str = "operation") -> None:
        self.label: str = label
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time
        logger.debug("Timer [%s]: %.4f seconds", self.label, self.elapsed)

    def __repr__(self) -> str:
        return f"<Timer {self.label}: {self.elapsed:.4f}s>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "is_datasource_reference",
    "strip_reference_marker",
    "get_value_from_path",
    "is_empty",
    "is_numeric",
    "to_text",
    "canonical_json",
    "sha1_hex",
    "ensure_directory",
    "is_safe_relative_path",
    "atomic_copy",
    "write_text_atomic",
    "Timer",
]

logger.debug("schemasync.utils loaded (%d public symbols).", len(__all__))
