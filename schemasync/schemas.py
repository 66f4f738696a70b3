# File: schemasync/schemas.py
"""
schemasync - Schema Aggregation
================================
Collects object schema definitions laid out as::

    <root>/<group>/<object>.yaml   (also .yml and .json)

into one mapping keyed by object name, ready to be sent to the generation
service.  ``objectName`` defaults to the file stem and ``groupName`` to the
directory name.  When several roots define the same object, the later root
wins.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from schemasync.config import load_structured_file
from schemasync.exceptions import SchemaFormatError

logger: logging.Logger = logging.getLogger("schemasync.schemas")

SCHEMA_SUFFIXES: tuple = (".yaml", ".yml", ".json")


def iter_schema_files(root: Path) -> List[Path]:
    """Schema files under *root*, sorted by group then file name."""
    root = Path(root)
    if not root.is_dir():
        return []
    files: List[Path] = []
    for group_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        files.extend(
            sorted(
                p
                for p in group_dir.iterdir()
                if p.is_file() and p.suffix.lower() in SCHEMA_SUFFIXES
            )
        )
    return files


def load_schema(path: Path) -> Dict[str, Any]:
    """Load one schema file and fill in ``objectName`` / ``groupName``."""
    try:
        data: Dict[str, Any] = load_structured_file(path)
    except (FileNotFoundError, ValueError) as exc:
        raise SchemaFormatError(f"Cannot load schema {path}: {exc}") from exc
    data.setdefault("objectName", path.stem)
    data.setdefault("groupName", path.parent.name)
    return data


def aggregate_schemas(roots: Iterable[Union[str, Path]]) -> Dict[str, Dict[str, Any]]:
    """
    Merge the schemas of every root into ``{objectName: schema}`` sorted by
    object name.  Missing roots are skipped with a warning.

    Raises:
        SchemaFormatError: A schema file cannot be parsed or is not a mapping.
    """
    merged: Dict[str, Dict[str, Any]] = {}
    for root in roots:
        root_path: Path = Path(root)
        if not root_path.is_dir():
            logger.warning("Schema root not found, skipping: %s", root_path)
            continue

        for schema_file in iter_schema_files(root_path):
            schema: Dict[str, Any] = load_schema(schema_file)
            key: str = str(schema["objectName"])
            if key in merged:
                logger.info(
                    "Schema %s from %s overrides %s/%s.",
                    key,
                    schema_file,
                    merged[key].get("groupName"),
                    key,
                )
            merged[key] = schema

    logger.info("Aggregated %d schemas.", len(merged))
    return dict(sorted(merged.items()))


__all__: List[str] = [
    "SCHEMA_SUFFIXES",
    "iter_schema_files",
    "load_schema",
    "aggregate_schemas",
]
