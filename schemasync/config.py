# File: schemasync/config.py
"""
schemasync - Configuration Loading
===================================
Reads YAML/JSON files and builds a validated ``SyncConfig``.

A config file is either a flat mapping of ``SyncConfig`` fields, or a
mapping with those fields under a top-level ``schemasync:`` key::

    schemasync:
      schema_paths: [database/schemas, vendor/acme/schemas]
      workers: 4
      default_replace: false
      audit_dir: storage/omnify/manifests
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from schemasync.exceptions import ConfigError
from schemasync.models import SyncConfig

logger: logging.Logger = logging.getLogger("schemasync.config")

CONFIG_SECTION: str = "schemasync"


# ---------------------------------------------------------------------------
# Structured file loading
# ---------------------------------------------------------------------------


def _load_json_file(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc


def _load_yaml_file(path: Path) -> Any:
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc


def load_structured_file(path: Path) -> Dict[str, Any]:
    """
    Load a JSON or YAML file whose top level is a mapping.

    Dispatches on extension; unknown extensions are tried as JSON, then YAML.
    An empty YAML document loads as ``{}``.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file can't be parsed or is not a mapping.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")

    suffix: str = path.suffix.lower()
    data: Any
    if suffix in (".yaml", ".yml"):
        data = _load_yaml_file(path)
    elif suffix == ".json":
        data = _load_json_file(path)
    else:
        logger.info("Unknown extension '%s', trying JSON then YAML.", suffix)
        try:
            data = _load_json_file(path)
        except ValueError:
            data = _load_yaml_file(path)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at top level of {path}, got {type(data).__name__}.")
    return data


# ---------------------------------------------------------------------------
# SyncConfig
# ---------------------------------------------------------------------------


def _format_validation_errors(exc: ValidationError) -> List[str]:
    messages: List[str] = []
    for error in exc.errors():
        location: str = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        messages.append(f"{location}: {error.get('msg', 'invalid value')}")
    return messages


def build_config(
    raw: Optional[Mapping[str, Any]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> SyncConfig:
    """
    Validate *raw* (optionally nested under ``schemasync:``) merged with
    *overrides*.  ``None`` override values are ignored.
    """
    data: Dict[str, Any] = dict(raw or {})
    if CONFIG_SECTION in data:
        section: Any = data[CONFIG_SECTION]
        if section is None:
            section = {}
        if not isinstance(section, dict):
            raise ConfigError(f"'{CONFIG_SECTION}' section must be a mapping.")
        data = dict(section)

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    try:
        return SyncConfig.model_validate(data)
    except ValidationError as exc:
        errors: List[str] = _format_validation_errors(exc)
        raise ConfigError(
            f"Invalid configuration ({len(errors)} error(s)): " + "; ".join(errors),
            errors=errors,
        ) from exc


def load_config(
    path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> SyncConfig:
    """
    Load ``SyncConfig`` from *path* (or defaults when ``None``) and apply
    *overrides*.

    Raises:
        ConfigError: Unreadable file or failed validation.
    """
    raw: Dict[str, Any] = {}
    if path is not None:
        try:
            raw = load_structured_file(Path(path))
        except (FileNotFoundError, ValueError) as exc:
            raise ConfigError(f"Cannot load config: {exc}") from exc
        logger.debug("Loaded config file %s.", path)
    else:
        logger.debug("No config file given, using defaults.")
    return build_config(raw, overrides)


__all__: List[str] = [
    "CONFIG_SECTION",
    "load_structured_file",
    "build_config",
    "load_config",
]
