"""
tests/test_config.py
Unit tests for schemasync.config.
"""

from __future__ import annotations

import json
import pathlib
from typing import Callable

import pytest

from schemasync.config import build_config, load_config, load_structured_file
from schemasync.exceptions import ConfigError
from schemasync.models import SyncConfig


class TestLoadStructuredFile:
    def test_yaml(self, tmp_path: pathlib.Path, yaml_writer: Callable) -> None:
        path = yaml_writer(tmp_path / "conf.yaml", {"workers": 2})
        assert load_structured_file(path) == {"workers": 2}

    def test_json(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "conf.json"
        path.write_text(json.dumps({"workers": 3}), encoding="utf-8")
        assert load_structured_file(path) == {"workers": 3}

    def test_unknown_extension_falls_back_to_yaml(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "schemasync.conf"
        path.write_text("workers: 5\n", encoding="utf-8")
        assert load_structured_file(path) == {"workers": 5}

    def test_empty_yaml(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "empty.yml"
        path.write_text("", encoding="utf-8")
        assert load_structured_file(path) == {}

    def test_missing(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_structured_file(tmp_path / "nope.yaml")

    def test_directory(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(ValueError):
            load_structured_file(tmp_path)

    def test_invalid_json(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_structured_file(path)

    def test_top_level_list(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError, match="mapping"):
            load_structured_file(path)


class TestBuildConfig:
    def test_defaults(self) -> None:
        config = build_config()
        assert config == SyncConfig()
        assert config.schema_paths == ["database/schemas"]
        assert config.manifest_search_paths == ["build/filelist.json", "filelist.json"]
        assert config.default_replace is None
        assert config.workers == 1

    def test_flat_mapping(self) -> None:
        config = build_config({"workers": 4, "default_replace": False})
        assert config.workers == 4
        assert config.default_replace is False

    def test_nested_section(self) -> None:
        config = build_config({"schemasync": {"schema_paths": ["a", "b"]}})
        assert config.schema_paths == ["a", "b"]

    def test_empty_section(self) -> None:
        assert build_config({"schemasync": None}) == SyncConfig()

    def test_section_not_mapping(self) -> None:
        with pytest.raises(ConfigError):
            build_config({"schemasync": ["workers"]})

    def test_overrides_win(self) -> None:
        config = build_config({"workers": 2, "audit_dir": "audit"}, {"workers": 8, "audit_dir": None})
        assert config.workers == 8
        assert config.audit_dir == "audit"

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            build_config({"wrokers": 2})
        assert any("wrokers" in message for message in exc_info.value.errors)

    def test_out_of_range(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            build_config({"workers": 0})
        assert exc_info.value.errors[0].startswith("workers")

    def test_absolute_search_path_rejected(self) -> None:
        with pytest.raises(ConfigError):
            build_config({"manifest_search_paths": ["/tmp/filelist.json"]})

    def test_parent_search_path_rejected(self) -> None:
        with pytest.raises(ConfigError):
            build_config({"manifest_search_paths": ["../filelist.json"]})


class TestLoadConfig:
    def test_without_file(self) -> None:
        assert load_config() == SyncConfig()

    def test_from_file(self, tmp_path: pathlib.Path, yaml_writer: Callable) -> None:
        path = yaml_writer(
            tmp_path / "schemasync.yaml",
            {"schemasync": {"workers": 4, "audit_dir": "storage/manifests"}},
        )
        config = load_config(path, overrides={"default_replace": True})
        assert (config.workers, config.audit_dir, config.default_replace) == (
            4,
            "storage/manifests",
            True,
        )

    def test_missing_file(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(ConfigError, match="Cannot load config"):
            load_config(tmp_path / "missing.yaml")

    def test_broken_file(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("workers: [", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)
