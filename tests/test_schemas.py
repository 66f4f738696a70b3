"""
tests/test_schemas.py
Unit tests for schemasync.schemas (schema aggregation).
"""

from __future__ import annotations

import json
import logging
import pathlib
from typing import Callable

import pytest

from schemasync.exceptions import SchemaFormatError
from schemasync.schemas import aggregate_schemas, iter_schema_files, load_schema


class TestIterSchemaFiles:
    def test_sorted_and_filtered(self, schema_root: pathlib.Path) -> None:
        names = [p.relative_to(schema_root).as_posix() for p in iter_schema_files(schema_root)]
        assert names == ["Auth/Role.yml", "Auth/User.yaml", "Blog/post.yaml"]

    def test_files_at_root_ignored(self, schema_root: pathlib.Path, yaml_writer: Callable) -> None:
        yaml_writer(schema_root / "Loose.yaml", {"displayName": "Loose"})
        assert all(p.parent != schema_root for p in iter_schema_files(schema_root))

    def test_missing_root(self, tmp_path: pathlib.Path) -> None:
        assert iter_schema_files(tmp_path / "absent") == []


class TestLoadSchema:
    def test_defaults_from_path(self, schema_root: pathlib.Path) -> None:
        schema = load_schema(schema_root / "Auth" / "User.yaml")
        assert schema["objectName"] == "User"
        assert schema["groupName"] == "Auth"
        assert schema["attributes"] == {"email": {"type": "Email"}}

    def test_explicit_object_name_kept(self, schema_root: pathlib.Path) -> None:
        assert load_schema(schema_root / "Blog" / "post.yaml")["objectName"] == "Post"

    def test_json_schema(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "Shop" / "Order.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"displayName": "Order"}), encoding="utf-8")
        assert load_schema(path)["groupName"] == "Shop"

    def test_invalid_yaml(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "Auth" / "Broken.yaml"
        path.parent.mkdir(parents=True)
        path.write_text("attributes: [unclosed\n", encoding="utf-8")
        with pytest.raises(SchemaFormatError):
            load_schema(path)

    def test_non_mapping_document(self, tmp_path: pathlib.Path, yaml_writer: Callable) -> None:
        path = yaml_writer(tmp_path / "Auth" / "List.yaml", ["a", "b"])
        with pytest.raises(SchemaFormatError):
            load_schema(path)

    def test_empty_document(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "Auth" / "Empty.yaml"
        path.parent.mkdir(parents=True)
        path.write_text("", encoding="utf-8")
        assert load_schema(path) == {"objectName": "Empty", "groupName": "Auth"}


class TestAggregateSchemas:
    def test_keys_sorted(self, schema_root: pathlib.Path) -> None:
        merged = aggregate_schemas([schema_root])
        assert list(merged) == ["Post", "Role", "User"]
        assert merged["Post"]["groupName"] == "Blog"

    def test_later_root_overrides(
        self, schema_root: pathlib.Path, tmp_path: pathlib.Path, yaml_writer: Callable
    ) -> None:
        vendor = tmp_path / "vendor" / "schemas"
        yaml_writer(vendor / "Acme" / "User.yaml", {"displayName": "Vendor user"})
        yaml_writer(vendor / "Acme" / "Invoice.yaml", {"displayName": "Invoice"})

        merged = aggregate_schemas([schema_root, vendor])

        assert list(merged) == ["Invoice", "Post", "Role", "User"]
        assert merged["User"]["displayName"] == "Vendor user"
        assert merged["User"]["groupName"] == "Acme"

    def test_missing_root_skipped(
        self, schema_root: pathlib.Path, tmp_path: pathlib.Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="schemasync.schemas"):
            merged = aggregate_schemas([tmp_path / "nowhere", schema_root])
        assert len(merged) == 3
        assert "nowhere" in caplog.text

    def test_no_roots(self) -> None:
        assert aggregate_schemas([]) == {}

    def test_broken_file_aborts(self, schema_root: pathlib.Path) -> None:
        (schema_root / "Auth" / "Bad.yaml").write_text("- [", encoding="utf-8")
        with pytest.raises(SchemaFormatError):
            aggregate_schemas([schema_root])
