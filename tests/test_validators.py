"""
tests/test_validators.py
Unit tests for schemasync.validators.

Tests cover:
- ValidationResult bookkeeping and reporting
- Manifest entry checks (duplicates, invalid and legacy entries)
- Schema identity checks
- Document field checks
"""

from __future__ import annotations

import pathlib
from typing import Any, Dict, List

import pytest

from schemasync.manifest import normalize_entry, normalize_manifest
from schemasync.models import DocumentField, FieldActionType, FieldKind
from schemasync.schemas import aggregate_schemas
from schemasync.validators import (
    ValidationResult,
    validate_document_fields,
    validate_manifest_entries,
    validate_schemas,
)


# ---------------------------------------------------------------------------
# ValidationResult
# ---------------------------------------------------------------------------


class TestValidationResult:
    def test_empty_is_valid(self) -> None:
        result = ValidationResult()
        assert result.is_valid
        assert bool(result)
        assert len(result) == 0

    def test_warnings_keep_it_valid(self) -> None:
        result = ValidationResult()
        result.add_warning("W", "careful")
        result.add_info("I", "fyi")
        assert result.is_valid
        assert [i.code for i in result.warnings] == ["W"]

    def test_error_invalidates(self) -> None:
        result = ValidationResult()
        result.add_error("E", "broken", {"x": 1})
        assert not result
        assert result.errors[0].context == {"x": 1}
        assert result.errors[0].to_dict()["level"] == "error"

    def test_merge(self) -> None:
        first, second = ValidationResult(), ValidationResult()
        first.add_info("A", "a")
        second.add_error("B", "b")
        first.merge(second)
        assert first.codes() == ["A", "B"]

    def test_format_report_hides_info_by_default(self) -> None:
        result = ValidationResult()
        result.add_error("E", "broken")
        result.add_info("I", "fyi")
        report = result.format_report()
        assert report.splitlines()[0] == "Validation: 1 error(s), 0 warning(s), 2 total item(s)."
        assert "[E] broken" in report
        assert "[I]" not in report
        assert "[I] fyi" in result.format_report(include_info=True)


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


class TestValidateManifestEntries:
    def test_clean_manifest(self, sample_manifest: Dict[str, List[Dict[str, Any]]]) -> None:
        result = validate_manifest_entries(normalize_manifest(sample_manifest))
        assert result.is_valid
        assert result.codes() == []

    def test_duplicate_destination(self) -> None:
        entries = normalize_manifest(
            {
                "models": [{"path": "a/User.php", "destination": "app/User.php", "replace": True}],
                "legacy": [{"path": "b/User.php", "destination": "./app/User.php", "replace": False}],
            }
        )
        result = validate_manifest_entries(entries)
        assert not result.is_valid
        assert result.codes() == ["DUPLICATE_DESTINATION"]
        assert "app/User.php" in result.errors[0].message

    def test_dotfiles_are_distinct(self) -> None:
        entries = [
            normalize_entry({"path": ".env", "replace": False}),
            normalize_entry({"path": "env", "replace": False}),
        ]
        assert validate_manifest_entries(entries).is_valid

    def test_invalid_entry_is_warning(self) -> None:
        entries = [normalize_entry({"path": "a.txt"}), normalize_entry({"path": "b.txt", "replace": True})]
        result = validate_manifest_entries(entries)
        assert result.is_valid
        assert result.codes().count("INVALID_ENTRY") == 1
        assert "missing replace flag" in result.warnings[0].message

    def test_legacy_entry_is_info(self) -> None:
        result = validate_manifest_entries([normalize_entry({"path": "a.txt", "replace": True})])
        assert result.codes() == ["LEGACY_ENTRY"]
        assert result.warnings == []

    def test_empty_manifest(self) -> None:
        result = validate_manifest_entries([])
        assert result.codes() == ["EMPTY_MANIFEST"]
        assert result.is_valid


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class TestValidateSchemas:
    def test_aggregated_schemas_are_valid(self, schema_root: pathlib.Path) -> None:
        result = validate_schemas(aggregate_schemas([schema_root]))
        assert result.is_valid
        assert result.codes() == []

    def test_missing_names(self) -> None:
        result = validate_schemas({"User": {"attributes": {}}})
        assert result.codes() == ["MISSING_OBJECT_NAME", "MISSING_GROUP_NAME"]

    def test_name_mismatch(self) -> None:
        result = validate_schemas({"User": {"objectName": "Member", "groupName": "Auth"}})
        assert result.codes() == ["OBJECT_NAME_MISMATCH"]

    def test_name_not_identifier(self) -> None:
        result = validate_schemas({"user-profile": {"objectName": "user-profile", "groupName": "Auth"}})
        assert result.codes() == ["OBJECT_NAME_NOT_IDENTIFIER"]
        assert result.is_valid

    @pytest.mark.parametrize("section", ["attributes", "options"])
    def test_section_must_be_mapping(self, section: str) -> None:
        schema = {"objectName": "User", "groupName": "Auth", section: ["email"]}
        result = validate_schemas({"User": schema})
        assert result.codes() == ["SECTION_NOT_MAPPING"]

    def test_no_schemas(self) -> None:
        assert validate_schemas({}).codes() == ["NO_SCHEMAS"]


# ---------------------------------------------------------------------------
# Document fields
# ---------------------------------------------------------------------------


class TestValidateDocumentFields:
    def test_valid_fields(self) -> None:
        fields = [
            DocumentField(name="city", combination_variable="$customer.city", combination_formula="UPPER($record)"),
            DocumentField(name="logo", kind=FieldKind.IMAGE, action_type=FieldActionType.REPLACE),
        ]
        assert validate_document_fields(fields).codes() == []

    def test_duplicate_per_kind(self) -> None:
        fields = [
            DocumentField(name="logo"),
            DocumentField(name="logo"),
            DocumentField(name="logo", kind=FieldKind.IMAGE, action_type=FieldActionType.VISIBILITY),
        ]
        assert validate_document_fields(fields).codes() == ["DUPLICATE_FIELD"]

    def test_unsupported_function(self) -> None:
        result = validate_document_fields([DocumentField(name="x", combination_formula="SHOUT($record)")])
        assert result.codes() == ["UNSUPPORTED_FUNCTION"]
        assert "SHOUT" in result.errors[0].message

    def test_literal_formula(self) -> None:
        result = validate_document_fields([DocumentField(name="x", combination_formula="N/A")])
        assert result.codes() == ["FORMULA_NOT_A_CALL"]
        assert result.is_valid

    def test_image_without_action(self) -> None:
        result = validate_document_fields([DocumentField(name="logo", kind=FieldKind.IMAGE)])
        assert result.codes() == ["IMAGE_WITHOUT_ACTION"]
