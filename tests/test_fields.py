"""
tests/test_fields.py
Unit tests for schemasync.fields.
"""

from __future__ import annotations

from typing import Any, Dict

import pytest

from schemasync.exceptions import UnsupportedFunctionError
from schemasync.fields import (
    FieldValue,
    build_datasource,
    fill_placeholders,
    resolve_field,
    resolve_field_values,
)
from schemasync.models import Candidate, DocumentField, FieldActionType, FieldKind


@pytest.fixture()
def datasource() -> Dict[str, Any]:
    customer = Candidate(
        id=3,
        title="ACME",
        type="Customer",
        data={
            "address": {"city": "Osaka", "zip": "530-0001"},
            "founded": "1990-04-15",
            "price": 12.345,
            "tags": ["b2b", "vip"],
        },
    )
    product = Candidate(id=8, title="Widget", type="Product")
    return build_datasource({"customer": customer, "product": product})


class TestBuildDatasource:
    def test_includes_id_and_title(self, datasource: Dict[str, Any]) -> None:
        assert datasource["product"] == {"id": 8, "title": "Widget"}
        assert datasource["customer"]["id"] == 3
        assert datasource["customer"]["address"]["city"] == "Osaka"

    def test_data_wins_over_defaults(self) -> None:
        candidate = Candidate(id=1, title="Short", data={"title": "Long title"})
        assert build_datasource({"c": candidate})["c"]["title"] == "Long title"


class TestResolveField:
    def test_marked_path(self, datasource: Dict[str, Any]) -> None:
        field = DocumentField(name="city", combination_variable="$customer.address.city")
        assert resolve_field(field, datasource).value == "Osaka"

    def test_unmarked_path(self, datasource: Dict[str, Any]) -> None:
        field = DocumentField(name="city", combination_variable="customer.address.city")
        assert resolve_field(field, datasource).value == "Osaka"

    def test_sequence_index(self, datasource: Dict[str, Any]) -> None:
        field = DocumentField(name="tag", combination_variable="$customer.tags.1")
        assert resolve_field(field, datasource).value == "vip"

    def test_missing_path_is_none(self, datasource: Dict[str, Any]) -> None:
        field = DocumentField(name="x", combination_variable="$customer.address.street")
        assert resolve_field(field, datasource).value is None

    def test_formula_on_record(self, datasource: Dict[str, Any]) -> None:
        field = DocumentField(
            name="city",
            combination_variable="$customer.address.city",
            combination_formula="UPPER($record)",
        )
        assert resolve_field(field, datasource).value == "OSAKA"

    def test_formula_with_datasource_reference(self, datasource: Dict[str, Any]) -> None:
        field = DocumentField(
            name="label",
            combination_variable="$product.title",
            combination_formula="CONCAT($customer.title, '/', $record)",
        )
        assert resolve_field(field, datasource).value == "ACME/Widget"

    def test_formula_without_variable(self, datasource: Dict[str, Any]) -> None:
        field = DocumentField(name="year", combination_formula="YEAR($customer.founded)")
        assert resolve_field(field, datasource).value == 1990

    def test_numeric_formula(self, datasource: Dict[str, Any]) -> None:
        field = DocumentField(
            name="price",
            combination_variable="$customer.price",
            combination_formula="ROUND($record, 1)",
        )
        assert resolve_field(field, datasource).value == pytest.approx(12.3)

    def test_plain_text_formula(self, datasource: Dict[str, Any]) -> None:
        field = DocumentField(name="note", combination_formula="Thank you")
        assert resolve_field(field, datasource).value == "Thank you"

    def test_unknown_function_propagates(self, datasource: Dict[str, Any]) -> None:
        field = DocumentField(name="x", combination_formula="SHOUT($record)")
        with pytest.raises(UnsupportedFunctionError):
            resolve_field(field, datasource)

    def test_carries_placement(self, datasource: Dict[str, Any]) -> None:
        field = DocumentField(
            name="logo",
            kind=FieldKind.IMAGE,
            coordinate="B3",
            combination_variable="$product.title",
            action_type=FieldActionType.REPLACE,
        )
        resolved = resolve_field(field, datasource)
        assert resolved == FieldValue(
            name="logo",
            value="Widget",
            kind=FieldKind.IMAGE,
            coordinate="B3",
            action_type=FieldActionType.REPLACE,
        )


class TestResolveFieldValues:
    def test_grouped_by_kind(self, datasource: Dict[str, Any]) -> None:
        fields = [
            DocumentField(name="city", combination_variable="$customer.address.city"),
            DocumentField(name="product", combination_variable="$product.title"),
            DocumentField(
                name="stamp",
                kind=FieldKind.IMAGE,
                combination_variable="$customer.id",
                action_type=FieldActionType.VISIBILITY,
            ),
        ]
        grouped = resolve_field_values(fields, datasource)
        assert set(grouped[FieldKind.TEXT]) == {"city", "product"}
        assert grouped[FieldKind.IMAGE]["stamp"].value == 3

    def test_both_kinds_always_present(self, datasource: Dict[str, Any]) -> None:
        grouped = resolve_field_values([], datasource)
        assert grouped == {FieldKind.TEXT: {}, FieldKind.IMAGE: {}}


class TestFillPlaceholders:
    def test_substitutes_values(self, datasource: Dict[str, Any]) -> None:
        grouped = resolve_field_values(
            [
                DocumentField(name="city", combination_variable="$customer.address.city"),
                DocumentField(name="id", combination_variable="$customer.id"),
            ],
            datasource,
        )
        text = fill_placeholders("Ship {{ city }} #{{id}}", grouped[FieldKind.TEXT])
        assert text == "Ship Osaka #3"

    def test_unknown_and_empty(self) -> None:
        values = {"blank": FieldValue(name="blank", value=None, kind=FieldKind.TEXT)}
        assert fill_placeholders("[{{blank}}][{{missing}}]", values) == "[][]"

    def test_integral_float_rendered_as_integer(self) -> None:
        values = {"n": FieldValue(name="n", value=4.0, kind=FieldKind.TEXT)}
        assert fill_placeholders("{{n}} pcs", values) == "4 pcs"
