"""Unit tests for the JSON schema layer."""

import json

import pytest

from dqgate.errors import DatasetLoadError
from dqgate.schemas import SchemaValidator, load_schema
from dqgate.validation.framework import Layer

PRICE_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "prices": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["securityId", "priceType"],
                "properties": {
                    "securityId": {"type": "string"},
                    "priceType": {"enum": ["LAST", "CLOSE", "QUOTE"]},
                    "price": {"type": "number"},
                },
            },
        },
    },
    "required": ["prices"],
}


@pytest.fixture
def validator():
    return SchemaValidator(PRICE_SCHEMA)


class TestSchemaValidator:
    """Test schema validation results."""

    def test_valid_document(self, validator):
        result = validator.validate({"prices": [{"securityId": "S1", "priceType": "LAST", "price": 1.5}]})

        assert result.success
        assert result.counters == {"schema_errors": 0}

    def test_missing_required_property(self, validator):
        result = validator.validate({"prices": [{"priceType": "LAST"}]})

        assert [v.message for v in result.violations] == [
            "$.prices[0]: Missing required property: securityId"
        ]
        assert result.violations[0].layer == Layer.SCHEMA
        assert result.violations[0].category == "Schema Validation"

    def test_enum_violation(self, validator):
        result = validator.validate({"prices": [{"securityId": "S1", "priceType": "MID"}]})
        assert [v.message for v in result.violations] == [
            "$.prices[0].priceType: Value must be one of: LAST, CLOSE, QUOTE"
        ]

    def test_root_errors_use_dollar(self, validator):
        result = validator.validate({})
        assert [v.message for v in result.violations] == ["$: Missing required property: prices"]

    def test_errors_ordered_by_numeric_index(self, validator):
        prices = [{"securityId": f"S{i}", "priceType": "LAST"} for i in range(11)]
        del prices[10]["securityId"]
        del prices[2]["securityId"]

        result = validator.validate({"prices": prices})

        assert [v.message for v in result.violations] == [
            "$.prices[2]: Missing required property: securityId",
            "$.prices[10]: Missing required property: securityId",
        ]

    def test_errors_counted(self, validator):
        result = validator.validate({"prices": [{"price": "x"}, {"securityId": 1, "priceType": "LAST"}]})
        assert result.counters["schema_errors"] == len(result.violations) == 4


class TestLoadSchema:
    """Test schema file loading."""

    def test_from_file(self, tmp_path):
        schema_file = tmp_path / "schema.json"
        schema_file.write_text(json.dumps(PRICE_SCHEMA), encoding="utf-8")

        assert SchemaValidator.from_file(schema_file).schema == PRICE_SCHEMA

    def test_missing_schema(self, tmp_path):
        with pytest.raises(DatasetLoadError, match="Schema file not found"):
            load_schema(tmp_path / "missing.json")

    def test_invalid_schema(self, tmp_path):
        schema_file = tmp_path / "schema.json"
        schema_file.write_text(json.dumps({"type": 12}), encoding="utf-8")

        with pytest.raises(DatasetLoadError, match="Invalid JSON schema"):
            load_schema(schema_file)
