"""Dataset validation against JSON schemas.

This is the schema layer: it checks structure only and is never required
by the consistency engine. Its output is an ordinary ValidationResult
whose violations are tagged with the schema layer, so it merges with the
engine's result through the aggregator.
"""

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import jsonschema
from jsonschema import Draft202012Validator, FormatChecker

from ..errors import DatasetLoadError
from ..validation.framework import Layer, ValidationResult, Violation

logger = logging.getLogger(__name__)

SCHEMA_CATEGORY = "Schema Validation"


def load_schema(schema_path: str | Path) -> dict[str, Any]:
    """Load a JSON schema document.

    Raises:
        DatasetLoadError: If the file is missing, not JSON or not a valid schema
    """
    schema_path = Path(schema_path)
    try:
        with open(schema_path, encoding="utf-8") as f:
            schema = json.load(f)
    except FileNotFoundError as e:
        raise DatasetLoadError(f"Schema file not found: {schema_path}") from e
    except json.JSONDecodeError as e:
        raise DatasetLoadError(f"Invalid JSON in schema file {schema_path}: {e}") from e

    try:
        Draft202012Validator.check_schema(schema)
    except jsonschema.SchemaError as e:
        raise DatasetLoadError(f"Invalid JSON schema {schema_path}: {e.message}") from e
    return schema


def format_error(error: jsonschema.ValidationError) -> str:
    """Render a jsonschema error as ``<path>: <message>``."""
    path = error.json_path if error.path else "$"
    if error.validator == "required":
        missing = [name for name in error.validator_value
                   if isinstance(error.instance, Mapping) and name not in error.instance]
        # jsonschema raises one error per missing property
        missing = [name for name in missing if error.message.startswith(repr(name))] or missing
        message = f"Missing required property: {', '.join(missing)}" if missing else error.message
    elif error.validator == "enum":
        message = f"Value must be one of: {', '.join(str(value) for value in error.validator_value)}"
    else:
        message = error.message
    return f"{path}: {message}"


def _path_key(error: jsonschema.ValidationError) -> list[tuple[bool, Any]]:
    # array indices sort numerically, property names alphabetically
    return [(isinstance(part, str), part) for part in error.path]


class SchemaValidator:
    """Validates decoded datasets against a JSON schema (Draft 2020-12)."""

    def __init__(self, schema: Mapping[str, Any]):
        self.schema = schema
        self._validator = Draft202012Validator(schema, format_checker=FormatChecker())

    @classmethod
    def from_file(cls, schema_path: str | Path) -> "SchemaValidator":
        return cls(load_schema(schema_path))

    def validate(self, data: Any) -> ValidationResult:
        """Validate data and return a schema-layer result.

        Errors are ordered by their location in the document.
        """
        result = ValidationResult()
        errors = sorted(self._validator.iter_errors(data), key=_path_key)
        for error in errors:
            result.add(Violation(
                category=SCHEMA_CATEGORY,
                message=format_error(error),
                rule=str(error.validator),
                layer=Layer.SCHEMA,
            ))
        result.increment_counter("schema_errors", len(errors))
        logger.info(f"Schema validation found {len(errors)} errors")
        return result
