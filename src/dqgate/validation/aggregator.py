"""Merge schema-layer and consistency-layer results into one report."""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from .framework import Layer, ValidationResult, Violation

SCHEMA_CATEGORY = "Schema Validation"

SchemaOutcome = ValidationResult | Mapping[str, Any] | None


@dataclass
class ValidationReport:
    """Combined outcome of both validation layers.

    Schema violations come first, followed by consistency violations. No
    de-duplication is done across layers.
    """
    schema_success: bool
    consistency_success: bool
    violations: list[Violation] = field(default_factory=list)
    counters: dict[str, int] = field(default_factory=dict)
    schema_checked: bool = True

    @property
    def success(self) -> bool:
        return self.schema_success and self.consistency_success

    @property
    def exit_code(self) -> int:
        """Exit code for CI: 0 = both layers passed, 1 = otherwise."""
        return 0 if self.success else 1

    def for_layer(self, layer: Layer) -> list[Violation]:
        return [violation for violation in self.violations if violation.layer == layer]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "success": self.success,
            "exit_code": self.exit_code,
            "schema": {
                "checked": self.schema_checked,
                "success": self.schema_success,
                "violations": [v.to_dict() for v in self.for_layer(Layer.SCHEMA)],
            },
            "consistency": {
                "success": self.consistency_success,
                "violations": [v.to_dict() for v in self.for_layer(Layer.CONSISTENCY)],
            },
            "counters": self.counters,
        }


def _schema_violation(error: Any) -> Violation:
    if isinstance(error, Violation):
        return replace(error, layer=Layer.SCHEMA)
    if isinstance(error, Mapping):
        message = error.get("message", "")
        path = error.get("path")
        if path:
            message = f"{path}: {message}"
        return Violation(category=error.get("category") or SCHEMA_CATEGORY, message=message, layer=Layer.SCHEMA)
    return Violation(category=SCHEMA_CATEGORY, message=str(error), layer=Layer.SCHEMA)


def _schema_layer(schema: SchemaOutcome) -> tuple[bool, list[Violation], bool]:
    if schema is None:
        return True, [], False
    if isinstance(schema, ValidationResult):
        return schema.success, [replace(v, layer=Layer.SCHEMA) for v in schema.violations], True
    errors = schema.get("errors") or []
    violations = [_schema_violation(error) for error in errors]
    success = bool(schema.get("success", not violations))
    return success, violations, True


def aggregate(consistency: ValidationResult, schema: SchemaOutcome = None) -> ValidationReport:
    """Combine the engine's result with an optional schema-layer outcome.

    Args:
        consistency: Result returned by the validation engine
        schema: Schema-layer outcome as a ValidationResult, a mapping with
            ``success`` and ``errors`` (strings or ``{category, message}``
            mappings), or None when no schema check ran

    Returns:
        ValidationReport; a failed schema flag fails the report even when
        it carries no messages
    """
    schema_success, schema_violations, schema_checked = _schema_layer(schema)
    consistency_violations = [replace(v, layer=Layer.CONSISTENCY) for v in consistency.violations]

    return ValidationReport(
        schema_success=schema_success,
        consistency_success=consistency.success,
        violations=schema_violations + consistency_violations,
        counters=dict(consistency.counters),
        schema_checked=schema_checked,
    )
