"""JSON Schema validation for dqgate datasets."""

from .validator import SchemaValidator, format_error, load_schema

__all__ = [
    "SchemaValidator",
    "format_error",
    "load_schema",
]
