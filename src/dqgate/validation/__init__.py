"""Consistency validation layer for dqgate datasets.

Rule sets check cross-record invariants (uniqueness, referential
integrity, arithmetic identities, ordering and tolerance-bounded sums) over
an immutable dataset. Jurisdiction rules add market-specific checks on top
of the generic rule sets.
"""

from .aggregator import ValidationReport, aggregate
from .engine import ValidationEngine, rule_sets_for, validate
from .framework import Dataset, Domain, Layer, RecordRef, RuleSet, ValidationResult, ValidationRule, Violation
from .jurisdiction import DEFAULT_JURISDICTION_TABLE, JurisdictionRule, JurisdictionRuleTable, Market

__all__ = [
    "DEFAULT_JURISDICTION_TABLE",
    "Dataset",
    "Domain",
    "JurisdictionRule",
    "JurisdictionRuleTable",
    "Layer",
    "Market",
    "RecordRef",
    "RuleSet",
    "ValidationEngine",
    "ValidationReport",
    "ValidationResult",
    "ValidationRule",
    "Violation",
    "aggregate",
    "rule_sets_for",
    "validate",
]
