"""Composite keys and duplicate detection.

A key is the ordered tuple of a record's values for a declared field list.
Keys only exist for the duration of a scan and are never persisted.
"""

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .framework import Dataset, Domain, ValidationRule, Violation, format_message, is_blank
from .indices import IndexSet


@dataclass(frozen=True)
class DuplicateKey:
    """Second or later occurrence of a key."""
    index: int
    key: tuple
    first_index: int


@dataclass(frozen=True)
class MissingKeyField:
    """Record that cannot produce a key."""
    index: int
    field: str


def _hashable(value: Any) -> Any:
    if isinstance(value, Mapping):
        return tuple(sorted((key, _hashable(item)) for key, item in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_hashable(item) for item in value)
    return value


def build_key(record: Mapping[str, Any], fields: Sequence[str]) -> tuple[tuple | None, list[str]]:
    """Build a record's canonical key.

    Returns:
        Tuple of (key or None, names of missing fields)
    """
    missing = [name for name in fields if is_blank(record.get(name))]
    if missing:
        return None, missing
    return tuple(_hashable(record[name]) for name in fields), []


def scan_keys(records: Iterable[Mapping[str, Any]], fields: Sequence[str]) -> Iterator[DuplicateKey | MissingKeyField]:
    """Yield duplicate and missing-field findings in record order.

    Only the first missing field of a record is reported.
    """
    seen: dict[tuple, int] = {}
    for index, record in enumerate(records):
        key, missing = build_key(record, fields)
        if key is None:
            yield MissingKeyField(index, missing[0])
            continue
        if key in seen:
            yield DuplicateKey(index, key, seen[key])
        else:
            seen[key] = index


class DuplicateKeyRule(ValidationRule):
    """Report records sharing a composite key within one collection."""

    def __init__(self, name: str, domain: Domain, category: str, collection: str,
                 fields: Sequence[str], entity: str, message: str):
        """
        Args:
            name: Rule name
            domain: Domain the rule belongs to
            category: Violation category prefix
            collection: Collection to scan
            fields: Ordered key fields
            entity: Human name of the record type, used for missing-field messages
            message: Duplicate message template (record fields and ``{index}``)
        """
        self._name = name
        self.domain = domain
        self.category = category
        self.collection = collection
        self.fields = tuple(fields)
        self.entity = entity
        self.message = message

    @property
    def name(self) -> str:
        return self._name

    def check(self, dataset: Dataset, indices: IndexSet) -> list[Violation]:
        records = dataset.collection(self.collection)
        violations = []
        for finding in scan_keys(records, self.fields):
            if isinstance(finding, MissingKeyField):
                violations.append(self.missing_field(self.entity, finding.field, finding.index))
            else:
                record = records[finding.index]
                violations.append(self.violation(
                    format_message(self.message, record, finding.index, first_index=finding.first_index),
                    finding.index,
                ))
        return violations
