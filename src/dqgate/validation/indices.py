"""Identifier lookup indices for referential-integrity rules.

An index maps an identifier field to the record carrying it. Indices are
built once per validation run and never mutated afterwards.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexSpec:
    """Identifier field of a collection to index."""
    collection: str
    field: str

    def __str__(self) -> str:
        return f"{self.collection}.{self.field}"


def build_index(records: Iterable[Mapping[str, Any]], field: str) -> Mapping[Any, Mapping[str, Any]]:
    """Build an identifier -> record map in a single pass.

    Records without the identifier are skipped; presence rules report them.
    A repeated identifier overwrites the earlier entry; duplicate detection
    is done by the key rules.
    """
    index = {}
    for record in records:
        value = record.get(field)
        if value is None or value == "":
            continue
        try:
            index[value] = record
        except TypeError:
            logger.debug(f"Skipping unhashable identifier for {field}: {value!r}")
    return MappingProxyType(index)


class IndexSet:
    """Read-only collection of lookup indices keyed by :class:`IndexSpec`."""

    def __init__(self, indices: Mapping[IndexSpec, Mapping[Any, Mapping[str, Any]]] | None = None):
        self._indices = dict(indices or {})

    @classmethod
    def build(cls, dataset: Mapping[str, Iterable[Mapping[str, Any]]], specs: Iterable[IndexSpec]) -> "IndexSet":
        """Build every requested index from the dataset."""
        indices = {}
        for spec in specs:
            if spec in indices:
                continue
            indices[spec] = build_index(dataset.get(spec.collection, ()), spec.field)
            logger.debug(f"Built index {spec} with {len(indices[spec])} entries")
        return cls(indices)

    def get(self, spec: IndexSpec) -> Mapping[Any, Mapping[str, Any]]:
        """Return the index for ``spec``; an unbuilt index is empty."""
        return self._indices.get(spec, MappingProxyType({}))

    def contains(self, spec: IndexSpec, identifier: Any) -> bool:
        try:
            return identifier in self.get(spec)
        except TypeError:
            return False

    def lookup(self, spec: IndexSpec, identifier: Any) -> Mapping[str, Any] | None:
        try:
            return self.get(spec).get(identifier)
        except TypeError:
            return None

    def __contains__(self, spec: IndexSpec) -> bool:
        return spec in self._indices

    def __len__(self) -> int:
        return len(self._indices)
