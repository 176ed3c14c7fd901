"""Core consistency validation framework for dqgate datasets.

Rules are pure functions over an immutable dataset and a set of prebuilt
lookup indices. Each rule returns the violations it found; nothing is ever
raised for a consistency failure.
"""

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

from ..errors import DatasetError
from .indices import IndexSet, IndexSpec

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]


class Domain(str, Enum):
    """Dataset families validated by dqgate."""
    MARKET = "market"
    POSITION = "position"
    CALCULATION = "calculation"
    REFERENCE = "reference"
    INVENTORY = "inventory"


class Layer(str, Enum):
    """Validation layer a violation originates from."""
    SCHEMA = "schema"
    CONSISTENCY = "consistency"


@dataclass(frozen=True)
class RecordRef:
    """Pointer to the offending record inside a dataset."""
    collection: str
    index: int
    path: str | None = None

    def __str__(self) -> str:
        return f"/{self.collection}[{self.index}]{self.path or ''}"


@dataclass(frozen=True)
class Violation:
    """A single consistency (or schema) violation."""
    category: str
    message: str
    rule: str = ""
    domain: Domain | None = None
    record: RecordRef | None = None
    layer: Layer = Layer.CONSISTENCY

    def __str__(self) -> str:
        return f"{self.category}: {self.message}"

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "message": self.message,
            "rule": self.rule,
            "domain": self.domain.value if self.domain else None,
            "layer": self.layer.value,
            "record": str(self.record) if self.record else None,
        }


@dataclass
class ValidationResult:
    """Ordered violations produced by one or more rule sets."""
    violations: list[Violation] = field(default_factory=list)
    counters: dict[str, int] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.violations

    @property
    def exit_code(self) -> int:
        """Exit code for CI: 0 = no violations, 1 = violations."""
        return 0 if self.success else 1

    def add(self, violation: Violation) -> None:
        self.violations.append(violation)

    def extend(self, violations: Iterable[Violation]) -> None:
        self.violations.extend(violations)

    def increment_counter(self, name: str, value: int = 1) -> None:
        """Increment a counter."""
        self.counters[name] = self.counters.get(name, 0) + value

    def merge(self, *others: "ValidationResult") -> "ValidationResult":
        """Concatenate results in order, summing counters.

        No de-duplication is performed across results.
        """
        merged = ValidationResult(list(self.violations), dict(self.counters))
        for other in others:
            merged.violations.extend(other.violations)
            for name, value in other.counters.items():
                merged.increment_counter(name, value)
        return merged

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "success": self.success,
            "exit_code": self.exit_code,
            "counters": self.counters,
            "violations": [violation.to_dict() for violation in self.violations],
        }


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


class Dataset(Mapping):
    """Immutable mapping of collection name to an ordered tuple of records."""

    def __init__(self, collections: Mapping[str, Iterable[Record]] | None = None,
                 metadata: Mapping[str, Any] | None = None):
        self._collections = {
            name: tuple(_freeze(record) for record in records)
            for name, records in (collections or {}).items()
        }
        self.metadata = _freeze(dict(metadata or {}))

    @classmethod
    def from_dict(cls, data: Any) -> "Dataset":
        """Build a dataset from decoded JSON.

        Args:
            data: Top-level JSON object. Lists and other non-string sequences
                become collections, any other value is kept as metadata.

        Raises:
            DatasetError: If the document or a collection element is not an object
        """
        if isinstance(data, Dataset):
            return data
        if not isinstance(data, Mapping):
            raise DatasetError(f"Dataset must be a JSON object, got {type(data).__name__}")

        collections = {}
        metadata = {}
        for name, value in data.items():
            if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
                for i, record in enumerate(value):
                    if not isinstance(record, Mapping):
                        raise DatasetError(
                            f"Collection '{name}' element {i} must be an object, got {type(record).__name__}"
                        )
                collections[name] = value
            else:
                metadata[name] = value

        return cls(collections, metadata)

    def collection(self, name: str) -> tuple[Record, ...]:
        """Records of a collection; absent collections are empty."""
        return self._collections.get(name, ())

    def record_count(self) -> int:
        return sum(len(records) for records in self._collections.values())

    def __getitem__(self, name: str) -> tuple[Record, ...]:
        return self._collections[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._collections)

    def __len__(self) -> int:
        return len(self._collections)

    def __repr__(self) -> str:
        sizes = ", ".join(f"{name}={len(records)}" for name, records in self._collections.items())
        return f"Dataset({sizes})"


class _TemplateFields(dict):
    def __missing__(self, key: str) -> str:
        return "None"


def format_message(template: str, record: Record, index: int | None = None, **extra: Any) -> str:
    """Render a message template against a record.

    ``{index}`` is the record position, any other name resolves to a record
    field or to a keyword in ``extra``. Absent fields render as ``None``.
    """
    fields = _TemplateFields(record)
    fields["index"] = index
    fields.update(extra)
    return template.format_map(fields)


def is_number(value: Any) -> bool:
    """True for finite ints, floats and decimals but not booleans."""
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return False
    if isinstance(value, Decimal):
        return value.is_finite()
    return math.isfinite(value)


def is_blank(value: Any) -> bool:
    return value is None or value == ""


class ValidationRule(ABC):
    """Base class for consistency rules."""

    category: str = ""
    collection: str = ""
    domain: Domain | None = None
    requires: tuple[IndexSpec, ...] = ()

    @property
    @abstractmethod
    def name(self) -> str:
        """Rule name for identification."""
        pass

    @abstractmethod
    def check(self, dataset: Dataset, indices: IndexSet) -> list[Violation]:
        """Evaluate the rule.

        Args:
            dataset: Dataset under validation
            indices: Lookup indices built for every rule's ``requires``

        Returns:
            Violations found, in record order
        """
        pass

    def violation(self, message: str, index: int | None = None, path: str | None = None) -> Violation:
        """Create a violation attributed to this rule."""
        record = RecordRef(self.collection, index, path) if index is not None else None
        return Violation(
            category=self.category,
            message=message,
            rule=self.name,
            domain=self.domain,
            record=record,
        )

    def missing_field(self, entity: str, field_name: str, index: int) -> Violation:
        """Violation for a record lacking a field the rule needs."""
        return self.violation(f"{entity} at index {index} is missing {field_name}", index, f"/{field_name}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"


class RecordRule(ValidationRule):
    """Rule evaluated independently for every record of one collection."""

    def check(self, dataset: Dataset, indices: IndexSet) -> list[Violation]:
        violations = []
        for index, record in enumerate(dataset.collection(self.collection)):
            violations.extend(self.check_record(record, index, indices))
        return violations

    @abstractmethod
    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        pass


@dataclass
class RuleSet:
    """Named, ordered rules scoped to one domain."""
    name: str
    domain: Domain
    rules: list[ValidationRule] = field(default_factory=list)

    def add_rule(self, rule: ValidationRule) -> None:
        """Add a validation rule."""
        self.rules.append(rule)

    def required_indices(self) -> set[IndexSpec]:
        specs = set()
        for rule in self.rules:
            specs.update(rule.requires)
        return specs

    def __len__(self) -> int:
        return len(self.rules)
