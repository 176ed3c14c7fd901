"""Reusable field-level rules configured per collection.

Domain modules instantiate these with their own category prefixes and
message templates. Templates are formatted against the record, with
``{index}`` and rule-specific values such as ``{value}`` available.
"""

from collections.abc import Callable, Collection, Iterable, Sequence
from decimal import Decimal
from typing import Any

from ..dates import is_iso_date, parse_timestamp
from ..framework import Domain, Record, RecordRule, Violation, format_message, is_blank, is_number
from ..indices import IndexSet, IndexSpec
from ..tolerance import ToleranceProfile, approx_equal, as_decimal, display


class NamedRecordRule(RecordRule):
    """Hand-written record rule named by its ``rule_name`` class attribute."""
    rule_name = ""

    @property
    def name(self) -> str:
        return self.rule_name


class ConfiguredRule(RecordRule):
    """Record rule whose identity is supplied at construction."""

    def __init__(self, name: str, *, domain: Domain, category: str, collection: str,
                 entity: str, message: str):
        self._name = name
        self.domain = domain
        self.category = category
        self.collection = collection
        self.entity = entity
        self.message = message

    @property
    def name(self) -> str:
        return self._name

    def render(self, record: Record, index: int, path: str | None = None, **extra: Any) -> Violation:
        return self.violation(format_message(self.message, record, index, **extra), index, path)

    def non_numeric(self, field_name: str, value: Any, index: int) -> Violation:
        return self.violation(
            f"{self.entity} at index {index} has non-numeric {field_name} value ({value!r})",
            index,
            f"/{field_name}",
        )


def numeric_value(record: Record, field_name: str, default_zero: bool = False) -> Any:
    """Field value, with absent/None read as 0 when ``default_zero``."""
    value = record.get(field_name)
    if value is None and default_zero:
        return 0
    return value


class RequiredFieldRule(ConfiguredRule):
    """A field must be present and non-empty.

    With ``allow_absent`` only an explicitly empty string is reported.
    """

    def __init__(self, name: str, *, field: str, allow_absent: bool = False, **kwargs):
        super().__init__(name, **kwargs)
        self.field = field
        self.allow_absent = allow_absent

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        value = record.get(self.field)
        if self.allow_absent:
            if self.field in record and value == "":
                yield self.render(record, index, f"/{self.field}")
        elif is_blank(value):
            yield self.render(record, index, f"/{self.field}")


class PositiveValueRule(ConfiguredRule):
    """A numeric field must be strictly positive."""

    def __init__(self, name: str, *, field: str, required: bool = True, **kwargs):
        super().__init__(name, **kwargs)
        self.field = field
        self.required = required

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        value = record.get(self.field)
        if value is None:
            if self.required:
                yield self.missing_field(self.entity, self.field, index)
            return
        if not is_number(value):
            yield self.non_numeric(self.field, value, index)
        elif value <= 0:
            yield self.render(record, index, f"/{self.field}", value=display(value))


class NotGreaterThanRule(ConfiguredRule):
    """``lesser`` must not exceed ``greater``.

    Non-numeric operands are left to other rules. With ``default_zero`` an
    absent operand counts as 0.
    """

    def __init__(self, name: str, *, lesser: str, greater: str, default_zero: bool = False, **kwargs):
        super().__init__(name, **kwargs)
        self.lesser = lesser
        self.greater = greater
        self.default_zero = default_zero

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        low = numeric_value(record, self.lesser, self.default_zero)
        high = numeric_value(record, self.greater, self.default_zero)
        if not (is_number(low) and is_number(high)):
            return
        if as_decimal(low) > as_decimal(high):
            yield self.render(record, index, lesser=display(low), greater=display(high))


class AllowedValuesRule(ConfiguredRule):
    """A field is restricted to a closed set of values."""

    def __init__(self, name: str, *, field: str, allowed: Collection[str], required: bool = False,
                 normalize: Callable[[Any], Any] | None = None, **kwargs):
        super().__init__(name, **kwargs)
        self.field = field
        self.allowed = frozenset(allowed)
        self.required = required
        self.normalize = normalize

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        value = record.get(self.field)
        if is_blank(value):
            if self.required:
                yield self.render(record, index, f"/{self.field}", value=value)
            return
        candidate = self.normalize(value) if self.normalize else value
        try:
            allowed = candidate in self.allowed
        except TypeError:
            allowed = False
        if not allowed:
            yield self.render(record, index, f"/{self.field}", value=value,
                              allowed=", ".join(sorted(self.allowed)))


class ReferenceRule(ConfiguredRule):
    """A foreign-key field must resolve through a lookup index.

    With ``many`` the field holds a list of identifiers. With
    ``only_if_target_present`` nothing is checked when the target
    collection is absent from the dataset.
    """

    def __init__(self, name: str, *, field: str, target: IndexSpec, many: bool = False,
                 only_if_target_present: bool = False, **kwargs):
        super().__init__(name, **kwargs)
        self.field = field
        self.target = target
        self.many = many
        self.only_if_target_present = only_if_target_present
        self.requires = (target,)

    def check(self, dataset, indices):
        if self.only_if_target_present and self.target.collection not in dataset:
            return []
        return super().check(dataset, indices)

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        value = record.get(self.field)
        if is_blank(value):
            return
        if self.many:
            if not isinstance(value, (list, tuple)):
                return
            identifiers: Sequence[Any] = value
        else:
            identifiers = (value,)
        for identifier in identifiers:
            if not indices.contains(self.target, identifier):
                yield self.render(record, index, f"/{self.field}", value=identifier)


class SelfReferenceRule(ConfiguredRule):
    """A hierarchy link must not point back at the record's own identifier."""

    def __init__(self, name: str, *, field: str, own_field: str, **kwargs):
        super().__init__(name, **kwargs)
        self.field = field
        self.own_field = own_field

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        value = record.get(self.field)
        if not is_blank(value) and value == record.get(self.own_field):
            yield self.render(record, index, f"/{self.field}", value=value)


class DerivedValueRule(ConfiguredRule):
    """A derived field must equal its formula within tolerance.

    The formula receives the operand values as decimals. The check is
    skipped when any operand or the derived field is not numeric, unless
    ``default_zero`` reads absent values as 0.
    """

    def __init__(self, name: str, *, field: str, operands: Sequence[str],
                 formula: Callable[..., Decimal], default_zero: bool = False,
                 profile: ToleranceProfile = ToleranceProfile.DERIVED_QUANTITY, **kwargs):
        super().__init__(name, **kwargs)
        self.field = field
        self.operands = tuple(operands)
        self.formula = formula
        self.default_zero = default_zero
        self.profile = profile

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        actual = numeric_value(record, self.field, self.default_zero)
        values = [numeric_value(record, operand, self.default_zero) for operand in self.operands]
        if not is_number(actual) or not all(is_number(value) for value in values):
            return
        expected = self.formula(*(as_decimal(value) for value in values))
        if not approx_equal(actual, expected, self.profile):
            yield self.render(record, index, f"/{self.field}",
                              actual=display(actual), expected=display(expected))


class DateFormatRule(ConfiguredRule):
    """A present date field must parse.

    ``iso_date`` requires the strict YYYY-MM-DD form; otherwise any ISO
    8601 date or timestamp is accepted.
    """

    def __init__(self, name: str, *, field: str, iso_date: bool = False, required: bool = False, **kwargs):
        super().__init__(name, **kwargs)
        self.field = field
        self.iso_date = iso_date
        self.required = required

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        value = record.get(self.field)
        if is_blank(value):
            if self.required:
                yield self.render(record, index, f"/{self.field}", value=value)
            return
        valid = is_iso_date(value) if self.iso_date else parse_timestamp(value) is not None
        if not valid:
            yield self.render(record, index, f"/{self.field}", value=value)


class DateOrderRule(ConfiguredRule):
    """``start`` must precede ``end`` (or not follow it when not strict)."""

    def __init__(self, name: str, *, start: str, end: str, strict: bool = True, **kwargs):
        super().__init__(name, **kwargs)
        self.start = start
        self.end = end
        self.strict = strict

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        start = parse_timestamp(record.get(self.start))
        end = parse_timestamp(record.get(self.end))
        if start is None or end is None:
            return
        if end < start or (self.strict and end == start):
            yield self.render(record, index)
