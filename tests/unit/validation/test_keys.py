"""Tests for composite keys, lookup indices and date parsing."""

from datetime import UTC, datetime, timedelta, timezone
from itertools import permutations

import pytest

from dqgate.validation.dates import is_iso_date, parse_timestamp
from dqgate.validation.framework import Dataset, Domain
from dqgate.validation.indices import IndexSet, IndexSpec, build_index
from dqgate.validation.keys import DuplicateKey, DuplicateKeyRule, MissingKeyField, build_key, scan_keys


def make_rule(fields=("securityId", "eventTime")):
    return DuplicateKeyRule(
        "price_duplicate_key",
        domain=Domain.MARKET,
        category="Price Consistency",
        collection="prices",
        fields=fields,
        entity="Price entry",
        message="Duplicate price entry at index {index} for security {securityId}",
    )


class TestBuildKey:
    """Test key construction."""

    def test_key_is_ordered_tuple(self):
        key, missing = build_key({"b": 2, "a": 1}, ("a", "b"))
        assert key == (1, 2)
        assert missing == []

    def test_missing_fields_reported(self):
        key, missing = build_key({"a": 1, "b": ""}, ("a", "b", "c"))
        assert key is None
        assert missing == ["b", "c"]

    def test_nested_values_are_hashable(self):
        key, _ = build_key({"a": {"x": [1, 2]}}, ("a",))
        assert hash(key) is not None


class TestScanKeys:
    """Test duplicate scanning."""

    def test_no_duplicates(self):
        records = [{"id": 1}, {"id": 2}]
        assert list(scan_keys(records, ("id",))) == []

    def test_second_occurrence_reported(self):
        records = [{"id": 1}, {"id": 2}, {"id": 1}, {"id": 1}]
        findings = list(scan_keys(records, ("id",)))
        assert findings == [DuplicateKey(2, (1,), 0), DuplicateKey(3, (1,), 0)]

    def test_missing_field_reported_once_per_record(self):
        findings = list(scan_keys([{}], ("a", "b")))
        assert findings == [MissingKeyField(0, "a")]


class TestDuplicateKeyRule:
    """Test duplicate key rule output."""

    def test_duplicate_pair_yields_one_violation(self):
        dataset = Dataset.from_dict({"prices": [
            {"securityId": "S1", "eventTime": "2024-01-01T00:00:00Z"},
            {"securityId": "S1", "eventTime": "2024-01-01T00:00:00Z"},
        ]})

        violations = make_rule().check(dataset, IndexSet())

        assert len(violations) == 1
        assert violations[0].message == "Duplicate price entry at index 1 for security S1"
        assert violations[0].category == "Price Consistency"

    @pytest.mark.parametrize("order", list(permutations(range(4))))
    def test_one_violation_in_any_record_order(self, order):
        records = [
            {"securityId": "S1", "eventTime": "2024-01-01T00:00:00Z"},
            {"securityId": "S2", "eventTime": "2024-01-01T00:00:00Z"},
            {"securityId": "S1", "eventTime": "2024-01-01T00:00:00Z"},
            {"securityId": "S1", "eventTime": "2024-01-02T00:00:00Z"},
        ]
        dataset = Dataset.from_dict({"prices": [records[i] for i in order]})

        violations = make_rule().check(dataset, IndexSet())

        assert len(violations) == 1
        assert violations[0].message.endswith("for security S1")

    def test_different_key_values_are_distinct(self):
        dataset = Dataset.from_dict({"prices": [
            {"securityId": "S1", "eventTime": "2024-01-01T00:00:00Z"},
            {"securityId": "S1", "eventTime": "2024-01-02T00:00:00Z"},
        ]})
        assert make_rule().check(dataset, IndexSet()) == []

    def test_missing_key_field(self):
        dataset = Dataset.from_dict({"prices": [{"securityId": "S1"}]})

        violations = make_rule().check(dataset, IndexSet())

        assert [v.message for v in violations] == ["Price entry at index 0 is missing eventTime"]


class TestIndices:
    """Test lookup index construction."""

    def test_build_index_skips_missing_and_last_wins(self):
        records = [{"id": "a", "n": 1}, {"n": 2}, {"id": "a", "n": 3}, {"id": "", "n": 4}]
        index = build_index(records, "id")
        assert list(index) == ["a"]
        assert index["a"]["n"] == 3

    def test_index_set_lookup(self):
        spec = IndexSpec("positions", "positionId")
        dataset = Dataset.from_dict({"positions": [{"positionId": "P-1"}]})

        indices = IndexSet.build(dataset, [spec, spec])

        assert len(indices) == 1
        assert indices.contains(spec, "P-1")
        assert not indices.contains(spec, "P-2")
        assert indices.lookup(spec, "P-1") == {"positionId": "P-1"}
        assert indices.lookup(spec, ["unhashable"]) is None

    def test_unbuilt_index_is_empty(self):
        spec = IndexSpec("positions", "positionId")
        assert spec not in IndexSet()
        assert IndexSet().get(spec) == {}

    def test_index_for_absent_collection_is_empty(self):
        spec = IndexSpec("positions", "positionId")
        indices = IndexSet.build(Dataset.from_dict({}), [spec])
        assert indices.get(spec) == {}


class TestDates:
    """Test date helpers."""

    def test_is_iso_date(self):
        assert is_iso_date("2024-02-29")
        assert not is_iso_date("2023-02-29")
        assert not is_iso_date("2024-1-5")
        assert not is_iso_date("2024-01-05T00:00:00Z")
        assert not is_iso_date(20240105)

    def test_parse_timestamp_with_offset(self):
        parsed = parse_timestamp("2024-01-05T10:00:00+09:00")
        assert parsed == datetime(2024, 1, 5, 1, 0, tzinfo=UTC)

    def test_parse_timestamp_zulu(self):
        assert parse_timestamp("2024-01-05T10:00:00Z") == datetime(2024, 1, 5, 10, 0, tzinfo=UTC)

    def test_naive_timestamp_uses_default_zone(self):
        jst = timezone(timedelta(hours=9))
        parsed = parse_timestamp("2024-01-05T10:00:00", default_tz=jst)
        assert parsed.utcoffset() == timedelta(hours=9)

    def test_date_only_is_midnight(self):
        assert parse_timestamp("2024-01-05") == datetime(2024, 1, 5, tzinfo=UTC)

    def test_unparseable(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None
