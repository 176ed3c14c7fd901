"""Tests for the jurisdiction rule table and market-specific rules."""

import pytest

from dqgate.config import DqgateConfig, JurisdictionConfig
from dqgate.errors import JurisdictionTableError
from dqgate.validation.engine import validate
from dqgate.validation.framework import Domain
from dqgate.validation.jurisdiction import (
    DEFAULT_JURISDICTION_TABLE,
    JAPAN_SLAB_CALCULATION_CUTOFF,
    JAPAN_SLAB_SETTLEMENT_CUTOFF,
    JapanQuantoSettlementEventRule,
    JurisdictionRuleTable,
    Market,
    TaiwanBorrowedInventoryRule,
    create_default_jurisdiction_table,
)


def messages(result):
    return [v.message for v in result.violations]


def borrowed_inventory(market):
    return {
        "inventoryId": "INV-1",
        "securityId": "S1",
        "market": market,
        "isBorrowed": True,
        "calculationType": "FOR_LOAN",
    }


class TestMarket:
    """Test market code matching."""

    @pytest.mark.parametrize("code", ["TW", "TWN", "TAIWAN", "twn", " Taiwan "])
    def test_taiwan_codes(self, code):
        assert Market.from_code(code) == Market.TAIWAN

    @pytest.mark.parametrize("code", ["JP", "JPN", "japan"])
    def test_japan_codes(self, code):
        assert Market.from_code(code) == Market.JAPAN

    @pytest.mark.parametrize("code", ["US", "", None, 7])
    def test_unknown_codes(self, code):
        assert Market.from_code(code) is None

    def test_cutoffs_are_distinct(self):
        assert JAPAN_SLAB_SETTLEMENT_CUTOFF.strftime("%H:%M") == "13:30"
        assert JAPAN_SLAB_CALCULATION_CUTOFF.strftime("%H:%M") == "15:00"


class TestJurisdictionRuleTable:
    """Test registration and lookup."""

    def test_default_table_is_frozen(self):
        assert DEFAULT_JURISDICTION_TABLE.frozen
        with pytest.raises(JurisdictionTableError):
            DEFAULT_JURISDICTION_TABLE.register(TaiwanBorrowedInventoryRule())

    def test_default_registrations(self):
        table = create_default_jurisdiction_table()

        assert set(table.keys()) == {
            (Market.TAIWAN, Domain.INVENTORY),
            (Market.TAIWAN, Domain.CALCULATION),
            (Market.JAPAN, Domain.CALCULATION),
            (Market.JAPAN, Domain.INVENTORY),
        }
        assert len(table) == 6
        assert len(table.get(Market.JAPAN, Domain.CALCULATION)) == 2

    def test_registration_is_additive(self):
        table = JurisdictionRuleTable([TaiwanBorrowedInventoryRule()])
        table.register(JapanQuantoSettlementEventRule())

        assert [rule.name for rule in table.rules_for(Domain.INVENTORY)] == [
            "taiwan_no_relend_inventory",
            "japan_quanto_settlement_event",
        ]
        assert [rule.name for rule in table.rules_for(Domain.INVENTORY, [Market.JAPAN])] == [
            "japan_quanto_settlement_event",
        ]

    def test_register_rejects_non_jurisdiction_rule(self):
        with pytest.raises(JurisdictionTableError, match="Not a jurisdiction rule"):
            JurisdictionRuleTable().register(object())

    def test_unregistered_pair_is_empty(self):
        assert DEFAULT_JURISDICTION_TABLE.get(Market.TAIWAN, Domain.MARKET) == ()
        assert DEFAULT_JURISDICTION_TABLE.rules_for(Domain.REFERENCE) == []


class TestTaiwanRules:
    """Test the no re-lending rule for Taiwan."""

    def test_borrowed_for_loan_in_taiwan(self):
        result = validate({"inventories": [borrowed_inventory("TWN")]}, [Domain.INVENTORY])

        assert messages(result) == ["Borrowed shares cannot be re-lent. Inventory ID: INV-1"]
        assert result.violations[0].category == "Taiwan market rule violation"

    def test_other_market_unaffected(self):
        assert validate({"inventories": [borrowed_inventory("US")]}, [Domain.INVENTORY]).success

    def test_not_borrowed(self):
        record = dict(borrowed_inventory("TW"), isBorrowed=False)
        assert validate({"inventories": [record]}, [Domain.INVENTORY]).success

    def test_disabled_by_config(self):
        config = DqgateConfig(jurisdiction=JurisdictionConfig(enabled=False))
        assert validate({"inventories": [borrowed_inventory("TWN")]}, [Domain.INVENTORY], config).success

    def test_market_allow_list(self):
        config = DqgateConfig(jurisdiction=JurisdictionConfig(markets=["japan"]))
        assert validate({"inventories": [borrowed_inventory("TWN")]}, [Domain.INVENTORY], config).success


class TestJapanRules:
    """Test Japanese settlement cut-off and quanto rules."""

    def ladder(self, settlement_time, **extra):
        record = {
            "ladderId": "L-1",
            "securityId": "S1",
            "market": "JP",
            "activityType": "SLAB",
            "settlementTime": settlement_time,
        }
        record.update(extra)
        return record

    def test_slab_settlement_after_cutoff(self):
        result = validate({"settlementLadders": [self.ladder("2024-01-05T14:00:00+09:00")]}, [Domain.CALCULATION])

        assert len(result.violations) == 1
        assert result.violations[0].category == "Japan market rule violation"
        assert "13:30 JST" in result.violations[0].message

    def test_slab_settlement_at_cutoff(self):
        result = validate({"settlementLadders": [self.ladder("2024-01-05T13:30:00+09:00")]}, [Domain.CALCULATION])
        assert result.success

    def test_slab_settlement_fractional_second_at_cutoff(self):
        result = validate({"settlementLadders": [self.ladder("2024-01-05T13:30:00.500+09:00")]},
                          [Domain.CALCULATION])
        assert result.success

    def test_slab_settlement_one_second_after_cutoff(self):
        result = validate({"settlementLadders": [self.ladder("2024-01-05T13:30:01+09:00")]}, [Domain.CALCULATION])

        assert len(result.violations) == 1
        assert "settled at 13:30:01 JST" in result.violations[0].message

    def test_utc_timestamp_converted_to_jst(self):
        # 05:00 UTC is 14:00 JST
        result = validate({"settlementLadders": [self.ladder("2024-01-05T05:00:00Z")]}, [Domain.CALCULATION])
        assert len(result.violations) == 1

    def test_naive_timestamp_read_as_jst(self):
        result = validate({"settlementLadders": [self.ladder("2024-01-05T13:00:00")]}, [Domain.CALCULATION])
        assert result.success

    def test_quanto_t_plus_one(self):
        record = self.ladder("2024-01-05T10:00:00+09:00", securityType="QUANTO", settlementType="T+1")
        result = validate({"settlementLadders": [record]}, [Domain.CALCULATION])

        assert messages(result) == [
            "Quanto settlements with T+1 date must settle T+2. Settlement ladder at index 0"
        ]

    def test_slab_calculation_after_cutoff(self):
        record = {
            "calculatedInventoryId": "CI-1",
            "securityId": "S1",
            "market": "JPN",
            "calculationType": "FOR_LOAN",
            "calculationTimestamp": "2024-01-05T15:30:00+09:00",
        }
        result = validate({"calculatedInventories": [record]}, [Domain.INVENTORY])

        assert len(result.violations) == 1
        assert "Calculated Inventory ID: CI-1" in result.violations[0].message
        assert "15:00 JST" in result.violations[0].message

    def test_slab_calculation_cutoff_differs_from_settlement(self):
        record = {
            "calculatedInventoryId": "CI-1",
            "securityId": "S1",
            "market": "JPN",
            "calculationType": "FOR_LOAN",
            "calculationTimestamp": "2024-01-05T14:00:00+09:00",
        }
        assert validate({"calculatedInventories": [record]}, [Domain.INVENTORY]).success

    @pytest.mark.parametrize("settlement_date,expected", [
        ("2024-01-09", 0),
        ("2024-01-08", 1),
    ])
    def test_quanto_settlement_event(self, settlement_date, expected):
        record = {
            "eventId": "E-1",
            "securityId": "S1",
            "market": "JP",
            "eventType": "SETTLEMENT",
            "isQuantoSettlement": True,
            "expectedSettlementDays": 1,
            "tradeDate": "2024-01-07",
            "settlementDate": settlement_date,
        }
        result = validate({"inventoryEvents": [record]}, [Domain.INVENTORY])
        assert len(result.violations) == expected
