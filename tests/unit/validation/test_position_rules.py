"""Tests for position data consistency rules."""

from datetime import UTC, datetime

import pytest

from dqgate.config import DqgateConfig, EngineConfig
from dqgate.validation.engine import validate
from dqgate.validation.framework import Domain
from dqgate.validation.rules.position import CalculationDateNotInFutureRule


def run(data, config=None):
    return validate(data, [Domain.POSITION], config)


def messages(result):
    return [v.message for v in result.violations]


@pytest.fixture
def position():
    return {
        "positionId": "P-1",
        "securityId": "S1",
        "counterpartyId": "C1",
        "aggregationUnitId": "AU1",
        "businessDate": "2024-01-05",
    }


@pytest.fixture
def ladder():
    return {
        "positionId": "P-1",
        "securityId": "S1",
        "businessDate": "2024-01-05",
        "settlementDate": "2024-01-09",
        "receiptQty": 100,
        "deliveryQty": 40,
        "netSettlement": 60,
    }


@pytest.fixture
def calculated():
    return {
        "calculationStatus": "COMPLETED",
        "calculationRuleId": "R1",
        "calculationRuleVersion": 1,
        "calculationDate": "2024-01-05T10:00:00Z",
    }


class TestPositions:
    """Test position rules."""

    def test_clean_data_passes(self, position, ladder, calculated):
        result = run({"positions": [position], "settlementLadders": [ladder], "calculatedPositions": [calculated]})
        assert result.success, messages(result)

    def test_duplicate_position_id(self, position):
        result = run({"positions": [position, dict(position)]})

        assert messages(result) == ["Duplicate positionId found: P-1"]
        assert result.violations[0].category == "Position Consistency"

    def test_missing_security_id(self, position):
        del position["securityId"]
        assert messages(run({"positions": [position]})) == ["Position P-1 is missing securityId"]

    def test_empty_counterparty(self, position):
        position["counterpartyId"] = ""
        assert messages(run({"positions": [position]})) == ["Position P-1 has empty counterpartyId"]

    def test_absent_optional_ids_allowed(self, position):
        del position["counterpartyId"]
        del position["aggregationUnitId"]
        assert run({"positions": [position]}).success

    def test_invalid_business_date(self, position):
        position["businessDate"] = "05/01/2024"
        assert messages(run({"positions": [position]})) == [
            "Position P-1 has invalid businessDate format: 05/01/2024"
        ]


class TestSettlementLadders:
    """Test settlement ladder rules."""

    def test_unknown_position_reported_once(self, position, ladder):
        ladder["positionId"] = "P-404"
        result = run({"positions": [position], "settlementLadders": [ladder]})

        assert messages(result) == ["Settlement ladder at index 0 references non-existent position: P-404"]
        assert result.violations[0].category == "Settlement Ladder Consistency"

    def test_inconsistent_net_settlement(self, position, ladder):
        ladder["netSettlement"] = 50
        assert messages(run({"positions": [position], "settlementLadders": [ladder]})) == [
            "Settlement ladder at index 0 has inconsistent netSettlement: 50 (should be 60)"
        ]

    def test_net_settlement_tolerance(self, position, ladder):
        ladder["netSettlement"] = 60.00005
        assert run({"positions": [position], "settlementLadders": [ladder]}).success

    def test_business_date_mismatch(self, position, ladder):
        ladder["businessDate"] = "2024-01-04"
        assert messages(run({"positions": [position], "settlementLadders": [ladder]})) == [
            "Settlement ladder P-1 has businessDate (2024-01-04) that doesn't match position "
            "businessDate (2024-01-05)"
        ]

    def test_invalid_settlement_date(self, position, ladder):
        ladder["settlementDate"] = "2024-13-01"
        assert messages(run({"positions": [position], "settlementLadders": [ladder]})) == [
            "Settlement ladder at index 0 has invalid settlementDate format: 2024-13-01"
        ]


class TestCalculatedPositions:
    """Test calculated position rules."""

    def test_invalid_status(self, calculated):
        calculated["calculationStatus"] = "DONE"
        assert messages(run({"calculatedPositions": [calculated]})) == [
            "Calculated position at index 0 has invalid calculationStatus: DONE"
        ]

    def test_missing_status(self, calculated):
        del calculated["calculationStatus"]
        assert messages(run({"calculatedPositions": [calculated]})) == [
            "Calculated position at index 0 has invalid calculationStatus: None"
        ]

    def test_unknown_base_position(self, position, calculated):
        calculated["basePositionId"] = "P-9"
        assert messages(run({"positions": [position], "calculatedPositions": [calculated]})) == [
            "Calculated position at index 0 references non-existent base position: P-9"
        ]

    def test_projected_position_needs_projection_date(self, position, calculated):
        calculated.update(calculationType="PROJECTED", basePositionId="P-1", projectionDate="soon")
        assert messages(run({"positions": [position], "calculatedPositions": [calculated]})) == [
            "Projected position at index 0 has invalid projectionDate format: soon"
        ]

    def test_future_calculation_date(self, calculated):
        config = DqgateConfig(engine=EngineConfig(as_of=datetime(2024, 1, 5, 9, 0, tzinfo=UTC)))
        assert messages(run({"calculatedPositions": [calculated]}, config)) == [
            "Calculated position at index 0 has future calculationDate: 2024-01-05T10:00:00Z"
        ]

    def test_past_calculation_date(self, calculated):
        config = DqgateConfig(engine=EngineConfig(as_of=datetime(2024, 1, 6, tzinfo=UTC)))
        assert run({"calculatedPositions": [calculated]}, config).success

    def test_wall_clock_reference(self, calculated):
        calculated["calculationDate"] = "2999-01-01T00:00:00Z"
        rule = CalculationDateNotInFutureRule()
        assert len(list(rule.check_record(calculated, 0, None))) == 1

    def test_completed_calculation_needs_rule(self, calculated):
        del calculated["calculationRuleId"]
        del calculated["calculationRuleVersion"]
        assert messages(run({"calculatedPositions": [calculated]})) == [
            "Completed calculated position at index 0 is missing calculationRuleId",
            "Completed calculated position at index 0 is missing or has invalid calculationRuleVersion",
        ]

    def test_pending_calculation_needs_no_rule(self, calculated):
        calculated["calculationStatus"] = "PENDING"
        del calculated["calculationRuleId"]
        assert run({"calculatedPositions": [calculated]}).success
