"""Tests for inventory data consistency rules."""

import pytest

from dqgate.validation.engine import validate
from dqgate.validation.framework import Domain


def run(data):
    return validate(data, [Domain.INVENTORY])


def messages(result):
    return [v.message for v in result.violations]


@pytest.fixture
def inventory():
    return {
        "inventoryId": "INV-1",
        "securityId": "S1",
        "grossQuantity": 1000,
        "availableQuantity": 800,
        "decrementQuantity": 100,
        "calculationRuleId": "R-1",
        "calculationRuleVersion": "1",
    }


@pytest.fixture
def calculated():
    return {
        "calculatedInventoryId": "CI-1",
        "securityId": "S1",
        "grossQuantity": 1000,
        "availableQuantity": 800,
        "sourceInventoryIds": ["INV-1"],
        "calculationTimestamp": "2024-01-05T05:00:00Z",
    }


@pytest.fixture
def locate():
    return {
        "locateAvailabilityId": "LA-1",
        "securityId": "S1",
        "availableQuantity": 500,
        "decrementQuantity": 100,
        "businessDate": "2024-01-05",
        "expiryDate": "2024-01-05",
    }


@pytest.fixture
def event():
    return {
        "eventId": "E-1",
        "inventoryId": "INV-1",
        "securityId": "S1",
        "eventTimestamp": "2024-01-05T05:00:00Z",
        "quantityBefore": 800,
        "quantityAfter": 700,
        "quantityChange": -100,
    }


class TestInventories:
    """Test inventory rules."""

    def test_clean_data_passes(self, inventory, calculated, locate, event):
        result = run({
            "inventories": [inventory],
            "calculatedInventories": [calculated],
            "locateAvailability": [locate],
            "inventoryEvents": [event],
        })
        assert result.success, messages(result)

    def test_duplicate_inventory(self, inventory):
        assert messages(run({"inventories": [inventory, dict(inventory)]})) == [
            "Duplicate inventory ID found: INV-1"
        ]

    def test_missing_security(self, inventory):
        inventory["securityId"] = ""
        result = run({"inventories": [inventory]})

        assert messages(result) == ["Missing security ID in inventory: INV-1"]
        assert result.violations[0].category == "Inventory Consistency"

    def test_available_exceeds_gross(self, inventory):
        inventory["availableQuantity"] = 1100
        assert messages(run({"inventories": [inventory]})) == [
            "Inventory INV-1: Available quantity (1100) exceeds gross quantity (1000)"
        ]

    def test_decrement_exceeds_available(self, inventory):
        inventory["decrementQuantity"] = 900
        assert messages(run({"inventories": [inventory]})) == [
            "Inventory INV-1: Decrement quantity (900) exceeds available quantity (800)"
        ]

    def test_absent_quantities_not_compared(self, inventory):
        del inventory["grossQuantity"]
        assert run({"inventories": [inventory]}).success

    def test_rule_id_without_version(self, inventory):
        del inventory["calculationRuleVersion"]
        assert messages(run({"inventories": [inventory]})) == [
            "Inventory INV-1: Calculation rule ID present but version missing"
        ]

    def test_rule_version_without_id(self, inventory):
        del inventory["calculationRuleId"]
        assert messages(run({"inventories": [inventory]})) == [
            "Inventory INV-1: Calculation rule version present but ID missing"
        ]


class TestCalculatedInventories:
    """Test calculated inventory rules."""

    def test_unknown_source_inventory(self, inventory, calculated):
        calculated["sourceInventoryIds"] = ["INV-1", "INV-9"]
        result = run({"inventories": [inventory], "calculatedInventories": [calculated]})

        assert messages(result) == ["Calculated inventory CI-1: References non-existent source inventory ID: INV-9"]
        assert result.violations[0].category == "Calculated Inventory Consistency"

    def test_sources_unchecked_without_inventories(self, calculated):
        calculated["sourceInventoryIds"] = ["INV-9"]
        assert run({"calculatedInventories": [calculated]}).success

    def test_invalid_timestamp(self, calculated):
        calculated["calculationTimestamp"] = "not-a-time"
        assert messages(run({"calculatedInventories": [calculated]})) == [
            "Calculated inventory CI-1: Invalid calculation timestamp: not-a-time"
        ]


class TestLocateAvailability:
    """Test locate availability rules."""

    def test_expiry_before_business_date(self, locate):
        locate["expiryDate"] = "2024-01-04"
        result = run({"locateAvailability": [locate]})

        assert messages(result) == [
            "Locate availability LA-1: Expiry date (2024-01-04) is before business date (2024-01-05)"
        ]
        assert result.violations[0].category == "Locate Availability Consistency"

    def test_decrement_exceeds_available(self, locate):
        locate["decrementQuantity"] = 600
        assert messages(run({"locateAvailability": [locate]})) == [
            "Locate availability LA-1: Decrement quantity (600) exceeds available quantity (500)"
        ]


class TestInventoryEvents:
    """Test inventory event rules."""

    def test_unknown_inventory(self, inventory, event):
        event["inventoryId"] = "INV-9"
        assert messages(run({"inventories": [inventory], "inventoryEvents": [event]})) == [
            "Inventory event E-1: References non-existent inventory ID: INV-9"
        ]

    def test_quantity_change_mismatch(self, event):
        event["quantityChange"] = 100
        result = run({"inventoryEvents": [event]})

        assert messages(result) == [
            "Inventory event E-1: Quantity change (100) does not match the difference between "
            "before (800) and after (700) values"
        ]
        assert result.violations[0].category == "Inventory Event Consistency"

    def test_invalid_event_timestamp(self, event):
        event["eventTimestamp"] = "2024-02-30T00:00:00Z"
        assert messages(run({"inventoryEvents": [event]})) == [
            "Inventory event E-1: Invalid event timestamp: 2024-02-30T00:00:00Z"
        ]
