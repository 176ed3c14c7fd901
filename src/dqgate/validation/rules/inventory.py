"""Inventory data consistency rules: inventories, calculated inventories, locates, events."""

from collections.abc import Iterable

from ..framework import Domain, Record, RuleSet, Violation, is_blank
from ..indices import IndexSet, IndexSpec
from ..keys import DuplicateKeyRule
from .common import (
    DateFormatRule,
    DateOrderRule,
    DerivedValueRule,
    NamedRecordRule,
    NotGreaterThanRule,
    ReferenceRule,
    RequiredFieldRule,
)

INVENTORY_CATEGORY = "Inventory Consistency"
CALCULATED_INVENTORY_CATEGORY = "Calculated Inventory Consistency"
LOCATE_CATEGORY = "Locate Availability Consistency"
EVENT_CATEGORY = "Inventory Event Consistency"

INVENTORY_INDEX = IndexSpec("inventories", "inventoryId")


class RuleVersionPairingRule(NamedRecordRule):
    """A calculation rule id and its version appear together or not at all."""
    rule_name = "inventory_rule_version_pairing"
    domain = Domain.INVENTORY
    category = INVENTORY_CATEGORY
    collection = "inventories"

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        has_id = not is_blank(record.get("calculationRuleId"))
        has_version = not is_blank(record.get("calculationRuleVersion"))
        if has_id and not has_version:
            yield self.violation(
                f"Inventory {record.get('inventoryId')}: Calculation rule ID present but version missing",
                index,
                "/calculationRuleVersion",
            )
        elif has_version and not has_id:
            yield self.violation(
                f"Inventory {record.get('inventoryId')}: Calculation rule version present but ID missing",
                index,
                "/calculationRuleId",
            )


def _quantity_rules(rule_set: RuleSet, prefix: str, label: str, id_field: str, *, gross: bool = True,
                    **common) -> None:
    """Presence and quantity ordering rules shared by the inventory collections."""
    entity = common["entity"]
    rule_set.add_rule(RequiredFieldRule(
        f"{prefix}_security_id", field="securityId",
        message=f"Missing security ID in {label}: {{{id_field}}}",
        **common,
    ))
    if gross:
        rule_set.add_rule(NotGreaterThanRule(
            f"{prefix}_available_within_gross", lesser="availableQuantity", greater="grossQuantity",
            message=f"{entity} {{{id_field}}}: Available quantity ({{lesser}}) exceeds gross quantity ({{greater}})",
            **common,
        ))
    rule_set.add_rule(NotGreaterThanRule(
        f"{prefix}_decrement_within_available", lesser="decrementQuantity", greater="availableQuantity",
        message=f"{entity} {{{id_field}}}: Decrement quantity ({{lesser}}) exceeds available quantity ({{greater}})",
        **common,
    ))


def _source_references(rule_set: RuleSet, prefix: str, id_field: str, **common) -> None:
    entity = common["entity"]
    rule_set.add_rule(ReferenceRule(
        f"{prefix}_source_inventories", field="sourceInventoryIds", target=INVENTORY_INDEX, many=True,
        only_if_target_present=True,
        message=f"{entity} {{{id_field}}}: References non-existent source inventory ID: {{value}}",
        **common,
    ))
    rule_set.add_rule(DateFormatRule(
        f"{prefix}_calculation_timestamp", field="calculationTimestamp",
        message=f"{entity} {{{id_field}}}: Invalid calculation timestamp: {{value}}",
        **common,
    ))


def build_inventory_rule_set(config=None) -> RuleSet:
    """Create the inventory data rule set."""
    domain = Domain.INVENTORY
    rule_set = RuleSet("Inventory Data Consistency", domain)

    inventory = dict(domain=domain, category=INVENTORY_CATEGORY, collection="inventories", entity="Inventory")
    rule_set.add_rule(DuplicateKeyRule(
        "inventory_duplicate_id", fields=("inventoryId",),
        message="Duplicate inventory ID found: {inventoryId}", **inventory,
    ))
    _quantity_rules(rule_set, "inventory", "inventory", "inventoryId", **inventory)
    rule_set.add_rule(RuleVersionPairingRule())

    calculated = dict(domain=domain, category=CALCULATED_INVENTORY_CATEGORY, collection="calculatedInventories",
                      entity="Calculated inventory")
    rule_set.add_rule(DuplicateKeyRule(
        "calculated_inventory_duplicate_id", fields=("calculatedInventoryId",),
        message="Duplicate calculated inventory ID found: {calculatedInventoryId}", **calculated,
    ))
    _quantity_rules(rule_set, "calculated_inventory", "calculated inventory", "calculatedInventoryId",
                    **calculated)
    _source_references(rule_set, "calculated_inventory", "calculatedInventoryId", **calculated)

    locate = dict(domain=domain, category=LOCATE_CATEGORY, collection="locateAvailability",
                  entity="Locate availability")
    rule_set.add_rule(DuplicateKeyRule(
        "locate_duplicate_id", fields=("locateAvailabilityId",),
        message="Duplicate locate availability ID found: {locateAvailabilityId}", **locate,
    ))
    _quantity_rules(rule_set, "locate", "locate availability", "locateAvailabilityId", gross=False, **locate)
    _source_references(rule_set, "locate", "locateAvailabilityId", **locate)
    rule_set.add_rule(DateOrderRule(
        "locate_business_date_not_after_expiry", start="businessDate", end="expiryDate", strict=False,
        message="Locate availability {locateAvailabilityId}: Expiry date ({expiryDate}) is before "
                "business date ({businessDate})",
        **locate,
    ))

    event = dict(domain=domain, category=EVENT_CATEGORY, collection="inventoryEvents", entity="Inventory event")
    rule_set.add_rule(DuplicateKeyRule(
        "inventory_event_duplicate_id", fields=("eventId",),
        message="Duplicate inventory event ID found: {eventId}", **event,
    ))
    rule_set.add_rule(RequiredFieldRule(
        "inventory_event_security_id", field="securityId",
        message="Missing security ID in inventory event: {eventId}", **event,
    ))
    rule_set.add_rule(ReferenceRule(
        "inventory_event_inventory_reference", field="inventoryId", target=INVENTORY_INDEX,
        only_if_target_present=True,
        message="Inventory event {eventId}: References non-existent inventory ID: {value}", **event,
    ))
    rule_set.add_rule(DateFormatRule(
        "inventory_event_timestamp", field="eventTimestamp",
        message="Inventory event {eventId}: Invalid event timestamp: {value}", **event,
    ))
    rule_set.add_rule(DerivedValueRule(
        "inventory_event_quantity_change", field="quantityChange", operands=("quantityAfter", "quantityBefore"),
        formula=lambda after, before: after - before,
        message="Inventory event {eventId}: Quantity change ({actual}) does not match the difference between "
                "before ({quantityBefore}) and after ({quantityAfter}) values",
        **event,
    ))

    return rule_set
