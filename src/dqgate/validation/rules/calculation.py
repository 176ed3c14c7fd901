"""Calculation data consistency rules.

Covers the calculation service inputs and outputs: positions with embedded
settlement ladders, settlement ladders, inventory availability, client and
aggregation unit limits, calculation rules and overborrow calculations.
"""

from collections.abc import Iterable, Mapping
from decimal import Decimal

from ..constants import (
    ACTION_TYPES,
    CALCULATION_TYPES,
    CONDITION_OPERATORS,
    LIMIT_TYPES,
    MARKET_RULE_KEYS,
    SETTLEMENT_DAYS,
)
from ..framework import Domain, Record, RuleSet, Violation, is_blank, is_number
from ..indices import IndexSet, IndexSpec
from ..keys import DuplicateKeyRule
from ..tolerance import ToleranceProfile, approx_equal, as_decimal, display, total
from .common import (
    AllowedValuesRule,
    DateFormatRule,
    DateOrderRule,
    DerivedValueRule,
    NamedRecordRule,
    NotGreaterThanRule,
    RequiredFieldRule,
    numeric_value,
)

POSITION_CATEGORY = "Calculation Position Consistency"
SETTLEMENT_LADDER_CATEGORY = "Calculation Settlement Ladder Consistency"
INVENTORY_AVAILABILITY_CATEGORY = "Inventory Availability Consistency"
CLIENT_LIMIT_CATEGORY = "Client Limit Consistency"
AGGREGATION_UNIT_LIMIT_CATEGORY = "Aggregation Unit Limit Consistency"
CALCULATION_RULE_CATEGORY = "Calculation Rule Consistency"
OVERBORROW_CATEGORY = "Overborrow Calculation Consistency"

CALCULATION_RULE_INDEX = IndexSpec("calculationRules", "ruleId")


def _quantity(value) -> Decimal:
    """Quantity as a decimal, reading missing or non-numeric values as zero."""
    if is_number(value):
        return as_decimal(value)
    if isinstance(value, str):
        try:
            return as_decimal(value)
        except ValueError:
            return Decimal(0)
    return Decimal(0)


def _ladder_total(ladder: Mapping, suffix: str) -> Decimal:
    return total(_quantity(ladder.get(f"{day}{suffix}")) for day in SETTLEMENT_DAYS)


class CalculationRule(NamedRecordRule):
    """Base for hand-written calculation data rules."""
    domain = Domain.CALCULATION


class PositionSignRule(CalculationRule):
    """LONG positions hold non-negative and SHORT positions non-positive quantities."""
    rule_name = "calculation_position_sign"
    category = POSITION_CATEGORY
    collection = "positions"

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        quantity = record.get("quantity")
        if not is_number(quantity):
            return
        position_type = record.get("positionType")
        if position_type == "LONG" and quantity < 0:
            yield self.violation(f"LONG position at index {index} has negative quantity ({display(quantity)})",
                                 index, "/quantity")
        elif position_type == "SHORT" and quantity > 0:
            yield self.violation(f"SHORT position at index {index} has positive quantity ({display(quantity)})",
                                 index, "/quantity")


class EmbeddedLadderBalanceRule(CalculationRule):
    """Deliveries and receipts of a position's embedded ladder balance."""
    rule_name = "calculation_position_ladder_balance"
    category = POSITION_CATEGORY
    collection = "positions"
    profile = ToleranceProfile.DERIVED_QUANTITY

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        ladder = record.get("settlementLadder")
        if not isinstance(ladder, Mapping):
            return
        deliveries = _ladder_total(ladder, "Deliver")
        receipts = _ladder_total(ladder, "Receipt")
        if not approx_equal(deliveries, receipts, self.profile):
            yield self.violation(
                f"Settlement ladder deliveries ({display(deliveries)}) and receipts ({display(receipts)}) "
                f"do not balance for position at index {index}",
                index,
                "/settlementLadder",
            )


class DailySettlementsRule(CalculationRule):
    """Net settlement equals the sum of the daily settlement quantities."""
    rule_name = "calculation_ladder_daily_settlements"
    category = SETTLEMENT_LADDER_CATEGORY
    collection = "settlementLadders"
    profile = ToleranceProfile.DERIVED_QUANTITY

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        daily = record.get("dailySettlements")
        if not isinstance(daily, (list, tuple)):
            return
        expected = total(_quantity(day.get("quantity") if isinstance(day, Mapping) else None) for day in daily)
        net = _quantity(record.get("netSettlement"))
        if not approx_equal(net, expected, self.profile):
            yield self.violation(
                f"Net settlement ({display(net)}) does not match sum of daily settlements ({display(expected)}) "
                f"for settlement ladder at index {index}",
                index,
                "/netSettlement",
            )


class DeliveriesMapRule(CalculationRule):
    """The deliveries map agrees with the per-day SD0..SD4 deliver fields."""
    rule_name = "calculation_ladder_deliveries_map"
    category = SETTLEMENT_LADDER_CATEGORY
    collection = "settlementLadders"
    profile = ToleranceProfile.DERIVED_QUANTITY

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        deliveries = record.get("deliveries")
        if not isinstance(deliveries, Mapping):
            return
        mapped = total(_quantity(value) for value in deliveries.values())
        individual = _ladder_total(record, "Deliver")
        if not approx_equal(mapped, individual, self.profile):
            yield self.violation(
                f"Deliveries map ({display(mapped)}) does not match individual day fields ({display(individual)}) "
                f"for settlement ladder at index {index}",
                index,
                "/deliveries",
            )


class CalculationRuleVersionReferenceRule(CalculationRule):
    """Availability records cite a calculation rule, and version, that exist.

    Only checked when the dataset carries calculation rules at all.
    """
    rule_name = "inventory_availability_rule_reference"
    category = INVENTORY_AVAILABILITY_CATEGORY
    collection = "inventoryAvailability"
    requires = (CALCULATION_RULE_INDEX,)

    def check(self, dataset, indices):
        if "calculationRules" not in dataset:
            return []
        return super().check(dataset, indices)

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        rule_id = record.get("calculationRuleId")
        version = record.get("calculationRuleVersion")
        if is_blank(rule_id) or is_blank(version):
            return
        rule = indices.lookup(CALCULATION_RULE_INDEX, rule_id)
        if rule is None:
            yield self.violation(f"Referenced calculation rule does not exist: {rule_id}", index,
                                 "/calculationRuleId")
            return
        versions = rule.get("versions")
        if not isinstance(versions, (list, tuple)):
            return
        if not any(isinstance(entry, Mapping) and entry.get("version") == version for entry in versions):
            yield self.violation(f"Referenced calculation rule version does not exist: {version}", index,
                                 "/calculationRuleVersion")


class MarketRuleKeysRule(CalculationRule):
    """Market rule overrides are keyed by a known market."""
    rule_name = "aggregation_unit_limit_market_rules"
    category = AGGREGATION_UNIT_LIMIT_CATEGORY
    collection = "aggregationUnitLimits"

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        market_rules = record.get("marketRules")
        if not isinstance(market_rules, Mapping):
            return
        for market in market_rules:
            if str(market).lower() not in MARKET_RULE_KEYS:
                yield self.violation(
                    f"Aggregation unit limit at index {index} has invalid market: {market}",
                    index,
                    f"/marketRules/{market}",
                )


class RuleConditionsRule(CalculationRule):
    """Every condition names an attribute and a supported operator."""
    rule_name = "calculation_rule_conditions"
    category = CALCULATION_RULE_CATEGORY
    collection = "calculationRules"

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        conditions = record.get("conditions")
        if not isinstance(conditions, (list, tuple)):
            return
        for position, condition in enumerate(conditions):
            if not isinstance(condition, Mapping):
                condition = {}
            path = f"/conditions[{position}]"
            if is_blank(condition.get("attribute")):
                yield self.violation(
                    f"Calculation rule at index {index} has condition {position} missing attribute", index, path)
            operator = condition.get("operator")
            if is_blank(operator):
                yield self.violation(
                    f"Calculation rule at index {index} has condition {position} missing operator", index, path)
            elif operator not in CONDITION_OPERATORS:
                yield self.violation(
                    f"Calculation rule at index {index} has invalid operator: {operator}", index, f"{path}/operator")


class RuleActionsRule(CalculationRule):
    """Every action carries a supported action type."""
    rule_name = "calculation_rule_actions"
    category = CALCULATION_RULE_CATEGORY
    collection = "calculationRules"

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        actions = record.get("actions")
        if not isinstance(actions, (list, tuple)):
            return
        for position, action in enumerate(actions):
            action_type = action.get("actionType") if isinstance(action, Mapping) else None
            path = f"/actions[{position}]"
            if is_blank(action_type):
                yield self.violation(
                    f"Calculation rule at index {index} has action {position} missing actionType", index, path)
            elif action_type not in ACTION_TYPES:
                yield self.violation(
                    f"Calculation rule at index {index} has invalid action type: {action_type}", index,
                    f"{path}/actionType")


class RulePriorityRule(CalculationRule):
    """A present priority is a non-negative integer."""
    rule_name = "calculation_rule_priority"
    category = CALCULATION_RULE_CATEGORY
    collection = "calculationRules"

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        if "priority" not in record:
            return
        priority = record["priority"]
        valid = is_number(priority) and priority >= 0 and as_decimal(priority) == int(priority)
        if not valid:
            yield self.violation(
                f"Calculation rule at index {index} priority must be a non-negative integer (got {priority!r})",
                index,
                "/priority",
            )


class VersionSequenceRule(CalculationRule):
    """Sorted version numbers form the sequence 1..N with no gaps."""
    rule_name = "calculation_rule_version_sequence"
    category = CALCULATION_RULE_CATEGORY
    collection = "calculationRules"

    @staticmethod
    def is_sequential(versions: Iterable) -> bool:
        numbers = []
        for entry in versions:
            number = entry.get("version") if isinstance(entry, Mapping) else entry
            if not is_number(number):
                return False
            numbers.append(number)
        return sorted(numbers) == list(range(1, len(numbers) + 1))

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        versions = record.get("versions")
        if not isinstance(versions, (list, tuple)):
            return
        if not self.is_sequential(versions):
            yield self.violation(
                f"Rule versions must be sequential starting from 1 for calculation rule {record.get('ruleId')} "
                f"at index {index}",
                index,
                "/versions",
            )


class OverborrowFlagRule(CalculationRule):
    """``isOverborrowed`` is set exactly when the overborrow quantity is positive."""
    rule_name = "overborrow_flag"
    category = OVERBORROW_CATEGORY
    collection = "overborrowCalculations"

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        flag = record.get("isOverborrowed")
        quantity = numeric_value(record, "overborrowQuantity", default_zero=True)
        if flag is None or not is_number(quantity):
            return
        if bool(flag) != (quantity > 0):
            yield self.violation(
                f"Overborrow calculation at index {index} has isOverborrowed flag ({flag}) inconsistent with "
                f"overborrow quantity ({display(quantity)})",
                index,
                "/isOverborrowed",
            )


def _limit_rules(rule_set: RuleSet, prefix: str, owner_field: str, **common) -> None:
    """Rules shared by client limits and aggregation unit limits."""
    entity = common["entity"]
    rule_set.add_rule(RequiredFieldRule(
        f"{prefix}_{owner_field}", field=owner_field,
        message=f"{entity} at index {{index}} is missing {owner_field}",
        **common,
    ))
    rule_set.add_rule(RequiredFieldRule(
        f"{prefix}_security_id", field="securityId",
        message=f"{entity} at index {{index}} is missing securityId",
        **common,
    ))
    rule_set.add_rule(NotGreaterThanRule(
        f"{prefix}_used_within_limit", lesser="usedQuantity", greater="limitQuantity", default_zero=True,
        message=f"{entity} at index {{index}} has used quantity ({{lesser}}) exceeding limit quantity ({{greater}})",
        **common,
    ))
    rule_set.add_rule(AllowedValuesRule(
        f"{prefix}_limit_type", field="limitType", allowed=LIMIT_TYPES,
        message=f"{entity} at index {{index}} has invalid limit type: {{value}}",
        **common,
    ))
    rule_set.add_rule(DateFormatRule(
        f"{prefix}_business_date", field="businessDate",
        message=f"{entity} at index {{index}} has invalid business date: {{value}}",
        **common,
    ))


def build_calculation_rule_set(config=None) -> RuleSet:
    """Create the calculation data rule set."""
    domain = Domain.CALCULATION
    rule_set = RuleSet("Calculation Data Consistency", domain)

    position = dict(domain=domain, category=POSITION_CATEGORY, collection="positions", entity="Position")
    rule_set.add_rule(DuplicateKeyRule(
        "calculation_position_duplicate_id", fields=("positionId",),
        message="Duplicate position ID: {positionId}", **position,
    ))
    rule_set.add_rule(RequiredFieldRule(
        "calculation_position_security_id", field="securityId",
        message="Position at index {index} is missing securityId", **position,
    ))
    rule_set.add_rule(PositionSignRule())
    rule_set.add_rule(EmbeddedLadderBalanceRule())

    ladder = dict(domain=domain, category=SETTLEMENT_LADDER_CATEGORY, collection="settlementLadders",
                  entity="Settlement ladder")
    rule_set.add_rule(DuplicateKeyRule(
        "calculation_ladder_duplicate_id", fields=("ladderId",),
        message="Duplicate settlement ladder ID: {ladderId}", **ladder,
    ))
    rule_set.add_rule(RequiredFieldRule(
        "calculation_ladder_security_id", field="securityId",
        message="Settlement ladder at index {index} is missing securityId", **ladder,
    ))
    rule_set.add_rule(DailySettlementsRule())
    rule_set.add_rule(DeliveriesMapRule())
    rule_set.add_rule(DateFormatRule(
        "calculation_ladder_calculation_date", field="calculationDate",
        message="Settlement ladder at index {index} has invalid calculation date: {value}", **ladder,
    ))

    availability = dict(domain=domain, category=INVENTORY_AVAILABILITY_CATEGORY,
                        collection="inventoryAvailability", entity="Inventory availability")
    rule_set.add_rule(DuplicateKeyRule(
        "inventory_availability_duplicate_id", fields=("availabilityId",),
        message="Duplicate inventory availability ID: {availabilityId}", **availability,
    ))
    rule_set.add_rule(RequiredFieldRule(
        "inventory_availability_security_id", field="securityId",
        message="Inventory availability at index {index} is missing securityId", **availability,
    ))
    rule_set.add_rule(NotGreaterThanRule(
        "inventory_availability_available_within_gross", lesser="availableQuantity", greater="grossQuantity",
        default_zero=True,
        message="Inventory availability at index {index} has available quantity ({lesser}) "
                "exceeding gross quantity ({greater})",
        **availability,
    ))
    rule_set.add_rule(NotGreaterThanRule(
        "inventory_availability_decrement_within_available", lesser="decrementQuantity",
        greater="availableQuantity", default_zero=True,
        message="Inventory availability at index {index} has decrement quantity ({lesser}) "
                "exceeding available quantity ({greater})",
        **availability,
    ))
    rule_set.add_rule(CalculationRuleVersionReferenceRule())
    rule_set.add_rule(AllowedValuesRule(
        "inventory_availability_calculation_type", field="calculationType", allowed=CALCULATION_TYPES,
        message="Inventory availability at index {index} has invalid calculation type: {value}", **availability,
    ))

    rule_set.add_rule(DuplicateKeyRule(
        "client_limit_duplicate_id", domain=domain, category=CLIENT_LIMIT_CATEGORY, collection="clientLimits",
        entity="Client limit", fields=("limitId",), message="Duplicate client limit ID: {limitId}",
    ))
    _limit_rules(rule_set, "client_limit", "clientId", domain=domain, category=CLIENT_LIMIT_CATEGORY,
                 collection="clientLimits", entity="Client limit")

    rule_set.add_rule(DuplicateKeyRule(
        "aggregation_unit_limit_duplicate_id", domain=domain, category=AGGREGATION_UNIT_LIMIT_CATEGORY,
        collection="aggregationUnitLimits", entity="Aggregation unit limit", fields=("limitId",),
        message="Duplicate aggregation unit limit ID: {limitId}",
    ))
    _limit_rules(rule_set, "aggregation_unit_limit", "aggregationUnitId", domain=domain,
                 category=AGGREGATION_UNIT_LIMIT_CATEGORY, collection="aggregationUnitLimits",
                 entity="Aggregation unit limit")
    rule_set.add_rule(MarketRuleKeysRule())

    calculation_rule = dict(domain=domain, category=CALCULATION_RULE_CATEGORY, collection="calculationRules",
                            entity="Calculation rule")
    rule_set.add_rule(DuplicateKeyRule(
        "calculation_rule_duplicate_id", fields=("ruleId",),
        message="Duplicate calculation rule ID: {ruleId}", **calculation_rule,
    ))
    rule_set.add_rule(RuleConditionsRule())
    rule_set.add_rule(RuleActionsRule())
    rule_set.add_rule(DateOrderRule(
        "calculation_rule_effective_before_expiry", start="effectiveDate", end="expiryDate",
        message="Calculation rule at index {index} effective date ({effectiveDate}) must be before "
                "expiry date ({expiryDate})",
        **calculation_rule,
    ))
    rule_set.add_rule(RulePriorityRule())
    rule_set.add_rule(VersionSequenceRule())

    overborrow = dict(domain=domain, category=OVERBORROW_CATEGORY, collection="overborrowCalculations",
                      entity="Overborrow calculation")
    rule_set.add_rule(DuplicateKeyRule(
        "overborrow_duplicate_id", fields=("calculationId",),
        message="Duplicate overborrow calculation ID: {calculationId}", **overborrow,
    ))
    rule_set.add_rule(RequiredFieldRule(
        "overborrow_security_id", field="securityId",
        message="Overborrow calculation at index {index} is missing securityId", **overborrow,
    ))
    rule_set.add_rule(DerivedValueRule(
        "overborrow_quantity", field="overborrowQuantity", operands=("borrowedQuantity", "requiredQuantity"),
        formula=lambda borrowed, required: borrowed - required, default_zero=True,
        message="Overborrow calculation at index {index} has overborrow quantity ({actual}) that does not match "
                "borrowed minus required quantity ({expected})",
        **overborrow,
    ))
    rule_set.add_rule(OverborrowFlagRule())
    rule_set.add_rule(DateFormatRule(
        "overborrow_calculation_date", field="calculationDate",
        message="Overborrow calculation at index {index} has invalid calculation date: {value}", **overborrow,
    ))

    return rule_set
