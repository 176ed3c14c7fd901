"""Position data consistency rules: positions, settlement ladders, calculated positions."""

from collections.abc import Iterable
from datetime import UTC, datetime

from ..constants import CALCULATION_STATUSES
from ..dates import is_iso_date, parse_timestamp
from ..framework import Domain, Record, RuleSet, Violation, format_message, is_blank, is_number
from ..indices import IndexSet, IndexSpec
from ..keys import DuplicateKeyRule
from .common import (
    AllowedValuesRule,
    DateFormatRule,
    DerivedValueRule,
    NamedRecordRule,
    ReferenceRule,
    RequiredFieldRule,
)

POSITION_CATEGORY = "Position Consistency"
SETTLEMENT_LADDER_CATEGORY = "Settlement Ladder Consistency"
CALCULATED_POSITION_CATEGORY = "Calculated Position Consistency"

POSITION_INDEX = IndexSpec("positions", "positionId")


class PositionRule(NamedRecordRule):
    """Base for hand-written position data rules."""
    domain = Domain.POSITION


class LadderBusinessDateRule(PositionRule):
    """A ladder's business date matches the business date of its position."""
    rule_name = "settlement_ladder_business_date"
    category = SETTLEMENT_LADDER_CATEGORY
    collection = "settlementLadders"
    requires = (POSITION_INDEX,)

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        position_id = record.get("positionId")
        business_date = record.get("businessDate")
        if is_blank(position_id) or is_blank(business_date):
            return
        position = indices.lookup(POSITION_INDEX, position_id)
        if position is not None and position.get("businessDate") != business_date:
            yield self.violation(
                format_message("Settlement ladder {positionId} has businessDate ({businessDate}) that doesn't "
                               "match position businessDate ({positionBusinessDate})", record, index,
                               positionBusinessDate=position.get("businessDate")),
                index,
                "/businessDate",
            )


class ProjectionDateRule(PositionRule):
    """Projected positions derived from a base position carry an ISO projection date."""
    rule_name = "calculated_position_projection_date"
    category = CALCULATED_POSITION_CATEGORY
    collection = "calculatedPositions"

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        if record.get("calculationType") != "PROJECTED" or is_blank(record.get("basePositionId")):
            return
        if not is_iso_date(record.get("projectionDate")):
            yield self.violation(
                format_message("Projected position at index {index} has invalid projectionDate format: "
                               "{projectionDate}", record, index),
                index,
                "/projectionDate",
            )


class CalculationDateNotInFutureRule(PositionRule):
    """A calculation date must not be later than the reference time.

    The reference time is fixed at construction when given, otherwise it
    is the wall clock at the moment the rule runs.
    """
    rule_name = "calculated_position_calculation_date"
    category = CALCULATED_POSITION_CATEGORY
    collection = "calculatedPositions"

    def __init__(self, as_of: datetime | None = None):
        self.as_of = as_of

    def check(self, dataset, indices):
        now = self.as_of or datetime.now(UTC)
        violations = []
        for index, record in enumerate(dataset.collection(self.collection)):
            violations.extend(self.check_record(record, index, indices, now))
        return violations

    def check_record(self, record: Record, index: int, indices: IndexSet,
                     now: datetime | None = None) -> Iterable[Violation]:
        now = now or self.as_of or datetime.now(UTC)
        calculated = parse_timestamp(record.get("calculationDate"))
        if calculated is not None and calculated > now:
            yield self.violation(
                format_message("Calculated position at index {index} has future calculationDate: "
                               "{calculationDate}", record, index),
                index,
                "/calculationDate",
            )


class CompletedCalculationRule(PositionRule):
    """Completed calculations name the rule and version that produced them."""
    rule_name = "calculated_position_completed_rule"
    category = CALCULATED_POSITION_CATEGORY
    collection = "calculatedPositions"

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        if record.get("calculationStatus") != "COMPLETED":
            return
        if is_blank(record.get("calculationRuleId")):
            yield self.violation(
                f"Completed calculated position at index {index} is missing calculationRuleId",
                index,
                "/calculationRuleId",
            )
        version = record.get("calculationRuleVersion")
        if not (isinstance(version, str) or is_number(version)):
            yield self.violation(
                f"Completed calculated position at index {index} is missing or has invalid "
                f"calculationRuleVersion",
                index,
                "/calculationRuleVersion",
            )


def _as_of(config) -> datetime | None:
    if config is None:
        return None
    return config.engine.as_of


def build_position_rule_set(config=None) -> RuleSet:
    """Create the position data rule set."""
    domain = Domain.POSITION
    rule_set = RuleSet("Position Data Consistency", domain)

    position = dict(domain=domain, category=POSITION_CATEGORY, collection="positions", entity="Position")
    rule_set.add_rule(DuplicateKeyRule(
        "position_duplicate_id", fields=("positionId",),
        message="Duplicate positionId found: {positionId}",
        **position,
    ))
    rule_set.add_rule(RequiredFieldRule(
        "position_security_id", field="securityId",
        message="Position {positionId} is missing securityId",
        **position,
    ))
    for field_name in ("counterpartyId", "aggregationUnitId"):
        rule_set.add_rule(RequiredFieldRule(
            f"position_empty_{field_name}", field=field_name, allow_absent=True,
            message=f"Position {{positionId}} has empty {field_name}",
            **position,
        ))
    rule_set.add_rule(DateFormatRule(
        "position_business_date", field="businessDate", iso_date=True,
        message="Position {positionId} has invalid businessDate format: {value}",
        **position,
    ))

    ladder = dict(domain=domain, category=SETTLEMENT_LADDER_CATEGORY, collection="settlementLadders",
                  entity="Settlement ladder")
    rule_set.add_rule(RequiredFieldRule(
        "settlement_ladder_security_id", field="securityId",
        message="Settlement ladder at index {index} is missing securityId",
        **ladder,
    ))
    rule_set.add_rule(ReferenceRule(
        "settlement_ladder_position_reference", field="positionId", target=POSITION_INDEX,
        message="Settlement ladder at index {index} references non-existent position: {value}",
        **ladder,
    ))
    rule_set.add_rule(DateFormatRule(
        "settlement_ladder_settlement_date", field="settlementDate", iso_date=True,
        message="Settlement ladder at index {index} has invalid settlementDate format: {value}",
        **ladder,
    ))
    rule_set.add_rule(DerivedValueRule(
        "settlement_ladder_net_settlement", field="netSettlement", operands=("receiptQty", "deliveryQty"),
        formula=lambda receipts, deliveries: receipts - deliveries,
        message="Settlement ladder at index {index} has inconsistent netSettlement: {actual} "
                "(should be {expected})",
        **ladder,
    ))
    rule_set.add_rule(LadderBusinessDateRule())

    calculated = dict(domain=domain, category=CALCULATED_POSITION_CATEGORY, collection="calculatedPositions",
                      entity="Calculated position")
    rule_set.add_rule(AllowedValuesRule(
        "calculated_position_status", field="calculationStatus", allowed=CALCULATION_STATUSES, required=True,
        message="Calculated position at index {index} has invalid calculationStatus: {value}",
        **calculated,
    ))
    rule_set.add_rule(ReferenceRule(
        "calculated_position_base_reference", field="basePositionId", target=POSITION_INDEX,
        message="Calculated position at index {index} references non-existent base position: {value}",
        **calculated,
    ))
    rule_set.add_rule(ProjectionDateRule())
    rule_set.add_rule(CalculationDateNotInFutureRule(_as_of(config)))
    rule_set.add_rule(CompletedCalculationRule())

    return rule_set
