"""Market-specific regulatory rules keyed by (market, domain).

Generic rule sets know nothing about individual markets. Each jurisdiction
contributes its own rules through a :class:`JurisdictionRuleTable`, and the
engine runs the table's rules for a domain alongside that domain's rule
set. Adding a jurisdiction is a registration, not an edit to generic rules.

The default table is frozen at import time and shared read-only between
validation runs.
"""

import logging
from abc import abstractmethod
from collections.abc import Iterable, Iterator
from datetime import datetime, time, timedelta, timezone
from enum import Enum

from ..errors import JurisdictionTableError
from .constants import CalculationType
from .dates import parse_timestamp
from .framework import Domain, Record, RecordRule, Violation, format_message, is_number
from .indices import IndexSet

logger = logging.getLogger(__name__)

# Japan does not observe daylight saving, so a fixed offset is exact
JST = timezone(timedelta(hours=9), "JST")

# Calculation data: SLAB settlements must land by 13:30 JST
JAPAN_SLAB_SETTLEMENT_CUTOFF = time(13, 30)
# Inventory data: FOR_LOAN calculated inventory must be produced by 15:00 JST
JAPAN_SLAB_CALCULATION_CUTOFF = time(15, 0)


class Market(str, Enum):
    """Jurisdictions with market-specific rules."""
    TAIWAN = "TAIWAN"
    JAPAN = "JAPAN"

    @property
    def codes(self) -> frozenset[str]:
        """Market codes accepted in records, upper-cased."""
        return MARKET_CODES[self]

    @property
    def label(self) -> str:
        return self.value.title()

    def matches(self, value) -> bool:
        """True when a record's market code denotes this market (case-insensitive)."""
        return isinstance(value, str) and value.strip().upper() in self.codes

    @classmethod
    def from_code(cls, value) -> "Market | None":
        for market in cls:
            if market.matches(value):
                return market
        return None


MARKET_CODES = {
    Market.TAIWAN: frozenset({"TW", "TWN", "TAIWAN"}),
    Market.JAPAN: frozenset({"JP", "JPN", "JAPAN"}),
}


class JurisdictionRule(RecordRule):
    """Rule that only applies to records whose ``market`` is its jurisdiction."""
    market: Market
    rule_name = ""

    @property
    def name(self) -> str:
        return self.rule_name

    @property
    def category(self) -> str:
        return f"{self.market.label} market rule violation"

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        if not self.market.matches(record.get("market")):
            return ()
        return self.check_market_record(record, index)

    @abstractmethod
    def check_market_record(self, record: Record, index: int) -> Iterable[Violation]:
        """Evaluate a record already known to belong to this market."""
        pass


def _local_time(value, tz: timezone) -> datetime | None:
    parsed = parse_timestamp(value, default_tz=tz)
    return parsed.astimezone(tz) if parsed else None


class TaiwanBorrowedInventoryRule(JurisdictionRule):
    """Borrowed inventory must not be flagged for loan (no re-lending)."""
    market = Market.TAIWAN
    domain = Domain.INVENTORY
    collection = "inventories"
    rule_name = "taiwan_no_relend_inventory"

    def check_market_record(self, record: Record, index: int) -> Iterable[Violation]:
        if record.get("isBorrowed") is True and record.get("calculationType") == CalculationType.FOR_LOAN:
            yield self.violation(
                format_message("Borrowed shares cannot be re-lent. Inventory ID: {inventoryId}", record, index),
                index,
            )


class TaiwanBorrowedAvailabilityRule(JurisdictionRule):
    """For-loan availability must not include borrowed quantity."""
    market = Market.TAIWAN
    domain = Domain.CALCULATION
    collection = "inventoryAvailability"
    rule_name = "taiwan_no_relend_availability"

    def check_market_record(self, record: Record, index: int) -> Iterable[Violation]:
        borrowed = record.get("borrowedQuantity")
        if (record.get("calculationType") == CalculationType.FOR_LOAN
                and is_number(borrowed) and borrowed > 0):
            yield self.violation(
                format_message("Borrowed shares cannot be re-lent. Availability ID: {availabilityId}", record, index),
                index,
                "/borrowedQuantity",
            )


class JapanSlabSettlementCutoffRule(JurisdictionRule):
    """SLAB settlements must be timed no later than 13:30 JST."""
    market = Market.JAPAN
    domain = Domain.CALCULATION
    collection = "settlementLadders"
    rule_name = "japan_slab_settlement_cutoff"
    cutoff = JAPAN_SLAB_SETTLEMENT_CUTOFF

    def check_market_record(self, record: Record, index: int) -> Iterable[Violation]:
        if record.get("activityType") != "SLAB":
            return
        settled = _local_time(record.get("settlementTime"), JST)
        if settled is not None and settled.time().replace(microsecond=0) > self.cutoff:
            yield self.violation(
                f"SLAB activity must settle before {self.cutoff:%H:%M} JST. Settlement ladder at index {index} "
                f"settled at {settled:%H:%M:%S} JST",
                index,
                "/settlementTime",
            )


class JapanQuantoSettlementTypeRule(JurisdictionRule):
    """Quanto ladders must not carry a T+1 settlement type; they settle T+2."""
    market = Market.JAPAN
    domain = Domain.CALCULATION
    collection = "settlementLadders"
    rule_name = "japan_quanto_settlement_type"

    def check_market_record(self, record: Record, index: int) -> Iterable[Violation]:
        if record.get("securityType") == "QUANTO" and record.get("settlementType") == "T+1":
            yield self.violation(
                f"Quanto settlements with T+1 date must settle T+2. Settlement ladder at index {index}",
                index,
                "/settlementType",
            )


class JapanSlabCalculationCutoffRule(JurisdictionRule):
    """For-loan calculated inventory must be produced by 15:00 JST."""
    market = Market.JAPAN
    domain = Domain.INVENTORY
    collection = "calculatedInventories"
    rule_name = "japan_slab_calculation_cutoff"
    cutoff = JAPAN_SLAB_CALCULATION_CUTOFF

    def check_market_record(self, record: Record, index: int) -> Iterable[Violation]:
        if record.get("calculationType") != CalculationType.FOR_LOAN:
            return
        calculated = _local_time(record.get("calculationTimestamp"), JST)
        if calculated is not None and calculated.time().replace(microsecond=0) > self.cutoff:
            yield self.violation(
                format_message(
                    "SLAB activity calculated after cut-off time ({cutoff} JST). Calculated Inventory ID: "
                    "{calculatedInventoryId}, Time: {local}",
                    record, index, cutoff=f"{self.cutoff:%H:%M}", local=calculated.isoformat(),
                ),
                index,
                "/calculationTimestamp",
            )


class JapanQuantoSettlementEventRule(JurisdictionRule):
    """Quanto settlement events expecting T+1 must settle two days after trade."""
    market = Market.JAPAN
    domain = Domain.INVENTORY
    collection = "inventoryEvents"
    rule_name = "japan_quanto_settlement_event"

    def check_market_record(self, record: Record, index: int) -> Iterable[Violation]:
        if record.get("eventType") != "SETTLEMENT" or record.get("isQuantoSettlement") is not True:
            return
        if record.get("expectedSettlementDays") != 1:
            return
        traded = parse_timestamp(record.get("tradeDate"))
        settled = parse_timestamp(record.get("settlementDate"))
        if traded is None or settled is None:
            return
        days = round((settled - traded) / timedelta(days=1))
        if days != 2:
            yield self.violation(
                format_message("Quanto settlement with T+1 expected settlement should settle T+2. "
                               "Event ID: {eventId} settled T+{days}", record, index, days=days),
                index,
                "/settlementDate",
            )


class JurisdictionRuleTable:
    """Registry of jurisdiction rules keyed by (market, domain).

    Registration is additive and allowed until :meth:`freeze` is called;
    afterwards the table is read-only and safe to share between runs.
    """

    def __init__(self, rules: Iterable[JurisdictionRule] = ()):
        self._rules: dict[tuple[Market, Domain], list[JurisdictionRule]] = {}
        self._frozen = False
        for rule in rules:
            self.register(rule)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, rule: JurisdictionRule) -> None:
        """Add a rule under its (market, domain) key.

        Raises:
            JurisdictionTableError: If the table is frozen or the rule is not a jurisdiction rule
        """
        if self._frozen:
            raise JurisdictionTableError(f"Cannot register {rule!r}: jurisdiction table is frozen")
        if not isinstance(rule, JurisdictionRule) or rule.domain is None:
            raise JurisdictionTableError(f"Not a jurisdiction rule: {rule!r}")
        self._rules.setdefault((rule.market, rule.domain), []).append(rule)
        logger.debug(f"Registered {rule.name} for ({rule.market.value}, {rule.domain.value})")

    def freeze(self) -> "JurisdictionRuleTable":
        self._frozen = True
        return self

    def get(self, market: Market, domain: Domain) -> tuple[JurisdictionRule, ...]:
        """Rules registered for one (market, domain) pair."""
        return tuple(self._rules.get((Market(market), Domain(domain)), ()))

    def rules_for(self, domain: Domain, markets: Iterable[Market] | None = None) -> list[JurisdictionRule]:
        """Rules for a domain across all (or the given) markets, in registration order."""
        allowed = {Market(market) for market in markets} if markets is not None else None
        return [
            rule
            for (market, rule_domain), rules in self._rules.items()
            if rule_domain == domain and (allowed is None or market in allowed)
            for rule in rules
        ]

    def keys(self) -> list[tuple[Market, Domain]]:
        return list(self._rules)

    def __iter__(self) -> Iterator[JurisdictionRule]:
        for rules in self._rules.values():
            yield from rules

    def __len__(self) -> int:
        return sum(len(rules) for rules in self._rules.values())


def create_default_jurisdiction_table() -> JurisdictionRuleTable:
    """Create an unfrozen table with the built-in jurisdiction rules."""
    return JurisdictionRuleTable([
        TaiwanBorrowedInventoryRule(),
        TaiwanBorrowedAvailabilityRule(),
        JapanSlabSettlementCutoffRule(),
        JapanQuantoSettlementTypeRule(),
        JapanSlabCalculationCutoffRule(),
        JapanQuantoSettlementEventRule(),
    ])


DEFAULT_JURISDICTION_TABLE = create_default_jurisdiction_table().freeze()
