"""Market data consistency rules: prices, basket NAVs, volatility curves, FX rates."""

import logging
from collections.abc import Iterable

from ..constants import MAX_REASONABLE_VOLATILITY
from ..framework import (
    Dataset,
    Domain,
    Record,
    RuleSet,
    ValidationRule,
    Violation,
    format_message,
    is_number,
)
from ..indices import IndexSet
from ..keys import DuplicateKeyRule
from ..tolerance import ToleranceProfile, approx_equal, as_decimal, display, weights_sum_to_one
from .common import NamedRecordRule, NotGreaterThanRule, PositiveValueRule

logger = logging.getLogger(__name__)

PRICE_CATEGORY = "Price Consistency"
BASKET_NAV_CATEGORY = "Basket NAV Consistency"
VOLATILITY_CATEGORY = "Volatility Curve Consistency"
FX_CATEGORY = "FX Rate Consistency"


def _present(record: Record, field_name: str) -> bool:
    return record.get(field_name) is not None


class MarketRule(NamedRecordRule):
    """Base for hand-written market data rules."""
    domain = Domain.MARKET


class PriceInformationRule(MarketRule):
    """A price carries either ``price`` or both ``bidPrice`` and ``askPrice``."""
    rule_name = "price_information"
    category = PRICE_CATEGORY
    collection = "prices"

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        has_price = _present(record, "price")
        has_bid = _present(record, "bidPrice")
        has_ask = _present(record, "askPrice")

        if has_price and (has_bid or has_ask):
            yield self.violation(
                format_message("Price entry at index {index} has both price and bid/ask prices "
                               "for security {securityId}", record, index),
                index,
            )
        if not has_price and not (has_bid and has_ask):
            yield self.violation(
                format_message("Price entry at index {index} is missing required price information "
                               "for security {securityId}", record, index),
                index,
            )


class BasketConstituentWeightsRule(MarketRule):
    """Constituent weights sum to 1.0 and none is negative."""
    rule_name = "basket_constituent_weights"
    category = BASKET_NAV_CATEGORY
    collection = "basketNavs"
    profile = ToleranceProfile.BASKET_WEIGHT

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        constituents = record.get("constituents")
        if not isinstance(constituents, (list, tuple)) or not constituents:
            return

        weights = []
        complete = True
        for position, constituent in enumerate(constituents):
            weight = constituent.get("weight") if hasattr(constituent, "get") else None
            if not is_number(weight):
                complete = False
                yield self.violation(
                    format_message("Basket NAV entry at index {index} has constituent at index {position} "
                                   "without a numeric weight for basket {basketId}", record, index,
                                   position=position),
                    index,
                    f"/constituents[{position}]/weight",
                )
                continue
            weights.append(weight)
            if weight < 0:
                yield self.violation(
                    format_message("Basket NAV entry at index {index} has constituent at index {position} "
                                   "with negative weight ({weight}) for basket {basketId}", record, index,
                                   position=position, weight=display(weight)),
                    index,
                    f"/constituents[{position}]/weight",
                )

        if not complete:
            return
        balanced, weight_sum = weights_sum_to_one(weights, self.profile)
        if not balanced:
            yield self.violation(
                format_message("Basket NAV entry at index {index} has constituent weights that sum to {total}, "
                               "which is not approximately 1.0 for basket {basketId}", record, index,
                               total=display(weight_sum)),
                index,
                "/constituents",
            )


class VolatilityPointsRule(MarketRule):
    """A curve has points and every volatility is positive and plausible."""
    rule_name = "volatility_points"
    category = VOLATILITY_CATEGORY
    collection = "volatilityCurves"

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        points = record.get("points")
        if not isinstance(points, (list, tuple)) or not points:
            yield self.violation(
                format_message("Volatility curve entry at index {index} has no volatility points "
                               "for security {securityId}", record, index),
                index,
                "/points",
            )
            return

        for position, point in enumerate(points):
            volatility = point.get("volatility") if hasattr(point, "get") else None
            path = f"/points[{position}]/volatility"
            if not is_number(volatility):
                yield self.violation(
                    format_message("Volatility curve entry at index {index} is missing a numeric volatility "
                                   "at point index {position} for security {securityId}", record, index,
                                   position=position),
                    index,
                    path,
                )
                continue
            if volatility <= 0:
                yield self.violation(
                    format_message("Volatility curve entry at index {index} has non-positive volatility value "
                                   "({value}) at point index {position} for security {securityId}", record,
                                   index, value=display(volatility), position=position),
                    index,
                    path,
                )
            if volatility > MAX_REASONABLE_VOLATILITY:
                yield self.violation(
                    format_message("Volatility curve entry at index {index} has unusually high volatility value "
                                   "({value}) at point index {position} for security {securityId}", record,
                                   index, value=display(volatility), position=position),
                    index,
                    path,
                )


class TenorOrderRule(MarketRule):
    """Tenors of a curve are strictly ascending.

    Scanning of a curve stops at its first out-of-order point, so a curve
    yields at most one ordering violation.
    """
    rule_name = "volatility_tenor_order"
    category = VOLATILITY_CATEGORY
    collection = "volatilityCurves"

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        points = record.get("points")
        if not isinstance(points, (list, tuple)):
            return

        last_tenor = None
        for position, point in enumerate(points):
            tenor = point.get("tenor") if hasattr(point, "get") else None
            if not is_number(tenor):
                yield self.violation(
                    format_message("Volatility curve entry at index {index} is missing a numeric tenor "
                                   "at point index {position} for security {securityId}", record, index,
                                   position=position),
                    index,
                    f"/points[{position}]/tenor",
                )
                return
            if last_tenor is not None and tenor <= last_tenor:
                yield self.violation(
                    format_message("Volatility curve entry at index {index} has non-ascending tenor values "
                                   "at point index {position} for security {securityId}", record, index,
                                   position=position),
                    index,
                    f"/points[{position}]/tenor",
                )
                return
            last_tenor = tenor


class FxReciprocalRule(ValidationRule):
    """Rates observed in both directions multiply to 1 within tolerance.

    The first pass records the last observed rate per (base, quote, rate
    type); the second pass compares each direction with its reciprocal.
    A pair is reported once, against the later of its two records.
    """
    domain = Domain.MARKET
    category = FX_CATEGORY
    collection = "fxRates"
    profile = ToleranceProfile.RATE

    @property
    def name(self) -> str:
        return "fx_reciprocal_consistency"

    @staticmethod
    def _pair(record: Record) -> tuple | None:
        base = record.get("baseCurrency")
        quote = record.get("quoteCurrency")
        if not base or not quote or base == quote:
            return None
        return base, quote, record.get("rateType")

    def check(self, dataset: Dataset, indices: IndexSet) -> list[Violation]:
        records = dataset.collection(self.collection)

        observed: dict[tuple, int] = {}
        for index, record in enumerate(records):
            pair = self._pair(record)
            rate = record.get("rate")
            if pair is None or not is_number(rate) or rate <= 0:
                continue
            try:
                observed[pair] = index
            except TypeError:
                logger.debug(f"Skipping FX rate with unhashable rate type at index {index}")

        violations = []
        for pair, index in sorted(observed.items(), key=lambda item: item[1]):
            base, quote, rate_type = pair
            reciprocal_index = observed.get((quote, base, rate_type))
            if reciprocal_index is None or reciprocal_index > index:
                continue

            rate = records[index]["rate"]
            reciprocal_rate = records[reciprocal_index]["rate"]
            product = as_decimal(rate) * as_decimal(reciprocal_rate)
            if not approx_equal(product, 1, self.profile):
                expected = 1 / as_decimal(rate)
                violations.append(self.violation(
                    f"Inconsistent reciprocal FX rates detected: {base}/{quote} = {display(rate)} "
                    f"but {quote}/{base} = {display(reciprocal_rate)} "
                    f"(expected approximately {display(round(expected, 6))})",
                    index,
                ))
        return violations


def build_market_rule_set(config=None) -> RuleSet:
    """Create the market data rule set."""
    domain = Domain.MARKET
    rule_set = RuleSet("Market Data Consistency", domain)

    price = dict(domain=domain, category=PRICE_CATEGORY, collection="prices", entity="Price entry")
    rule_set.add_rule(DuplicateKeyRule(
        "price_duplicate_key", fields=("securityId", "eventTime", "priceType"),
        message="Duplicate price entry at index {index} for security {securityId} at time {eventTime} "
                "with price type {priceType}",
        **price,
    ))
    rule_set.add_rule(PriceInformationRule())
    for field_name, label in (("price", "price"), ("bidPrice", "bid price"), ("askPrice", "ask price")):
        rule_set.add_rule(PositiveValueRule(
            f"price_positive_{field_name}", field=field_name, required=False,
            message=f"Price entry at index {{index}} has non-positive {label} value ({{value}}) "
                    f"for security {{securityId}}",
            **price,
        ))
    rule_set.add_rule(NotGreaterThanRule(
        "price_bid_not_above_ask", lesser="bidPrice", greater="askPrice",
        message="Price entry at index {index} has bid price ({lesser}) greater than ask price ({greater}) "
                "for security {securityId}",
        **price,
    ))

    nav = dict(domain=domain, category=BASKET_NAV_CATEGORY, collection="basketNavs", entity="Basket NAV entry")
    rule_set.add_rule(DuplicateKeyRule(
        "basket_nav_duplicate_key", fields=("basketId", "calculationTime", "navType"),
        message="Duplicate basket NAV entry at index {index} for basket {basketId} at time {calculationTime} "
                "with type {navType}",
        **nav,
    ))
    rule_set.add_rule(PositiveValueRule(
        "basket_nav_positive", field="nav",
        message="Basket NAV entry at index {index} has non-positive NAV value ({value}) for basket {basketId}",
        **nav,
    ))
    rule_set.add_rule(BasketConstituentWeightsRule())

    rule_set.add_rule(DuplicateKeyRule(
        "volatility_curve_duplicate_key", domain=domain, category=VOLATILITY_CATEGORY,
        collection="volatilityCurves", entity="Volatility curve entry",
        fields=("securityId", "calculationTime", "curveType"),
        message="Duplicate volatility curve entry at index {index} for security {securityId} "
                "at time {calculationTime} with type {curveType}",
    ))
    rule_set.add_rule(VolatilityPointsRule())
    rule_set.add_rule(TenorOrderRule())

    fx = dict(domain=domain, category=FX_CATEGORY, collection="fxRates", entity="FX rate entry")
    rule_set.add_rule(DuplicateKeyRule(
        "fx_rate_duplicate_key", fields=("baseCurrency", "quoteCurrency", "eventTime", "rateType"),
        message="Duplicate FX rate entry at index {index} for {baseCurrency}/{quoteCurrency} "
                "at time {eventTime} with type {rateType}",
        **fx,
    ))
    rule_set.add_rule(PositiveValueRule(
        "fx_rate_positive", field="rate",
        message="FX rate entry at index {index} has non-positive rate value ({value}) "
                "for {baseCurrency}/{quoteCurrency}",
        **fx,
    ))
    rule_set.add_rule(FxReciprocalRule())

    return rule_set
