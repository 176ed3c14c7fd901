"""Closed value sets used by the enumerated-value rules."""

from enum import Enum


class CalculationType(str, Enum):
    """Inventory calculation types."""
    FOR_LOAN = "FOR_LOAN"
    FOR_PLEDGE = "FOR_PLEDGE"
    SHORT_SELL = "SHORT_SELL"
    LONG_SELL = "LONG_SELL"
    LOCATE = "LOCATE"
    OVERBORROW = "OVERBORROW"


CALCULATION_TYPES = frozenset(item.value for item in CalculationType)

LIMIT_TYPES = frozenset({CalculationType.LONG_SELL.value, CalculationType.SHORT_SELL.value})

CALCULATION_STATUSES = frozenset({"COMPLETED", "FAILED", "IN_PROGRESS", "PENDING"})

CONDITION_OPERATORS = frozenset({
    "=", "!=", ">", "<", ">=", "<=",
    "in", "not in", "contains", "starts with", "ends with",
})

ACTION_TYPES = frozenset({"include", "exclude", "multiply", "add", "set"})

# Keys accepted in aggregation unit limit ``marketRules`` (case-insensitive)
MARKET_RULE_KEYS = frozenset({"global", "us", "uk", "japan", "taiwan", "eu"})

SETTLEMENT_DAYS = ("sd0", "sd1", "sd2", "sd3", "sd4")

# Above this annualised volatility (200%) a point is reported as unusually high
MAX_REASONABLE_VOLATILITY = 2
