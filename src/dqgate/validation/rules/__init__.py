"""Consistency rule sets, one module per domain."""

from ..framework import Domain
from .calculation import build_calculation_rule_set
from .inventory import build_inventory_rule_set
from .market import build_market_rule_set
from .position import build_position_rule_set
from .reference import build_reference_rule_set

RULE_SET_BUILDERS = {
    Domain.MARKET: build_market_rule_set,
    Domain.POSITION: build_position_rule_set,
    Domain.CALCULATION: build_calculation_rule_set,
    Domain.REFERENCE: build_reference_rule_set,
    Domain.INVENTORY: build_inventory_rule_set,
}

__all__ = [
    "RULE_SET_BUILDERS",
    "build_calculation_rule_set",
    "build_inventory_rule_set",
    "build_market_rule_set",
    "build_position_rule_set",
    "build_reference_rule_set",
]
