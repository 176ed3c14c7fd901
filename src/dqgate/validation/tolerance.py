"""Approximate numeric comparison with fixed, named tolerance profiles.

Epsilons are domain constants and are not configurable. The two weight
profiles differ on purpose: market-data basket NAVs are published with
coarser precision than reference-data index compositions.
"""

from collections.abc import Iterable
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any


class ToleranceProfile(str, Enum):
    """Named comparison profiles."""
    RATE = "rate"
    DERIVED_QUANTITY = "derived_quantity"
    BASKET_WEIGHT = "basket_weight"
    INDEX_WEIGHT = "index_weight"

    @property
    def epsilon(self) -> Decimal:
        return EPSILONS[self]


EPSILONS = {
    ToleranceProfile.RATE: Decimal("0.0001"),
    ToleranceProfile.DERIVED_QUANTITY: Decimal("0.0001"),
    ToleranceProfile.BASKET_WEIGHT: Decimal("0.01"),
    ToleranceProfile.INDEX_WEIGHT: Decimal("0.005"),
}


def as_decimal(value: Any) -> Decimal:
    """Convert a numeric value to Decimal.

    Floats go through their shortest round-trip representation so that a
    JSON ``0.41`` compares as exactly 0.41.

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        number = Decimal(repr(value))
    else:
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Not a number: {value!r}")
    if not number.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return number


def difference(a: Any, b: Any) -> Decimal:
    return abs(as_decimal(a) - as_decimal(b))


def approx_equal(a: Any, b: Any, profile: ToleranceProfile) -> bool:
    """True when |a - b| <= epsilon(profile)."""
    return difference(a, b) <= profile.epsilon


def total(values: Iterable[Any]) -> Decimal:
    """Exact decimal sum of numeric values."""
    return sum((as_decimal(value) for value in values), Decimal(0))


def weights_sum_to_one(weights: Iterable[Any], profile: ToleranceProfile) -> tuple[bool, Decimal]:
    """Check that weights sum to 1.0 within the profile's tolerance.

    Returns:
        Tuple of (within tolerance, computed sum)
    """
    weight_sum = total(weights)
    return approx_equal(weight_sum, 1, profile), weight_sum


def display(value: Any) -> str:
    """Render a number without float noise or exponent notation."""
    try:
        number = as_decimal(value)
    except ValueError:
        return str(value)
    if number == number.to_integral_value():
        return str(number.quantize(Decimal(1)))
    return format(number.normalize(), "f")
