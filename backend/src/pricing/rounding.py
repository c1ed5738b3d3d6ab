"""Price rounding rules.

Pure functions, no I/O. All arithmetic is Decimal so results are exact.
"""

from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP
from typing import Union

from models.price_list import RoundingRule

_ONE = Decimal("1")
_FIVE_CENTS = Decimal("0.05")
_ENDING_09 = Decimal("0.09")
_ENDING_99 = Decimal("0.99")


def _quantum(precision: int) -> Decimal:
    return _ONE.scaleb(-precision)


def _to_increment(price: Decimal, increment: Decimal) -> Decimal:
    steps = (price / increment).quantize(_ONE, rounding=ROUND_HALF_UP)
    return (steps * increment).quantize(increment)


def _floor_with_ending(price: Decimal, ending: Decimal) -> Decimal:
    """Charm pricing: whole units plus a fixed ending (9.09, 9.99).

    A price already carrying the ending at or above it keeps its whole part,
    so applying the rule twice is a no-op.
    """
    whole = price.to_integral_value(rounding=ROUND_FLOOR)
    return whole + ending


def apply_rounding(
    price: Decimal,
    rule: Union[RoundingRule, str, None],
    precision: int = 2,
) -> Decimal:
    """Round a raw price according to a price list's rounding rule.

    Args:
        price: Raw computed price
        rule: Rounding rule (enum or its string value); None means NONE
        precision: Decimal places used by UP, DOWN and NEAREST

    Returns:
        Rounded price. Zero and negative prices are returned unchanged;
        rejecting negative prices is the caller's job.

    Examples:
        >>> apply_rounding(Decimal("10.234"), RoundingRule.UP, 2)
        Decimal('10.24')
        >>> apply_rounding(Decimal("10.234"), RoundingRule.NEAREST_99, 2)
        Decimal('10.99')
    """
    if rule is None:
        return price
    rule = RoundingRule(rule)

    if rule == RoundingRule.NONE or price <= 0:
        return price

    if rule == RoundingRule.UP:
        return price.quantize(_quantum(precision), rounding=ROUND_CEILING)
    if rule == RoundingRule.DOWN:
        return price.quantize(_quantum(precision), rounding=ROUND_FLOOR)
    if rule == RoundingRule.NEAREST:
        return price.quantize(_quantum(precision), rounding=ROUND_HALF_UP)
    if rule == RoundingRule.NEAREST_05:
        return _to_increment(price, _FIVE_CENTS)
    if rule == RoundingRule.NEAREST_09:
        return _floor_with_ending(price, _ENDING_09)
    if rule == RoundingRule.NEAREST_99:
        return _floor_with_ending(price, _ENDING_99)

    return price
