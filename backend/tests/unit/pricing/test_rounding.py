"""Unit tests for price rounding rules"""

import pytest
from decimal import Decimal

from models.price_list import RoundingRule
from pricing.rounding import apply_rounding


class TestApplyRounding:
    """Each rule rounds as documented and is idempotent"""

    @pytest.mark.parametrize("rule,price,expected", [
        (RoundingRule.NONE, "10.234", "10.234"),
        (RoundingRule.UP, "10.231", "10.24"),
        (RoundingRule.DOWN, "10.239", "10.23"),
        (RoundingRule.NEAREST, "10.235", "10.24"),
        (RoundingRule.NEAREST, "10.234", "10.23"),
        (RoundingRule.NEAREST_05, "10.23", "10.25"),
        (RoundingRule.NEAREST_05, "10.22", "10.20"),
        (RoundingRule.NEAREST_09, "10.50", "10.09"),
        (RoundingRule.NEAREST_99, "10.234", "10.99"),
    ])
    def test_rule(self, rule, price, expected):
        assert apply_rounding(Decimal(price), rule, 2) == Decimal(expected)

    @pytest.mark.parametrize("rule", list(RoundingRule))
    def test_rounding_is_idempotent(self, rule):
        """Given a rounded price, when rounded again with the same rule, then it is unchanged"""
        once = apply_rounding(Decimal("17.3456"), rule, 2)
        assert apply_rounding(once, rule, 2) == once

    def test_precision_is_honoured(self):
        assert apply_rounding(Decimal("10.23456"), RoundingRule.NEAREST, 3) == Decimal("10.235")
        assert apply_rounding(Decimal("10.5"), RoundingRule.UP, 0) == Decimal("11")

    def test_string_rule_accepted(self):
        assert apply_rounding(Decimal("1.005"), "NEAREST", 2) == Decimal("1.01")

    def test_none_rule_returns_price(self):
        assert apply_rounding(Decimal("3.14159"), None) == Decimal("3.14159")

    def test_zero_price_unchanged(self):
        assert apply_rounding(Decimal("0"), RoundingRule.NEAREST_99, 2) == Decimal("0")
