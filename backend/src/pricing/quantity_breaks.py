"""Quantity break (tiered pricing) selection.

A break is either a fixed tier price or a percentage discount off the list
price, never both. Selection picks the highest qualifying tier: breaks are
scanned by descending ``min_quantity`` and the first one whose bounds admit
the requested quantity wins.
"""

from decimal import Decimal
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from errors import PricingValidationError

_HUNDRED = Decimal("100")


class QuantityBreak(BaseModel):
    """One tier of volume pricing."""
    min_quantity: Decimal = Field(..., ge=0)
    max_quantity: Optional[Decimal] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, ge=0)
    discount_percent: Optional[Decimal] = Field(None, ge=0, le=100)

    @model_validator(mode="after")
    def check_break(self) -> "QuantityBreak":
        """Exactly one of price/discount_percent; max not below min."""
        if (self.price is None) == (self.discount_percent is None):
            raise ValueError("quantity break needs exactly one of 'price' or 'discount_percent'")
        if self.max_quantity is not None and self.max_quantity < self.min_quantity:
            raise ValueError("max_quantity must be greater than or equal to min_quantity")
        return self

    def admits(self, quantity: Decimal) -> bool:
        if quantity < self.min_quantity:
            return False
        return self.max_quantity is None or quantity <= self.max_quantity


def parse_quantity_breaks(raw: Optional[Iterable[Any]]) -> list[QuantityBreak]:
    """Build validated breaks from stored JSON or API input.

    Raises:
        PricingValidationError: If any break is malformed
    """
    if not raw:
        return []
    breaks = []
    for index, entry in enumerate(raw):
        if isinstance(entry, QuantityBreak):
            breaks.append(entry)
            continue
        try:
            breaks.append(QuantityBreak.model_validate(entry))
        except ValidationError as e:
            raise PricingValidationError(f"Invalid quantity break at index {index}: {e.errors()[0]['msg']}")
    return breaks


def serialize_quantity_breaks(breaks: Iterable[QuantityBreak]) -> list[dict]:
    """JSON-safe representation for storage (decimals as strings)."""
    return [b.model_dump(mode="json", exclude_none=True) for b in breaks]


def select_quantity_break(
    breaks: Iterable[QuantityBreak],
    quantity: Decimal,
) -> Optional[QuantityBreak]:
    """Return the highest tier admitting ``quantity``, or None."""
    for tier in sorted(breaks, key=lambda b: b.min_quantity, reverse=True):
        if tier.admits(quantity):
            return tier
    return None


def apply_quantity_breaks(
    breaks: Iterable[QuantityBreak],
    quantity: Decimal,
    list_price: Decimal,
) -> tuple[Decimal, Optional[QuantityBreak]]:
    """Compute the pre-rounding unit price for a quantity.

    Args:
        breaks: Configured tiers (any order)
        quantity: Requested quantity
        list_price: Item list price

    Returns:
        Tuple of (price, applied break or None)
    """
    applied = select_quantity_break(breaks, quantity)
    if applied is None:
        return list_price, None
    if applied.price is not None:
        return applied.price, applied
    return list_price * (1 - applied.discount_percent / _HUNDRED), applied
