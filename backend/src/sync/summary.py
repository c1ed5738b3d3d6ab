"""Sync summary statistics."""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from sync.schemas import PriceChange, PriceChangeStats, SyncSummary

_HUNDRED = Decimal("100")
_PERCENT_QUANTUM = Decimal("0.0001")


def price_change(sku: str, old_price: Decimal, new_price: Decimal) -> Optional[PriceChange]:
    """Describe a list price change, or None when the price did not move."""
    old_price, new_price = Decimal(old_price), Decimal(new_price)
    if old_price == new_price:
        return None
    percent = None
    if old_price != 0:
        percent = ((new_price - old_price) / old_price * _HUNDRED).quantize(_PERCENT_QUANTUM, rounding=ROUND_HALF_UP)
    return PriceChange(sku=sku, old_price=old_price, new_price=new_price, change_percent=percent)


def calculate_sync_summary(
    existing_count: int,
    success_count: int,
    skipped_count: int,
    price_changes: Iterable[PriceChange],
) -> SyncSummary:
    """Summarize an import.

    Args:
        existing_count: Items in the list before the import
        success_count: Items upserted successfully
        skipped_count: Items skipped
        price_changes: List price changes of successfully upserted items

    Returns:
        SyncSummary. Created is estimated as success beyond the pre-existing
        count; the rest count as updated.
    """
    changes = list(price_changes)
    increased = [c for c in changes if c.new_price > c.old_price]
    decreased = [c for c in changes if c.new_price < c.old_price]
    with_percent = [c for c in changes if c.change_percent is not None]

    stats = PriceChangeStats(
        increased=len(increased),
        decreased=len(decreased),
        unchanged=max(0, success_count - len(changes)),
    )
    if with_percent:
        average = sum((c.change_percent for c in with_percent), Decimal(0)) / len(with_percent)
        stats.average_change_percent = average.quantize(_PERCENT_QUANTUM, rounding=ROUND_HALF_UP)

    increased_pct = [c for c in increased if c.change_percent is not None]
    decreased_pct = [c for c in decreased if c.change_percent is not None]
    if increased_pct:
        stats.max_increase = max(increased_pct, key=lambda c: c.change_percent)
    if decreased_pct:
        stats.max_decrease = min(decreased_pct, key=lambda c: c.change_percent)

    items_created = max(0, success_count - existing_count)
    return SyncSummary(
        items_created=items_created,
        items_updated=success_count - items_created,
        items_deleted=0,
        items_unchanged=skipped_count,
        price_changes=stats,
    )
