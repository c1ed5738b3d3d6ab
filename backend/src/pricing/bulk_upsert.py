"""Bulk upsert engine for price list items.

Items are written in batches, one transaction per batch and one SAVEPOINT
per item. An item that fails validation or violates a constraint rolls back
only its own savepoint and is reported in the result; the rest of the batch
still commits. Any other database fault aborts the current batch and
propagates to the caller (earlier batches stay committed).

Upsert is keyed by (price_list_id, sku): running the same input twice gives
the same end state, with every item counted as updated the second time.
"""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional, Union
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.orm import Session

from config import settings
from errors import PricingError, PricingValidationError
from models.base import utcnow
from models.price_list import PriceList, PriceListItem
from observability.metrics import bulk_upsert_items_total
from pricing.quantity_breaks import serialize_quantity_breaks
from pricing.schemas import BulkItemError, BulkUpsertResult, PriceListItemUpsert
from pricing.store import PriceListStore

logger = logging.getLogger(__name__)

# Failures confined to a single item
ITEM_ERRORS = (PricingError, ValidationError, ValueError, IntegrityError, DataError)


def validate_upsert_item(item: PriceListItemUpsert) -> None:
    """Business validation for one upsert item.

    Raises:
        PricingValidationError: empty SKU, negative price or min above max
    """
    if not item.sku:
        raise PricingValidationError("SKU must not be empty")
    for field in ("base_price", "list_price", "min_price", "max_price", "cost"):
        value = getattr(item, field)
        if value is not None and value < 0:
            raise PricingValidationError(f"{field} must not be negative")
    if item.min_price is not None and item.max_price is not None and item.min_price > item.max_price:
        raise PricingValidationError("min_price must not exceed max_price")
    if item.max_discount_percent is not None and not 0 <= item.max_discount_percent <= 100:
        raise PricingValidationError("max_discount_percent must be between 0 and 100")
    if item.effective_from and item.effective_to and item.effective_to <= item.effective_from:
        raise PricingValidationError("effective_to must be after effective_from")


def _item_values(item: PriceListItemUpsert, synced_at: datetime) -> dict[str, Any]:
    values = item.model_dump(exclude={"quantity_breaks"})
    if values["list_price"] is None:
        values["list_price"] = values["base_price"]
    values["uom"] = values["uom"] or settings.DEFAULT_UOM
    values["quantity_breaks"] = serialize_quantity_breaks(item.quantity_breaks)
    values["last_sync_at"] = synced_at
    return values


class BulkUpsertService:
    """Idempotent create-or-update of price list items."""

    def __init__(self, db: Session, batch_size: Optional[int] = None):
        self.db = db
        self.batch_size = batch_size or settings.BULK_UPSERT_BATCH_SIZE

    def upsert(
        self,
        org_id: UUID,
        price_list_id: UUID,
        items: Iterable[Union[PriceListItemUpsert, dict]],
    ) -> BulkUpsertResult:
        """Create or update items of one price list.

        Args:
            org_id: Organization owning the list
            price_list_id: Target price list
            items: Upsert items (models or plain dicts)

        Returns:
            BulkUpsertResult with created/updated counts and per-item errors

        Raises:
            NotFoundError: price list does not exist
        """
        price_list = PriceListStore(self.db).get_price_list(org_id, price_list_id)
        pending = list(items)
        result = BulkUpsertResult()

        for start in range(0, len(pending), self.batch_size):
            batch = pending[start:start + self.batch_size]
            self._upsert_batch(price_list, batch, start, result)

        logger.info(
            f"Bulk upsert finished: {result.created} created, {result.updated} updated, "
            f"{len(result.errors)} failed",
            extra={"org_id": str(org_id), "price_list_id": str(price_list_id)},
        )
        return result

    def _upsert_batch(
        self,
        price_list: PriceList,
        batch: list[Union[PriceListItemUpsert, dict]],
        offset: int,
        result: BulkUpsertResult,
    ) -> None:
        synced_at = utcnow()
        try:
            for position, raw in enumerate(batch, start=offset):
                sku = raw.get("sku", "") if isinstance(raw, dict) else raw.sku
                try:
                    with self.db.begin_nested():
                        item = raw if isinstance(raw, PriceListItemUpsert) else PriceListItemUpsert.model_validate(raw)
                        sku = item.sku
                        created = self._upsert_item(price_list.id, item, synced_at)
                except ITEM_ERRORS as e:
                    message = str(e.orig) if isinstance(e, (IntegrityError, DataError)) else str(e)
                    result.errors.append(BulkItemError(sku=str(sku or ""), error=message, index=position))
                    bulk_upsert_items_total.labels(outcome="error").inc()
                    logger.warning(
                        f"Upsert failed for SKU '{sku}': {message}",
                        extra={"price_list_id": str(price_list.id)},
                    )
                    continue

                if created:
                    result.created += 1
                    bulk_upsert_items_total.labels(outcome="created").inc()
                else:
                    result.updated += 1
                    bulk_upsert_items_total.labels(outcome="updated").inc()

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _upsert_item(self, price_list_id: UUID, item: PriceListItemUpsert, synced_at: datetime) -> bool:
        """Write one item inside the caller's savepoint. Returns True when created."""
        validate_upsert_item(item)
        values = _item_values(item, synced_at)

        existing = self.db.query(PriceListItem).filter(
            PriceListItem.price_list_id == price_list_id,
            PriceListItem.sku == item.sku,
        ).first()

        if existing:
            for field, value in values.items():
                setattr(existing, field, value)
            self.db.flush()
            return False

        self.db.add(PriceListItem(price_list_id=price_list_id, **values))
        self.db.flush()
        return True
