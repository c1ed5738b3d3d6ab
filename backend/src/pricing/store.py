"""Price list store: CRUD and queries for price lists, items and assignments.

Every public operation takes ``org_id`` and only ever sees rows of that
organization. Write operations commit; a failed commit is rolled back
before the error is translated or re-raised.

Effective dating is half-open everywhere: a row is in force on ``as_of``
when ``effective_from <= as_of`` (or NULL) and ``as_of < effective_to``
(or NULL).
"""

import logging
from datetime import date
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import and_, or_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from errors import ConflictError, NotFoundError, PricingValidationError
from models.base import utcnow
from models.customer_price_assignment import AssignmentType, CustomerPriceAssignment
from models.price_list import PriceList, PriceListItem, PriceListStatus
from pricing.quantity_breaks import serialize_quantity_breaks
from pricing.schemas import (
    AssignmentCreate,
    PriceListCreate,
    PriceListFilters,
    PriceListItemCreate,
    PriceListItemFilters,
    PriceListItemUpdate,
    PriceListUpdate,
)

logger = logging.getLogger(__name__)


def effective_at(from_column, to_column, as_of: date):
    """SQL predicate: ``as_of`` falls inside the half-open window."""
    return and_(
        or_(from_column.is_(None), from_column <= as_of),
        or_(to_column.is_(None), to_column > as_of),
    )


def _plain(values: dict[str, Any]) -> dict[str, Any]:
    """Unwrap enum members to their stored string values."""
    return {k: getattr(v, "value", v) for k, v in values.items()}


def _check_window(effective_from: Optional[date], effective_to: Optional[date]) -> None:
    if effective_from is not None and effective_to is not None and effective_to <= effective_from:
        raise PricingValidationError("effective_to must be after effective_from")


class PriceListStore:
    """Data access for price lists and everything they own."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Price lists
    # ------------------------------------------------------------------

    def create_price_list(self, org_id: UUID, data: PriceListCreate) -> PriceList:
        """Create a price list.

        When ``is_default`` is set, every other default of the organization is
        unset in the same transaction.

        Raises:
            NotFoundError: base price list does not exist in the organization
            ConflictError: code already used in the organization
            PricingValidationError: effective_to not after effective_from
        """
        _check_window(data.effective_from, data.effective_to)
        if data.base_price_list_id is not None:
            self.get_price_list(org_id, data.base_price_list_id)

        existing = self.db.query(PriceList).filter(
            PriceList.org_id == org_id,
            PriceList.code == data.code,
        ).first()
        if existing:
            raise ConflictError(f"Price list code already exists: {data.code}")

        if data.is_default:
            self._unset_default(org_id)

        price_list = PriceList(org_id=org_id, **_plain(data.model_dump()))
        self.db.add(price_list)
        self._commit(f"Price list code already exists: {data.code}")
        self.db.refresh(price_list)

        logger.info(
            f"Created price list {price_list.code}",
            extra={"org_id": str(org_id), "price_list_id": str(price_list.id)},
        )
        return price_list

    def update_price_list(self, org_id: UUID, price_list_id: UUID, data: PriceListUpdate) -> PriceList:
        """Apply a partial update. Becoming default unsets the previous default atomically."""
        price_list = self.get_price_list(org_id, price_list_id)
        changes = _plain(data.model_dump(exclude_unset=True))

        _check_window(
            changes.get("effective_from", price_list.effective_from),
            changes.get("effective_to", price_list.effective_to),
        )

        base_id = changes.get("base_price_list_id")
        if base_id is not None:
            if base_id == price_list.id:
                raise PricingValidationError("A price list cannot derive from itself")
            self.get_price_list(org_id, base_id)

        if changes.get("is_default") and not price_list.is_default:
            self._unset_default(org_id, exclude_id=price_list.id)

        for field, value in changes.items():
            setattr(price_list, field, value)

        self._commit("Another default price list was set concurrently")
        self.db.refresh(price_list)
        return price_list

    def get_price_list(self, org_id: UUID, price_list_id: UUID) -> PriceList:
        """Fetch a live (not soft-deleted) price list or raise NotFoundError."""
        price_list = self.db.query(PriceList).filter(
            PriceList.id == price_list_id,
            PriceList.org_id == org_id,
            PriceList.deleted_at.is_(None),
        ).first()
        if not price_list:
            raise NotFoundError(f"Price list not found: {price_list_id}")
        return price_list

    def find_price_list_by_code(self, org_id: UUID, code: str) -> Optional[PriceList]:
        return self.db.query(PriceList).filter(
            PriceList.org_id == org_id,
            PriceList.code == code,
            PriceList.deleted_at.is_(None),
        ).first()

    def get_price_list_with_items(self, org_id: UUID, price_list_id: UUID) -> PriceList:
        """Price list with ``items`` loaded (ordered by SKU)."""
        price_list = self.get_price_list(org_id, price_list_id)
        # Touch the relationship so it is loaded before the session closes
        len(price_list.items)
        return price_list

    def query_price_lists(self, org_id: UUID, filters: PriceListFilters) -> tuple[list[PriceList], int]:
        """Filtered, sorted, paginated price lists.

        Returns:
            Tuple of (page of price lists, total matching count)
        """
        query = self.db.query(PriceList).filter(
            PriceList.org_id == org_id,
            PriceList.deleted_at.is_(None),
        )

        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.filter(or_(PriceList.code.ilike(pattern), PriceList.name.ilike(pattern)))
        if filters.type:
            query = query.filter(PriceList.type == filters.type.value)
        if filters.status:
            query = query.filter(PriceList.status == filters.status.value)
        if filters.currency:
            query = query.filter(PriceList.currency == filters.currency.upper())
        if filters.is_default is not None:
            query = query.filter(PriceList.is_default == filters.is_default)
        if filters.is_customer_specific is not None:
            query = query.filter(PriceList.is_customer_specific == filters.is_customer_specific)
        if filters.external_id:
            query = query.filter(PriceList.external_id == filters.external_id)
        if filters.external_system:
            query = query.filter(PriceList.external_system == filters.external_system)
        if filters.effective_at:
            query = query.filter(effective_at(PriceList.effective_from, PriceList.effective_to, filters.effective_at))

        total = query.count()

        sort_column = getattr(PriceList, filters.sort_by)
        order = sort_column.desc() if filters.sort_order == "desc" else sort_column.asc()
        offset = (filters.page - 1) * filters.per_page
        items = query.order_by(order, PriceList.code.asc()).offset(offset).limit(filters.per_page).all()

        return items, total

    def delete_price_list(self, org_id: UUID, price_list_id: UUID) -> None:
        """Soft delete: archive, stamp deleted_at and give up default status."""
        price_list = self.get_price_list(org_id, price_list_id)
        price_list.status = PriceListStatus.ARCHIVED.value
        price_list.deleted_at = utcnow()
        price_list.is_default = False
        self.db.commit()

        logger.info(
            f"Archived price list {price_list.code}",
            extra={"org_id": str(org_id), "price_list_id": str(price_list_id)},
        )

    def get_default_price_list(self, org_id: UUID, as_of: Optional[date] = None) -> Optional[PriceList]:
        """The organization's ACTIVE default list in force on ``as_of``, if any."""
        as_of = as_of or date.today()
        return self.db.query(PriceList).filter(
            PriceList.org_id == org_id,
            PriceList.is_default.is_(True),
            PriceList.status == PriceListStatus.ACTIVE.value,
            PriceList.deleted_at.is_(None),
            effective_at(PriceList.effective_from, PriceList.effective_to, as_of),
        ).first()

    def _unset_default(self, org_id: UUID, exclude_id: Optional[UUID] = None) -> None:
        query = self.db.query(PriceList).filter(
            PriceList.org_id == org_id,
            PriceList.is_default.is_(True),
        )
        if exclude_id is not None:
            query = query.filter(PriceList.id != exclude_id)
        query.update({PriceList.is_default: False}, synchronize_session="fetch")

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def add_item(self, org_id: UUID, price_list_id: UUID, data: PriceListItemCreate) -> PriceListItem:
        """Add one item.

        Raises:
            NotFoundError: price list does not exist
            ConflictError: SKU already present in the list
            PricingValidationError: empty SKU or min_price above max_price
        """
        self.get_price_list(org_id, price_list_id)
        if not data.sku:
            raise PricingValidationError("SKU must not be empty")
        if data.min_price is not None and data.max_price is not None and data.min_price > data.max_price:
            raise PricingValidationError("min_price must not exceed max_price")

        existing = self.db.query(PriceListItem.id).filter(
            PriceListItem.price_list_id == price_list_id,
            PriceListItem.sku == data.sku,
        ).first()
        if existing:
            raise ConflictError(f"SKU already exists in price list: {data.sku}")

        values = data.model_dump(exclude={"quantity_breaks"})
        if values["list_price"] is None:
            values["list_price"] = values["base_price"]
        values["uom"] = values["uom"] or settings.DEFAULT_UOM

        item = PriceListItem(
            price_list_id=price_list_id,
            quantity_breaks=serialize_quantity_breaks(data.quantity_breaks),
            **values,
        )
        self.db.add(item)
        self._commit(f"SKU already exists in price list: {data.sku}")
        self.db.refresh(item)
        return item

    def update_item(
        self,
        org_id: UUID,
        price_list_id: UUID,
        item_id: UUID,
        data: PriceListItemUpdate,
    ) -> PriceListItem:
        item = self.get_item(org_id, item_id, price_list_id=price_list_id)
        changes = data.model_dump(exclude_unset=True, exclude={"quantity_breaks"})

        min_price = changes.get("min_price", item.min_price)
        max_price = changes.get("max_price", item.max_price)
        if min_price is not None and max_price is not None and min_price > max_price:
            raise PricingValidationError("min_price must not exceed max_price")
        _check_window(changes.get("effective_from", item.effective_from), changes.get("effective_to", item.effective_to))

        for field, value in changes.items():
            setattr(item, field, value)
        if "quantity_breaks" in data.model_fields_set:
            item.quantity_breaks = serialize_quantity_breaks(data.quantity_breaks or [])

        self.db.commit()
        self.db.refresh(item)
        return item

    def delete_item(self, org_id: UUID, price_list_id: UUID, item_id: UUID) -> None:
        """Remove an item and, by cascade, its overrides."""
        item = self.get_item(org_id, item_id, price_list_id=price_list_id)
        self.db.delete(item)
        self.db.commit()

    def get_item(self, org_id: UUID, item_id: UUID, price_list_id: Optional[UUID] = None) -> PriceListItem:
        query = self.db.query(PriceListItem).join(PriceList).filter(
            PriceListItem.id == item_id,
            PriceList.org_id == org_id,
        )
        if price_list_id is not None:
            query = query.filter(PriceListItem.price_list_id == price_list_id)
        item = query.first()
        if not item:
            raise NotFoundError(f"Price list item not found: {item_id}")
        return item

    def query_items(
        self,
        org_id: UUID,
        price_list_id: UUID,
        filters: PriceListItemFilters,
    ) -> tuple[list[PriceListItem], int]:
        """Filtered, sorted, paginated items of one list."""
        self.get_price_list(org_id, price_list_id)
        query = self.db.query(PriceListItem).filter(PriceListItem.price_list_id == price_list_id)

        if filters.sku:
            query = query.filter(PriceListItem.sku.ilike(f"%{filters.sku}%"))
        if filters.skus:
            query = query.filter(PriceListItem.sku.in_(filters.skus))
        if filters.is_active is not None:
            query = query.filter(PriceListItem.is_active == filters.is_active)
        if filters.min_list_price is not None:
            query = query.filter(PriceListItem.list_price >= filters.min_list_price)
        if filters.max_list_price is not None:
            query = query.filter(PriceListItem.list_price <= filters.max_list_price)
        if filters.effective_at:
            query = query.filter(
                effective_at(PriceListItem.effective_from, PriceListItem.effective_to, filters.effective_at)
            )

        total = query.count()

        sort_column = getattr(PriceListItem, filters.sort_by)
        order = sort_column.desc() if filters.sort_order == "desc" else sort_column.asc()
        offset = (filters.page - 1) * filters.per_page
        items = query.order_by(order, PriceListItem.sku.asc()).offset(offset).limit(filters.per_page).all()

        return items, total

    def find_effective_item(self, price_list_id: UUID, sku: str, as_of: date) -> Optional[PriceListItem]:
        """Active item for ``sku`` in force on ``as_of``, or None."""
        return self.db.query(PriceListItem).filter(
            PriceListItem.price_list_id == price_list_id,
            PriceListItem.sku == sku,
            PriceListItem.is_active.is_(True),
            effective_at(PriceListItem.effective_from, PriceListItem.effective_to, as_of),
        ).first()

    def get_item_prices(self, price_list_id: UUID) -> dict[str, Any]:
        """SKU to current list price for every item of a list."""
        rows = self.db.query(PriceListItem.sku, PriceListItem.list_price).filter(
            PriceListItem.price_list_id == price_list_id,
        ).all()
        return {sku: list_price for sku, list_price in rows}

    def count_items(self, price_list_id: UUID) -> int:
        return self.db.query(func.count(PriceListItem.id)).filter(
            PriceListItem.price_list_id == price_list_id,
        ).scalar()

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def assign_price_list(self, org_id: UUID, data: AssignmentCreate) -> CustomerPriceAssignment:
        """Bind a list to a customer or organization.

        Raises:
            NotFoundError: price list does not exist
            ConflictError: the same list is already bound to the same target
        """
        self.get_price_list(org_id, data.price_list_id)

        existing = self.db.query(CustomerPriceAssignment.id).filter(
            CustomerPriceAssignment.org_id == org_id,
            CustomerPriceAssignment.price_list_id == data.price_list_id,
            CustomerPriceAssignment.assignment_type == data.assignment_type.value,
            CustomerPriceAssignment.assignment_id == data.assignment_id,
        ).first()
        if existing:
            raise ConflictError(
                f"Price list already assigned to {data.assignment_type.value} {data.assignment_id}"
            )

        assignment = CustomerPriceAssignment(org_id=org_id, **_plain(data.model_dump()))
        self.db.add(assignment)
        self._commit(f"Price list already assigned to {data.assignment_type.value} {data.assignment_id}")
        self.db.refresh(assignment)
        return assignment

    def remove_assignment(self, org_id: UUID, assignment_id: UUID) -> None:
        assignment = self.db.query(CustomerPriceAssignment).filter(
            CustomerPriceAssignment.id == assignment_id,
            CustomerPriceAssignment.org_id == org_id,
        ).first()
        if not assignment:
            raise NotFoundError(f"Assignment not found: {assignment_id}")
        self.db.delete(assignment)
        self.db.commit()

    def list_assignments(
        self,
        org_id: UUID,
        price_list_id: Optional[UUID] = None,
        assignment_type: Optional[AssignmentType] = None,
        assignment_id: Optional[str] = None,
    ) -> list[CustomerPriceAssignment]:
        query = self.db.query(CustomerPriceAssignment).filter(CustomerPriceAssignment.org_id == org_id)
        if price_list_id:
            query = query.filter(CustomerPriceAssignment.price_list_id == price_list_id)
        if assignment_type:
            query = query.filter(CustomerPriceAssignment.assignment_type == assignment_type.value)
        if assignment_id:
            query = query.filter(CustomerPriceAssignment.assignment_id == assignment_id)
        return query.order_by(CustomerPriceAssignment.priority.desc(), CustomerPriceAssignment.created_at).all()

    def get_customer_price_lists(
        self,
        org_id: UUID,
        customer_id: str,
        organization_id: Optional[str] = None,
        as_of: Optional[date] = None,
    ) -> list[PriceList]:
        """ACTIVE lists bound to the customer (and its organization) on ``as_of``.

        Ordered by assignment priority descending, then list priority
        descending, then assignment age. A list bound both ways appears once,
        at its best position.
        """
        as_of = as_of or date.today()

        targets = [
            and_(
                CustomerPriceAssignment.assignment_type == AssignmentType.CUSTOMER.value,
                CustomerPriceAssignment.assignment_id == customer_id,
            )
        ]
        if organization_id:
            targets.append(and_(
                CustomerPriceAssignment.assignment_type == AssignmentType.ORGANIZATION.value,
                CustomerPriceAssignment.assignment_id == organization_id,
            ))

        rows = self.db.query(PriceList).join(
            CustomerPriceAssignment,
            CustomerPriceAssignment.price_list_id == PriceList.id,
        ).filter(
            CustomerPriceAssignment.org_id == org_id,
            CustomerPriceAssignment.is_active.is_(True),
            effective_at(CustomerPriceAssignment.effective_from, CustomerPriceAssignment.effective_to, as_of),
            or_(*targets),
            PriceList.org_id == org_id,
            PriceList.status == PriceListStatus.ACTIVE.value,
            PriceList.deleted_at.is_(None),
        ).order_by(
            CustomerPriceAssignment.priority.desc(),
            PriceList.priority.desc(),
            CustomerPriceAssignment.created_at.asc(),
        ).all()

        seen = set()
        price_lists = []
        for price_list in rows:
            if price_list.id not in seen:
                seen.add(price_list.id)
                price_lists.append(price_list)
        return price_lists

    # ------------------------------------------------------------------

    def _commit(self, conflict_message: str) -> None:
        """Commit, turning a uniqueness violation into ConflictError."""
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity error on commit: {e.orig}")
            raise ConflictError(conflict_message) from e
