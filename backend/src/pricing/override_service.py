"""Price override service.

Overrides are scoped (customer, organization or contract), time-bounded and
quantity-bounded exception prices attached to one price list item. Only
ACTIVE overrides take part in price resolution.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import case, or_
from sqlalchemy.orm import Session, contains_eager

from errors import ConflictError, InvalidStateError, NotFoundError, PricingError, PricingValidationError
from models.base import utcnow
from models.price_list import PriceList, PriceListItem
from models.price_override import OverrideScopeType, OverrideStatus, PriceOverride
from pricing.schemas import (
    BulkOverrideError,
    BulkOverrideResult,
    OverrideCreate,
    OverrideFilters,
    OverrideUpdate,
)
from pricing.store import PriceListStore, effective_at

logger = logging.getLogger(__name__)

# Narrower scopes win when several overrides match one request
SCOPE_SPECIFICITY = {
    OverrideScopeType.CONTRACT.value: 0,
    OverrideScopeType.CUSTOMER.value: 1,
    OverrideScopeType.ORGANIZATION.value: 2,
}

_LIVE_STATUSES = (OverrideStatus.ACTIVE.value, OverrideStatus.PENDING_APPROVAL.value)


def _windows_overlap(a_from: date, a_to: Optional[date], b_from: date, b_to: Optional[date]) -> bool:
    return (a_to is None or b_from < a_to) and (b_to is None or a_from < b_to)


def _quantities_overlap(
    a_min: Optional[Decimal], a_max: Optional[Decimal],
    b_min: Optional[Decimal], b_max: Optional[Decimal],
) -> bool:
    low_a = a_min if a_min is not None else Decimal(0)
    low_b = b_min if b_min is not None else Decimal(0)
    return (a_max is None or low_b <= a_max) and (b_max is None or low_a <= b_max)


class PriceOverrideService:
    """CRUD, lifecycle and lookup for price overrides."""

    def __init__(self, db: Session):
        self.db = db

    def create_override(self, org_id: UUID, data: OverrideCreate) -> PriceOverride:
        """Create an override for an item of the organization.

        Raises:
            NotFoundError: target item does not exist in the organization
            ConflictError: a live override for the same item and scope
                overlaps both the date window and the quantity range
        """
        PriceListStore(self.db).get_item(org_id, data.price_list_item_id)

        conflicting = self._find_conflicting(
            org_id,
            price_list_item_id=data.price_list_item_id,
            scope_type=data.scope_type.value,
            scope_id=data.scope_id,
            effective_from=data.effective_from,
            effective_to=data.effective_to,
            min_quantity=data.min_quantity,
            max_quantity=data.max_quantity,
        )
        if conflicting:
            raise ConflictError(
                f"Conflicting override exists for this scope and date range: {conflicting.id}"
            )

        override = PriceOverride(
            org_id=org_id,
            price_list_item_id=data.price_list_item_id,
            override_type=data.override_type.value,
            override_value=data.override_value,
            scope_type=data.scope_type.value,
            scope_id=data.scope_id,
            effective_from=data.effective_from,
            effective_to=data.effective_to,
            min_quantity=data.min_quantity,
            max_quantity=data.max_quantity,
            status=data.status.value,
            reason=data.reason,
            external_ref=data.external_ref,
            metadata_json=data.metadata_json,
        )
        self.db.add(override)
        self.db.commit()
        self.db.refresh(override)

        logger.info(
            f"Created {override.override_type} override for {override.scope_type}:{override.scope_id}",
            extra={"org_id": str(org_id)},
        )
        return override

    def update_override(self, org_id: UUID, override_id: UUID, data: OverrideUpdate) -> PriceOverride:
        override = self.get_override(org_id, override_id)
        if override.status == OverrideStatus.REVOKED.value:
            raise InvalidStateError("Cannot update a revoked override")

        changes = {k: getattr(v, "value", v) for k, v in data.model_dump(exclude_unset=True).items()}
        effective_from = changes.get("effective_from", override.effective_from)
        effective_to = changes.get("effective_to", override.effective_to)
        min_quantity = changes.get("min_quantity", override.min_quantity)
        max_quantity = changes.get("max_quantity", override.max_quantity)

        if effective_to is not None and effective_to <= effective_from:
            raise PricingValidationError("effective_to must be after effective_from")
        if min_quantity is not None and max_quantity is not None and max_quantity < min_quantity:
            raise PricingValidationError("max_quantity must be greater than or equal to min_quantity")

        conflicting = self._find_conflicting(
            org_id,
            price_list_item_id=override.price_list_item_id,
            scope_type=override.scope_type,
            scope_id=override.scope_id,
            effective_from=effective_from,
            effective_to=effective_to,
            min_quantity=min_quantity,
            max_quantity=max_quantity,
            exclude_id=override.id,
        )
        if conflicting:
            raise ConflictError(
                f"Conflicting override exists for this scope and date range: {conflicting.id}"
            )

        for field, value in changes.items():
            setattr(override, field, value)
        self.db.commit()
        self.db.refresh(override)
        return override

    def approve_override(self, org_id: UUID, override_id: UUID, approver_id: str) -> PriceOverride:
        """PENDING_APPROVAL -> ACTIVE, recording the approver."""
        override = self.get_override(org_id, override_id)
        if override.status != OverrideStatus.PENDING_APPROVAL.value:
            raise InvalidStateError(f"Override is not pending approval: {override.status}")

        override.status = OverrideStatus.ACTIVE.value
        override.approved_by_id = approver_id
        override.approved_at = utcnow()
        self.db.commit()
        self.db.refresh(override)
        return override

    def revoke_override(self, org_id: UUID, override_id: UUID, reason: Optional[str] = None) -> PriceOverride:
        override = self.get_override(org_id, override_id)
        if override.status == OverrideStatus.REVOKED.value:
            raise InvalidStateError("Override is already revoked")

        override.status = OverrideStatus.REVOKED.value
        if reason:
            override.reason = reason
        self.db.commit()
        self.db.refresh(override)
        return override

    def get_override(self, org_id: UUID, override_id: UUID) -> PriceOverride:
        override = self.db.query(PriceOverride).filter(
            PriceOverride.id == override_id,
            PriceOverride.org_id == org_id,
        ).first()
        if not override:
            raise NotFoundError(f"Price override not found: {override_id}")
        return override

    def query_overrides(self, org_id: UUID, filters: OverrideFilters) -> tuple[list[PriceOverride], int]:
        query = self.db.query(PriceOverride).filter(PriceOverride.org_id == org_id)

        if filters.price_list_item_id:
            query = query.filter(PriceOverride.price_list_item_id == filters.price_list_item_id)
        if filters.sku:
            query = query.join(PriceListItem).filter(PriceListItem.sku == filters.sku)
        if filters.scope_type:
            query = query.filter(PriceOverride.scope_type == filters.scope_type.value)
        if filters.scope_id:
            query = query.filter(PriceOverride.scope_id == filters.scope_id)
        if filters.status:
            query = query.filter(PriceOverride.status == filters.status.value)
        if filters.effective_at:
            query = query.filter(
                effective_at(PriceOverride.effective_from, PriceOverride.effective_to, filters.effective_at)
            )

        total = query.count()
        offset = (filters.page - 1) * filters.per_page
        items = query.order_by(PriceOverride.created_at.desc()).offset(offset).limit(filters.per_page).all()
        return items, total

    def delete_override(self, org_id: UUID, override_id: UUID) -> None:
        override = self.get_override(org_id, override_id)
        self.db.delete(override)
        self.db.commit()

    def bulk_create_overrides(self, org_id: UUID, overrides: list[OverrideCreate]) -> BulkOverrideResult:
        """Create many overrides; a failure is reported by input index and does not stop the rest."""
        result = BulkOverrideResult()
        for index, data in enumerate(overrides):
            try:
                self.create_override(org_id, data)
                result.created += 1
            except PricingError as e:
                self.db.rollback()
                result.errors.append(BulkOverrideError(index=index, error=str(e)))
        return result

    def expire_outdated_overrides(self, org_id: UUID, as_of: Optional[date] = None) -> int:
        """Flip ACTIVE overrides whose window has closed to EXPIRED.

        Returns:
            Number of overrides expired
        """
        as_of = as_of or date.today()
        count = self.db.query(PriceOverride).filter(
            PriceOverride.org_id == org_id,
            PriceOverride.status == OverrideStatus.ACTIVE.value,
            PriceOverride.effective_to.isnot(None),
            PriceOverride.effective_to <= as_of,
        ).update({PriceOverride.status: OverrideStatus.EXPIRED.value}, synchronize_session=False)
        self.db.commit()

        if count > 0:
            logger.info(f"Expired {count} overrides", extra={"org_id": str(org_id)})
        return count

    def find_applicable_override(
        self,
        org_id: UUID,
        sku: str,
        quantity: Decimal,
        customer_id: Optional[str] = None,
        organization_id: Optional[str] = None,
        contract_id: Optional[str] = None,
        as_of: Optional[date] = None,
    ) -> Optional[PriceOverride]:
        """Best ACTIVE override for the request, or None.

        Matches on any supplied scope identifier, the effective window, the
        quantity bounds and an active target item with the given SKU. Among
        several matches: contract before customer before organization scope,
        then the most recently started, then lowest id.

        The returned override has ``price_list_item`` and its ``price_list``
        loaded.
        """
        scopes = []
        if customer_id:
            scopes.append((OverrideScopeType.CUSTOMER.value, customer_id))
        if organization_id:
            scopes.append((OverrideScopeType.ORGANIZATION.value, organization_id))
        if contract_id:
            scopes.append((OverrideScopeType.CONTRACT.value, contract_id))
        if not scopes:
            return None

        as_of = as_of or date.today()
        specificity = case(SCOPE_SPECIFICITY, value=PriceOverride.scope_type, else_=len(SCOPE_SPECIFICITY))

        return self.db.query(PriceOverride).join(
            PriceOverride.price_list_item
        ).join(
            PriceListItem.price_list
        ).options(
            contains_eager(PriceOverride.price_list_item).contains_eager(PriceListItem.price_list)
        ).filter(
            PriceOverride.org_id == org_id,
            PriceOverride.status == OverrideStatus.ACTIVE.value,
            effective_at(PriceOverride.effective_from, PriceOverride.effective_to, as_of),
            or_(*[
                (PriceOverride.scope_type == scope_type) & (PriceOverride.scope_id == scope_id)
                for scope_type, scope_id in scopes
            ]),
            or_(PriceOverride.min_quantity.is_(None), PriceOverride.min_quantity <= quantity),
            or_(PriceOverride.max_quantity.is_(None), PriceOverride.max_quantity >= quantity),
            PriceListItem.sku == sku,
            PriceListItem.is_active.is_(True),
            PriceList.org_id == org_id,
            PriceList.deleted_at.is_(None),
        ).order_by(
            specificity,
            PriceOverride.effective_from.desc(),
            PriceOverride.id,
        ).first()

    def _find_conflicting(
        self,
        org_id: UUID,
        price_list_item_id: UUID,
        scope_type: str,
        scope_id: str,
        effective_from: date,
        effective_to: Optional[date],
        min_quantity: Optional[Decimal],
        max_quantity: Optional[Decimal],
        exclude_id: Optional[UUID] = None,
    ) -> Optional[PriceOverride]:
        query = self.db.query(PriceOverride).filter(
            PriceOverride.org_id == org_id,
            PriceOverride.price_list_item_id == price_list_item_id,
            PriceOverride.scope_type == scope_type,
            PriceOverride.scope_id == scope_id,
            PriceOverride.status.in_(_LIVE_STATUSES),
        )
        if exclude_id is not None:
            query = query.filter(PriceOverride.id != exclude_id)

        for candidate in query.all():
            if not _windows_overlap(effective_from, effective_to, candidate.effective_from, candidate.effective_to):
                continue
            if _quantities_overlap(min_quantity, max_quantity, candidate.min_quantity, candidate.max_quantity):
                return candidate
        return None
