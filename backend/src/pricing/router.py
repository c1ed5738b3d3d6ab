"""Price list, override and price resolution API endpoints"""

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import date
from decimal import Decimal
from io import BytesIO
import logging

from database import get_db
from dependencies import get_org_id, validate_org_exists
from models.customer_price_assignment import AssignmentType
from models.price_list import PriceListStatus, PriceListType
from models.price_override import OverrideScopeType, OverrideStatus
from .bulk_upsert import BulkUpsertService
from .import_service import PriceListItemImportService
from .override_service import PriceOverrideService
from .resolution import PriceResolutionService
from .schemas import (
    AssignmentCreate,
    AssignmentResponse,
    BulkOverrideResult,
    BulkUpsertRequest,
    BulkUpsertResult,
    ItemImportResult,
    OverrideApproveRequest,
    OverrideCreate,
    OverrideFilters,
    OverrideListResponse,
    OverrideResponse,
    OverrideUpdate,
    PriceListCreate,
    PriceListFilters,
    PriceListItemCreate,
    PriceListItemFilters,
    PriceListItemListResponse,
    PriceListItemResponse,
    PriceListItemUpdate,
    PriceListListResponse,
    PriceListResponse,
    PriceListUpdate,
    PriceListWithItemsResponse,
    PriceResolveManyRequest,
    PriceResolveManyResponse,
    PriceResolveRequest,
    PriceResult,
)
from .store import PriceListStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/price-lists", tags=["price-lists"])
overrides_router = APIRouter(prefix="/price-overrides", tags=["price-overrides"])
prices_router = APIRouter(prefix="/prices", tags=["prices"])


def _total_pages(total: int, per_page: int) -> int:
    return (total + per_page - 1) // per_page if total > 0 else 0


# ============================================================================
# Assignments (declared before /{price_list_id} routes)
# ============================================================================

@router.post("/assignments", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def assign_price_list(
    data: AssignmentCreate,
    org_id: UUID = Depends(validate_org_exists),
    db: Session = Depends(get_db)
):
    """Assign a price list to a customer, customer organization or contract."""
    assignment = PriceListStore(db).assign_price_list(org_id, data)
    return AssignmentResponse.model_validate(assignment)


@router.get("/assignments", response_model=list[AssignmentResponse])
async def list_assignments(
    price_list_id: Optional[UUID] = Query(None),
    assignment_type: Optional[AssignmentType] = Query(None),
    assignment_id: Optional[str] = Query(None),
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    assignments = PriceListStore(db).list_assignments(
        org_id,
        price_list_id=price_list_id,
        assignment_type=assignment_type,
        assignment_id=assignment_id,
    )
    return [AssignmentResponse.model_validate(a) for a in assignments]


@router.delete("/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_assignment(
    assignment_id: UUID,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    PriceListStore(db).remove_assignment(org_id, assignment_id)
    return None


# ============================================================================
# Price List CRUD Endpoints
# ============================================================================

@router.post("", response_model=PriceListResponse, status_code=status.HTTP_201_CREATED)
async def create_price_list(
    data: PriceListCreate,
    org_id: UUID = Depends(validate_org_exists),
    db: Session = Depends(get_db)
):
    """
    Create a price list.

    Setting is_default replaces the organization's current default list.

    Returns:
        Created price list

    Raises:
        404: Base price list not found
        409: Code already used in the organization
    """
    price_list = PriceListStore(db).create_price_list(org_id, data)
    return PriceListResponse.model_validate(price_list)


@router.get("", response_model=PriceListListResponse)
async def list_price_lists(
    search: Optional[str] = Query(None, description="Code or name substring"),
    type: Optional[PriceListType] = Query(None),
    status_filter: Optional[PriceListStatus] = Query(None, alias="status"),
    currency: Optional[str] = Query(None),
    is_default: Optional[bool] = Query(None),
    is_customer_specific: Optional[bool] = Query(None),
    external_id: Optional[str] = Query(None),
    external_system: Optional[str] = Query(None),
    effective_at: Optional[date] = Query(None, description="Only lists in effect on this date"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=500),
    sort_by: str = Query("priority", pattern="^(priority|code|name|effective_from|created_at)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """List price lists with filters and pagination."""
    filters = PriceListFilters(
        search=search,
        type=type,
        status=status_filter,
        currency=currency,
        is_default=is_default,
        is_customer_specific=is_customer_specific,
        external_id=external_id,
        external_system=external_system,
        effective_at=effective_at,
        page=page,
        per_page=per_page,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    price_lists, total = PriceListStore(db).query_price_lists(org_id, filters)

    return PriceListListResponse(
        items=[PriceListResponse.model_validate(p) for p in price_lists],
        total=total,
        page=page,
        per_page=per_page,
        total_pages=_total_pages(total, per_page)
    )


@router.get("/{price_list_id}", response_model=PriceListWithItemsResponse)
async def get_price_list(
    price_list_id: UUID,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """Get a price list with its items."""
    price_list = PriceListStore(db).get_price_list_with_items(org_id, price_list_id)
    return PriceListWithItemsResponse.model_validate(price_list)


@router.patch("/{price_list_id}", response_model=PriceListResponse)
async def update_price_list(
    price_list_id: UUID,
    data: PriceListUpdate,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    price_list = PriceListStore(db).update_price_list(org_id, price_list_id, data)
    return PriceListResponse.model_validate(price_list)


@router.delete("/{price_list_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_price_list(
    price_list_id: UUID,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """Archive a price list (soft delete)."""
    PriceListStore(db).delete_price_list(org_id, price_list_id)
    return None


# ============================================================================
# Price List Item Endpoints
# ============================================================================

@router.post("/{price_list_id}/items", response_model=PriceListItemResponse, status_code=status.HTTP_201_CREATED)
async def add_item(
    price_list_id: UUID,
    data: PriceListItemCreate,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    item = PriceListStore(db).add_item(org_id, price_list_id, data)
    return PriceListItemResponse.model_validate(item)


@router.get("/{price_list_id}/items", response_model=PriceListItemListResponse)
async def list_items(
    price_list_id: UUID,
    sku: Optional[str] = Query(None, description="SKU substring"),
    skus: Optional[list[str]] = Query(None, description="Exact SKUs"),
    is_active: Optional[bool] = Query(None),
    min_list_price: Optional[Decimal] = Query(None),
    max_list_price: Optional[Decimal] = Query(None),
    effective_at: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(100, ge=1, le=1000),
    sort_by: str = Query("sku", pattern="^(sku|list_price|created_at|updated_at)$"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    filters = PriceListItemFilters(
        sku=sku,
        skus=skus,
        is_active=is_active,
        min_list_price=min_list_price,
        max_list_price=max_list_price,
        effective_at=effective_at,
        page=page,
        per_page=per_page,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    items, total = PriceListStore(db).query_items(org_id, price_list_id, filters)

    return PriceListItemListResponse(
        items=[PriceListItemResponse.model_validate(i) for i in items],
        total=total,
        page=page,
        per_page=per_page,
        total_pages=_total_pages(total, per_page)
    )


@router.patch("/{price_list_id}/items/{item_id}", response_model=PriceListItemResponse)
async def update_item(
    price_list_id: UUID,
    item_id: UUID,
    data: PriceListItemUpdate,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    item = PriceListStore(db).update_item(org_id, price_list_id, item_id, data)
    return PriceListItemResponse.model_validate(item)


@router.delete("/{price_list_id}/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    price_list_id: UUID,
    item_id: UUID,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    PriceListStore(db).delete_item(org_id, price_list_id, item_id)
    return None


@router.post("/{price_list_id}/items/bulk", response_model=BulkUpsertResult)
async def bulk_upsert_items(
    price_list_id: UUID,
    request: BulkUpsertRequest,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """
    Create or update many items keyed by SKU.

    Invalid items are reported in ``errors`` and do not block the others.
    """
    return BulkUpsertService(db).upsert(org_id, price_list_id, request.items)


@router.post("/{price_list_id}/items/import", response_model=ItemImportResult)
async def import_items(
    price_list_id: UUID,
    file: UploadFile = File(...),
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """
    Import items from CSV.

    CSV Format:
        sku,base_price,list_price,min_price,max_price,cost,currency,uom,effective_from,effective_to

    Only sku and base_price are required. A SKU repeated in the file keeps
    its last row.

    Raises:
        400: File is not CSV
        404: Price list not found
    """
    if not file.filename or not file.filename.lower().endswith('.csv'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File must be a CSV file"
        )

    content = await file.read()
    service = PriceListItemImportService(db, org_id)
    result = service.import_items(price_list_id, BytesIO(content))

    logger.info(
        f"Item import completed: {result.created} created, {result.updated} updated, {result.failed} failed",
        extra={"org_id": str(org_id), "price_list_id": str(price_list_id)},
    )
    return result


# ============================================================================
# Override Endpoints
# ============================================================================

@overrides_router.post("", response_model=OverrideResponse, status_code=status.HTTP_201_CREATED)
async def create_override(
    data: OverrideCreate,
    org_id: UUID = Depends(validate_org_exists),
    db: Session = Depends(get_db)
):
    """
    Create a price override for one item and scope.

    Raises:
        404: Item not found
        409: Overlaps an existing override for the same item and scope
    """
    override = PriceOverrideService(db).create_override(org_id, data)
    return OverrideResponse.model_validate(override)


@overrides_router.post("/bulk", response_model=BulkOverrideResult)
async def bulk_create_overrides(
    data: list[OverrideCreate],
    org_id: UUID = Depends(validate_org_exists),
    db: Session = Depends(get_db)
):
    return PriceOverrideService(db).bulk_create_overrides(org_id, data)


@overrides_router.get("", response_model=OverrideListResponse)
async def list_overrides(
    price_list_item_id: Optional[UUID] = Query(None),
    sku: Optional[str] = Query(None),
    scope_type: Optional[OverrideScopeType] = Query(None),
    scope_id: Optional[str] = Query(None),
    status_filter: Optional[OverrideStatus] = Query(None, alias="status"),
    effective_at: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=500),
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    filters = OverrideFilters(
        price_list_item_id=price_list_item_id,
        sku=sku,
        scope_type=scope_type,
        scope_id=scope_id,
        status=status_filter,
        effective_at=effective_at,
        page=page,
        per_page=per_page,
    )
    overrides, total = PriceOverrideService(db).query_overrides(org_id, filters)

    return OverrideListResponse(
        items=[OverrideResponse.model_validate(o) for o in overrides],
        total=total,
        page=page,
        per_page=per_page,
        total_pages=_total_pages(total, per_page)
    )


@overrides_router.get("/{override_id}", response_model=OverrideResponse)
async def get_override(
    override_id: UUID,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    override = PriceOverrideService(db).get_override(org_id, override_id)
    return OverrideResponse.model_validate(override)


@overrides_router.patch("/{override_id}", response_model=OverrideResponse)
async def update_override(
    override_id: UUID,
    data: OverrideUpdate,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    override = PriceOverrideService(db).update_override(org_id, override_id, data)
    return OverrideResponse.model_validate(override)


@overrides_router.delete("/{override_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_override(
    override_id: UUID,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    PriceOverrideService(db).delete_override(org_id, override_id)
    return None


@overrides_router.post("/{override_id}/approve", response_model=OverrideResponse)
async def approve_override(
    override_id: UUID,
    data: OverrideApproveRequest,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """Activate a PENDING_APPROVAL override (409 in any other status)."""
    override = PriceOverrideService(db).approve_override(org_id, override_id, data.approver_id)
    return OverrideResponse.model_validate(override)


@overrides_router.post("/{override_id}/revoke", response_model=OverrideResponse)
async def revoke_override(
    override_id: UUID,
    reason: Optional[str] = Query(None),
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    override = PriceOverrideService(db).revoke_override(org_id, override_id, reason)
    return OverrideResponse.model_validate(override)


# ============================================================================
# Price Resolution Endpoints
# ============================================================================

@prices_router.post("/resolve", response_model=PriceResult)
async def resolve_price(
    request: PriceResolveRequest,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """
    Resolve the unit price of one SKU.

    Precedence: override, then customer-assigned lists, then the default list.

    Raises:
        404: No price found for the SKU
    """
    return PriceResolutionService(db).resolve(
        org_id,
        request.sku,
        request.quantity,
        customer_id=request.customer_id,
        organization_id=request.organization_id,
        contract_id=request.contract_id,
        currency=request.currency,
        as_of=request.as_of,
    )


@prices_router.post("/resolve-many", response_model=PriceResolveManyResponse)
async def resolve_many_prices(
    request: PriceResolveManyRequest,
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
):
    """Resolve many SKUs; SKUs without a price map to null."""
    results = PriceResolutionService(db).resolve_many(
        org_id,
        request.skus,
        request.quantity,
        customer_id=request.customer_id,
        organization_id=request.organization_id,
        contract_id=request.contract_id,
        currency=request.currency,
        as_of=request.as_of,
    )
    return PriceResolveManyResponse(results=results)
