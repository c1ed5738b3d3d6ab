"""Pydantic schemas for price lists, items, assignments, overrides and resolution"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Any, Optional
from uuid import UUID
from datetime import datetime, date
from decimal import Decimal

from models.price_list import PriceListType, PriceListStatus, RoundingRule
from models.customer_price_assignment import AssignmentType
from models.price_override import OverrideScopeType, OverrideType, OverrideStatus
from pricing.quantity_breaks import QuantityBreak


def _check_window(effective_from: Optional[date], effective_to: Optional[date]) -> None:
    if effective_from is not None and effective_to is not None and effective_to <= effective_from:
        raise ValueError("effective_to must be after effective_from")


# ============================================================================
# Price lists
# ============================================================================

class PriceListCreate(BaseModel):
    """Schema for creating a price list"""
    code: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    type: PriceListType = PriceListType.STANDARD
    status: PriceListStatus = PriceListStatus.ACTIVE
    currency: str = Field(..., min_length=3, max_length=3)
    priority: int = 0
    effective_from: date = Field(default_factory=date.today)
    effective_to: Optional[date] = None
    base_price_list_id: Optional[UUID] = None
    price_modifier: Optional[Decimal] = None
    rounding_rule: RoundingRule = RoundingRule.NEAREST
    rounding_precision: int = Field(default=2, ge=0, le=6)
    is_default: bool = False
    is_customer_specific: bool = False
    external_id: Optional[str] = None
    external_system: Optional[str] = None
    metadata_json: dict[str, Any] = Field(default_factory=dict)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate and normalize currency code"""
        return v.upper()

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def validate_date_range(self) -> "PriceListCreate":
        _check_window(self.effective_from, self.effective_to)
        return self


class PriceListUpdate(BaseModel):
    """Schema for updating a price list (partial updates).

    Only fields explicitly set are applied; sending ``effective_to: null``
    clears the end date.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    type: Optional[PriceListType] = None
    status: Optional[PriceListStatus] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    priority: Optional[int] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    base_price_list_id: Optional[UUID] = None
    price_modifier: Optional[Decimal] = None
    rounding_rule: Optional[RoundingRule] = None
    rounding_precision: Optional[int] = Field(None, ge=0, le=6)
    is_default: Optional[bool] = None
    is_customer_specific: Optional[bool] = None
    external_id: Optional[str] = None
    external_system: Optional[str] = None
    metadata_json: Optional[dict[str, Any]] = None

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class PriceListResponse(BaseModel):
    """Schema for price list response"""
    id: UUID
    org_id: UUID
    code: str
    name: str
    description: Optional[str]
    type: str
    status: str
    currency: str
    priority: int
    effective_from: date
    effective_to: Optional[date]
    base_price_list_id: Optional[UUID]
    price_modifier: Optional[Decimal]
    rounding_rule: str
    rounding_precision: int
    is_default: bool
    is_customer_specific: bool
    external_id: Optional[str]
    external_system: Optional[str]
    last_sync_at: Optional[datetime]
    sync_status: Optional[str]
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime]

    class Config:
        from_attributes = True


class PriceListListResponse(BaseModel):
    """Schema for paginated price list response"""
    items: list[PriceListResponse]
    total: int
    page: int
    per_page: int
    total_pages: int


class PriceListFilters(BaseModel):
    """Filters and paging for price list queries"""
    search: Optional[str] = None
    type: Optional[PriceListType] = None
    status: Optional[PriceListStatus] = None
    currency: Optional[str] = None
    is_default: Optional[bool] = None
    is_customer_specific: Optional[bool] = None
    external_id: Optional[str] = None
    external_system: Optional[str] = None
    effective_at: Optional[date] = None
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=50, ge=1, le=500)
    sort_by: str = Field(default="priority", pattern="^(priority|code|name|effective_from|created_at)$")
    sort_order: str = Field(default="desc", pattern="^(asc|desc)$")


# ============================================================================
# Price list items
# ============================================================================

class PriceListItemUpsert(BaseModel):
    """One item of a bulk upsert.

    Deliberately lenient: an empty SKU or a negative price is reported as a
    per-item error by the upsert engine instead of failing the whole request.
    """
    sku: str
    master_product_id: Optional[UUID] = None
    base_price: Decimal
    list_price: Optional[Decimal] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    cost: Optional[Decimal] = None
    currency: Optional[str] = None
    quantity_breaks: list[QuantityBreak] = Field(default_factory=list)
    max_discount_percent: Optional[Decimal] = None
    is_discountable: bool = True
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    is_active: bool = True
    uom: Optional[str] = None
    external_id: Optional[str] = None
    external_system: Optional[str] = None
    metadata_json: dict[str, Any] = Field(default_factory=dict)

    @field_validator('sku')
    @classmethod
    def normalize_sku(cls, v: str) -> str:
        """Normalize SKU (trim whitespace)"""
        return v.strip()


class PriceListItemCreate(PriceListItemUpsert):
    """Schema for adding a single item to a price list"""
    sku: str = Field(..., min_length=1, max_length=200)
    base_price: Decimal = Field(..., ge=0)
    list_price: Optional[Decimal] = Field(None, ge=0)
    min_price: Optional[Decimal] = Field(None, ge=0)
    max_price: Optional[Decimal] = Field(None, ge=0)
    cost: Optional[Decimal] = Field(None, ge=0)
    max_discount_percent: Optional[Decimal] = Field(None, ge=0, le=100)

    @model_validator(mode="after")
    def validate_bounds(self) -> "PriceListItemCreate":
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("min_price must not exceed max_price")
        _check_window(self.effective_from, self.effective_to)
        return self


class PriceListItemUpdate(BaseModel):
    """Schema for updating a price list item (partial updates)"""
    base_price: Optional[Decimal] = Field(None, ge=0)
    list_price: Optional[Decimal] = Field(None, ge=0)
    min_price: Optional[Decimal] = Field(None, ge=0)
    max_price: Optional[Decimal] = Field(None, ge=0)
    cost: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = None
    quantity_breaks: Optional[list[QuantityBreak]] = None
    max_discount_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    is_discountable: Optional[bool] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    is_active: Optional[bool] = None
    uom: Optional[str] = None
    external_id: Optional[str] = None
    external_system: Optional[str] = None
    metadata_json: Optional[dict[str, Any]] = None


class PriceListItemResponse(BaseModel):
    """Schema for price list item response"""
    id: UUID
    price_list_id: UUID
    sku: str
    master_product_id: Optional[UUID]
    base_price: Decimal
    list_price: Decimal
    min_price: Optional[Decimal]
    max_price: Optional[Decimal]
    cost: Optional[Decimal]
    currency: Optional[str]
    quantity_breaks: list[QuantityBreak]
    max_discount_percent: Optional[Decimal]
    is_discountable: bool
    effective_from: Optional[date]
    effective_to: Optional[date]
    is_active: bool
    uom: str
    external_id: Optional[str]
    external_system: Optional[str]
    last_sync_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PriceListItemListResponse(BaseModel):
    """Schema for paginated item response"""
    items: list[PriceListItemResponse]
    total: int
    page: int
    per_page: int
    total_pages: int


class PriceListItemFilters(BaseModel):
    """Filters and paging for item queries"""
    sku: Optional[str] = None
    skus: Optional[list[str]] = None
    is_active: Optional[bool] = None
    min_list_price: Optional[Decimal] = None
    max_list_price: Optional[Decimal] = None
    effective_at: Optional[date] = None
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=100, ge=1, le=1000)
    sort_by: str = Field(default="sku", pattern="^(sku|list_price|created_at|updated_at)$")
    sort_order: str = Field(default="asc", pattern="^(asc|desc)$")


class PriceListWithItemsResponse(PriceListResponse):
    """Price list including its items"""
    items: list[PriceListItemResponse] = Field(default_factory=list)


class BulkItemError(BaseModel):
    """A per-item failure inside a bulk operation"""
    sku: str
    error: str
    index: Optional[int] = None  # position in the submitted items


class BulkUpsertRequest(BaseModel):
    """Schema for bulk item upsert request"""
    items: list[PriceListItemUpsert] = Field(..., max_length=10000)


class BulkUpsertResult(BaseModel):
    """Outcome of a bulk upsert. Failed items are listed, never raised."""
    created: int = 0
    updated: int = 0
    errors: list[BulkItemError] = Field(default_factory=list)


class ItemImportResult(BaseModel):
    """Schema for CSV item import result"""
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[dict] = Field(default_factory=list)


# ============================================================================
# Assignments
# ============================================================================

class AssignmentCreate(BaseModel):
    """Schema for binding a price list to a customer or organization"""
    price_list_id: UUID
    assignment_type: AssignmentType
    assignment_id: str = Field(..., min_length=1, max_length=200)
    priority: int = 0
    effective_from: date = Field(default_factory=date.today)
    effective_to: Optional[date] = None
    is_active: bool = True
    external_ref: Optional[str] = None

    @model_validator(mode="after")
    def validate_date_range(self) -> "AssignmentCreate":
        _check_window(self.effective_from, self.effective_to)
        return self


class AssignmentResponse(BaseModel):
    """Schema for assignment response"""
    id: UUID
    org_id: UUID
    price_list_id: UUID
    assignment_type: str
    assignment_id: str
    priority: int
    effective_from: date
    effective_to: Optional[date]
    is_active: bool
    external_ref: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Overrides
# ============================================================================

class OverrideCreate(BaseModel):
    """Schema for creating a price override"""
    price_list_item_id: UUID
    override_type: OverrideType
    override_value: Decimal = Field(..., ge=0)
    scope_type: OverrideScopeType
    scope_id: str = Field(..., min_length=1, max_length=200)
    effective_from: date = Field(default_factory=date.today)
    effective_to: Optional[date] = None
    min_quantity: Optional[Decimal] = Field(None, ge=0)
    max_quantity: Optional[Decimal] = Field(None, ge=0)
    status: OverrideStatus = OverrideStatus.ACTIVE
    reason: Optional[str] = None
    external_ref: Optional[str] = None
    metadata_json: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_ranges(self) -> "OverrideCreate":
        _check_window(self.effective_from, self.effective_to)
        if (
            self.min_quantity is not None
            and self.max_quantity is not None
            and self.max_quantity < self.min_quantity
        ):
            raise ValueError("max_quantity must be greater than or equal to min_quantity")
        if self.status not in (OverrideStatus.ACTIVE, OverrideStatus.PENDING_APPROVAL):
            raise ValueError("new overrides must be ACTIVE or PENDING_APPROVAL")
        return self


class OverrideUpdate(BaseModel):
    """Schema for updating a price override (partial updates)"""
    override_type: Optional[OverrideType] = None
    override_value: Optional[Decimal] = Field(None, ge=0)
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    min_quantity: Optional[Decimal] = Field(None, ge=0)
    max_quantity: Optional[Decimal] = Field(None, ge=0)
    reason: Optional[str] = None
    metadata_json: Optional[dict[str, Any]] = None


class OverrideApproveRequest(BaseModel):
    approver_id: str = Field(..., min_length=1)


class OverrideResponse(BaseModel):
    """Schema for price override response"""
    id: UUID
    org_id: UUID
    price_list_item_id: UUID
    override_type: str
    override_value: Decimal
    scope_type: str
    scope_id: str
    effective_from: date
    effective_to: Optional[date]
    min_quantity: Optional[Decimal]
    max_quantity: Optional[Decimal]
    status: str
    approved_by_id: Optional[str]
    approved_at: Optional[datetime]
    reason: Optional[str]
    external_ref: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OverrideListResponse(BaseModel):
    items: list[OverrideResponse]
    total: int
    page: int
    per_page: int
    total_pages: int


class OverrideFilters(BaseModel):
    """Filters and paging for override queries"""
    price_list_item_id: Optional[UUID] = None
    sku: Optional[str] = None
    scope_type: Optional[OverrideScopeType] = None
    scope_id: Optional[str] = None
    status: Optional[OverrideStatus] = None
    effective_at: Optional[date] = None
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=20, ge=1, le=500)


class BulkOverrideError(BaseModel):
    index: int
    error: str


class BulkOverrideResult(BaseModel):
    created: int = 0
    errors: list[BulkOverrideError] = Field(default_factory=list)


# ============================================================================
# Resolution
# ============================================================================

class ResolutionStep(BaseModel):
    """One candidate considered while resolving a price"""
    source: str
    price_list_id: Optional[UUID] = None
    price: Optional[Decimal] = None
    selected: bool = False
    reason: str


class PriceResult(BaseModel):
    """Fully annotated resolved price with its resolution path"""
    sku: str
    quantity: Decimal
    unit_price: Decimal
    extended_price: Decimal
    currency: str
    price_source: str
    price_list_id: Optional[UUID] = None
    price_list_code: Optional[str] = None
    price_list_item_id: Optional[UUID] = None
    base_price: Decimal
    list_price: Decimal
    discount_amount: Decimal
    discount_percent: Decimal
    quantity_break_applied: Optional[QuantityBreak] = None
    override_id: Optional[UUID] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    is_at_min_price: bool = False
    is_at_max_price: bool = False
    cost: Optional[Decimal] = None
    margin: Optional[Decimal] = None
    margin_percent: Optional[Decimal] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    original_currency: Optional[str] = None
    resolution_path: list[ResolutionStep] = Field(default_factory=list)


class PriceResolveRequest(BaseModel):
    """Schema for single price resolution request"""
    sku: str = Field(..., min_length=1)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    customer_id: Optional[str] = None
    organization_id: Optional[str] = None
    contract_id: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    as_of: Optional[date] = None


class PriceResolveManyRequest(BaseModel):
    """Schema for multi-SKU price resolution request"""
    skus: list[str] = Field(..., min_length=1, max_length=1000)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    customer_id: Optional[str] = None
    organization_id: Optional[str] = None
    contract_id: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    as_of: Optional[date] = None


class PriceResolveManyResponse(BaseModel):
    """Per-SKU results; unresolvable SKUs map to null"""
    results: dict[str, Optional[PriceResult]]
