"""Pydantic schemas for ERP price list synchronization"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, Optional
from uuid import UUID
from datetime import datetime, date
from decimal import Decimal
from enum import Enum

from pricing.quantity_breaks import QuantityBreak
from pricing.schemas import BulkItemError, PriceListItemUpsert

ERP_SYSTEM = "ERP"


# ============================================================================
# ERP payload
# ============================================================================

class ERPPriceListHeader(BaseModel):
    """Price list header as delivered by the ERP"""
    code: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    type: Optional[str] = None
    currency: str = Field(..., min_length=3, max_length=3)
    effective_from: date
    effective_to: Optional[date] = None
    external_id: Optional[str] = None

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()


class ERPPriceListItemImport(BaseModel):
    """One ERP item. SKU problems are reported per item, not at request validation."""
    sku: str = ""
    base_price: Decimal
    list_price: Optional[Decimal] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    cost: Optional[Decimal] = None
    currency: Optional[str] = None
    uom: Optional[str] = None
    quantity_breaks: list[QuantityBreak] = Field(default_factory=list)
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    external_id: Optional[str] = None

    @property
    def effective_list_price(self) -> Decimal:
        return self.list_price if self.list_price is not None else self.base_price

    def to_upsert(self) -> PriceListItemUpsert:
        return PriceListItemUpsert(
            sku=self.sku,
            base_price=self.base_price,
            list_price=self.effective_list_price,
            min_price=self.min_price,
            max_price=self.max_price,
            cost=self.cost,
            currency=self.currency,
            uom=self.uom,
            quantity_breaks=self.quantity_breaks,
            is_discountable=True,
            is_active=True,
            effective_from=self.effective_from,
            effective_to=self.effective_to,
            external_id=self.external_id,
            external_system=ERP_SYSTEM,
        )


class ERPPriceListImport(BaseModel):
    """Complete ERP price list payload"""
    price_list: ERPPriceListHeader
    items: list[ERPPriceListItemImport] = Field(default_factory=list)


class PriceListImportRequest(ERPPriceListImport):
    """Schema for the synchronous import endpoint"""
    full_sync: bool = False
    delta_token: Optional[str] = None


# ============================================================================
# Results
# ============================================================================

class SyncError(BaseModel):
    """A failure recorded on a sync job"""
    sku: Optional[str] = None
    item_index: Optional[int] = None
    error_code: str
    error_message: str
    details: Optional[dict[str, Any]] = None


class PriceChange(BaseModel):
    sku: str
    old_price: Decimal
    new_price: Decimal
    change_percent: Optional[Decimal] = None  # None when the old price was zero


class PriceChangeStats(BaseModel):
    increased: int = 0
    decreased: int = 0
    unchanged: int = 0
    average_change_percent: Decimal = Decimal("0")
    max_increase: Optional[PriceChange] = None
    max_decrease: Optional[PriceChange] = None


class SyncSummary(BaseModel):
    """Aggregate statistics of a finished import.

    created/updated are estimated from the pre-sync item count, not counted
    item by item.
    """
    items_created: int = 0
    items_updated: int = 0
    items_deleted: int = 0
    items_unchanged: int = 0
    price_changes: PriceChangeStats = Field(default_factory=PriceChangeStats)


class PriceListSyncResult(BaseModel):
    """Outcome of an import run. Check error_count even when status is COMPLETED."""
    job_id: UUID
    price_list_id: UUID
    price_list_code: str
    status: str
    total_items: int
    processed_items: int
    success_count: int
    error_count: int
    skipped_count: int
    delta_token: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    errors: list[SyncError] = Field(default_factory=list)
    summary: Optional[SyncSummary] = None


class SyncJobResponse(BaseModel):
    """Schema for sync job response"""
    id: UUID
    org_id: UUID
    price_list_id: UUID
    job_type: str
    status: str
    total_items: int
    processed_items: int
    success_count: int
    error_count: int
    skipped_count: int
    delta_token: Optional[str]
    connector_id: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    errors: Optional[list[dict[str, Any]]]
    summary: Optional[dict[str, Any]]
    created_at: datetime

    class Config:
        from_attributes = True


class StartSyncJobRequest(BaseModel):
    price_list_code: str = Field(..., min_length=1)
    full_sync: bool = False
    delta_token: Optional[str] = None
    connector_id: Optional[str] = None


# ============================================================================
# Delta updates
# ============================================================================

class DeltaAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class DeltaItemData(BaseModel):
    """Fields carried by a create/update delta; unset fields keep their stored value"""
    base_price: Optional[Decimal] = None
    list_price: Optional[Decimal] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    cost: Optional[Decimal] = None
    currency: Optional[str] = None
    uom: Optional[str] = None
    quantity_breaks: Optional[list[QuantityBreak]] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None


class DeltaUpdate(BaseModel):
    action: DeltaAction
    sku: str
    data: Optional[DeltaItemData] = None


class DeltaUpdateRequest(BaseModel):
    updates: list[DeltaUpdate] = Field(..., max_length=10000)
    delta_token: Optional[str] = None


class DeltaUpdateResult(BaseModel):
    job_id: UUID
    processed: int
    errors: list[BulkItemError] = Field(default_factory=list)
    new_delta_token: Optional[str]


class DeltaTokenResponse(BaseModel):
    price_list_id: UUID
    delta_token: Optional[str]


class ScheduleSyncRequest(BaseModel):
    connector_id: Optional[str] = None
    dispatch: bool = False


class ScheduleSyncResponse(BaseModel):
    job_ids: list[UUID]
