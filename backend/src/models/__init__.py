"""SQLAlchemy Models for the pricing engine"""

from .base import Base
from .org import Org
from .price_list import (
    PriceList,
    PriceListItem,
    PriceListType,
    PriceListStatus,
    RoundingRule,
)
from .customer_price_assignment import CustomerPriceAssignment, AssignmentType
from .price_override import PriceOverride, OverrideScopeType, OverrideType, OverrideStatus
from .price_list_sync_job import PriceListSyncJob

__all__ = [
    "Base",
    "Org",
    "PriceList",
    "PriceListItem",
    "PriceListType",
    "PriceListStatus",
    "RoundingRule",
    "CustomerPriceAssignment",
    "AssignmentType",
    "PriceOverride",
    "OverrideScopeType",
    "OverrideType",
    "OverrideStatus",
    "PriceListSyncJob",
]
