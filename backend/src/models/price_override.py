"""PriceOverride SQLAlchemy model"""

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column, Text, Numeric, Date, DateTime, Uuid, ForeignKey, Index, CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, utcnow


class OverrideScopeType(str, Enum):
    """Who an override applies to."""
    CUSTOMER = "CUSTOMER"
    ORGANIZATION = "ORGANIZATION"
    CONTRACT = "CONTRACT"


class OverrideType(str, Enum):
    """Pricing formula of an override."""
    FIXED_PRICE = "FIXED_PRICE"
    PERCENTAGE_DISCOUNT = "PERCENTAGE_DISCOUNT"
    FIXED_DISCOUNT = "FIXED_DISCOUNT"
    MARKUP_PERCENTAGE = "MARKUP_PERCENTAGE"
    MARKUP_FIXED = "MARKUP_FIXED"


class OverrideStatus(str, Enum):
    """Override lifecycle status. Only ACTIVE overrides take part in resolution."""
    PENDING_APPROVAL = "PENDING_APPROVAL"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


class PriceOverride(Base):
    """A scoped, time-bounded, quantity-bounded exception price.

    Outranks every price list during resolution. The computed price is
    clamped to the target item's min/max bounds.
    """
    __tablename__ = "price_override"

    id = Column(Uuid, primary_key=True, default=uuid4)
    org_id = Column(Uuid, ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    price_list_item_id = Column(Uuid, ForeignKey("price_list_item.id", ondelete="CASCADE"), nullable=False)

    override_type = Column(Text, nullable=False)
    override_value = Column(Numeric(18, 4), nullable=False)

    scope_type = Column(Text, nullable=False)
    scope_id = Column(Text, nullable=False)

    effective_from = Column(Date, nullable=False)
    effective_to = Column(Date, nullable=True)
    min_quantity = Column(Numeric(18, 3), nullable=True)
    max_quantity = Column(Numeric(18, 3), nullable=True)

    status = Column(Text, nullable=False, default=OverrideStatus.ACTIVE.value)
    approved_by_id = Column(Text, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    reason = Column(Text, nullable=True)
    external_ref = Column(Text, nullable=True)

    metadata_json = Column(PortableJSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_price_override_scope", "org_id", "scope_type", "scope_id", "status"),
        Index("ix_price_override_item", "price_list_item_id"),
        CheckConstraint("override_value >= 0", name="ck_price_override_value_non_negative"),
    )

    price_list_item = relationship("PriceListItem", back_populates="overrides")

    def __repr__(self):
        return (
            f"<PriceOverride(id={self.id}, type='{self.override_type}', "
            f"scope='{self.scope_type}:{self.scope_id}', status='{self.status}')>"
        )
