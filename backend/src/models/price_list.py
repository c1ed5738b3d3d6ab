"""PriceList and PriceListItem SQLAlchemy models"""

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column, Text, Integer, Boolean, Numeric, Date, DateTime, Uuid, ForeignKey,
    CheckConstraint, Index, UniqueConstraint, text,
)
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, utcnow


class PriceListType(str, Enum):
    """Kind of catalog a price list represents."""
    STANDARD = "STANDARD"
    CONTRACT = "CONTRACT"
    PROMOTIONAL = "PROMOTIONAL"
    VOLUME = "VOLUME"
    CUSTOMER_SPECIFIC = "CUSTOMER_SPECIFIC"
    CHANNEL = "CHANNEL"
    REGIONAL = "REGIONAL"


class PriceListStatus(str, Enum):
    """Price list lifecycle status. ARCHIVED lists are soft-deleted."""
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class RoundingRule(str, Enum):
    """Rounding applied to resolved prices of a list."""
    NONE = "NONE"
    UP = "UP"
    DOWN = "DOWN"
    NEAREST = "NEAREST"
    NEAREST_05 = "NEAREST_05"
    NEAREST_09 = "NEAREST_09"
    NEAREST_99 = "NEAREST_99"


class PriceList(Base):
    """A named, versioned catalog of prices for an organization.

    Effective dating is half-open: a list is in force on day ``d`` when
    ``effective_from <= d`` and (``effective_to`` is NULL or ``d < effective_to``).

    At most one list per organization carries ``is_default``. Writers unset the
    previous default in the same transaction; the partial unique index
    ``ux_price_list_org_default`` rejects any concurrent second default.
    """
    __tablename__ = "price_list"

    id = Column(Uuid, primary_key=True, default=uuid4)
    org_id = Column(Uuid, ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    code = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    type = Column(Text, nullable=False, default=PriceListType.STANDARD.value)
    status = Column(Text, nullable=False, default=PriceListStatus.ACTIVE.value)
    currency = Column(Text, nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    effective_from = Column(Date, nullable=False)
    effective_to = Column(Date, nullable=True)

    # Derived lists
    base_price_list_id = Column(Uuid, ForeignKey("price_list.id", ondelete="SET NULL"), nullable=True)
    price_modifier = Column(Numeric(18, 4), nullable=True)

    rounding_rule = Column(Text, nullable=False, default=RoundingRule.NEAREST.value)
    rounding_precision = Column(Integer, nullable=False, default=2)

    is_default = Column(Boolean, nullable=False, default=False)
    is_customer_specific = Column(Boolean, nullable=False, default=False)

    # ERP linkage
    external_id = Column(Text, nullable=True)
    external_system = Column(Text, nullable=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    sync_status = Column(Text, nullable=True)

    metadata_json = Column(PortableJSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("org_id", "code", name="uq_price_list_org_code"),
        Index("ix_price_list_org_id", "org_id"),
        Index("ix_price_list_org_status", "org_id", "status"),
        Index(
            "ux_price_list_org_default",
            "org_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default = 1"),
        ),
        CheckConstraint("rounding_precision >= 0", name="ck_price_list_rounding_precision"),
    )

    # Relationships
    org = relationship("Org", back_populates="price_lists")
    base_price_list = relationship("PriceList", remote_side=[id])
    items = relationship(
        "PriceListItem",
        back_populates="price_list",
        cascade="all, delete-orphan",
        order_by="PriceListItem.sku",
    )
    assignments = relationship(
        "CustomerPriceAssignment",
        back_populates="price_list",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<PriceList(id={self.id}, code='{self.code}', status='{self.status}')>"


class PriceListItem(Base):
    """One SKU's pricing within a price list.

    ``quantity_breaks`` holds a JSON array of break objects with decimal
    values serialized as strings; see ``pricing.quantity_breaks.QuantityBreak``.
    """
    __tablename__ = "price_list_item"

    id = Column(Uuid, primary_key=True, default=uuid4)
    price_list_id = Column(Uuid, ForeignKey("price_list.id", ondelete="CASCADE"), nullable=False)
    sku = Column(Text, nullable=False)
    master_product_id = Column(Uuid, nullable=True)

    base_price = Column(Numeric(18, 4), nullable=False)
    list_price = Column(Numeric(18, 4), nullable=False)
    min_price = Column(Numeric(18, 4), nullable=True)
    max_price = Column(Numeric(18, 4), nullable=True)
    cost = Column(Numeric(18, 4), nullable=True)
    currency = Column(Text, nullable=True)

    quantity_breaks = Column(PortableJSONB, nullable=False, default=list)
    max_discount_percent = Column(Numeric(7, 4), nullable=True)
    is_discountable = Column(Boolean, nullable=False, default=True)

    effective_from = Column(Date, nullable=True)
    effective_to = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    uom = Column(Text, nullable=False, default="EA")

    external_id = Column(Text, nullable=True)
    external_system = Column(Text, nullable=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)

    metadata_json = Column(PortableJSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("price_list_id", "sku", name="uq_price_list_item_list_sku"),
        Index("ix_price_list_item_sku", "sku"),
        CheckConstraint("base_price >= 0", name="ck_price_list_item_base_price_non_negative"),
        CheckConstraint("list_price >= 0", name="ck_price_list_item_list_price_non_negative"),
    )

    # Relationships
    price_list = relationship("PriceList", back_populates="items")
    overrides = relationship(
        "PriceOverride",
        back_populates="price_list_item",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<PriceListItem(id={self.id}, sku='{self.sku}', list_price={self.list_price})>"
