"""CustomerPriceAssignment SQLAlchemy model"""

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column, Text, Integer, Boolean, Date, DateTime, Uuid, ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, utcnow


class AssignmentType(str, Enum):
    """Entity a price list is bound to."""
    CUSTOMER = "CUSTOMER"
    ORGANIZATION = "ORGANIZATION"


class CustomerPriceAssignment(Base):
    """Binds a price list to a customer or customer organization.

    Higher ``priority`` wins during resolution. Re-assigning the same list to
    the same entity is rejected (unique constraint), never merged.
    """
    __tablename__ = "customer_price_assignment"

    id = Column(Uuid, primary_key=True, default=uuid4)
    org_id = Column(Uuid, ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    price_list_id = Column(Uuid, ForeignKey("price_list.id", ondelete="CASCADE"), nullable=False)
    assignment_type = Column(Text, nullable=False)
    assignment_id = Column(Text, nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    effective_from = Column(Date, nullable=False)
    effective_to = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    external_ref = Column(Text, nullable=True)
    metadata_json = Column(PortableJSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint(
            "org_id", "price_list_id", "assignment_type", "assignment_id",
            name="uq_customer_price_assignment_target",
        ),
        Index("ix_customer_price_assignment_lookup", "org_id", "assignment_type", "assignment_id"),
    )

    price_list = relationship("PriceList", back_populates="assignments")

    def __repr__(self):
        return (
            f"<CustomerPriceAssignment(id={self.id}, type='{self.assignment_type}', "
            f"assignment_id='{self.assignment_id}', priority={self.priority})>"
        )
