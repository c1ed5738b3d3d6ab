"""Org model - Root entity for multi-tenant isolation"""

import re
from uuid import uuid4

from sqlalchemy import Column, Text, Uuid, DateTime
from sqlalchemy.orm import validates, relationship

from .base import Base, PortableJSONB, utcnow


class Org(Base):
    """
    Organization model - Root entity for multi-tenant system.

    Each organization is a pricing tenant with isolated price lists,
    assignments, overrides and sync jobs.
    """
    __tablename__ = "org"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True)
    settings_json = Column(PortableJSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    price_lists = relationship("PriceList", back_populates="org")

    @validates('slug')
    def validate_slug(self, key, value):
        """Slugs are lowercase alphanumerics separated by single hyphens."""
        if not value or not re.match(r'^[a-z0-9]+(?:-[a-z0-9]+)*$', value):
            raise ValueError(
                f"Invalid slug '{value}': use lowercase letters, digits and hyphens"
            )
        return value

    def __repr__(self):
        return f"<Org(id={self.id}, slug='{self.slug}')>"
