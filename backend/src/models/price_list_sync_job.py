"""PriceListSyncJob SQLAlchemy model"""

from uuid import uuid4

from sqlalchemy import Column, Text, Integer, DateTime, Uuid, ForeignKey, Index
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, utcnow


class PriceListSyncJob(Base):
    """A unit of ERP synchronization work against one price list.

    Counters are checkpointed after every batch so monitoring can show live
    progress. A job that crashed mid-run stays RUNNING with its partial
    counters until an operator cancels it.

    Status values and allowed transitions live in ``sync.status``.
    """
    __tablename__ = "price_list_sync_job"

    id = Column(Uuid, primary_key=True, default=uuid4)
    org_id = Column(Uuid, ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    price_list_id = Column(Uuid, ForeignKey("price_list.id", ondelete="CASCADE"), nullable=False)
    job_type = Column(Text, nullable=False)
    status = Column(Text, nullable=False)

    total_items = Column(Integer, nullable=False, default=0)
    processed_items = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    skipped_count = Column(Integer, nullable=False, default=0)

    delta_token = Column(Text, nullable=True)
    connector_id = Column(Text, nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    errors = Column(PortableJSONB, nullable=True)
    summary = Column(PortableJSONB, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_price_list_sync_job_org_status", "org_id", "status"),
        Index("ix_price_list_sync_job_list_type", "price_list_id", "job_type", "status"),
    )

    price_list = relationship("PriceList")

    def __repr__(self):
        return (
            f"<PriceListSyncJob(id={self.id}, type='{self.job_type}', status='{self.status}', "
            f"processed={self.processed_items}/{self.total_items})>"
        )
