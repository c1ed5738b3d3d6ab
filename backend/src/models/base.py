"""Declarative base and column helpers shared by the pricing models"""

from datetime import datetime, timezone

from sqlalchemy import JSON, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base


class PortableJSONB(TypeDecorator):
    """JSONB on PostgreSQL, plain JSON elsewhere (the SQLite test database).

    Used for sync job errors and summaries and for free-form metadata columns.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(JSONB() if dialect.name == "postgresql" else JSON())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


Base = declarative_base()
