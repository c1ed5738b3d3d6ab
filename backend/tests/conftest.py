"""Pytest fixtures for the pricing backend.

Provides reusable test fixtures for:
- Database session on a file-based SQLite database (tables per test)
- Test organizations
- Price lists and items
- A FastAPI test client scoped to the test organization

Usage:
    def test_create_price_list(client, test_org):
        response = client.post("/api/v1/price-lists", json={...})
        assert response.status_code == 201
"""

import sys
import os
import tempfile
from pathlib import Path

# Set environment variables BEFORE any imports to ensure they take effect.
# A file database (not :memory:) so that worker threads and a second
# session see the same data.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="pricing-tests-")
os.environ["DATABASE_URL"] = os.environ.get(
    "TEST_DATABASE_URL",
    f"sqlite:///{_TEST_DB_DIR}/pricing_test.db",
)
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

import pytest
from datetime import date
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from typing import Generator

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

import models  # noqa: F401  (registers every table on Base.metadata)
from models.base import Base
from models.org import Org
from models.price_list import PriceList, PriceListItem
from database import engine as test_engine, SessionLocal as TestingSessionLocal
from database import get_db as database_get_db


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test.

    Creates all tables before the test and drops them after.
    Each test gets a clean database state.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def test_org(db_session: Session) -> Org:
    """Create a test organization."""
    org = Org(
        slug="test-org",
        name="Test Organization"
    )
    db_session.add(org)
    db_session.commit()
    db_session.refresh(org)
    return org


@pytest.fixture(scope="function")
def other_org(db_session: Session) -> Org:
    """A second organization for tenant isolation checks."""
    org = Org(slug="other-org", name="Other Organization")
    db_session.add(org)
    db_session.commit()
    db_session.refresh(org)
    return org


@pytest.fixture
def make_price_list(db_session: Session, test_org: Org):
    """Factory for price lists with direct ORM inserts."""
    def _make(code: str = "STD", **overrides) -> PriceList:
        values = dict(
            org_id=test_org.id,
            code=code,
            name=f"{code} price list",
            currency="EUR",
            effective_from=date(2020, 1, 1),
        )
        values.update(overrides)
        price_list = PriceList(**values)
        db_session.add(price_list)
        db_session.commit()
        db_session.refresh(price_list)
        return price_list
    return _make


@pytest.fixture
def make_item(db_session: Session):
    """Factory for price list items; list_price defaults to base_price."""
    def _make(price_list: PriceList, sku: str, base_price: str, **overrides) -> PriceListItem:
        values = dict(
            price_list_id=price_list.id,
            sku=sku,
            base_price=Decimal(base_price),
            list_price=Decimal(overrides.pop("list_price", base_price)),
        )
        values.update(overrides)
        item = PriceListItem(**values)
        db_session.add(item)
        db_session.commit()
        db_session.refresh(item)
        return item
    return _make


@pytest.fixture(scope="function")
def client(db_session: Session, test_org: Org):
    """Create a test client for the test organization.

    Every request carries the X-Org-ID header of ``test_org``.
    """
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[database_get_db] = override_get_db

    test_client = TestClient(app)
    test_client.headers.update({"X-Org-ID": str(test_org.id)})

    yield test_client

    app.dependency_overrides.clear()
