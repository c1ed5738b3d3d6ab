"""Integration tests for price list, item and assignment persistence"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from sqlalchemy.orm import Session

from errors import ConflictError, NotFoundError, PricingValidationError
from models.customer_price_assignment import AssignmentType
from models.org import Org
from models.price_list import PriceList, PriceListStatus
from pricing.schemas import (
    AssignmentCreate,
    PriceListCreate,
    PriceListFilters,
    PriceListItemCreate,
    PriceListUpdate,
)
from pricing.store import PriceListStore


def _create(store: PriceListStore, org: Org, code: str, **kwargs) -> PriceList:
    data = dict(code=code, name=f"{code} list", currency="eur", effective_from=date(2024, 1, 1))
    data.update(kwargs)
    return store.create_price_list(org.id, PriceListCreate(**data))


class TestPriceLists:

    def test_create_normalizes_currency(self, db_session: Session, test_org: Org):
        store = PriceListStore(db_session)
        price_list = _create(store, test_org, "STD")

        assert price_list.id is not None
        assert price_list.currency == "EUR"
        assert price_list.status == PriceListStatus.ACTIVE.value

    def test_duplicate_code_conflicts(self, db_session: Session, test_org: Org):
        store = PriceListStore(db_session)
        _create(store, test_org, "STD")

        with pytest.raises(ConflictError):
            _create(store, test_org, "STD")

    def test_same_code_allowed_in_other_org(self, db_session: Session, test_org: Org, other_org: Org):
        store = PriceListStore(db_session)
        _create(store, test_org, "STD")
        assert _create(store, other_org, "STD").org_id == other_org.id

    def test_new_default_replaces_previous_default(self, db_session: Session, test_org: Org):
        """
        Given a default price list
        When a second list is created as default
        Then only the second list remains default
        """
        store = PriceListStore(db_session)
        first = _create(store, test_org, "A", is_default=True)
        second = _create(store, test_org, "B", is_default=True)

        db_session.refresh(first)
        assert first.is_default is False
        assert second.is_default is True
        assert store.get_default_price_list(test_org.id, date(2024, 6, 1)).id == second.id

    def test_update_to_default_unsets_other(self, db_session: Session, test_org: Org):
        store = PriceListStore(db_session)
        first = _create(store, test_org, "A", is_default=True)
        second = _create(store, test_org, "B")

        store.update_price_list(test_org.id, second.id, PriceListUpdate(is_default=True))

        db_session.refresh(first)
        assert first.is_default is False
        defaults = db_session.query(PriceList).filter(
            PriceList.org_id == test_org.id, PriceList.is_default.is_(True)
        ).all()
        assert [p.id for p in defaults] == [second.id]

    def test_invalid_window_rejected(self, db_session: Session, test_org: Org):
        store = PriceListStore(db_session)
        price_list = _create(store, test_org, "STD")

        with pytest.raises(PricingValidationError):
            store.update_price_list(
                test_org.id, price_list.id, PriceListUpdate(effective_to=date(2023, 12, 31))
            )

    def test_soft_delete_archives(self, db_session: Session, test_org: Org):
        store = PriceListStore(db_session)
        price_list = _create(store, test_org, "STD", is_default=True)

        store.delete_price_list(test_org.id, price_list.id)

        row = db_session.get(PriceList, price_list.id)
        assert row.status == PriceListStatus.ARCHIVED.value
        assert row.deleted_at is not None
        assert row.is_default is False
        with pytest.raises(NotFoundError):
            store.get_price_list(test_org.id, price_list.id)

    def test_other_org_cannot_read(self, db_session: Session, test_org: Org, other_org: Org):
        store = PriceListStore(db_session)
        price_list = _create(store, test_org, "STD")

        with pytest.raises(NotFoundError):
            store.get_price_list(other_org.id, price_list.id)

    def test_default_outside_window_not_in_force(self, db_session: Session, test_org: Org):
        store = PriceListStore(db_session)
        _create(store, test_org, "STD", is_default=True, effective_to=date(2024, 7, 1))

        assert store.get_default_price_list(test_org.id, date(2024, 6, 30)) is not None
        # effective_to is exclusive
        assert store.get_default_price_list(test_org.id, date(2024, 7, 1)) is None

    def test_query_filters_and_paginates(self, db_session: Session, test_org: Org):
        store = PriceListStore(db_session)
        for index, code in enumerate(["A", "B", "C"]):
            _create(store, test_org, code, priority=index)
        _create(store, test_org, "D", status="DRAFT")

        items, total = store.query_price_lists(
            test_org.id, PriceListFilters(status=PriceListStatus.ACTIVE, per_page=2)
        )
        assert total == 3
        assert [p.code for p in items] == ["C", "B"]


class TestItems:

    def test_add_item_defaults_list_price(self, db_session: Session, test_org: Org, make_price_list):
        store = PriceListStore(db_session)
        price_list = make_price_list()

        item = store.add_item(test_org.id, price_list.id, PriceListItemCreate(sku=" SKU-1 ", base_price=Decimal("12.50")))

        assert item.sku == "SKU-1"
        assert item.list_price == Decimal("12.50")
        assert item.uom == "EA"

    def test_duplicate_sku_conflicts(self, db_session: Session, test_org: Org, make_price_list, make_item):
        store = PriceListStore(db_session)
        price_list = make_price_list()
        make_item(price_list, "SKU-1", "10")

        with pytest.raises(ConflictError):
            store.add_item(test_org.id, price_list.id, PriceListItemCreate(sku="SKU-1", base_price=Decimal("11")))

    def test_effective_item_respects_window_and_active(
        self, db_session: Session, make_price_list, make_item
    ):
        store = PriceListStore(db_session)
        price_list = make_price_list()
        make_item(price_list, "LATER", "10", effective_from=date(2025, 1, 1))
        make_item(price_list, "OFF", "10", is_active=False)
        make_item(price_list, "NOW", "10")

        as_of = date(2024, 6, 1)
        assert store.find_effective_item(price_list.id, "LATER", as_of) is None
        assert store.find_effective_item(price_list.id, "OFF", as_of) is None
        assert store.find_effective_item(price_list.id, "NOW", as_of).sku == "NOW"

    def test_delete_item(self, db_session: Session, test_org: Org, make_price_list, make_item):
        store = PriceListStore(db_session)
        price_list = make_price_list()
        item = make_item(price_list, "SKU-1", "10")

        store.delete_item(test_org.id, price_list.id, item.id)

        with pytest.raises(NotFoundError):
            store.get_item(test_org.id, item.id)


class TestAssignments:

    def test_duplicate_assignment_conflicts(self, db_session: Session, test_org: Org, make_price_list):
        store = PriceListStore(db_session)
        price_list = make_price_list()
        data = AssignmentCreate(
            price_list_id=price_list.id,
            assignment_type=AssignmentType.CUSTOMER,
            assignment_id="C-1",
            effective_from=date(2024, 1, 1),
        )
        store.assign_price_list(test_org.id, data)

        with pytest.raises(ConflictError):
            store.assign_price_list(test_org.id, data)

    def test_customer_lists_ordered_by_priority(self, db_session: Session, test_org: Org, make_price_list):
        """
        Given lists bound to a customer and to its organization
        When the customer's lists are fetched
        Then assignment priority wins, then list priority, and each list appears once
        """
        store = PriceListStore(db_session)
        low = make_price_list("LOW", priority=100)
        high = make_price_list("HIGH", priority=0)
        org_list = make_price_list("ORG", priority=5)
        start = date(2024, 1, 1)

        store.assign_price_list(test_org.id, AssignmentCreate(
            price_list_id=low.id, assignment_type=AssignmentType.CUSTOMER,
            assignment_id="C-1", priority=1, effective_from=start,
        ))
        store.assign_price_list(test_org.id, AssignmentCreate(
            price_list_id=high.id, assignment_type=AssignmentType.CUSTOMER,
            assignment_id="C-1", priority=10, effective_from=start,
        ))
        store.assign_price_list(test_org.id, AssignmentCreate(
            price_list_id=org_list.id, assignment_type=AssignmentType.ORGANIZATION,
            assignment_id="ORG-1", priority=1, effective_from=start,
        ))
        store.assign_price_list(test_org.id, AssignmentCreate(
            price_list_id=high.id, assignment_type=AssignmentType.ORGANIZATION,
            assignment_id="ORG-1", priority=0, effective_from=start,
        ))

        lists = store.get_customer_price_lists(test_org.id, "C-1", "ORG-1", date(2024, 6, 1))
        assert [p.code for p in lists] == ["HIGH", "LOW", "ORG"]

    def test_expired_and_inactive_assignments_ignored(self, db_session: Session, test_org: Org, make_price_list):
        store = PriceListStore(db_session)
        expired = make_price_list("EXPIRED")
        inactive = make_price_list("INACTIVE")
        today = date(2024, 6, 1)

        store.assign_price_list(test_org.id, AssignmentCreate(
            price_list_id=expired.id, assignment_type=AssignmentType.CUSTOMER, assignment_id="C-1",
            effective_from=today - timedelta(days=30), effective_to=today,
        ))
        store.assign_price_list(test_org.id, AssignmentCreate(
            price_list_id=inactive.id, assignment_type=AssignmentType.CUSTOMER, assignment_id="C-1",
            effective_from=today - timedelta(days=30), is_active=False,
        ))

        assert store.get_customer_price_lists(test_org.id, "C-1", as_of=today) == []

    def test_remove_missing_assignment(self, db_session: Session, test_org: Org):
        import uuid
        with pytest.raises(NotFoundError):
            PriceListStore(db_session).remove_assignment(test_org.id, uuid.uuid4())
