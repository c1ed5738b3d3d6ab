"""Integration tests for price override lifecycle and lookup"""

import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy.orm import Session

from errors import ConflictError, InvalidStateError
from models.org import Org
from models.price_override import OverrideScopeType, OverrideStatus, OverrideType
from pricing.override_service import PriceOverrideService
from pricing.schemas import OverrideCreate, OverrideUpdate


@pytest.fixture
def item(make_price_list, make_item):
    return make_item(make_price_list(), "SKU-1", "50")


def _override(item, **kwargs) -> OverrideCreate:
    data = dict(
        price_list_item_id=item.id,
        override_type=OverrideType.FIXED_PRICE,
        override_value=Decimal("42"),
        scope_type=OverrideScopeType.CUSTOMER,
        scope_id="C-1",
        effective_from=date(2024, 1, 1),
    )
    data.update(kwargs)
    return OverrideCreate(**data)


class TestOverrideConflicts:

    def test_overlapping_window_conflicts(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        service.create_override(test_org.id, _override(item, effective_to=date(2024, 6, 1)))

        with pytest.raises(ConflictError):
            service.create_override(test_org.id, _override(item, effective_from=date(2024, 5, 1)))

    def test_adjacent_windows_do_not_conflict(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        service.create_override(test_org.id, _override(item, effective_to=date(2024, 6, 1)))
        second = service.create_override(test_org.id, _override(item, effective_from=date(2024, 6, 1)))
        assert second.id is not None

    def test_disjoint_quantity_ranges_do_not_conflict(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        service.create_override(test_org.id, _override(item, max_quantity=Decimal("9")))
        second = service.create_override(test_org.id, _override(item, min_quantity=Decimal("10")))
        assert second.min_quantity == Decimal("10")

    def test_other_scope_does_not_conflict(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        service.create_override(test_org.id, _override(item))
        other = service.create_override(test_org.id, _override(item, scope_id="C-2"))
        assert other.scope_id == "C-2"

    def test_revoked_override_frees_the_slot(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        first = service.create_override(test_org.id, _override(item))
        service.revoke_override(test_org.id, first.id, reason="replaced")

        assert service.create_override(test_org.id, _override(item)).status == OverrideStatus.ACTIVE.value

    def test_update_into_overlap_conflicts(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        service.create_override(test_org.id, _override(item, effective_to=date(2024, 6, 1)))
        later = service.create_override(test_org.id, _override(item, effective_from=date(2024, 7, 1)))

        with pytest.raises(ConflictError):
            service.update_override(test_org.id, later.id, OverrideUpdate(effective_from=date(2024, 5, 1)))

    def test_bulk_create_reports_index(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        result = service.bulk_create_overrides(test_org.id, [
            _override(item),
            _override(item),
            _override(item, scope_id="C-2"),
        ])

        assert result.created == 2
        assert [e.index for e in result.errors] == [1]


class TestOverrideLifecycle:

    def test_approve_pending(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        pending = service.create_override(test_org.id, _override(item, status=OverrideStatus.PENDING_APPROVAL))

        approved = service.approve_override(test_org.id, pending.id, "manager-1")

        assert approved.status == OverrideStatus.ACTIVE.value
        assert approved.approved_by_id == "manager-1"
        assert approved.approved_at is not None

    def test_approve_active_is_invalid(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        active = service.create_override(test_org.id, _override(item))

        with pytest.raises(InvalidStateError):
            service.approve_override(test_org.id, active.id, "manager-1")

    def test_revoke_twice_is_invalid(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        override = service.create_override(test_org.id, _override(item))
        service.revoke_override(test_org.id, override.id)

        with pytest.raises(InvalidStateError):
            service.revoke_override(test_org.id, override.id)

    def test_expire_outdated(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        ended = service.create_override(test_org.id, _override(item, effective_to=date(2024, 3, 1)))
        open_ended = service.create_override(test_org.id, _override(item, scope_id="C-2"))

        assert service.expire_outdated_overrides(test_org.id, as_of=date(2024, 3, 1)) == 1

        db_session.refresh(ended)
        db_session.refresh(open_ended)
        assert ended.status == OverrideStatus.EXPIRED.value
        assert open_ended.status == OverrideStatus.ACTIVE.value


class TestFindApplicableOverride:

    def test_contract_beats_customer(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        service.create_override(test_org.id, _override(item))
        contract = service.create_override(test_org.id, _override(
            item, scope_type=OverrideScopeType.CONTRACT, scope_id="K-1", override_value=Decimal("40"),
        ))

        found = service.find_applicable_override(
            test_org.id, "SKU-1", Decimal("1"), customer_id="C-1", contract_id="K-1", as_of=date(2024, 2, 1)
        )
        assert found.id == contract.id

    def test_quantity_bounds(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        service.create_override(test_org.id, _override(item, min_quantity=Decimal("10")))

        as_of = date(2024, 2, 1)
        assert service.find_applicable_override(test_org.id, "SKU-1", Decimal("5"), customer_id="C-1", as_of=as_of) is None
        assert service.find_applicable_override(test_org.id, "SKU-1", Decimal("10"), customer_id="C-1", as_of=as_of) is not None

    def test_pending_override_not_applied(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        service.create_override(test_org.id, _override(item, status=OverrideStatus.PENDING_APPROVAL))

        assert service.find_applicable_override(
            test_org.id, "SKU-1", Decimal("1"), customer_id="C-1", as_of=date(2024, 2, 1)
        ) is None

    def test_no_scope_means_no_override(self, db_session: Session, test_org: Org, item):
        service = PriceOverrideService(db_session)
        service.create_override(test_org.id, _override(item))

        assert service.find_applicable_override(test_org.id, "SKU-1", Decimal("1")) is None
