"""Integration tests for price resolution"""

import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy.orm import Session

from errors import NotFoundError, PricingValidationError
from models.customer_price_assignment import AssignmentType, CustomerPriceAssignment
from models.org import Org
from models.price_override import OverrideScopeType, OverrideType, PriceOverride
from pricing.resolution import PriceResolutionService, PriceSource, clamp_price, compute_override_price

AS_OF = date(2024, 6, 1)


@pytest.fixture
def default_list(make_price_list):
    return make_price_list("STD", is_default=True)


def _assign(db_session: Session, org: Org, price_list, customer_id: str = "C-1", **kwargs):
    assignment = CustomerPriceAssignment(
        org_id=org.id,
        price_list_id=price_list.id,
        assignment_type=kwargs.pop("assignment_type", AssignmentType.CUSTOMER.value),
        assignment_id=customer_id,
        effective_from=date(2024, 1, 1),
        **kwargs,
    )
    db_session.add(assignment)
    db_session.commit()
    return assignment


def _override(db_session: Session, org: Org, item, value: str, **kwargs) -> PriceOverride:
    values = dict(
        org_id=org.id,
        price_list_item_id=item.id,
        override_type=OverrideType.FIXED_PRICE.value,
        override_value=Decimal(value),
        scope_type=OverrideScopeType.CUSTOMER.value,
        scope_id="C-1",
        effective_from=date(2024, 1, 1),
    )
    values.update(kwargs)
    override = PriceOverride(**values)
    db_session.add(override)
    db_session.commit()
    return override


class TestOverridePrecedence:

    def test_override_wins_over_list(self, db_session: Session, test_org: Org, default_list, make_item):
        """
        Given a default list price of 50 and a customer override of 42
        When the customer resolves the SKU
        Then the override price is used and the path records it
        """
        item = make_item(default_list, "SKU-1", "50")
        override = _override(db_session, test_org, item, "42")

        result = PriceResolutionService(db_session).resolve(
            test_org.id, "SKU-1", Decimal("1"), customer_id="C-1", as_of=AS_OF
        )

        assert result.unit_price == Decimal("42")
        assert result.price_source == PriceSource.OVERRIDE.value
        assert result.override_id == override.id
        assert result.discount_amount == Decimal("8")
        assert result.discount_percent == Decimal("16.0000")
        assert result.resolution_path[-1].selected is True

    def test_override_clamped_to_min_price(self, db_session: Session, test_org: Org, default_list, make_item):
        item = make_item(default_list, "SKU-1", "50", min_price=Decimal("10"))
        _override(db_session, test_org, item, "5")

        result = PriceResolutionService(db_session).resolve(
            test_org.id, "SKU-1", Decimal("1"), customer_id="C-1", as_of=AS_OF
        )

        assert result.unit_price == Decimal("10")
        assert result.is_at_min_price is True
        assert result.is_at_max_price is False

    def test_override_ignored_without_scope(self, db_session: Session, test_org: Org, default_list, make_item):
        item = make_item(default_list, "SKU-1", "50")
        _override(db_session, test_org, item, "42")

        result = PriceResolutionService(db_session).resolve(test_org.id, "SKU-1", as_of=AS_OF)
        assert result.unit_price == Decimal("50")
        assert result.price_source == PriceSource.STANDARD.value

    def test_override_window_is_half_open(self, db_session: Session, test_org: Org, default_list, make_item):
        item = make_item(default_list, "SKU-1", "50")
        _override(db_session, test_org, item, "42", effective_to=AS_OF)

        result = PriceResolutionService(db_session).resolve(
            test_org.id, "SKU-1", customer_id="C-1", as_of=AS_OF
        )
        assert result.price_source == PriceSource.STANDARD.value
        assert result.resolution_path[0].selected is False

    def test_override_is_rounded_with_list_rule(self, db_session: Session, test_org: Org, make_price_list, make_item):
        price_list = make_price_list("STD", is_default=True, rounding_rule="NEAREST_99")
        item = make_item(price_list, "SKU-1", "20")
        _override(db_session, test_org, item, "10", override_type=OverrideType.PERCENTAGE_DISCOUNT.value)

        result = PriceResolutionService(db_session).resolve(
            test_org.id, "SKU-1", customer_id="C-1", as_of=AS_OF
        )
        assert result.unit_price == Decimal("18.99")


class TestListResolution:

    def test_customer_list_before_default(
        self, db_session: Session, test_org: Org, default_list, make_price_list, make_item
    ):
        customer_list = make_price_list("CUST", is_customer_specific=True)
        make_item(default_list, "SKU-1", "50")
        make_item(customer_list, "SKU-1", "45", cost=Decimal("30"))
        _assign(db_session, test_org, customer_list)

        result = PriceResolutionService(db_session).resolve(
            test_org.id, "SKU-1", Decimal("2"), customer_id="C-1", as_of=AS_OF
        )

        assert result.price_source == PriceSource.CUSTOMER_SPECIFIC.value
        assert result.price_list_code == "CUST"
        assert result.unit_price == Decimal("45")
        assert result.extended_price == Decimal("90")
        assert result.margin == Decimal("15")
        assert result.margin_percent == Decimal("33.3333")

    def test_customer_list_without_sku_falls_back(
        self, db_session: Session, test_org: Org, default_list, make_price_list, make_item
    ):
        customer_list = make_price_list("CUST")
        make_item(customer_list, "OTHER", "1")
        make_item(default_list, "SKU-1", "50")
        _assign(db_session, test_org, customer_list)

        result = PriceResolutionService(db_session).resolve(
            test_org.id, "SKU-1", customer_id="C-1", as_of=AS_OF
        )

        assert result.price_source == PriceSource.STANDARD.value
        misses = [step for step in result.resolution_path if not step.selected]
        assert any(step.price_list_id == customer_list.id for step in misses)

    def test_organization_assignment_used(
        self, db_session: Session, test_org: Org, default_list, make_price_list, make_item
    ):
        org_list = make_price_list("ORG")
        make_item(org_list, "SKU-1", "44")
        _assign(db_session, test_org, org_list, customer_id="ORG-1", assignment_type=AssignmentType.ORGANIZATION.value)

        result = PriceResolutionService(db_session).resolve(
            test_org.id, "SKU-1", customer_id="C-9", organization_id="ORG-1", as_of=AS_OF
        )
        assert result.price_list_code == "ORG"

    def test_quantity_break_applied(self, db_session: Session, test_org: Org, default_list, make_item):
        make_item(default_list, "SKU-1", "100", quantity_breaks=[
            {"min_quantity": "10", "price": "90"},
            {"min_quantity": "50", "price": "80"},
        ])
        service = PriceResolutionService(db_session)

        small = service.resolve(test_org.id, "SKU-1", Decimal("5"), as_of=AS_OF)
        large = service.resolve(test_org.id, "SKU-1", Decimal("50"), as_of=AS_OF)

        assert small.unit_price == Decimal("100")
        assert small.quantity_break_applied is None
        assert large.unit_price == Decimal("80")
        assert large.quantity_break_applied.min_quantity == Decimal("50")

    def test_item_currency_and_mismatch(self, db_session: Session, test_org: Org, default_list, make_item):
        make_item(default_list, "SKU-1", "50", currency="USD")
        service = PriceResolutionService(db_session)

        same = service.resolve(test_org.id, "SKU-1", currency="usd", as_of=AS_OF)
        other = service.resolve(test_org.id, "SKU-1", currency="EUR", as_of=AS_OF)

        assert same.currency == "USD"
        assert same.original_currency is None
        assert other.currency == "USD"
        assert other.original_currency == "USD"

    def test_not_found(self, db_session: Session, test_org: Org, default_list):
        with pytest.raises(NotFoundError):
            PriceResolutionService(db_session).resolve(test_org.id, "MISSING", as_of=AS_OF)

    def test_not_found_without_default(self, db_session: Session, test_org: Org):
        with pytest.raises(NotFoundError):
            PriceResolutionService(db_session).resolve(test_org.id, "SKU-1", as_of=AS_OF)

    def test_non_positive_quantity(self, db_session: Session, test_org: Org):
        with pytest.raises(PricingValidationError):
            PriceResolutionService(db_session).resolve(test_org.id, "SKU-1", Decimal("0"))

    def test_other_org_lists_invisible(
        self, db_session: Session, test_org: Org, other_org: Org, default_list, make_item
    ):
        make_item(default_list, "SKU-1", "50")
        with pytest.raises(NotFoundError):
            PriceResolutionService(db_session).resolve(other_org.id, "SKU-1", as_of=AS_OF)


class TestResolveMany:

    def test_missing_sku_maps_to_none(self, db_session: Session, test_org: Org, default_list, make_item):
        make_item(default_list, "A", "10")
        make_item(default_list, "B", "20")

        results = PriceResolutionService(db_session).resolve_many(
            test_org.id, ["A", "B", "MISSING", "A"], as_of=AS_OF, max_workers=3
        )

        assert list(results) == ["A", "B", "MISSING"]
        assert results["A"].unit_price == Decimal("10")
        assert results["B"].unit_price == Decimal("20")
        assert results["MISSING"] is None

    def test_empty_input(self, db_session: Session, test_org: Org):
        assert PriceResolutionService(db_session).resolve_many(test_org.id, []) == {}


class TestOverrideFormulas:

    class _Item:
        def __init__(self, list_price, base_price, cost=None):
            self.list_price = Decimal(list_price)
            self.base_price = Decimal(base_price)
            self.cost = Decimal(cost) if cost is not None else None

    class _Override:
        def __init__(self, override_type, value):
            self.override_type = override_type.value
            self.override_value = Decimal(value)

    @pytest.mark.parametrize("override_type,value,cost,expected", [
        (OverrideType.FIXED_PRICE, "42", None, "42"),
        (OverrideType.PERCENTAGE_DISCOUNT, "25", None, "75"),
        (OverrideType.FIXED_DISCOUNT, "30", None, "70"),
        (OverrideType.FIXED_DISCOUNT, "150", None, "0"),
        (OverrideType.MARKUP_PERCENTAGE, "50", "40", "60"),
        (OverrideType.MARKUP_PERCENTAGE, "10", None, "88"),
        (OverrideType.MARKUP_FIXED, "5", "40", "45"),
    ])
    def test_formula(self, override_type, value, cost, expected):
        item = self._Item("100", "80", cost)
        price = compute_override_price(self._Override(override_type, value), item)
        assert price == Decimal(expected)

    def test_clamp(self):
        assert clamp_price(Decimal("5"), Decimal("10"), None) == Decimal("10")
        assert clamp_price(Decimal("50"), None, Decimal("40")) == Decimal("40")
        assert clamp_price(Decimal("20"), Decimal("10"), Decimal("40")) == Decimal("20")
