"""Price resolution engine.

Determines the single authoritative unit price for a SKU. Sources are tried
in strict precedence and the first hit wins:

1. an ACTIVE price override matching the customer, organization or contract
2. the customer's assigned price lists, highest assignment priority first
3. the organization's default price list

List prices go through quantity breaks and then the owning list's rounding
rule. Override prices are computed from the override formula, rounded with
the owning list's rule, and clamped to the item's min/max bounds.

Every source tried is recorded in the result's ``resolution_path``.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from config import settings
from errors import NotFoundError, PricingError, PricingValidationError
from models.price_list import PriceList, PriceListItem
from models.price_override import OverrideType, PriceOverride
from observability.metrics import price_resolution_duration_seconds, price_resolutions_total
from pricing.override_service import PriceOverrideService
from pricing.quantity_breaks import QuantityBreak, apply_quantity_breaks, parse_quantity_breaks
from pricing.rounding import apply_rounding
from pricing.schemas import PriceResult, ResolutionStep
from pricing.store import PriceListStore

logger = logging.getLogger(__name__)

_HUNDRED = Decimal("100")
_PERCENT_QUANTUM = Decimal("0.0001")


class PriceSource(str, Enum):
    """Where a resolved price came from."""
    OVERRIDE = "override"
    CUSTOMER_SPECIFIC = "customer_specific"
    STANDARD = "standard"


def compute_override_price(override: PriceOverride, item: PriceListItem) -> Decimal:
    """Raw (unrounded, unclamped) price produced by an override formula.

    Markups apply to cost when known, otherwise to base price. A discount
    larger than the list price yields zero, never a negative price.
    """
    value = Decimal(override.override_value)
    list_price = Decimal(item.list_price)
    markup_base = Decimal(item.cost if item.cost is not None else item.base_price)
    override_type = OverrideType(override.override_type)

    if override_type == OverrideType.FIXED_PRICE:
        price = value
    elif override_type == OverrideType.PERCENTAGE_DISCOUNT:
        price = list_price * (1 - value / _HUNDRED)
    elif override_type == OverrideType.FIXED_DISCOUNT:
        price = list_price - value
    elif override_type == OverrideType.MARKUP_PERCENTAGE:
        price = markup_base * (1 + value / _HUNDRED)
    else:
        price = markup_base + value

    return max(price, Decimal(0))


def clamp_price(price: Decimal, min_price: Optional[Decimal], max_price: Optional[Decimal]) -> Decimal:
    if min_price is not None and price < min_price:
        return Decimal(min_price)
    if max_price is not None and price > max_price:
        return Decimal(max_price)
    return price


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    return (part / whole * _HUNDRED).quantize(_PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


class PriceResolutionService:
    """Resolves prices for one organization-scoped request at a time."""

    def __init__(self, db: Session):
        self.db = db
        self.store = PriceListStore(db)
        self.overrides = PriceOverrideService(db)

    def resolve(
        self,
        org_id: UUID,
        sku: str,
        quantity: Decimal = Decimal("1"),
        customer_id: Optional[str] = None,
        organization_id: Optional[str] = None,
        contract_id: Optional[str] = None,
        currency: Optional[str] = None,
        as_of: Optional[date] = None,
    ) -> PriceResult:
        """Resolve the unit price of ``sku``.

        Args:
            org_id: Organization (tenant) ID
            sku: SKU to price
            quantity: Requested quantity, must be positive
            customer_id: Customer for overrides and assigned lists
            organization_id: Customer organization for overrides and assigned lists
            contract_id: Contract for overrides
            currency: Requested currency; a mismatch is reported, never converted
            as_of: Pricing date (default: today)

        Returns:
            PriceResult with the resolution path

        Raises:
            NotFoundError: No source produced a price
            PricingValidationError: Non-positive quantity
        """
        quantity = Decimal(quantity)
        if quantity <= 0:
            raise PricingValidationError("quantity must be positive")
        as_of = as_of or date.today()
        currency = currency.upper() if currency else None

        start = time.perf_counter()
        try:
            result = self._resolve(org_id, sku, quantity, customer_id, organization_id, contract_id, currency, as_of)
        except NotFoundError:
            price_resolutions_total.labels(source="none", status="not_found").inc()
            raise
        finally:
            price_resolution_duration_seconds.observe(time.perf_counter() - start)

        price_resolutions_total.labels(source=result.price_source, status="success").inc()
        return result

    def _resolve(
        self,
        org_id: UUID,
        sku: str,
        quantity: Decimal,
        customer_id: Optional[str],
        organization_id: Optional[str],
        contract_id: Optional[str],
        currency: Optional[str],
        as_of: date,
    ) -> PriceResult:
        path: list[ResolutionStep] = []

        # 1. Overrides
        if customer_id or organization_id or contract_id:
            override = self.overrides.find_applicable_override(
                org_id, sku, quantity,
                customer_id=customer_id,
                organization_id=organization_id,
                contract_id=contract_id,
                as_of=as_of,
            )
            if override:
                item = override.price_list_item
                price_list = item.price_list
                raw = compute_override_price(override, item)
                rounded = apply_rounding(raw, price_list.rounding_rule, price_list.rounding_precision)
                unit_price = clamp_price(rounded, item.min_price, item.max_price)
                path.append(ResolutionStep(
                    source=PriceSource.OVERRIDE.value,
                    price_list_id=price_list.id,
                    price=unit_price,
                    selected=True,
                    reason=f"Active {override.override_type} override for {override.scope_type} {override.scope_id}",
                ))
                return self._build_result(
                    sku, quantity, item, price_list, unit_price, PriceSource.OVERRIDE, path, currency,
                    override=override,
                )
            path.append(ResolutionStep(
                source=PriceSource.OVERRIDE.value,
                selected=False,
                reason="No applicable override",
            ))

        # 2. Customer-specific lists, first list carrying the SKU wins
        if customer_id:
            price_lists = self.store.get_customer_price_lists(org_id, customer_id, organization_id, as_of)
            if not price_lists:
                path.append(ResolutionStep(
                    source=PriceSource.CUSTOMER_SPECIFIC.value,
                    selected=False,
                    reason="No customer price lists assigned",
                ))
            for price_list in price_lists:
                item = self.store.find_effective_item(price_list.id, sku, as_of)
                if item is None:
                    path.append(ResolutionStep(
                        source=PriceSource.CUSTOMER_SPECIFIC.value,
                        price_list_id=price_list.id,
                        selected=False,
                        reason=f"SKU not in price list {price_list.code}",
                    ))
                    continue
                unit_price, applied = self._list_price(item, price_list, quantity)
                path.append(ResolutionStep(
                    source=PriceSource.CUSTOMER_SPECIFIC.value,
                    price_list_id=price_list.id,
                    price=unit_price,
                    selected=True,
                    reason=f"Customer-specific price list {price_list.code}",
                ))
                return self._build_result(
                    sku, quantity, item, price_list, unit_price, PriceSource.CUSTOMER_SPECIFIC, path, currency,
                    applied_break=applied,
                )

        # 3. Default list
        default_list = self.store.get_default_price_list(org_id, as_of)
        if default_list is None:
            path.append(ResolutionStep(
                source=PriceSource.STANDARD.value,
                selected=False,
                reason="No default price list in force",
            ))
        else:
            item = self.store.find_effective_item(default_list.id, sku, as_of)
            if item is not None:
                unit_price, applied = self._list_price(item, default_list, quantity)
                path.append(ResolutionStep(
                    source=PriceSource.STANDARD.value,
                    price_list_id=default_list.id,
                    price=unit_price,
                    selected=True,
                    reason=f"Default price list {default_list.code}",
                ))
                return self._build_result(
                    sku, quantity, item, default_list, unit_price, PriceSource.STANDARD, path, currency,
                    applied_break=applied,
                )
            path.append(ResolutionStep(
                source=PriceSource.STANDARD.value,
                price_list_id=default_list.id,
                selected=False,
                reason=f"SKU not in default price list {default_list.code}",
            ))

        logger.debug(f"No price found for SKU {sku}", extra={"org_id": str(org_id), "sku": sku})
        raise NotFoundError(f"No price found for SKU: {sku}")

    def resolve_many(
        self,
        org_id: UUID,
        skus: Iterable[str],
        quantity: Decimal = Decimal("1"),
        customer_id: Optional[str] = None,
        organization_id: Optional[str] = None,
        contract_id: Optional[str] = None,
        currency: Optional[str] = None,
        as_of: Optional[date] = None,
        max_workers: Optional[int] = None,
    ) -> dict[str, Optional[PriceResult]]:
        """Resolve many SKUs with bounded parallelism.

        Each worker thread uses its own database session. A SKU that fails
        with a business error maps to None; database faults propagate.

        Returns:
            Mapping of every requested SKU to its PriceResult or None
        """
        unique_skus = list(dict.fromkeys(skus))
        if not unique_skus:
            return {}

        as_of = as_of or date.today()
        make_session = sessionmaker(bind=self.db.get_bind(), autoflush=False)

        def resolve_one(sku: str) -> Optional[PriceResult]:
            with make_session() as session:
                try:
                    return PriceResolutionService(session).resolve(
                        org_id, sku, quantity,
                        customer_id=customer_id,
                        organization_id=organization_id,
                        contract_id=contract_id,
                        currency=currency,
                        as_of=as_of,
                    )
                except PricingError as e:
                    logger.debug(f"Resolution failed for SKU {sku}: {e}", extra={"org_id": str(org_id), "sku": sku})
                    return None

        workers = min(max_workers or settings.PRICE_RESOLUTION_CONCURRENCY, len(unique_skus))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="price-resolve") as pool:
            futures = {sku: pool.submit(resolve_one, sku) for sku in unique_skus}
            return {sku: future.result() for sku, future in futures.items()}

    # ------------------------------------------------------------------

    @staticmethod
    def _list_price(
        item: PriceListItem,
        price_list: PriceList,
        quantity: Decimal,
    ) -> tuple[Decimal, Optional[QuantityBreak]]:
        breaks = parse_quantity_breaks(item.quantity_breaks)
        raw, applied = apply_quantity_breaks(breaks, quantity, Decimal(item.list_price))
        return apply_rounding(raw, price_list.rounding_rule, price_list.rounding_precision), applied

    @staticmethod
    def _build_result(
        sku: str,
        quantity: Decimal,
        item: PriceListItem,
        price_list: PriceList,
        unit_price: Decimal,
        source: PriceSource,
        path: list[ResolutionStep],
        target_currency: Optional[str],
        applied_break: Optional[QuantityBreak] = None,
        override: Optional[PriceOverride] = None,
    ) -> PriceResult:
        item_currency = item.currency or price_list.currency
        list_price = Decimal(item.list_price)
        discount_amount = list_price - unit_price
        cost = Decimal(item.cost) if item.cost is not None else None
        margin = unit_price - cost if cost is not None else None

        if override is not None:
            effective_from, effective_to = override.effective_from, override.effective_to
        else:
            effective_from = item.effective_from or price_list.effective_from
            effective_to = item.effective_to or price_list.effective_to

        return PriceResult(
            sku=item.sku,
            quantity=quantity,
            unit_price=unit_price,
            extended_price=unit_price * quantity,
            currency=item_currency,
            price_source=source.value,
            price_list_id=price_list.id,
            price_list_code=price_list.code,
            price_list_item_id=item.id,
            base_price=Decimal(item.base_price),
            list_price=list_price,
            discount_amount=discount_amount,
            discount_percent=_percent(discount_amount, list_price) if list_price != 0 else Decimal(0),
            quantity_break_applied=applied_break,
            override_id=override.id if override is not None else None,
            min_price=item.min_price,
            max_price=item.max_price,
            is_at_min_price=item.min_price is not None and unit_price == item.min_price,
            is_at_max_price=item.max_price is not None and unit_price == item.max_price,
            cost=cost,
            margin=margin,
            margin_percent=_percent(margin, unit_price) if margin is not None and unit_price != 0 else None,
            effective_from=effective_from,
            effective_to=effective_to,
            original_currency=(
                item_currency if target_currency and target_currency != item_currency else None
            ),
            resolution_path=path,
        )
