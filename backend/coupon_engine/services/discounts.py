from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from coupon_engine.core.config import settings
from coupon_engine.schemas.cart import Cart
from coupon_engine.schemas.coupon import (
    BxGyCoupon,
    CartWiseCoupon,
    CrossCategoryBxGyCoupon,
    DiscountKind,
    DiscountSpec,
    FlashSaleCoupon,
    GraduatedBxGyCoupon,
    ProductWiseCoupon,
    TieredCoupon,
    UserSpecificCoupon,
)
from coupon_engine.schemas.discount import AffectedItem, DiscountResult
from coupon_engine.schemas.user import User
from coupon_engine.services import pricing
from coupon_engine.services.eligibility import matches_product_scope, resolve_graduated_rule, resolve_tier
from coupon_engine.services.enrichment import EnrichedItem, quantity_in_categories, quantity_of_products, resolved

DEFAULT_MAX_LOYALTY_MULTIPLIER = Decimal("2")
FULL_PERCENT = Decimal("100")


def _quantize_money(value: Decimal) -> Decimal:
    return pricing.quantize_money(value, rounding=settings.money_rounding)


def _applications(available: int, required: int, repetition_limit: int | None) -> int:
    if required <= 0:
        return 0
    limit = 1 if repetition_limit is None else repetition_limit
    return max(0, min(available // required, limit))


def allocate_units(candidates: Iterable[EnrichedItem], budget: int) -> list[tuple[EnrichedItem, int]]:
    """Spend ``budget`` discounted units on the most expensive lines first."""
    allocations: list[tuple[EnrichedItem, int]] = []
    remaining = budget
    for entry in sorted(candidates, key=lambda e: e.price, reverse=True):
        if remaining <= 0:
            break
        units = min(entry.quantity, remaining)
        allocations.append((entry, units))
        remaining -= units
    return allocations


def _whole_cart_discount(
    cart: Cart,
    spec: DiscountSpec | None = None,
    *,
    kind: str | None = None,
    value: Decimal | None = None,
    max_discount_amount: Decimal | None = None,
    **metadata: object,
) -> DiscountResult:
    base = pricing.compute_base_discount(
        kind=kind if kind is not None else spec.type.value,  # type: ignore[union-attr]
        value=value if value is not None else spec.value,  # type: ignore[union-attr]
        base=cart.subtotal,
        shipping_cost=cart.shipping_cost,
        max_discount_amount=max_discount_amount if spec is None else spec.max_discount_amount,
    )
    total = _quantize_money(base.amount)
    shares = pricing.apportion(
        total, [item.price * item.quantity for item in cart.items], rounding=settings.money_rounding
    )
    affected = [
        AffectedItem(product_id=item.product_id, discount_amount=share, line_index=idx)
        for idx, (item, share) in enumerate(zip(cart.items, shares))
    ]
    return DiscountResult(total_discount=total, free_shipping=base.free_shipping, affected_items=affected, **metadata)


def calculate_cart_wise(
    cart: Cart, coupon: CartWiseCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> DiscountResult:
    return _whole_cart_discount(cart, coupon.discount)


def calculate_product_wise(
    cart: Cart, coupon: ProductWiseCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> DiscountResult:
    spec = coupon.discount
    if spec.type == DiscountKind.free_shipping:
        return DiscountResult(total_discount=_quantize_money(cart.shipping_cost), free_shipping=True)

    total = pricing.ZERO
    affected: list[AffectedItem] = []
    for entry in items:
        if not matches_product_scope(coupon.conditions, entry):
            continue
        line = pricing.compute_base_discount(
            kind=spec.type.value,
            value=spec.value,
            base=entry.line_total,
            shipping_cost=cart.shipping_cost,
            max_discount_amount=spec.max_discount_amount,
        )
        total += line.amount
        affected.append(
            AffectedItem(
                product_id=entry.product_id, discount_amount=_quantize_money(line.amount), line_index=entry.index
            )
        )
    return DiscountResult(total_discount=_quantize_money(total), affected_items=affected)


def _free_unit_discount(
    allocations: list[tuple[EnrichedItem, int]],
    percent: Decimal,
    *,
    with_percentage: bool = False,
    with_category: bool = False,
) -> tuple[Decimal, list[AffectedItem]]:
    total = pricing.ZERO
    affected: list[AffectedItem] = []
    for entry, units in allocations:
        amount = pricing.percent_of(entry.price * units, percent)
        total += amount
        affected.append(
            AffectedItem(
                product_id=entry.product_id,
                discount_amount=_quantize_money(amount),
                free_quantity=units,
                discount_percentage=percent if with_percentage else None,
                category=entry.category if with_category else None,
                line_index=entry.index,
            )
        )
    return total, affected


def calculate_bxgy(
    cart: Cart, coupon: BxGyCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> DiscountResult:
    conditions = coupon.conditions
    required = sum(bp.quantity for bp in conditions.buy_products)
    available = quantity_of_products(items, {bp.product_id for bp in conditions.buy_products})
    applications = _applications(available, required, conditions.repetition_limit)

    allocations: list[tuple[EnrichedItem, int]] = []
    if applications > 0:
        budget = applications * sum(gp.quantity for gp in conditions.get_products)
        get_ids = {gp.product_id for gp in conditions.get_products}
        allocations = allocate_units((e for e in resolved(items) if e.product_id in get_ids), budget)

    spec = coupon.discount
    percent = spec.value if spec.type == DiscountKind.percentage else FULL_PERCENT
    total, affected = _free_unit_discount(allocations, percent)
    return DiscountResult(
        total_discount=_quantize_money(total),
        affected_items=affected,
        applications_used=applications,
    )


def calculate_tiered(
    cart: Cart, coupon: TieredCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> DiscountResult:
    tier = resolve_tier(coupon.tiered_rules, cart.subtotal)
    if tier is None:
        return DiscountResult()
    return _whole_cart_discount(
        cart,
        kind=tier.discount_type.value,
        value=tier.discount_value,
        max_discount_amount=tier.max_discount_amount,
        tier_applied=tier.label,
    )


def calculate_flash_sale(
    cart: Cart, coupon: FlashSaleCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> DiscountResult:
    data = coupon.flash_sale_data
    multiplier = Decimal("1")
    if data is not None and data.discount_multiplier is not None:
        multiplier = data.discount_multiplier
    spec = coupon.discount
    return _whole_cart_discount(
        cart,
        kind=spec.type.value,
        value=spec.value * multiplier,
        max_discount_amount=spec.max_discount_amount,
    )


def loyalty_multiplier(coupon: UserSpecificCoupon, user: User | None) -> Decimal:
    criteria = coupon.user_criteria
    if user is None or criteria is None or not criteria.loyalty_multiplier or not user.loyalty_level:
        return Decimal("1")
    ceiling = criteria.max_multiplier if criteria.max_multiplier is not None else DEFAULT_MAX_LOYALTY_MULTIPLIER
    return min(criteria.loyalty_multiplier * user.loyalty_level, ceiling)


def calculate_user_specific(
    cart: Cart, coupon: UserSpecificCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> DiscountResult:
    multiplier = loyalty_multiplier(coupon, user)
    spec = coupon.discount
    return _whole_cart_discount(
        cart,
        kind=spec.type.value,
        value=spec.value * multiplier,
        max_discount_amount=spec.max_discount_amount,
        loyalty_multiplier=multiplier,
    )


def calculate_graduated_bxgy(
    cart: Cart, coupon: GraduatedBxGyCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> DiscountResult:
    conditions = coupon.conditions
    buy_quantity = quantity_of_products(items, {bp.product_id for bp in conditions.buy_products})
    rule = resolve_graduated_rule(conditions.graduated_rules, buy_quantity)
    if rule is None:
        return DiscountResult(applications_used=0)

    applications = _applications(buy_quantity, rule.buy_quantity, conditions.repetition_limit)
    get_ids = {gp.product_id for gp in conditions.get_products}
    allocations = allocate_units(
        (e for e in resolved(items) if e.product_id in get_ids), applications * rule.get_quantity
    )
    percent = rule.discount_percentage if rule.discount_percentage is not None else FULL_PERCENT
    total, affected = _free_unit_discount(allocations, percent, with_percentage=True)
    return DiscountResult(
        total_discount=_quantize_money(total),
        affected_items=affected,
        tier_applied=rule.label,
        applications_used=applications,
    )


def calculate_cross_category_bxgy(
    cart: Cart, coupon: CrossCategoryBxGyCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> DiscountResult:
    conditions = coupon.conditions
    buy_categories = list(conditions.buy_categories or [])
    get_categories = list(conditions.get_categories or [])

    buy_quantity = quantity_in_categories(items, set(buy_categories))
    applications = _applications(buy_quantity, conditions.buy_quantity or 1, conditions.repetition_limit)

    allocations: list[tuple[EnrichedItem, int]] = []
    if applications > 0:
        wanted = set(get_categories)
        budget = applications * (conditions.get_quantity or 1)
        allocations = allocate_units((e for e in resolved(items) if e.category in wanted), budget)

    percent = conditions.get_discount_percentage
    if percent is None:
        percent = FULL_PERCENT
    total, affected = _free_unit_discount(allocations, percent, with_percentage=True, with_category=True)
    return DiscountResult(
        total_discount=_quantize_money(total),
        affected_items=affected,
        applications_used=applications,
        buy_categories=buy_categories,
        get_categories=get_categories,
    )
