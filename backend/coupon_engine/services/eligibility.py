from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Sequence

from coupon_engine.schemas.cart import Cart
from coupon_engine.schemas.common import as_utc
from coupon_engine.schemas.coupon import (
    BaseConditions,
    BxGyCoupon,
    CartWiseCoupon,
    CouponBase,
    CrossCategoryBxGyCoupon,
    FlashSaleCoupon,
    FlashSaleData,
    GraduatedBxGyCoupon,
    GraduatedRule,
    ProductWiseConditions,
    ProductWiseCoupon,
    Tier,
    TieredCoupon,
    TieredRules,
    UserCriteria,
    UserSpecificCoupon,
)
from coupon_engine.schemas.discount import ApplicabilityResult
from coupon_engine.schemas.user import User
from coupon_engine.services.enrichment import (
    EnrichedItem,
    quantity_in_categories,
    quantity_of_products,
    resolved,
)


def _applicable(reason: str) -> ApplicabilityResult:
    return ApplicabilityResult(is_applicable=True, reason=reason)


def _not_applicable(reason: str) -> ApplicabilityResult:
    return ApplicabilityResult(is_applicable=False, reason=reason)


def is_within_validity(coupon: CouponBase, now: datetime) -> bool:
    current = as_utc(now)
    return coupon.is_active and coupon.start_date <= current < coupon.end_date


def has_reached_max_usage(coupon: CouponBase) -> bool:
    limit = coupon.conditions.max_total_usage  # type: ignore[attr-defined]
    return limit is not None and coupon.current_usage >= limit


def check_preconditions(coupon: CouponBase, now: datetime) -> ApplicabilityResult | None:
    """Checks shared by every coupon type; ``None`` when the coupon may be evaluated further."""
    if not is_within_validity(coupon, now):
        return _not_applicable("Coupon is not valid or expired")
    if has_reached_max_usage(coupon):
        return _not_applicable("Coupon has reached maximum usage limit")
    return None


def meets_minimum_amount(cart: Cart, conditions: BaseConditions) -> bool:
    minimum = conditions.minimum_amount
    return minimum is None or cart.subtotal >= minimum


def matches_product_scope(conditions: ProductWiseConditions, entry: EnrichedItem) -> bool:
    """Only the first non-empty list (products, then categories, then brands) is consulted."""
    if entry.product is None:
        return False
    if conditions.applicable_products:
        return entry.product.id in conditions.applicable_products
    if conditions.applicable_categories:
        return entry.category in conditions.applicable_categories
    if conditions.applicable_brands:
        return entry.brand in conditions.applicable_brands
    return False


def resolve_tier(rules: TieredRules | None, subtotal: Decimal) -> Tier | None:
    if rules is None or not rules.tiers:
        return None
    for tier in sorted(rules.tiers, key=lambda t: t.minimum_amount, reverse=True):
        if subtotal >= tier.minimum_amount:
            return tier
    return None


def resolve_graduated_rule(rules: Sequence[GraduatedRule] | None, buy_quantity: int) -> GraduatedRule | None:
    if not rules:
        return None
    for rule in sorted(rules, key=lambda r: r.buy_quantity, reverse=True):
        if buy_quantity >= rule.buy_quantity:
            return rule
    return None


def day_of_week(now: datetime) -> int:
    """Day index with 0 = Sunday, matching ``TimeWindow.days_of_week``."""
    return (now.weekday() + 1) % 7


def is_flash_sale_active(data: FlashSaleData | None, now: datetime) -> bool:
    if data is None:
        return False
    if data.time_windows:
        today = day_of_week(now)
        return any(
            window.start_hour <= now.hour <= window.end_hour
            and (window.days_of_week is None or today in window.days_of_week)
            for window in data.time_windows
        )
    if data.start_time is not None and data.end_time is not None:
        current = as_utc(now)
        return data.start_time <= current <= data.end_time  # type: ignore[operator]
    return True


def _registration_age_days(user: User, now: datetime) -> int | None:
    if user.registration_date is None:
        return None
    return (as_utc(now) - user.registration_date).days  # type: ignore[operator]


def check_user_eligibility(criteria: UserCriteria | None, user: User | None, now: datetime) -> bool:
    if criteria is None or user is None:
        return True
    if criteria.user_type is not None and user.type != criteria.user_type:
        return False
    if criteria.is_first_time is not None and user.is_first_time != criteria.is_first_time:
        return False
    if criteria.loyalty_level is not None and user.loyalty_level < criteria.loyalty_level:
        return False
    if criteria.min_orders is not None and user.order_count < criteria.min_orders:
        return False
    if criteria.max_orders is not None and user.order_count > criteria.max_orders:
        return False
    window = criteria.registration_days
    if window is not None and (window.min is not None or window.max is not None):
        age = _registration_age_days(user, now)
        if age is None:
            return False
        if window.min is not None and age < window.min:
            return False
        if window.max is not None and age > window.max:
            return False
    return True


def check_cart_wise(
    cart: Cart, coupon: CartWiseCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> ApplicabilityResult:
    if not meets_minimum_amount(cart, coupon.conditions):
        return _not_applicable(f"Cart total must be at least {coupon.conditions.minimum_amount}")
    return _applicable("Cart meets minimum requirements")


def check_product_wise(
    cart: Cart, coupon: ProductWiseCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> ApplicabilityResult:
    if not any(matches_product_scope(coupon.conditions, entry) for entry in items):
        return _not_applicable("Cart does not contain applicable products")
    return _applicable("Cart contains applicable products")


def check_bxgy(
    cart: Cart, coupon: BxGyCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> ApplicabilityResult:
    conditions = coupon.conditions
    if not conditions.buy_products:
        return _not_applicable("No buy products specified")
    if not conditions.get_products:
        return _not_applicable("No get products specified")

    required = sum(bp.quantity for bp in conditions.buy_products)
    available = quantity_of_products(items, {bp.product_id for bp in conditions.buy_products})
    if required <= 0 or available < required:
        return _not_applicable(f"Need {required} buy products, but only {available} available")

    if quantity_of_products(items, {gp.product_id for gp in conditions.get_products}) == 0:
        return _not_applicable("No get products found in cart")
    return _applicable("BxGy requirements met")


def check_tiered(
    cart: Cart, coupon: TieredCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> ApplicabilityResult:
    tier = resolve_tier(coupon.tiered_rules, cart.subtotal)
    if tier is None:
        return _not_applicable("Cart value does not meet any tier requirements")
    return _applicable(f"Qualifies for {tier.label}")


def check_flash_sale(
    cart: Cart, coupon: FlashSaleCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> ApplicabilityResult:
    if not is_flash_sale_active(coupon.flash_sale_data, now):
        return _not_applicable("Flash sale is not currently active")
    if not meets_minimum_amount(cart, coupon.conditions):
        return _not_applicable(f"Cart total must be at least {coupon.conditions.minimum_amount} for flash sale")
    return _applicable("Flash sale active and conditions met")


def check_user_specific(
    cart: Cart, coupon: UserSpecificCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> ApplicabilityResult:
    if user is None:
        return _not_applicable("User information required for user-specific coupon")
    if not check_user_eligibility(coupon.user_criteria, user, now):
        return _not_applicable("User does not meet eligibility criteria")
    if not meets_minimum_amount(cart, coupon.conditions):
        return _not_applicable(f"Cart total must be at least {coupon.conditions.minimum_amount}")
    return _applicable("User meets all eligibility criteria")


def check_graduated_bxgy(
    cart: Cart, coupon: GraduatedBxGyCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> ApplicabilityResult:
    conditions = coupon.conditions
    if not conditions.graduated_rules:
        return _not_applicable("No graduated rules specified")

    buy_quantity = quantity_of_products(items, {bp.product_id for bp in conditions.buy_products})
    rule = resolve_graduated_rule(conditions.graduated_rules, buy_quantity)
    if rule is None:
        smallest = min(r.buy_quantity for r in conditions.graduated_rules)
        return _not_applicable(f"Need at least {smallest} buy products")

    if quantity_of_products(items, {gp.product_id for gp in conditions.get_products}) == 0:
        return _not_applicable("No get products found in cart")
    return _applicable(f"Qualifies for tier: Buy {rule.buy_quantity} get {rule.get_quantity}")


def check_cross_category_bxgy(
    cart: Cart, coupon: CrossCategoryBxGyCoupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> ApplicabilityResult:
    conditions = coupon.conditions
    if not conditions.buy_categories or not conditions.get_categories:
        return _not_applicable("Buy and get categories not specified")

    required = conditions.buy_quantity or 1
    if quantity_in_categories(items, set(conditions.buy_categories)) < required:
        return _not_applicable(
            f"Need {required} products from categories: {', '.join(conditions.buy_categories)}"
        )

    get_categories = set(conditions.get_categories)
    if not any(entry.category in get_categories for entry in resolved(items)):
        return _not_applicable(f"No products found from get categories: {', '.join(conditions.get_categories)}")
    return _applicable("Cross-category BxGy requirements met")
