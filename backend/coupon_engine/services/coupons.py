"""Public coupon operations: advisory evaluation, single checks, discount breakdowns and application."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Sequence

from coupon_engine.core import metrics
from coupon_engine.db.repositories import CouponRepository, ProductRepository
from coupon_engine.schemas.cart import Cart
from coupon_engine.schemas.coupon import Coupon
from coupon_engine.schemas.discount import ApplicabilityResult, ApplicableCoupon, DiscountResult
from coupon_engine.schemas.user import User
from coupon_engine.services import applier, rules, stacking
from coupon_engine.services.enrichment import EnrichedItem, enrich_items

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def load_items(cart: Cart, products: ProductRepository) -> list[EnrichedItem]:
    """Resolve every cart line against the product store with a single batched lookup."""
    ids = list(dict.fromkeys(item.product_id for item in cart.items))
    found = await products.find_by_ids(ids) if ids else []
    return enrich_items(cart, found)


def evaluate_coupon(
    cart: Cart, coupon: Coupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> ApplicableCoupon | None:
    metrics.record_coupon_evaluated()
    check = rules.check_applicability(cart, coupon, items, user, now)
    if not check.is_applicable:
        logger.debug("coupon_skipped", extra={"coupon_code": coupon.code, "reason": check.reason})
        return None

    discount = rules.calculate_discount(cart, coupon, items, user, now)
    metrics.record_coupon_applicable()
    logger.info(
        "coupon_evaluated",
        extra={
            "coupon_code": coupon.code,
            "coupon_type": coupon.type,
            "discount_amount": discount.total_discount,
            "free_shipping": discount.free_shipping,
        },
    )
    return ApplicableCoupon(
        coupon=coupon,
        discount_amount=discount.total_discount,
        free_shipping=discount.free_shipping,
        affected_items=discount.affected_items,
        reason=check.reason,
        priority=coupon.priority,
        stackable=coupon.stackable,
    )


async def calculate_applicable_coupons(
    cart: Cart,
    *,
    products: ProductRepository,
    coupons_repo: CouponRepository | None = None,
    candidates: Sequence[Coupon] | None = None,
    user: User | None = None,
    allow_stacking: bool = False,
    now: datetime | None = None,
) -> list[ApplicableCoupon]:
    now = now or _now()
    if candidates is None:
        if coupons_repo is None:
            raise ValueError("coupons_repo is required when no candidate coupons are given")
        candidates = await coupons_repo.find_active(now)

    items = await load_items(cart, products)
    applicable = [
        entry
        for entry in (evaluate_coupon(cart, coupon, items, user, now) for coupon in candidates)
        if entry is not None
    ]
    logger.info(
        "applicable_coupons_calculated",
        extra={"candidates": len(candidates), "applicable": len(applicable), "allow_stacking": allow_stacking},
    )
    if allow_stacking:
        return stacking.select_best(applicable)
    return sorted(applicable, key=lambda entry: entry.discount_amount, reverse=True)


async def check_coupon_applicability(
    cart: Cart,
    coupon: Coupon,
    *,
    products: ProductRepository,
    user: User | None = None,
    now: datetime | None = None,
) -> ApplicabilityResult:
    items = await load_items(cart, products)
    return rules.check_applicability(cart, coupon, items, user, now or _now())


async def calculate_discount(
    cart: Cart,
    coupon: Coupon,
    *,
    products: ProductRepository,
    user: User | None = None,
    now: datetime | None = None,
) -> DiscountResult:
    items = await load_items(cart, products)
    return rules.calculate_discount(cart, coupon, items, user, now or _now())


async def apply_coupon_to_cart(
    cart: Cart,
    coupon: Coupon,
    *,
    products: ProductRepository,
    user: User | None = None,
    now: datetime | None = None,
) -> Cart:
    items = await load_items(cart, products)
    return applier.apply_coupon_to_cart(cart, coupon, items, user, now or _now())
