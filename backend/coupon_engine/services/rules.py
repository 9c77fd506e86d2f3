"""Single dispatch table pairing each coupon type with its eligibility predicate and discount function."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from coupon_engine.core import metrics
from coupon_engine.schemas.cart import Cart
from coupon_engine.schemas.coupon import Coupon, CouponType
from coupon_engine.schemas.discount import ApplicabilityResult, DiscountResult
from coupon_engine.schemas.user import User
from coupon_engine.services import discounts, eligibility
from coupon_engine.services.enrichment import EnrichedItem
from coupon_engine.services.errors import DiscountComputationError

logger = logging.getLogger(__name__)

Predicate = Callable[[Cart, Any, list[EnrichedItem], "User | None", datetime], ApplicabilityResult]
DiscountFn = Callable[[Cart, Any, list[EnrichedItem], "User | None", datetime], DiscountResult]


@dataclass(frozen=True)
class CouponRule:
    check: Predicate
    compute: DiscountFn


RULES: dict[CouponType, CouponRule] = {
    CouponType.cart_wise: CouponRule(eligibility.check_cart_wise, discounts.calculate_cart_wise),
    CouponType.product_wise: CouponRule(eligibility.check_product_wise, discounts.calculate_product_wise),
    CouponType.bxgy: CouponRule(eligibility.check_bxgy, discounts.calculate_bxgy),
    CouponType.tiered: CouponRule(eligibility.check_tiered, discounts.calculate_tiered),
    CouponType.flash_sale: CouponRule(eligibility.check_flash_sale, discounts.calculate_flash_sale),
    CouponType.user_specific: CouponRule(eligibility.check_user_specific, discounts.calculate_user_specific),
    CouponType.graduated_bxgy: CouponRule(eligibility.check_graduated_bxgy, discounts.calculate_graduated_bxgy),
    CouponType.cross_category_bxgy: CouponRule(
        eligibility.check_cross_category_bxgy, discounts.calculate_cross_category_bxgy
    ),
}


def rule_for(coupon: Coupon) -> CouponRule:
    return RULES[CouponType(coupon.type)]


def check_applicability(
    cart: Cart, coupon: Coupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> ApplicabilityResult:
    """Shared preconditions (validity window, usage limit) first, then the type's own predicate."""
    blocked = eligibility.check_preconditions(coupon, now)
    if blocked is not None:
        return blocked
    return rule_for(coupon).check(cart, coupon, items, user, now)


def calculate_discount(
    cart: Cart, coupon: Coupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> DiscountResult:
    rule = rule_for(coupon)
    try:
        return rule.compute(cart, coupon, items, user, now)
    except Exception as exc:
        metrics.record_discount_failure()
        logger.exception(
            "discount_computation_failed",
            extra={"coupon_code": coupon.code, "coupon_type": coupon.type, "error_type": type(exc).__name__},
        )
        raise DiscountComputationError(
            f"Failed to calculate {coupon.type} discount for coupon {coupon.code}: {exc}"
        ) from exc
