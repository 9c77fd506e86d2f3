from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from coupon_engine.core import metrics
from coupon_engine.schemas.cart import AppliedCoupon, Cart, CartItem
from coupon_engine.schemas.coupon import Coupon
from coupon_engine.schemas.discount import AffectedItem
from coupon_engine.schemas.user import User
from coupon_engine.services import rules
from coupon_engine.services.enrichment import EnrichedItem
from coupon_engine.services.errors import CouponNotApplicableError

logger = logging.getLogger(__name__)


def _attribute_item_discounts(items: list[CartItem], affected: list[AffectedItem]) -> list[CartItem]:
    per_line: dict[int, Decimal] = {}
    for entry in affected:
        if entry.line_index is None or not 0 <= entry.line_index < len(items):
            continue
        per_line[entry.line_index] = per_line.get(entry.line_index, Decimal("0.00")) + entry.discount_amount
    return [
        item.model_copy(update={"discount_amount": per_line[idx]}) if idx in per_line else item
        for idx, item in enumerate(items)
    ]


def apply_coupon_to_cart(
    cart: Cart, coupon: Coupon, items: list[EnrichedItem], user: User | None, now: datetime
) -> Cart:
    """Return a new cart snapshot carrying ``coupon`` as its only applied coupon.

    Raises ``CouponNotApplicableError`` with the eligibility reason when the coupon does not apply.
    """
    result = rules.check_applicability(cart, coupon, items, user, now)
    if not result.is_applicable:
        metrics.record_coupon_rejected()
        logger.info("coupon_not_applicable", extra={"coupon_code": coupon.code, "reason": result.reason})
        raise CouponNotApplicableError(result.reason)

    cleared = cart.clear_coupons()
    discount = rules.calculate_discount(cleared, coupon, items, user, now)
    updated = cleared.model_copy(
        update={
            "items": _attribute_item_discounts(cleared.items, discount.affected_items),
            "applied_coupons": [
                AppliedCoupon(coupon_id=coupon.id, code=coupon.code, discount_amount=discount.total_discount)
            ],
            "total_discount": discount.total_discount,
            "free_shipping": discount.free_shipping,
        }
    )
    metrics.record_coupon_applied()
    logger.info(
        "coupon_applied",
        extra={
            "coupon_code": coupon.code,
            "coupon_type": coupon.type,
            "discount_amount": discount.total_discount,
            "free_shipping": discount.free_shipping,
            "cart_total": updated.total,
        },
    )
    return updated
