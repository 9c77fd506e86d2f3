from decimal import Decimal

from pydantic import Field

from coupon_engine.schemas.cart import Cart
from coupon_engine.schemas.common import DocumentModel
from coupon_engine.schemas.coupon import Coupon
from coupon_engine.schemas.discount import AffectedItem, ApplicableCoupon
from coupon_engine.schemas.user import User
from coupon_engine.services import pricing


class CouponCartRequest(DocumentModel):
    cart: Cart
    user: User | None = None


class ApplicableCouponsRequest(CouponCartRequest):
    allow_stacking: bool = False


class CartSummary(DocumentModel):
    subtotal: Decimal
    shipping_cost: Decimal
    item_count: int


class CouponOffer(DocumentModel):
    coupon: Coupon
    discount_amount: Decimal
    free_shipping: bool
    affected_items: list[AffectedItem] = Field(default_factory=list)
    reason: str
    priority: int = 0
    stackable: bool = False
    final_total: Decimal
    savings: Decimal


class ApplicableCouponsResponse(DocumentModel):
    cart: CartSummary
    applicable_coupons: list[CouponOffer]
    count: int
    stacking_enabled: bool


class ApplyCouponResponse(DocumentModel):
    cart: Cart
    savings: Decimal


def savings_for(discount_amount: Decimal, free_shipping: bool, shipping_cost: Decimal) -> Decimal:
    extra = shipping_cost if free_shipping else Decimal("0.00")
    return pricing.quantize_money(discount_amount + extra)


def to_offer(entry: ApplicableCoupon, cart: Cart) -> CouponOffer:
    shipping = Decimal("0.00") if entry.free_shipping else cart.shipping_cost
    final_total = max(cart.subtotal - entry.discount_amount + shipping, Decimal("0.00"))
    return CouponOffer(
        coupon=entry.coupon,
        discount_amount=entry.discount_amount,
        free_shipping=entry.free_shipping,
        affected_items=entry.affected_items,
        reason=entry.reason,
        priority=entry.priority,
        stackable=entry.stackable,
        final_total=pricing.quantize_money(final_total),
        savings=savings_for(entry.discount_amount, entry.free_shipping, cart.shipping_cost),
    )


def cart_summary(cart: Cart) -> CartSummary:
    return CartSummary(
        subtotal=cart.subtotal,
        shipping_cost=cart.shipping_cost,
        item_count=sum(item.quantity for item in cart.items),
    )
