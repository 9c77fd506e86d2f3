from decimal import Decimal

import pytest

from coupon_engine.core import metrics
from coupon_engine.schemas.cart import AppliedCoupon
from coupon_engine.services import applier
from coupon_engine.services.enrichment import enrich_items
from coupon_engine.services.errors import CouponNotApplicableError


def _apply(cart, coupon, catalog, now, user=None):
    return applier.apply_coupon_to_cart(cart, coupon, enrich_items(cart, catalog), user, now)


def test_apply_product_wise_coupon(coupon_factory, cart_factory, catalog, now) -> None:
    coupon = coupon_factory(
        "product_wise",
        discount={"type": "percentage", "value": 20},
        conditions={"applicableCategories": ["electronics"]},
    )
    cart = cart_factory(("laptop", 1, "500"), ("shirt", 1, "20"), shipping="10")
    updated = _apply(cart, coupon, catalog, now)

    assert updated.total_discount == Decimal("100.00")
    assert updated.free_shipping is False
    assert updated.applied_coupons == [
        AppliedCoupon(coupon_id="id-product_wise", code=coupon.code, discount_amount=Decimal("100.00"))
    ]
    laptop, shirt = updated.items
    assert laptop.discount_amount == Decimal("100.00")
    assert laptop.final_price == Decimal("400.00")
    assert shirt.discount_amount == Decimal("0.00")
    assert updated.total == Decimal("430.00")
    assert metrics.snapshot()["coupons_applied"] == 1

    # the input snapshot is left untouched
    assert cart.total_discount == Decimal("0.00")
    assert cart.applied_coupons == []


def test_apply_replaces_previous_coupon(coupon_factory, cart_factory, catalog, now) -> None:
    cart = cart_factory(("laptop", 2, "500"))
    first = coupon_factory("cart_wise", code="FIRST10", discount={"type": "percentage", "value": 10})
    second = coupon_factory("cart_wise", code="SECOND5", discount={"type": "fixed_amount", "value": 5})

    once = _apply(cart, first, catalog, now)
    twice = _apply(once, second, catalog, now)

    assert [c.code for c in twice.applied_coupons] == ["SECOND5"]
    assert twice.total_discount == Decimal("5.00")
    assert sum(item.discount_amount for item in twice.items) == Decimal("5.00")


def test_apply_free_shipping_keeps_total_formula(coupon_factory, cart_factory, catalog, now) -> None:
    coupon = coupon_factory("cart_wise", discount={"type": "free_shipping", "value": 0})
    cart = cart_factory(("novel", 4, "25"), shipping="8")
    updated = _apply(cart, coupon, catalog, now)

    assert updated.free_shipping is True
    assert updated.total_discount == Decimal("8.00")
    # shipping is dropped and the shipping-sized discount still comes off the subtotal
    assert updated.total == Decimal("92.00")


def test_apply_bxgy_attributes_free_units(coupon_factory, cart_factory, catalog, now) -> None:
    coupon = coupon_factory(
        "bxgy",
        discount={"type": "percentage", "value": 100},
        conditions={
            "buyProducts": [{"productId": "laptop", "quantity": 1}],
            "getProducts": [{"productId": "mouse", "quantity": 1}],
        },
    )
    cart = cart_factory(("laptop", 1, "500"), ("mouse", 2, "30"))
    updated = _apply(cart, coupon, catalog, now)
    assert updated.items[1].discount_amount == Decimal("30.00")
    assert updated.items[1].final_price == Decimal("30.00")
    assert updated.total == Decimal("530.00")


def test_apply_not_applicable_raises_with_reason(coupon_factory, cart_factory, catalog, now) -> None:
    coupon = coupon_factory("cart_wise", conditions={"minimumAmount": 1000})
    with pytest.raises(CouponNotApplicableError) as excinfo:
        _apply(cart_factory(("novel", 1, "15")), coupon, catalog, now)
    assert excinfo.value.reason == "Cart total must be at least 1000"
    assert str(excinfo.value) == "Coupon not applicable: Cart total must be at least 1000"
    assert metrics.snapshot()["coupons_rejected"] == 1


def test_apply_bxgy_attributes_each_repeated_product_line(coupon_factory, cart_factory, catalog, now) -> None:
    coupon = coupon_factory(
        "bxgy",
        discount={"type": "percentage", "value": 100},
        conditions={
            "buyProducts": [{"productId": "laptop", "quantity": 2}],
            "getProducts": [{"productId": "mouse", "quantity": 1}],
            "repetitionLimit": 2,
        },
    )
    cart = cart_factory(("mouse", 1, "30"), ("mouse", 1, "20"), ("laptop", 4, "500"))
    updated = _apply(cart, coupon, catalog, now)

    assert updated.total_discount == Decimal("50.00")
    assert [item.discount_amount for item in updated.items] == [
        Decimal("30.00"),
        Decimal("20.00"),
        Decimal("0.00"),
    ]
    assert sum(item.discount_amount for item in updated.items) == updated.total_discount
    assert updated.total == Decimal("2000.00")


def test_apply_cart_wise_splits_across_repeated_product_lines(coupon_factory, cart_factory, catalog, now) -> None:
    coupon = coupon_factory("cart_wise", discount={"type": "fixed_amount", "value": 10})
    cart = cart_factory(("socks", 1, "10"), ("socks", 1, "10"), ("socks", 1, "10"))
    updated = _apply(cart, coupon, catalog, now)

    assert [item.discount_amount for item in updated.items] == [
        Decimal("3.34"),
        Decimal("3.33"),
        Decimal("3.33"),
    ]
    assert sum(item.discount_amount for item in updated.items) == Decimal("10.00")
