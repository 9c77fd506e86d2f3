import asyncio
from decimal import Decimal

import pytest

from coupon_engine.core import metrics
from coupon_engine.db.repositories import InMemoryCouponRepository, InMemoryProductRepository
from coupon_engine.schemas.user import User
from coupon_engine.services import coupons as coupons_service
from coupon_engine.services.errors import CouponNotApplicableError


class RecordingProductRepository(InMemoryProductRepository):
    def __init__(self, products) -> None:
        super().__init__(products)
        self.calls: list[list[str]] = []

    async def find_by_ids(self, ids):
        self.calls.append(list(ids))
        return await super().find_by_ids(ids)


def _coupons(coupon_factory):
    return [
        coupon_factory("cart_wise", id="c1", code="TENOFF", discount={"type": "percentage", "value": 10}),
        coupon_factory(
            "product_wise",
            id="c2",
            code="LAPTOP25",
            discount={"type": "percentage", "value": 25},
            conditions={"applicableProducts": ["laptop"]},
        ),
        coupon_factory("cart_wise", id="c3", code="BIGSPEND", conditions={"minimumAmount": 5000}),
        coupon_factory(
            "cart_wise",
            id="c4",
            code="EXPIRED",
            startDate="2022-01-01T00:00:00Z",
            endDate="2023-01-01T00:00:00Z",
        ),
    ]


def test_applicable_coupons_sorted_by_discount(coupon_factory, cart_factory, catalog, now) -> None:
    cart = cart_factory(("laptop", 1, "500"), ("laptop", 1, "500"), ("mouse", 1, "30"))
    products = RecordingProductRepository(catalog)

    results = asyncio.run(
        coupons_service.calculate_applicable_coupons(
            cart,
            products=products,
            coupons_repo=InMemoryCouponRepository(_coupons(coupon_factory)),
            now=now,
        )
    )

    assert [(r.coupon.code, r.discount_amount) for r in results] == [
        ("LAPTOP25", Decimal("250.00")),
        ("TENOFF", Decimal("103.00")),
    ]
    assert results[0].reason == "Cart contains applicable products"
    # one batched lookup with de-duplicated ids
    assert products.calls == [["laptop", "mouse"]]
    snapshot = metrics.snapshot()
    assert snapshot["coupons_evaluated"] == 3
    assert snapshot["coupons_applicable"] == 2


def test_explicit_candidates_skip_repository(coupon_factory, cart_factory, catalog, now) -> None:
    cart = cart_factory(("laptop", 1, "500"))
    candidates = _coupons(coupon_factory)[:1]
    results = asyncio.run(
        coupons_service.calculate_applicable_coupons(
            cart, products=InMemoryProductRepository(catalog), candidates=candidates, now=now
        )
    )
    assert [r.coupon.code for r in results] == ["TENOFF"]

    with pytest.raises(ValueError):
        asyncio.run(coupons_service.calculate_applicable_coupons(cart, products=InMemoryProductRepository(catalog)))


def test_applicable_coupons_with_stacking(coupon_factory, cart_factory, catalog, now) -> None:
    coupons = [
        coupon_factory("cart_wise", id="s1", code="STACKA", stackable=True, discount={"type": "fixed_amount", "value": 40}),
        coupon_factory("cart_wise", id="s2", code="STACKB", stackable=True, discount={"type": "fixed_amount", "value": 50}),
        coupon_factory("cart_wise", id="s3", code="STACKC", stackable=True, discount={"type": "fixed_amount", "value": 25}),
        coupon_factory("cart_wise", id="n1", code="SOLO", discount={"type": "fixed_amount", "value": 125}),
    ]
    cart = cart_factory(("laptop", 1, "500"))
    results = asyncio.run(
        coupons_service.calculate_applicable_coupons(
            cart,
            products=InMemoryProductRepository(catalog),
            coupons_repo=InMemoryCouponRepository(coupons),
            allow_stacking=True,
            now=now,
        )
    )
    assert [r.coupon.code for r in results] == ["SOLO"]


def test_check_and_discount_operations(coupon_factory, cart_factory, catalog, now) -> None:
    coupon = coupon_factory(
        "user_specific",
        discount={"type": "percentage", "value": 5},
        userCriteria={"userType": "vip", "loyaltyMultiplier": 1, "maxMultiplier": 4},
    )
    cart = cart_factory(("novel", 4, "50"))
    products = InMemoryProductRepository(catalog)
    vip = User(type="vip", loyalty_level=3)

    check = asyncio.run(coupons_service.check_coupon_applicability(cart, coupon, products=products, user=vip, now=now))
    assert check.is_applicable is True

    denied = asyncio.run(
        coupons_service.check_coupon_applicability(cart, coupon, products=products, user=User(type="basic"), now=now)
    )
    assert denied.reason == "User does not meet eligibility criteria"

    discount = asyncio.run(coupons_service.calculate_discount(cart, coupon, products=products, user=vip, now=now))
    assert discount.loyalty_multiplier == Decimal("3")
    assert discount.total_discount == Decimal("30.00")


def test_apply_operation(coupon_factory, cart_factory, catalog, now) -> None:
    coupon = coupon_factory("cart_wise", discount={"type": "fixed_amount", "value": 15}, conditions={"minimumAmount": 50})
    products = InMemoryProductRepository(catalog)

    updated = asyncio.run(
        coupons_service.apply_coupon_to_cart(cart_factory(("novel", 4, "15")), coupon, products=products, now=now)
    )
    assert updated.total == Decimal("45.00")

    with pytest.raises(CouponNotApplicableError):
        asyncio.run(
            coupons_service.apply_coupon_to_cart(cart_factory(("novel", 1, "15")), coupon, products=products, now=now)
        )
