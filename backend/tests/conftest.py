from collections.abc import Generator
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable

import pytest

from coupon_engine.core import metrics
from coupon_engine.schemas.cart import Cart
from coupon_engine.schemas.catalog import Product
from coupon_engine.schemas.coupon import Coupon, parse_coupon

# A Wednesday afternoon, well inside the default validity window below.
NOW = datetime(2024, 6, 12, 14, 30, tzinfo=timezone.utc)

CATALOG = [
    Product(id="laptop", name="Laptop", category="electronics", brand="acme", price=Decimal("500.00")),
    Product(id="mouse", name="Mouse", category="electronics", brand="clicky", price=Decimal("30.00")),
    Product(id="shirt", name="Shirt", category="clothing", brand="threads", price=Decimal("20.00")),
    Product(id="socks", name="Socks", category="clothing", brand="threads", price=Decimal("10.00")),
    Product(id="novel", name="Novel", category="books", brand="inkwell", price=Decimal("15.00")),
]


def coupon_payload(coupon_type: str, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": f"id-{coupon_type}",
        "code": f"T{coupon_type.replace('_', '')[:12]}",
        "name": f"{coupon_type} coupon",
        "type": coupon_type,
        "discount": {"type": "percentage", "value": "10"},
        "startDate": "2024-01-01T00:00:00Z",
        "endDate": "2025-01-01T00:00:00Z",
    }
    payload.update(overrides)
    return payload


def make_coupon(coupon_type: str, **overrides: Any) -> Coupon:
    return parse_coupon(coupon_payload(coupon_type, **overrides))


def make_cart(*lines: tuple[str, int, str], shipping: str = "0") -> Cart:
    return Cart.model_validate(
        {
            "items": [{"productId": pid, "quantity": qty, "price": price} for pid, qty, price in lines],
            "shippingCost": shipping,
        }
    )


@pytest.fixture
def coupon_factory() -> Callable[..., Coupon]:
    return make_coupon


@pytest.fixture
def cart_factory() -> Callable[..., Cart]:
    return make_cart


@pytest.fixture
def catalog() -> list[Product]:
    return list(CATALOG)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture(autouse=True)
def _reset_metrics() -> Generator[None, None, None]:
    metrics.reset()
    yield
    metrics.reset()
