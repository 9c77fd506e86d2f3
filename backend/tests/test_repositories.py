import asyncio
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from coupon_engine.db.base import Base
from coupon_engine.db.repositories import SqlCouponRepository, SqlProductRepository, coupon_to_row
from coupon_engine.models.catalog import Product as ProductRow
from coupon_engine.schemas.coupon import TieredCoupon


def test_sql_repositories_roundtrip(coupon_factory) -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def run_flow():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            session.add_all(
                [
                    ProductRow(id="laptop", name="Laptop", category="electronics", brand="acme", price=Decimal("500")),
                    ProductRow(id="mouse", name="Mouse", category="electronics", brand="clicky", price=Decimal("30")),
                ]
            )
            seeded = [
                coupon_factory(
                    "tiered",
                    id="tier-1",
                    code="tiers",
                    priority=3,
                    tieredRules={"tiers": [{"name": "Gold", "minimumAmount": 500, "discountValue": "12.5"}]},
                ),
                coupon_factory("cart_wise", id="inactive", code="SLEEPY", isActive=False),
                coupon_factory(
                    "cart_wise",
                    id="old",
                    code="OLDIE",
                    startDate="2020-01-01T00:00:00Z",
                    endDate="2021-01-01T00:00:00Z",
                ),
            ]
            session.add_all([coupon_to_row(coupon) for coupon in seeded])
            await session.commit()
            session.expire_all()

            coupons = SqlCouponRepository(session)
            stored = await coupons.find_by_id("tier-1")

            assert isinstance(stored, TieredCoupon)
            assert stored.code == "TIERS"
            assert stored.tiered_rules.tiers[0].discount_value == Decimal("12.5")
            assert stored.start_date.tzinfo is not None

            active = await coupons.find_active(datetime(2024, 6, 1, tzinfo=timezone.utc))
            assert [c.code for c in active] == ["TIERS"]

            # the end boundary is inclusive for the store query
            boundary = await coupons.find_active(datetime(2025, 1, 1, tzinfo=timezone.utc))
            assert [c.code for c in boundary] == ["TIERS"]

            by_id = await coupons.find_by_id("tier-1")
            assert by_id is not None and by_id.priority == 3
            by_code = await coupons.find_by_code(" tiers ")
            assert by_code is not None and by_code.id == "tier-1"
            assert await coupons.find_by_id("missing") is None

            products = SqlProductRepository(session)
            found = await products.find_by_ids(["mouse", "ghost", "mouse"])
            assert [(p.id, p.category, p.price) for p in found] == [("mouse", "electronics", Decimal("30.00"))]
            assert await products.find_by_ids([]) == []

    asyncio.run(run_flow())
