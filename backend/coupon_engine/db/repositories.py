from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coupon_engine.models.catalog import Product as ProductRow
from coupon_engine.models.coupon import Coupon as CouponRow
from coupon_engine.schemas.catalog import Product
from coupon_engine.schemas.common import as_utc
from coupon_engine.schemas.coupon import Coupon, CouponType, parse_coupon


class CouponRepository(Protocol):
    async def find_active(self, now: datetime) -> list[Coupon]: ...

    async def find_by_id(self, coupon_id: str) -> Coupon | None: ...

    async def find_by_code(self, code: str) -> Coupon | None: ...


class ProductRepository(Protocol):
    async def find_by_ids(self, ids: Sequence[str]) -> list[Product]: ...


def _is_active_at(coupon: Coupon, now: datetime) -> bool:
    current = as_utc(now)
    return coupon.is_active and coupon.start_date <= current <= coupon.end_date  # type: ignore[operator]


def coupon_from_row(row: CouponRow) -> Coupon:
    return parse_coupon(
        {
            "id": row.id,
            "code": row.code,
            "name": row.name,
            "description": row.description,
            "type": CouponType(row.type).value,
            "discount": row.discount,
            "conditions": row.conditions or {},
            "tiered_rules": row.tiered_rules,
            "flash_sale_data": row.flash_sale_data,
            "user_criteria": row.user_criteria,
            "priority": row.priority,
            "stackable": row.stackable,
            "is_active": row.is_active,
            "start_date": row.start_date,
            "end_date": row.end_date,
            "current_usage": row.current_usage,
        }
    )


def _block(coupon: Coupon, name: str) -> dict[str, Any] | None:
    value = getattr(coupon, name, None)
    if value is None:
        return None
    return value.model_dump(mode="json", by_alias=True, exclude_none=True)


def coupon_to_row(coupon: Coupon) -> CouponRow:
    row = CouponRow(
        code=coupon.code,
        name=coupon.name,
        description=coupon.description,
        type=CouponType(coupon.type),
        discount=_block(coupon, "discount"),
        conditions=_block(coupon, "conditions"),
        tiered_rules=_block(coupon, "tiered_rules"),
        flash_sale_data=_block(coupon, "flash_sale_data"),
        user_criteria=_block(coupon, "user_criteria"),
        priority=coupon.priority,
        stackable=coupon.stackable,
        is_active=coupon.is_active,
        start_date=coupon.start_date,
        end_date=coupon.end_date,
        current_usage=coupon.current_usage,
    )
    if coupon.id:
        row.id = coupon.id
    return row


class SqlCouponRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_active(self, now: datetime) -> list[Coupon]:
        current = as_utc(now)
        result = await self.session.execute(
            select(CouponRow)
            .where(CouponRow.is_active.is_(True), CouponRow.start_date <= current, CouponRow.end_date >= current)
            .order_by(CouponRow.priority.desc(), CouponRow.code)
        )
        return [coupon_from_row(row) for row in result.scalars().all()]

    async def find_by_id(self, coupon_id: str) -> Coupon | None:
        row = await self.session.get(CouponRow, coupon_id)
        return coupon_from_row(row) if row else None

    async def find_by_code(self, code: str) -> Coupon | None:
        result = await self.session.execute(select(CouponRow).where(CouponRow.code == code.strip().upper()))
        row = result.scalar_one_or_none()
        return coupon_from_row(row) if row else None


class SqlProductRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_by_ids(self, ids: Sequence[str]) -> list[Product]:
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return []
        result = await self.session.execute(select(ProductRow).where(ProductRow.id.in_(unique_ids)))
        return [Product.model_validate(row) for row in result.scalars().all()]


class InMemoryCouponRepository:
    """Coupon store over an in-process list; used by the CLI and tests."""

    def __init__(self, coupons: Iterable[Coupon] = ()) -> None:
        self._coupons = list(coupons)

    async def find_active(self, now: datetime) -> list[Coupon]:
        return [coupon for coupon in self._coupons if _is_active_at(coupon, now)]

    async def find_by_id(self, coupon_id: str) -> Coupon | None:
        return next((coupon for coupon in self._coupons if coupon.id == coupon_id), None)

    async def find_by_code(self, code: str) -> Coupon | None:
        wanted = code.strip().upper()
        return next((coupon for coupon in self._coupons if coupon.code == wanted), None)


class InMemoryProductRepository:
    def __init__(self, products: Iterable[Product] = ()) -> None:
        self._products = {product.id: product for product in products}

    async def find_by_ids(self, ids: Sequence[str]) -> list[Product]:
        return [self._products[pid] for pid in dict.fromkeys(ids) if pid in self._products]
