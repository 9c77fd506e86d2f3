from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from coupon_engine.db.repositories import (
    CouponRepository,
    ProductRepository,
    SqlCouponRepository,
    SqlProductRepository,
)
from coupon_engine.db.session import get_session
from coupon_engine.schemas.coupon import Coupon
from coupon_engine.schemas.discount import ApplicabilityResult, DiscountResult
from coupon_engine.schemas.offers import (
    ApplicableCouponsRequest,
    ApplicableCouponsResponse,
    ApplyCouponResponse,
    CouponCartRequest,
    cart_summary,
    savings_for,
    to_offer,
)
from coupon_engine.services import coupons as coupons_service

router = APIRouter(prefix="/coupons", tags=["coupons"])

_DETAIL_COUPON_NOT_FOUND = "Coupon not found"


def get_coupon_repository(session: Annotated[AsyncSession, Depends(get_session)]) -> CouponRepository:
    return SqlCouponRepository(session)


def get_product_repository(session: Annotated[AsyncSession, Depends(get_session)]) -> ProductRepository:
    return SqlProductRepository(session)


CouponRepoDep = Annotated[CouponRepository, Depends(get_coupon_repository)]
ProductRepoDep = Annotated[ProductRepository, Depends(get_product_repository)]


async def _get_coupon(coupons_repo: CouponRepository, coupon_id: str) -> Coupon:
    coupon = await coupons_repo.find_by_id(coupon_id)
    if coupon is None:
        coupon = await coupons_repo.find_by_code(coupon_id)
    if coupon is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_DETAIL_COUPON_NOT_FOUND)
    return coupon


@router.post("/applicable")
async def applicable_coupons(
    payload: ApplicableCouponsRequest,
    coupons_repo: CouponRepoDep,
    products_repo: ProductRepoDep,
) -> ApplicableCouponsResponse:
    results = await coupons_service.calculate_applicable_coupons(
        payload.cart,
        products=products_repo,
        coupons_repo=coupons_repo,
        user=payload.user,
        allow_stacking=payload.allow_stacking,
    )
    offers = [to_offer(entry, payload.cart) for entry in results]
    return ApplicableCouponsResponse(
        cart=cart_summary(payload.cart),
        applicable_coupons=offers,
        count=len(offers),
        stacking_enabled=payload.allow_stacking,
    )


@router.post("/{coupon_id}/check")
async def check_coupon(
    coupon_id: str,
    payload: CouponCartRequest,
    coupons_repo: CouponRepoDep,
    products_repo: ProductRepoDep,
) -> ApplicabilityResult:
    coupon = await _get_coupon(coupons_repo, coupon_id)
    return await coupons_service.check_coupon_applicability(
        payload.cart, coupon, products=products_repo, user=payload.user
    )


@router.post("/{coupon_id}/discount")
async def coupon_discount(
    coupon_id: str,
    payload: CouponCartRequest,
    coupons_repo: CouponRepoDep,
    products_repo: ProductRepoDep,
) -> DiscountResult:
    coupon = await _get_coupon(coupons_repo, coupon_id)
    return await coupons_service.calculate_discount(payload.cart, coupon, products=products_repo, user=payload.user)


@router.post("/{coupon_id}/apply")
async def apply_coupon(
    coupon_id: str,
    payload: CouponCartRequest,
    coupons_repo: CouponRepoDep,
    products_repo: ProductRepoDep,
) -> ApplyCouponResponse:
    coupon = await _get_coupon(coupons_repo, coupon_id)
    updated = await coupons_service.apply_coupon_to_cart(
        payload.cart, coupon, products=products_repo, user=payload.user
    )
    return ApplyCouponResponse(
        cart=updated,
        savings=savings_for(updated.total_discount, updated.free_shipping, updated.shipping_cost),
    )
