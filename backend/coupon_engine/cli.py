import argparse
import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any

from coupon_engine.db.repositories import InMemoryCouponRepository, InMemoryProductRepository
from coupon_engine.schemas.cart import Cart
from coupon_engine.schemas.catalog import Product
from coupon_engine.schemas.coupon import parse_coupon
from coupon_engine.schemas.offers import savings_for, to_offer
from coupon_engine.schemas.user import User
from coupon_engine.services import coupons as coupons_service
from coupon_engine.services.errors import CouponNotApplicableError


def _load_json(raw_path: str | None) -> Any:
    if raw_path is None:
        return None
    path = Path(raw_path)
    if not path.is_file():
        raise SystemExit(f"Input file not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid JSON in {path}: {exc}") from exc


def _as_list(payload: Any, key: str) -> list[Any]:
    if payload is None:
        return []
    if isinstance(payload, dict):
        payload = payload.get(key, [])
    if not isinstance(payload, list):
        raise SystemExit(f"Expected a list of {key}")
    return payload


def _parse_at(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise SystemExit(f"Invalid --at timestamp: {raw}") from exc


def _dump(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _load_inputs(args: argparse.Namespace) -> dict[str, Any]:
    cart = Cart.model_validate(_load_json(args.cart))
    coupons = [parse_coupon(item) for item in _as_list(_load_json(args.coupons), "coupons")]
    products = [Product.model_validate(item) for item in _as_list(_load_json(args.products), "products")]
    user_payload = _load_json(args.user)
    return {
        "cart": cart,
        "coupons": InMemoryCouponRepository(coupons),
        "products": InMemoryProductRepository(products),
        "user": User.model_validate(user_payload) if user_payload is not None else None,
        "now": _parse_at(args.at),
    }


async def evaluate(args: argparse.Namespace) -> None:
    inputs = _load_inputs(args)
    cart: Cart = inputs["cart"]
    results = await coupons_service.calculate_applicable_coupons(
        cart,
        products=inputs["products"],
        coupons_repo=inputs["coupons"],
        user=inputs["user"],
        allow_stacking=bool(args.stacking),
        now=inputs["now"],
    )
    offers = [to_offer(entry, cart).model_dump(mode="json", by_alias=True) for entry in results]
    _dump({"subtotal": str(cart.subtotal), "applicableCoupons": offers, "count": len(offers)})


async def apply(args: argparse.Namespace) -> None:
    inputs = _load_inputs(args)
    coupon = await inputs["coupons"].find_by_code(args.coupon_code)
    if coupon is None:
        raise SystemExit(f"Coupon not found: {args.coupon_code}")
    try:
        updated = await coupons_service.apply_coupon_to_cart(
            inputs["cart"], coupon, products=inputs["products"], user=inputs["user"], now=inputs["now"]
        )
    except CouponNotApplicableError as exc:
        raise SystemExit(str(exc)) from exc
    _dump(
        {
            "cart": updated.model_dump(mode="json", by_alias=True),
            "savings": str(savings_for(updated.total_discount, updated.free_shipping, updated.shipping_cost)),
        }
    )


def _add_input_arguments(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--cart", required=True, help="Cart JSON path")
    cmd.add_argument("--coupons", required=True, help="Coupons JSON path (list or {\"coupons\": [...]})")
    cmd.add_argument("--products", help="Products JSON path (list or {\"products\": [...]})")
    cmd.add_argument("--user", help="User profile JSON path")
    cmd.add_argument("--at", help="Evaluation time as ISO-8601 (defaults to now, UTC)")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Coupon evaluation utilities")
    subparsers = parser.add_subparsers(dest="command")

    evaluate_cmd = subparsers.add_parser("evaluate", help="List coupons applicable to a cart")
    _add_input_arguments(evaluate_cmd)
    evaluate_cmd.add_argument("--stacking", action="store_true", help="Pick the best stackable combination")

    apply_cmd = subparsers.add_parser("apply", help="Apply one coupon to a cart")
    _add_input_arguments(apply_cmd)
    apply_cmd.add_argument("--coupon-code", required=True, help="Code of the coupon to apply")
    return parser


def _run_cli_command(args: argparse.Namespace) -> bool:
    if args.command == "evaluate":
        asyncio.run(evaluate(args))
        return True

    if args.command == "apply":
        asyncio.run(apply(args))
        return True

    return False


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not _run_cli_command(args):
        parser.print_help()


if __name__ == "__main__":
    main()
