from coupon_engine.db.base import Base  # noqa: F401
from coupon_engine.models.catalog import Product  # noqa: F401
from coupon_engine.models.coupon import Coupon  # noqa: F401
