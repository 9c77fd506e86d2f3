from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from coupon_engine.api.v1 import api_router
from coupon_engine.core.config import settings
from coupon_engine.core.logging_config import configure_logging
from coupon_engine.middleware import RequestLoggingMiddleware
from coupon_engine.schemas.error import ErrorResponse
from coupon_engine.services.errors import CouponNotApplicableError, DiscountComputationError


def get_application() -> FastAPI:
    configure_logging(settings.log_json)
    tags_metadata = [
        {"name": "coupons", "description": "Coupon eligibility, discounts and cart application"},
        {"name": "health", "description": "Liveness and readiness probes"},
        {"name": "metrics", "description": "In-process counters"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
        swagger_ui_parameters={"displayRequestDuration": True},
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(detail=exc.detail, code=None)
        return JSONResponse(
            status_code=exc.status_code, content=jsonable_encoder(payload.model_dump(exclude={"reason"}))
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        payload = ErrorResponse(detail=errors, code="validation_error")
        return JSONResponse(status_code=422, content=payload.model_dump(exclude={"reason"}))

    @app.exception_handler(CouponNotApplicableError)
    async def not_applicable_handler(request: Request, exc: CouponNotApplicableError):
        payload = ErrorResponse(detail=str(exc), code="coupon_not_applicable", reason=exc.reason)
        return JSONResponse(status_code=400, content=payload.model_dump())

    @app.exception_handler(DiscountComputationError)
    async def computation_error_handler(request: Request, exc: DiscountComputationError):
        payload = ErrorResponse(detail=str(exc), code="discount_computation_failed")
        return JSONResponse(status_code=500, content=payload.model_dump(exclude={"reason"}))

    return app


app = get_application()
