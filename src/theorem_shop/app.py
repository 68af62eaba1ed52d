"""FastAPI application factory for theorem-shop."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from theorem_shop.common.config import get_settings
from theorem_shop.common.exceptions import ShopError, TooManyRequestsError
from theorem_shop.common.logging import setup_logging
from theorem_shop.common.schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)


def _error_response(status_code: int, body: ErrorResponse, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors or any(e.get("type") == "missing" for e in errors):
        return "Missing required fields"
    if tuple(errors[0].get("loc", ()))[-1:] == ("email",):
        return "Invalid email address"
    message = str(errors[0].get("msg", "Invalid request"))
    return message.removeprefix("Value error, ")


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from theorem_shop.deps import get_code_store, get_nonce_store, get_rate_limiter
        from theorem_shop.verification.sweeper import start_sweeper, stop_sweeper

        sweeper = start_sweeper(
            {
                "codes": get_code_store(),
                "rate_limits": get_rate_limiter(),
                "nonces": get_nonce_store(),
            },
            settings.sweep_interval_seconds,
        )
        yield
        # Shutdown
        await stop_sweeper(sweeper)

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ShopError)
    async def shop_error_handler(request: Request, exc: ShopError):
        if exc.status_code >= 500:
            logger.error("%s: %s", exc.code, exc.message, extra={"path": request.url.path})
        body = ErrorResponse(error=exc.message, code=exc.code)
        headers = None
        if isinstance(exc, TooManyRequestsError):
            body.retry_after_seconds = exc.retry_after_seconds
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        return _error_response(exc.status_code, body, headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        body = ErrorResponse(error=_validation_message(exc), code="VALIDATION_ERROR")
        return _error_response(400, body)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from theorem_shop.admin.router import admin_router
    from theorem_shop.admin.router import router as auth_router
    from theorem_shop.catalog.router import router as catalog_router
    from theorem_shop.checkout.router import router as checkout_router
    from theorem_shop.payments.router import router as payments_router

    prefix = settings.api_prefix
    app.include_router(catalog_router, prefix=prefix, tags=["catalog"])
    app.include_router(checkout_router, prefix=prefix, tags=["checkout"])
    app.include_router(payments_router, prefix=prefix, tags=["payments"])
    app.include_router(auth_router, prefix=prefix, tags=["auth"])
    app.include_router(admin_router, prefix=prefix, tags=["admin"])

    return app
