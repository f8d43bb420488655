"""FastAPI application factory and lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderflow.api.router import api_router
from orderflow.config import settings
from orderflow.exceptions import DomainError
from orderflow.models.database import close_postgres, init_postgres
from orderflow.observability.sentry_setup import init_backend_sentry
from orderflow.util.logger import configure_logging, log_api, log_success, logger

configure_logging(settings.log_level, show_sql=settings.sqlalchemy_echo)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Initialize and close infrastructure resources."""
    logger.info("Starting application lifecycle.")
    logger.info(
        "Order lifecycle config: accept_window=%sm urgent_window=%sm close_on_rating=%s",
        settings.order_accept_window_minutes,
        settings.order_urgent_accept_window_minutes,
        settings.order_close_on_rating,
    )
    await init_postgres()
    log_success("Infrastructure initialized.")
    try:
        yield
    finally:
        await close_postgres()
        logger.info("Application lifecycle closed.")


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    log_api(request.method, request.url.path, exc.status_code)
    logger.info("Request denied: %s", exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app() -> FastAPI:
    """Application factory for uvicorn and testing."""
    init_backend_sentry(source="fastapi")
    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        lifespan=lifespan,
    )

    # Browser clients read the order version from ETag to send If-Match.
    cors_common = {
        "allow_credentials": True,
        "allow_methods": ["*"],
        "allow_headers": ["*"],
        "expose_headers": ["ETag"],
    }
    if settings.is_dev_mode:
        # Dev/Test mode: disable CORS origin restrictions for dynamic localhost ports.
        app.add_middleware(CORSMiddleware, allow_origin_regex=".*", **cors_common)
    else:
        app.add_middleware(CORSMiddleware, allow_origins=settings.cors_origins, **cors_common)

    app.add_exception_handler(DomainError, domain_error_handler)
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"name": settings.app_name, "status": "running"}

    return app


app = create_app()
