from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from loguru import logger

from popboost_api.core.settings import settings
from popboost_api.db.session import engine
from .api.dependencies.discounts import get_redis_client
from .api.routes import api_router
from .core.logging import configure_logging, request_log_context
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.rate_limit_bypass:
        logger.warning("Discount rate limiting bypassed", reason="rate_limit_bypass is true")
    else:
        logger.info(
            "Discount rate limiting enabled",
            limit=settings.discount_rate_limit,
            window_seconds=settings.discount_rate_limit_window_seconds,
            bypass_shops=settings.rate_limit_bypass_shops,
        )
    if not settings.shopify_api_secret:
        logger.warning("App proxy signature verification disabled", reason="shopify_api_secret is empty")

    try:
        yield
    finally:
        if get_redis_client.cache_info().currsize:
            await get_redis_client().aclose()
            get_redis_client.cache_clear()
        await engine.dispose()


def create_app() -> FastAPI:
    """Application factory for the Popboost FastAPI service."""
    configure_logging(
        service_name="popboost-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Popboost API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="popboost-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    @app.middleware("http")
    async def bind_log_context(request: Request, call_next):
        context = request_log_context(
            request.query_params, request.url.path, request.headers.get("x-request-id")
        )
        with logger.contextualize(**context):
            return await call_next(request)

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
