from contextlib import asynccontextmanager
from fastapi import FastAPI
from storefront.api import cur_version, version_prefix
from storefront.api.routers import admin_routers, public_routers
from storefront.common.custom_exceptions import register_all_exceptions
from storefront.common.logging_setup import setup_logging, shutdown_logging
from storefront.config.media_config import media_settings
from storefront.config.settings import config_settings
from storefront.db.connection import async_engine, async_session
from storefront.db.dependencies import create_all_tables
from storefront.image_uploads.services import ImageStore
from storefront.middlewares.auth_middleware import AuthenticationMiddleware
from storefront.middlewares.request_id_middleware import RequestIdMiddleware
from storefront.payments.gateway import build_payment_gateway
from storefront import logger
from metrics.custom_instrumentator import setup_metrics

PUBLIC_PATHS = [
    f"{version_prefix}/auth/",
    f"{version_prefix}/health",
    f"{version_prefix}/products",
    f"{version_prefix}/coupons/active",
    f"{version_prefix}/payments/webhook",
    "/metrics",
    "/docs",
    "/openapi.json",
    "/redoc",
]


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    setup_logging()
    await create_all_tables()

    app.state.payment_gateway = build_payment_gateway()
    app.state.image_store = ImageStore(
        cloud_name=media_settings.CLOUDINARY_CLOUD_NAME,
        api_key=media_settings.CLOUDINARY_API_KEY,
        api_secret=media_settings.CLOUDINARY_API_SECRET,
        folder=media_settings.CLOUDINARY_FOLDER,
        timeout=media_settings.CLOUDINARY_TIMEOUT_SECONDS,
    )
    logger.info("app.startup", extra={"env": config_settings.ENV, "service": config_settings.SERVICE_NAME})

    try:
        yield
    finally:
        await app.state.payment_gateway.aclose()
        await app.state.image_store.aclose()
        await async_engine.dispose()
        logger.info("app.shutdown")
        shutdown_logging()


def create_app():
    app = FastAPI(
        title="Storefront",
        version=cur_version,
        lifespan=app_lifespan)

    app.include_router(public_routers)
    if config_settings.ENABLE_ADMIN:
        app.include_router(admin_routers)      # mounts /api/v1/admin

    app.add_middleware(AuthenticationMiddleware, session_maker=async_session, paths=PUBLIC_PATHS)
    app.add_middleware(RequestIdMiddleware)
    register_all_exceptions(app)

    if config_settings.ENABLE_METRICS:
        setup_metrics(app)

    return app


app = create_app()
