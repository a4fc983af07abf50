from contextlib import asynccontextmanager
from fastapi import FastAPI
from orderpay.api import cur_version
from orderpay.api.routers import public_routers,admin_routers
from orderpay.common.custom_exceptions import register_all_exceptions
from orderpay.common.logging_setup import setup_logging, stop_logging
from orderpay.middlewares.request_id_middleware import RequestIdMiddleware
from orderpay.payments.gateway import MpesaClient
from orderpay.payments.webhooks import mpesa_callback
from orderpay.db.connection import async_engine
from orderpay.config.admin_config import admin_config
from orderpay.config.settings import config_settings
from metrics.custom_instrumentator import instrumentator

mpesa_callback_path = config_settings.MPESA_CALLBACK_PATH

@asynccontextmanager
async def app_lifespan(app: FastAPI):
    setup_logging()
    app.state.mpesa_client = MpesaClient.from_settings()

    try:
        yield
    finally:
        await app.state.mpesa_client.aclose()
        # new requests are no longer accepted here , safe to dispose the engine
        await async_engine.dispose()
        stop_logging()


def create_app():
    app=FastAPI(
        title="Orderpay",
        version=cur_version,
        lifespan=app_lifespan)

    app.include_router(public_routers)

    app.add_api_route(mpesa_callback_path,mpesa_callback,methods=["POST"],name="mpesa_callback",tags=["webhooks"])

    if admin_config.ENABLE_ADMIN:
        app.include_router(admin_routers)      # mounts /api/v1/admin

    app.add_middleware(RequestIdMiddleware)
    register_all_exceptions(app)
    instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    return app

app=create_app()
