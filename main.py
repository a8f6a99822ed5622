from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.admin.routes import admin_router
from src.api.enrollments.routes import enrollments_router
from src.api.payments.routes import payments_router
from src.api.webhooks.providers.factory import WebhookProviderFactory
from src.api.webhooks.routes import webhooks_router
from src.config.settings import Settings, settings
from src.database.connection import Database
from src.middleware.error import http_exception_handler
from src.middleware.timing import add_process_time_header
from src.shared.error_handler import ServiceError, TransientStorageError
from src.shared.utils import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app_settings: Settings = app.state.settings
    if getattr(app.state, "database", None) is None:
        app.state.database = Database.from_settings(app_settings)
    logger.info(f"EduCommunity API starting ({app_settings.ENVIRONMENT})")
    try:
        yield
    finally:
        await app.state.database.dispose()
        logger.info("Database connections closed")


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    app_settings = app_settings or settings

    app = FastAPI(
        title="EduCommunity API",
        description="Payments, gateway webhooks and enrollments for the EduCommunity platform.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.providers = WebhookProviderFactory.from_settings(app_settings)

    app.include_router(webhooks_router)
    app.include_router(payments_router)
    app.include_router(enrollments_router)
    app.include_router(admin_router)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(TransientStorageError, http_exception_handler)
    app.add_exception_handler(ServiceError, http_exception_handler)
    app.add_exception_handler(Exception, http_exception_handler)

    def custom_openapi():
        if app.openapi_schema:
            return app.openapi_schema
        openapi_schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        openapi_schema.setdefault("components", {})["securitySchemes"] = {
            "BearerAuth": {"type": "http", "scheme": "bearer"}
        }
        app.openapi_schema = openapi_schema
        return app.openapi_schema

    app.openapi = custom_openapi
    app.middleware("http")(add_process_time_header)

    @app.get("/", tags=["App"])
    async def read_root():
        return {"service": "educommunity-api", "environment": app_settings.ENVIRONMENT}

    return app


app = create_app()
