"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stormlink import __version__
from stormlink.api.middleware import REQUEST_ID_HEADER, RequestContextMiddleware
from stormlink.api.router import api_router
from stormlink.config import settings
from stormlink.database import close_db
from stormlink.tasks.queue import close_publisher

logger = logging.getLogger(__name__)


def init_sentry() -> None:
    """Report unhandled API errors to Sentry when a DSN is configured."""
    import sentry_sdk

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
    )
    logger.info("Sentry initialized")


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Schema is managed by Alembic; nothing to prepare at startup
    yield
    close_publisher()
    await close_db()


def create_app() -> FastAPI:
    if settings.sentry_dsn:
        init_sentry()

    docs_enabled = settings.debug_enabled
    application = FastAPI(
        title="Stormlink API",
        description="Account registration and email verification",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs" if docs_enabled else None,
        redoc_url="/api/redoc" if docs_enabled else None,
        openapi_url="/api/openapi.json" if docs_enabled else None,
    )

    application.add_middleware(RequestContextMiddleware)  # type: ignore[arg-type]
    application.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Accept", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )

    application.include_router(api_router, prefix="/api")
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from stormlink.logging import get_uvicorn_log_config

    uvicorn.run(
        "stormlink.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_config=get_uvicorn_log_config(),
    )
