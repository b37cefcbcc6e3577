"""FastAPI application for the TimeCapsule API."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, get_settings
from .database import init_db, make_engine, make_session_factory
from .errors import CapsuleError
from .responses import describe_errors, error_response
from .routes import create_router
from .storage import LocalStorage

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(app.state.engine)
    settings: Settings = app.state.settings
    logger.info(f"TimeCapsule API ready on {settings.host}:{settings.port}")
    yield
    app.state.engine.dispose()
    logger.info("Database connections closed")


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CapsuleError)
    async def capsule_error(request: Request, exc: CapsuleError):
        return error_response(exc.status_code, exc.message, exc.code)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return error_response(400, describe_errors(exc.errors()) or "Invalid request", "BAD_REQUEST")

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return error_response(500, "Internal server error", "SERVER_ERROR")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create the FastAPI application."""
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="TimeCapsule API",
        description="API for creating and managing time capsules",
        version="1.0.0",
        lifespan=lifespan,
    )

    engine = make_engine(settings.database_url)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.storage = LocalStorage(settings.media_root, settings.media_base_url)
    app.state.clock = utc_now

    install_error_handlers(app)
    app.include_router(create_router())

    return app
