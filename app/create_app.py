"""
FastAPI application entry point - Gmail push notification relay
"""

import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi_async_sqlalchemy import SQLAlchemyMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.middlewares.auto_commit import AutoCommitMiddleware
from app.api.payloads import APIError
from app.api.routes import api_router
from app.container import ApplicationContainer
from app.exceptions import BaseError, ErrorType
from settings import settings

logger = logging.getLogger(__name__)


def _setup_error_handlers(app: FastAPI) -> None:
    """Setup FastAPI exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP errors raised by FastAPI and Starlette routing."""
        return JSONResponse(status_code=exc.status_code or 400, content={"error": exc.detail})

    @app.exception_handler(BaseError)
    async def handle_app_error(request: Request, exc: BaseError) -> JSONResponse:
        """Handle custom BaseError exceptions."""
        if exc.status_code >= 400 and exc.status_code < 500:
            logger.warning(f"A user-related (HTTP 4xx) error occurred; {exc}", extra=exc.extra)
        else:
            logger.exception(f"An unhandled app exception occurred; {exc}", extra=exc.extra)

        body = APIError(error=exc.error_type.value, error_description=exc.message)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    @app.exception_handler(Exception)
    async def handle_generic_error(request: Request, exc: Exception) -> JSONResponse:
        """Handle any unhandled exceptions."""
        logger.exception(f"An unhandled exception occurred; error: {exc}")

        body = APIError(error=ErrorType.UNHANDLED_EXCEPTION.value)
        return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))


def _shutdown_lifespan(
    container: ApplicationContainer | None,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if container is None:
            return
        # Close the shared outbound HTTP sessions
        await container.controllers.google_client().close_session()
        await container.controllers.relay_controller().close_session()

    return lifespan


def create_app(container: ApplicationContainer | None = None, with_database: bool = True) -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Inbox Relay API",
        description="Relays new Gmail messages to an automation webhook",
        version="1.0.0",
        lifespan=_shutdown_lifespan(container),
    )

    # Setup error handlers
    _setup_error_handlers(app)

    if with_database:
        # Add auto-commit middleware FIRST (it will run LAST, after SQLAlchemy middleware creates the session)
        app.add_middleware(AutoCommitMiddleware)

        # Add SQLAlchemy middleware for database session management
        database_url = f"{settings.database.async_host}/{settings.database.name}"
        app.add_middleware(
            SQLAlchemyMiddleware,
            db_url=database_url,
            engine_args={
                "pool_size": settings.database.min_pool_size,
                "max_overflow": settings.database.max_pool_size - settings.database.min_pool_size,
                "pool_pre_ping": True,
                "pool_recycle": 300,
            },
            # Handlers keep using loaded accounts after committing the cursor
            session_args={"expire_on_commit": False},
        )

    # Include API routers
    app.include_router(api_router, prefix="/v1")

    # Health check endpoint
    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return app
