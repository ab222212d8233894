"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payroll_orchestrator.api.routes import health_router, payroll_periods_router
from payroll_orchestrator.config import get_settings
from payroll_orchestrator.database import dispose_db, init_db
from payroll_orchestrator.errors import (
    CalculationsImmutableError,
    InvalidTransitionError,
    PayrollRunError,
    PayrollRunInProgressError,
    PeriodNotFoundError,
)
from payroll_orchestrator.events.emitter import AsyncEventEmitter
from payroll_orchestrator.events.listeners import (
    NotificationChannel,
    register_default_listeners,
)
from payroll_orchestrator.services.locking_service import PeriodRunLock

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    yield
    # Shutdown: let queued notifications finish before the engine goes away
    await app.state.emitter.drain()
    if app.state.owns_engine:
        await dispose_db()


def _error(status_code: int, code: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


def create_app(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    engine: AsyncEngine | None = None,
    channel: NotificationChannel | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without a session factory the application uses the engine configured
    by ``DATABASE_URL`` and disposes it on shutdown.
    """
    settings = get_settings()
    owns_engine = session_factory is None
    if session_factory is None:
        engine, session_factory = init_db()

    app = FastAPI(
        title="Payroll Orchestrator API",
        description="Payroll period calculation runs",
        version=settings.engine_version,
        lifespan=lifespan,
    )

    emitter = AsyncEventEmitter(handler_timeout=settings.notification_timeout_seconds)
    app.state.session_factory = session_factory
    app.state.emitter = emitter
    app.state.progress_tracker = register_default_listeners(
        emitter, session_factory=session_factory, channel=channel
    )
    app.state.run_lock = PeriodRunLock(engine if settings.is_postgres else None)
    app.state.owns_engine = owns_engine

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PeriodNotFoundError)
    async def not_found_handler(request: Request, exc: PeriodNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, "PERIOD_NOT_FOUND", str(exc))

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition_handler(
        request: Request, exc: InvalidTransitionError
    ) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, "INVALID_TRANSITION", str(exc))

    @app.exception_handler(CalculationsImmutableError)
    async def immutable_handler(
        request: Request, exc: CalculationsImmutableError
    ) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, "CALCULATIONS_IMMUTABLE", str(exc))

    @app.exception_handler(PayrollRunInProgressError)
    async def in_progress_handler(
        request: Request, exc: PayrollRunInProgressError
    ) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, "RUN_IN_PROGRESS", str(exc))

    @app.exception_handler(PayrollRunError)
    async def run_error_handler(request: Request, exc: PayrollRunError) -> JSONResponse:
        return _error(status.HTTP_502_BAD_GATEWAY, "RUN_FAILED", exc.message)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, "INVALID_REQUEST", str(exc))

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "An unexpected error occurred",
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(payroll_periods_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
