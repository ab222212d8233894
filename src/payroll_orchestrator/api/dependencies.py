"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_orchestrator.config import get_settings
from payroll_orchestrator.events.emitter import AsyncEventEmitter
from payroll_orchestrator.events.listeners import PayrollProgressTracker
from payroll_orchestrator.services.locking_service import PeriodRunLock
from payroll_orchestrator.services.payroll_run_service import PayrollRunService
from payroll_orchestrator.services.sources import (
    SqlAlchemyEmployeeRoster,
    SqlAlchemyRateSource,
)
from payroll_orchestrator.services.store import SqlAlchemyPayrollStore


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Session factory configured on the application."""
    return request.app.state.session_factory


async def get_db_session(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with factory() as session:
        yield session


async def get_user_id(
    x_user_id: Annotated[str | None, Header()] = None
) -> str:
    """Extract the acting user from header.

    Authentication happens upstream; this only identifies the caller for
    audit and notifications.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID header is required",
        )
    return x_user_id


def get_emitter(request: Request) -> AsyncEventEmitter:
    return request.app.state.emitter


def get_progress_tracker(request: Request) -> PayrollProgressTracker:
    return request.app.state.progress_tracker


def get_run_lock(request: Request) -> PeriodRunLock:
    return request.app.state.run_lock


def get_store(
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> SqlAlchemyPayrollStore:
    return SqlAlchemyPayrollStore(db)


def get_payroll_service(
    store: Annotated[SqlAlchemyPayrollStore, Depends(get_store)],
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    emitter: Annotated[AsyncEventEmitter, Depends(get_emitter)],
    run_lock: Annotated[PeriodRunLock, Depends(get_run_lock)],
) -> PayrollRunService:
    """Build the run service for one request."""
    return PayrollRunService(
        store=store,
        emitter=emitter,
        rate_source=SqlAlchemyRateSource(factory),
        roster=SqlAlchemyEmployeeRoster(factory),
        run_lock=run_lock,
        max_concurrency=get_settings().max_concurrency,
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
UserId = Annotated[str, Depends(get_user_id)]
Store = Annotated[SqlAlchemyPayrollStore, Depends(get_store)]
PayrollService = Annotated[PayrollRunService, Depends(get_payroll_service)]
ProgressTracker = Annotated[PayrollProgressTracker, Depends(get_progress_tracker)]
