"""Payroll period API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from payroll_orchestrator.api.dependencies import (
    PayrollService,
    ProgressTracker,
    Store,
    UserId,
)
from payroll_orchestrator.api.schemas import (
    CalculationListResponse,
    CalculationResponse,
    ClosePeriodRequest,
    ErrorResponse,
    PayrollPeriodCreate,
    PayrollPeriodListResponse,
    PayrollPeriodResponse,
    ProgressResponse,
    RunSummaryResponse,
)
from payroll_orchestrator.services.state_machine import PeriodStatus

router = APIRouter(prefix="/payroll-periods", tags=["payroll-periods"])


# ============================================================================
# Payroll period CRUD
# ============================================================================


@router.post(
    "",
    response_model=PayrollPeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_payroll_period(
    service: PayrollService,
    user_id: UserId,
    payload: PayrollPeriodCreate,
) -> PayrollPeriodResponse:
    """Open a new payroll period."""
    period = await service.create_period(
        name=payload.name,
        period_start=payload.period_start,
        period_end=payload.period_end,
        payment_date=payload.payment_date,
        created_by=user_id,
    )
    return PayrollPeriodResponse.model_validate(period)


@router.get(
    "",
    response_model=PayrollPeriodListResponse,
    responses={400: {"model": ErrorResponse}},
)
async def list_payroll_periods(
    store: Store,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> PayrollPeriodListResponse:
    """List payroll periods, newest first."""
    if status_filter and status_filter not in {s.value for s in PeriodStatus}:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown status: {status_filter}",
        )

    total = await store.count_periods(status_filter)
    periods = await store.list_periods(
        status=status_filter,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    return PayrollPeriodListResponse(
        items=[PayrollPeriodResponse.model_validate(p) for p in periods],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{payroll_period_id}",
    response_model=PayrollPeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll_period(
    store: Store,
    payroll_period_id: Annotated[UUID, Path()],
) -> PayrollPeriodResponse:
    """Get a payroll period by ID."""
    period = await store.get_period(payroll_period_id)
    return PayrollPeriodResponse.model_validate(period)


# ============================================================================
# Runs
# ============================================================================


@router.post(
    "/{payroll_period_id}/run",
    response_model=RunSummaryResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def run_payroll_period(
    service: PayrollService,
    store: Store,
    user_id: UserId,
    payroll_period_id: Annotated[UUID, Path()],
) -> RunSummaryResponse:
    """Calculate payroll for every active employee of the period.

    Employees that fail calculation are recorded and counted; the period
    closes automatically only when every employee succeeded.
    """
    summary = await service.run_period(payroll_period_id, initiated_by=user_id)
    period = await store.get_period(payroll_period_id)
    return RunSummaryResponse(
        payroll_period_id=summary.payroll_period_id,
        success_count=summary.success_count,
        failure_count=summary.failure_count,
        skipped_count=summary.skipped_count,
        cancelled=summary.cancelled,
        initiated_by=summary.initiated_by,
        period_status=period.status,
    )


@router.get(
    "/{payroll_period_id}/progress",
    response_model=ProgressResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_run_progress(
    tracker: ProgressTracker,
    payroll_period_id: Annotated[UUID, Path()],
) -> ProgressResponse:
    """Progress of the latest run, as reported by run notifications."""
    progress = tracker.get(payroll_period_id)
    if progress is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No run recorded for payroll period {payroll_period_id}",
        )
    return ProgressResponse(
        payroll_period_id=payroll_period_id,
        total=progress.total,
        completed=progress.completed,
        percentage=progress.percentage,
        finished=progress.finished,
    )


@router.get(
    "/{payroll_period_id}/calculations",
    response_model=CalculationListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_calculations(
    service: PayrollService,
    payroll_period_id: Annotated[UUID, Path()],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> CalculationListResponse:
    """List the stored employee calculations of a period."""
    calculations = await service.get_calculations(payroll_period_id)
    failed = sum(1 for c in calculations if c.status == "failed")
    items = [c for c in calculations if not status_filter or c.status == status_filter]

    # Counts cover the whole period regardless of the filter.
    return CalculationListResponse(
        items=[CalculationResponse.model_validate(c) for c in items],
        total=len(calculations),
        succeeded=len(calculations) - failed,
        failed=failed,
    )


@router.post(
    "/{payroll_period_id}/close",
    response_model=PayrollPeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def close_payroll_period(
    service: PayrollService,
    user_id: UserId,
    payroll_period_id: Annotated[UUID, Path()],
    payload: ClosePeriodRequest | None = None,
) -> PayrollPeriodResponse:
    """Close a reviewed period. Its calculations become immutable."""
    acknowledge = payload.acknowledge_failures if payload else False
    period = await service.close_period(
        payroll_period_id,
        closed_by=user_id,
        acknowledge_failures=acknowledge,
    )
    return PayrollPeriodResponse.model_validate(period)
