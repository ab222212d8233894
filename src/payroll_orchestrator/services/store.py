"""Persistence of payroll periods and per-employee calculations."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from sqlalchemy import func, select

from payroll_orchestrator.calculators.types import CalculationResult
from payroll_orchestrator.errors import CalculationsImmutableError, PeriodNotFoundError
from payroll_orchestrator.models import EmployeePayrollCalculation, PayrollPeriod
from payroll_orchestrator.services.state_machine import PayrollPeriodStateMachine

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


class PayrollStore(Protocol):
    """Storage contract used by the run service."""

    async def get_period(self, payroll_period_id: UUID) -> PayrollPeriod: ...

    async def save_period(self, period: PayrollPeriod) -> PayrollPeriod: ...

    async def upsert_calculation(
        self,
        period: PayrollPeriod,
        result: CalculationResult,
        calculated_by: str | None = None,
    ) -> EmployeePayrollCalculation: ...

    async def get_calculations(self, payroll_period_id: UUID) -> list[EmployeePayrollCalculation]: ...


class SqlAlchemyPayrollStore:
    """PayrollStore over one AsyncSession.

    An AsyncSession must not be used by two coroutines at once, so every
    operation holds ``_lock``. Each write commits on its own, which keeps
    each employee's record durable independently of the rest of the run.
    The session must be created with ``expire_on_commit=False``.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._lock = asyncio.Lock()

    async def get_period(self, payroll_period_id: UUID) -> PayrollPeriod:
        async with self._lock:
            period = await self.session.get(PayrollPeriod, payroll_period_id)
        if period is None:
            raise PeriodNotFoundError(payroll_period_id)
        return period

    async def list_periods(
        self,
        status: str | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> list[PayrollPeriod]:
        query = select(PayrollPeriod)
        if status:
            query = query.where(PayrollPeriod.status == status)
        query = query.order_by(PayrollPeriod.period_start.desc()).offset(offset).limit(limit)
        async with self._lock:
            result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_periods(self, status: str | None = None) -> int:
        query = select(func.count()).select_from(PayrollPeriod)
        if status:
            query = query.where(PayrollPeriod.status == status)
        async with self._lock:
            total = await self.session.scalar(query)
        return total or 0

    async def save_period(self, period: PayrollPeriod) -> PayrollPeriod:
        async with self._lock:
            self.session.add(period)
            try:
                await self.session.commit()
            except Exception:
                await self.session.rollback()
                raise
        return period

    async def upsert_calculation(
        self,
        period: PayrollPeriod,
        result: CalculationResult,
        calculated_by: str | None = None,
    ) -> EmployeePayrollCalculation:
        """Insert or replace the calculation for (employee, period)."""
        if PayrollPeriodStateMachine.are_results_immutable(period.status):
            raise CalculationsImmutableError(period.payroll_period_id)

        async with self._lock:
            existing = await self.session.scalar(
                select(EmployeePayrollCalculation).where(
                    EmployeePayrollCalculation.payroll_period_id == result.payroll_period_id,
                    EmployeePayrollCalculation.employee_id == result.employee_id,
                )
            )
            if existing is None:
                calc = EmployeePayrollCalculation(
                    payroll_period_id=result.payroll_period_id,
                    employee_id=result.employee_id,
                    version=1,
                )
                self.session.add(calc)
            else:
                calc = existing
                calc.version = existing.version + 1

            apply_result(calc, result, calculated_by)
            try:
                await self.session.commit()
            except Exception:
                await self.session.rollback()
                raise
        return calc

    async def get_calculations(self, payroll_period_id: UUID) -> list[EmployeePayrollCalculation]:
        async with self._lock:
            result = await self.session.execute(
                select(EmployeePayrollCalculation)
                .where(EmployeePayrollCalculation.payroll_period_id == payroll_period_id)
                .order_by(EmployeePayrollCalculation.calculated_at)
            )
        return list(result.scalars().all())


def apply_result(
    calc: EmployeePayrollCalculation,
    result: CalculationResult,
    calculated_by: str | None,
) -> None:
    """Copy a calculation result onto a stored row, replacing prior values."""
    calc.status = result.status.value
    calc.gross_pay = result.gross_pay
    calc.total_allowances = result.total_allowances
    calc.total_deductions = result.total_deductions
    calc.net_pay = result.net_pay
    calc.breakdown = dict(result.breakdown)
    calc.error_code = result.failure_reason.value if result.failure_reason else None
    calc.error_message = result.error_message
    calc.calculated_by = calculated_by
    calc.calculated_at = datetime.now(timezone.utc)
