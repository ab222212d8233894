"""Roster and rate sources consumed by the run service.

Both are external collaborators; the protocols are the contract and the
SQLAlchemy classes read them from the payroll database.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from payroll_orchestrator.calculators.types import (
    AllowanceLine,
    CalculationInputs,
    DeductionRule,
    RosterEntry,
)
from payroll_orchestrator.errors import RosterUnavailableError
from payroll_orchestrator.models import (
    AttendanceSummary,
    Employee,
    EmployeePayrollInfo,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from payroll_orchestrator.models import PayrollPeriod


class EmployeeRoster(Protocol):
    """Source of the employees to process for a period."""

    async def load_employees(self, period: PayrollPeriod) -> Sequence[RosterEntry]: ...


class RateSource(Protocol):
    """Source of pay rate, attendance, allowance and deduction inputs."""

    async def get_inputs(
        self, employee: RosterEntry, period: PayrollPeriod
    ) -> CalculationInputs: ...


class SqlAlchemyEmployeeRoster:
    """Active employees that have active payroll info."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def load_employees(self, period: PayrollPeriod) -> list[RosterEntry]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Employee)
                    .join(EmployeePayrollInfo)
                    .where(
                        Employee.is_active.is_(True),
                        EmployeePayrollInfo.is_active.is_(True),
                    )
                    .order_by(Employee.employee_number)
                )
                employees = result.scalars().all()
        except Exception as e:
            raise RosterUnavailableError(f"Could not load employee roster: {e}") from e

        return [
            RosterEntry(
                employee_id=emp.employee_id,
                employee_number=emp.employee_number,
                full_name=emp.full_name,
            )
            for emp in employees
        ]


class SqlAlchemyRateSource:
    """Builds calculation inputs from payroll info, allowances, deductions and attendance.

    Each lookup opens its own short session so lookups for different
    employees can run concurrently.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_inputs(
        self, employee: RosterEntry, period: PayrollPeriod
    ) -> CalculationInputs:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Employee)
                .where(Employee.employee_id == employee.employee_id)
                .options(
                    selectinload(Employee.payroll_info),
                    selectinload(Employee.allowances),
                    selectinload(Employee.deductions),
                )
            )
            emp = result.scalar_one_or_none()

            hours = await session.scalar(
                select(AttendanceSummary.hours_worked).where(
                    AttendanceSummary.employee_id == employee.employee_id,
                    AttendanceSummary.payroll_period_id == period.payroll_period_id,
                )
            )

        info = emp.payroll_info if emp is not None else None
        if info is None or not info.is_active:
            return CalculationInputs(rate_type=None, rate_amount=None, hours_worked=hours)

        return CalculationInputs(
            rate_type=info.rate_type,
            rate_amount=info.rate_amount,
            hours_worked=hours,
            allowances=tuple(
                AllowanceLine(name=a.name, amount=a.amount)
                for a in emp.allowances
                if a.is_active
            ),
            deductions=tuple(
                DeductionRule(
                    code=d.code,
                    calc_method=d.calc_method,
                    amount=d.amount,
                    percent=d.percent,
                )
                for d in emp.deductions
                if d.is_active
            ),
        )
