"""Pytest fixtures for payroll orchestrator tests."""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Callable
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payroll_orchestrator.calculators.types import CalculationInputs, CalculationResult, RosterEntry
from payroll_orchestrator.errors import (
    CalculationsImmutableError,
    PeriodNotFoundError,
    RosterUnavailableError,
)
from payroll_orchestrator.events.emitter import AsyncEventEmitter
from payroll_orchestrator.events.types import PayrollEvent
from payroll_orchestrator.models import (
    AttendanceSummary,
    Base,
    Employee,
    EmployeeAllowance,
    EmployeeDeduction,
    EmployeePayrollCalculation,
    EmployeePayrollInfo,
    PayrollPeriod,
)
from payroll_orchestrator.services.locking_service import PeriodRunLock
from payroll_orchestrator.services.payroll_run_service import PayrollRunService
from payroll_orchestrator.services.state_machine import PayrollPeriodStateMachine
from payroll_orchestrator.services.store import apply_result

MONTHLY_INPUTS = CalculationInputs(rate_type="monthly", rate_amount=Decimal("5000.00"))


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Create test database engine with a fresh schema.

    File database: every session gets its own connection.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payroll.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# In-memory collaborators
# ============================================================================


class InMemoryPayrollStore:
    """PayrollStore keeping periods and calculations in dicts."""

    def __init__(self) -> None:
        self.periods: dict[UUID, PayrollPeriod] = {}
        self.calculations: dict[tuple[UUID, UUID], EmployeePayrollCalculation] = {}
        self.fail_upsert_for: set[UUID] = set()
        self.fail_saves = False
        self.upsert_calls = 0

    async def get_period(self, payroll_period_id: UUID) -> PayrollPeriod:
        period = self.periods.get(payroll_period_id)
        if period is None:
            raise PeriodNotFoundError(payroll_period_id)
        return period

    async def save_period(self, period: PayrollPeriod) -> PayrollPeriod:
        if self.fail_saves:
            raise ConnectionError("database unavailable")
        self.periods[period.payroll_period_id] = period
        return period

    async def upsert_calculation(
        self,
        period: PayrollPeriod,
        result: CalculationResult,
        calculated_by: str | None = None,
    ) -> EmployeePayrollCalculation:
        self.upsert_calls += 1
        if PayrollPeriodStateMachine.are_results_immutable(period.status):
            raise CalculationsImmutableError(period.payroll_period_id)
        if result.employee_id in self.fail_upsert_for:
            raise ConnectionError("database unavailable")

        key = (result.payroll_period_id, result.employee_id)
        calc = self.calculations.get(key)
        if calc is None:
            calc = EmployeePayrollCalculation(
                calculation_id=uuid4(),
                payroll_period_id=result.payroll_period_id,
                employee_id=result.employee_id,
                version=1,
            )
            self.calculations[key] = calc
        else:
            calc.version += 1
        apply_result(calc, result, calculated_by)
        return calc

    async def get_calculations(self, payroll_period_id: UUID) -> list[EmployeePayrollCalculation]:
        return [c for c in self.calculations.values() if c.payroll_period_id == payroll_period_id]


class StaticRateSource:
    """RateSource answering from a mapping; exceptions in the mapping are raised."""

    def __init__(self, default: CalculationInputs = MONTHLY_INPUTS, delay: float = 0):
        self.default = default
        self.delay = delay
        self.inputs: dict[UUID, CalculationInputs | Exception] = {}
        self.calls: list[UUID] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.on_call: Callable[[RosterEntry], None] | None = None

    async def get_inputs(self, employee: RosterEntry, period: PayrollPeriod) -> CalculationInputs:
        self.calls.append(employee.employee_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_call is not None:
                self.on_call(employee)
            if self.delay:
                await asyncio.sleep(self.delay)
            value = self.inputs.get(employee.employee_id, self.default)
            if isinstance(value, Exception):
                raise value
            return value
        finally:
            self.in_flight -= 1


class StaticRoster:
    """EmployeeRoster returning a fixed list, or raising a given error."""

    def __init__(self, employees: list[RosterEntry] | None = None, error: Exception | None = None):
        self.employees = employees or []
        self.error = error

    async def load_employees(self, period: PayrollPeriod) -> list[RosterEntry]:
        if self.error is not None:
            raise self.error
        return list(self.employees)


class EventRecorder:
    """Handler that records every event it receives."""

    def __init__(self) -> None:
        self.events: list[PayrollEvent] = []

    async def __call__(self, event: PayrollEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]


def make_employees(count: int) -> list[RosterEntry]:
    return [
        RosterEntry(employee_id=uuid4(), employee_number=f"E{i:03d}", full_name=f"Employee {i}")
        for i in range(1, count + 1)
    ]


# ============================================================================
# Service fixtures
# ============================================================================


@pytest.fixture
def store() -> InMemoryPayrollStore:
    return InMemoryPayrollStore()


@pytest.fixture
def rate_source() -> StaticRateSource:
    return StaticRateSource()


@pytest.fixture
def emitter() -> AsyncEventEmitter:
    return AsyncEventEmitter(handler_timeout=1.0)


@pytest.fixture
def recorder(emitter: AsyncEventEmitter) -> EventRecorder:
    recorder = EventRecorder()
    emitter.on_all(recorder)
    return recorder


@pytest.fixture
def run_lock() -> PeriodRunLock:
    return PeriodRunLock()


@pytest.fixture
def roster() -> StaticRoster:
    return StaticRoster(make_employees(3))


@pytest.fixture
def service(store, emitter, rate_source, roster, run_lock) -> PayrollRunService:
    return PayrollRunService(
        store=store,
        emitter=emitter,
        rate_source=rate_source,
        roster=roster,
        run_lock=run_lock,
        max_concurrency=4,
    )


@pytest_asyncio.fixture
async def open_period(service: PayrollRunService) -> PayrollPeriod:
    """A freshly created January period."""
    return await service.create_period(
        name="January 2026",
        period_start=date(2026, 1, 1),
        period_end=date(2026, 1, 31),
        created_by="admin-1",
        payment_date=date(2026, 2, 5),
    )


@pytest.fixture
def failing_roster() -> StaticRoster:
    return StaticRoster(error=RosterUnavailableError("roster service down"))


@pytest.fixture
def employee_factory() -> Callable[[int], list[RosterEntry]]:
    return make_employees


# ============================================================================
# API fixtures
# ============================================================================


@pytest_asyncio.fixture
async def app(session_factory):
    """Application bound to the test database."""
    from payroll_orchestrator.api.app import create_app

    app = create_app(session_factory=session_factory)
    yield app
    await app.state.emitter.drain()


@pytest_asyncio.fixture
async def client(app):
    """HTTP client for the API."""
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


# ============================================================================
# Database seeding
# ============================================================================


async def seed_employee(
    session: AsyncSession,
    employee_number: str,
    rate_type: str | None = "monthly",
    rate_amount: Decimal | None = Decimal("5000.00"),
    hours: tuple[UUID, Decimal] | None = None,
    allowances: tuple[tuple[str, Decimal, bool], ...] = (),
    deductions: tuple[EmployeeDeduction, ...] = (),
    is_active: bool = True,
) -> Employee:
    """Insert an employee with pay inputs.

    ``hours`` is ``(payroll_period_id, hours_worked)``; ``rate_type=None``
    leaves the employee without payroll info.
    """
    employee = Employee(
        employee_id=uuid4(),
        employee_number=employee_number,
        full_name=f"Employee {employee_number}",
        is_active=is_active,
    )
    session.add(employee)
    if rate_type is not None:
        session.add(
            EmployeePayrollInfo(
                employee_id=employee.employee_id,
                rate_type=rate_type,
                rate_amount=rate_amount,
            )
        )
    for name, amount, active in allowances:
        session.add(
            EmployeeAllowance(
                employee_id=employee.employee_id, name=name, amount=amount, is_active=active
            )
        )
    for deduction in deductions:
        deduction.employee_id = employee.employee_id
        session.add(deduction)
    if hours is not None:
        period_id, hours_worked = hours
        session.add(
            AttendanceSummary(
                employee_id=employee.employee_id,
                payroll_period_id=period_id,
                hours_worked=hours_worked,
            )
        )
    await session.commit()
    return employee


@pytest.fixture
def employee_seeder():
    return seed_employee
