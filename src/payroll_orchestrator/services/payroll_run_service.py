"""Payroll run service - main orchestrator for payroll periods."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Sequence
from uuid import UUID, uuid4

from payroll_orchestrator.calculators.calculator import EmployeePayrollCalculator
from payroll_orchestrator.calculators.types import (
    CalculationResult,
    FailureReason,
    RosterEntry,
)
from payroll_orchestrator.errors import (
    InvalidTransitionError,
    PayrollRunError,
    PayrollRunInProgressError,
)
from payroll_orchestrator.events.types import (
    EmployeePayrollCalculated,
    EventMetadata,
    PayrollEvent,
    PayrollPeriodClosed,
    PayrollPeriodCreated,
    PayrollRunCompleted,
    PayrollRunFailed,
    PayrollRunStarted,
    PeriodSnapshot,
)
from payroll_orchestrator.models import EmployeePayrollCalculation, PayrollPeriod
from payroll_orchestrator.services.locking_service import PeriodRunLock
from payroll_orchestrator.services.state_machine import (
    PayrollPeriodStateMachine,
    PeriodStatus,
)

if TYPE_CHECKING:
    from payroll_orchestrator.events.emitter import AsyncEventEmitter
    from payroll_orchestrator.services.sources import EmployeeRoster, RateSource
    from payroll_orchestrator.services.store import PayrollStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4


@dataclass(frozen=True)
class RunSummary:
    """Outcome of one payroll run."""

    payroll_period_id: UUID
    success_count: int
    failure_count: int
    initiated_by: str | None
    skipped_count: int = 0
    cancelled: bool = False

    @property
    def processed_count(self) -> int:
        return self.success_count + self.failure_count

    @property
    def submitted_count(self) -> int:
        return self.processed_count + self.skipped_count


class CancellationToken:
    """Cooperative cancellation, checked before each employee starts."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class _RunContext:
    """State of one run.

    ``snapshot`` is taken when the run starts. Failure handling reads the
    period id from it, since a rolled back session leaves ``period`` expired.
    """

    period: PayrollPeriod
    initiated_by: str | None
    run_id: UUID
    snapshot: PeriodSnapshot

    @property
    def payroll_period_id(self) -> UUID:
        return self.snapshot.payroll_period_id


class PayrollRunService:
    """Service for the payroll period lifecycle.

    Operations:
    - create_period: Open a new payroll period
    - run_payroll: Calculate every submitted employee for a period
    - run_period: Load the roster for a period and run it
    - close_period: Operator close after reviewing a partial run
    - get_calculations: Stored calculations for a period

    Per-employee failures are recorded and counted but never stop a run.
    Only faults outside per-employee calculation (roster, storage) fail
    the run as a whole. Notifications are published fire-and-forget, so
    listeners can neither slow nor change the outcome of a run.
    """

    def __init__(
        self,
        store: PayrollStore,
        emitter: AsyncEventEmitter,
        rate_source: RateSource,
        roster: EmployeeRoster | None = None,
        calculator: EmployeePayrollCalculator | None = None,
        run_lock: PeriodRunLock | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self.store = store
        self.emitter = emitter
        self.rate_source = rate_source
        self.roster = roster
        self.calculator = calculator or EmployeePayrollCalculator()
        self.run_lock = run_lock or PeriodRunLock()
        self.max_concurrency = max(1, max_concurrency)

    # === Period lifecycle ===

    async def create_period(
        self,
        name: str,
        period_start: date,
        period_end: date,
        created_by: str | None = None,
        payment_date: date | None = None,
    ) -> PayrollPeriod:
        """Open a new payroll period."""
        if period_end < period_start:
            raise ValueError("period_end must not be before period_start")

        period = PayrollPeriod(
            payroll_period_id=uuid4(),
            name=name,
            period_start=period_start,
            period_end=period_end,
            payment_date=payment_date,
            status=PeriodStatus.OPEN.value,
            total_employees=0,
            success_count=0,
            failure_count=0,
            total_gross_pay=Decimal("0"),
            total_deductions=Decimal("0"),
            total_net_pay=Decimal("0"),
            created_by=created_by,
        )
        await self.store.save_period(period)
        logger.info("Payroll period %s (%s) created by %s", period.payroll_period_id, name, created_by)

        self._publish(
            PayrollPeriodCreated(
                metadata=EventMetadata.create(actor_id=created_by),
                period=PeriodSnapshot.of(period),
            )
        )
        return period

    async def close_period(
        self,
        payroll_period_id: UUID,
        closed_by: str | None = None,
        acknowledge_failures: bool = False,
    ) -> PayrollPeriod:
        """Close a processing period after operator review.

        Refuses while failed calculations remain unless the operator
        explicitly acknowledges them.
        """
        period = await self.store.get_period(payroll_period_id)
        PayrollPeriodStateMachine.validate_transition(period.status, PeriodStatus.CLOSED)
        if self.run_lock.is_running(payroll_period_id):
            raise PayrollRunInProgressError(payroll_period_id)

        calculations = await self.store.get_calculations(payroll_period_id)
        failed = [c for c in calculations if c.status == "failed"]
        if failed and not acknowledge_failures:
            raise InvalidTransitionError(
                period.status,
                PeriodStatus.CLOSED,
                f"{len(failed)} employee(s) have failed calculations",
            )

        period.status = PeriodStatus.CLOSED.value
        period.closed_by = closed_by
        period.closed_at = _now()
        await self.store.save_period(period)
        logger.info(
            "Payroll period %s closed by %s (%d acknowledged failures)",
            payroll_period_id,
            closed_by,
            len(failed),
        )

        self._publish(
            PayrollPeriodClosed(
                metadata=EventMetadata.create(actor_id=closed_by),
                period=PeriodSnapshot.of(period),
                acknowledged_failures=len(failed),
            )
        )
        return period

    async def get_calculations(self, payroll_period_id: UUID) -> list[EmployeePayrollCalculation]:
        """Stored calculations for a period."""
        await self.store.get_period(payroll_period_id)
        return await self.store.get_calculations(payroll_period_id)

    # === Runs ===

    async def run_payroll(
        self,
        period: PayrollPeriod,
        employees: Sequence[RosterEntry],
        initiated_by: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> RunSummary:
        """Run payroll for an explicit set of employees.

        Raises InvalidTransitionError or ValueError (no side effects) when
        the period cannot run or the employee set is invalid, and
        PayrollRunInProgressError if the period is already running.
        Raises PayrollRunError after marking the period failed when the
        run aborts on an infrastructure fault.
        """
        employees = list(employees)
        self._check_can_run(period)
        self._check_employees(employees)

        async with self.run_lock.hold(period.payroll_period_id):
            ctx = await self._start(period, initiated_by, total_employees=len(employees))
            return await self._run_employees(ctx, employees, cancel_token)

    async def run_period(
        self,
        payroll_period_id: UUID,
        initiated_by: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> RunSummary:
        """Run payroll for a period over the roster's employees."""
        if self.roster is None:
            raise ValueError("No employee roster configured")

        period = await self.store.get_period(payroll_period_id)
        self._check_can_run(period)

        async with self.run_lock.hold(payroll_period_id):
            ctx = await self._start(period, initiated_by)
            try:
                employees = list(await self.roster.load_employees(period))
                self._check_employees(employees)
            except Exception as e:
                message = f"Could not load employees: {e}"
                await self._fail(ctx, message)
                raise PayrollRunError(payroll_period_id, message) from e

            period.total_employees = len(employees)
            logger.info(
                "Fetched %d employees for payroll period %s",
                len(employees),
                payroll_period_id,
            )
            return await self._run_employees(ctx, employees, cancel_token)

    def _check_can_run(self, period: PayrollPeriod) -> None:
        if not PayrollPeriodStateMachine.can_run(period.status):
            raise InvalidTransitionError(
                period.status,
                PeriodStatus.PROCESSING,
                "Payroll cannot be run for a closed period",
            )

    @staticmethod
    def _check_employees(employees: Sequence[RosterEntry]) -> None:
        if not employees:
            raise ValueError("No employees with payroll info to process")
        seen: set[UUID] = set()
        for employee in employees:
            if employee.employee_id in seen:
                raise ValueError(f"Employee {employee.employee_id} submitted more than once")
            seen.add(employee.employee_id)

    async def _start(
        self,
        period: PayrollPeriod,
        initiated_by: str | None,
        total_employees: int = 0,
    ) -> _RunContext:
        """Move the period to processing and announce the run."""
        from_status = period.status
        PayrollPeriodStateMachine.validate_transition(from_status, PeriodStatus.PROCESSING)

        period.status = PeriodStatus.PROCESSING.value
        period.calculation_started_at = _now()
        period.calculation_completed_at = None
        period.last_error = None
        period.total_employees = total_employees
        ctx = _RunContext(
            period=period,
            initiated_by=initiated_by,
            run_id=uuid4(),
            snapshot=PeriodSnapshot.of(period),
        )

        try:
            await self.store.save_period(period)
        except Exception as e:
            message = f"Could not lock payroll period for processing: {e}"
            await self._fail(ctx, message)
            raise PayrollRunError(ctx.payroll_period_id, message) from e

        if PayrollPeriodStateMachine.is_rerun(from_status, PeriodStatus.PROCESSING):
            logger.info("Re-running payroll period %s (was %s)", period.payroll_period_id, from_status)
        logger.info(
            "Starting payroll calculation for period %s (%s), initiated by %s",
            period.payroll_period_id,
            period.name,
            initiated_by,
        )
        self._publish(PayrollRunStarted(metadata=self._metadata(ctx), period=ctx.snapshot))
        return ctx

    async def _run_employees(
        self,
        ctx: _RunContext,
        employees: list[RosterEntry],
        cancel_token: CancellationToken | None,
    ) -> RunSummary:
        """Calculate and store every employee, then finish the run."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def process(employee: RosterEntry) -> CalculationResult | None:
            async with semaphore:
                if cancel_token is not None and cancel_token.cancelled:
                    return None
                return await self._process_employee(ctx, employee)

        tasks = [asyncio.create_task(process(employee)) for employee in employees]
        try:
            outcomes = await asyncio.gather(*tasks)
        except Exception as e:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            message = f"Payroll run aborted: {e}"
            logger.exception("Payroll run for period %s aborted", ctx.payroll_period_id)
            await self._fail(ctx, message)
            raise PayrollRunError(ctx.payroll_period_id, message) from e

        return await self._finish(ctx, outcomes)

    async def _process_employee(
        self, ctx: _RunContext, employee: RosterEntry
    ) -> CalculationResult:
        """Calculate one employee and store the outcome, success or failure.

        Storage errors propagate: they abort the run.
        """
        period = ctx.period
        try:
            result = await self.calculator.calculate_from_source(
                employee, period, self.rate_source
            )
        except Exception as e:
            logger.exception("Calculator raised for employee %s", employee.employee_id)
            result = CalculationResult.failed(
                employee.employee_id,
                period.payroll_period_id,
                FailureReason.UNEXPECTED_ERROR,
                f"Unexpected error: {e}",
            )

        calc = await self.store.upsert_calculation(period, result, ctx.initiated_by)

        if result.success:
            logger.info(
                "Employee %s calculated: gross %s, deductions %s, net %s",
                employee.employee_id,
                result.gross_pay,
                result.total_deductions,
                result.net_pay,
            )
            self._publish(
                EmployeePayrollCalculated(
                    metadata=self._metadata(ctx),
                    period=PeriodSnapshot.of(period),
                    employee=employee,
                    calculation=result,
                    calculation_id=calc.calculation_id,
                    version=calc.version,
                )
            )
        else:
            logger.warning(
                "Employee %s calculation failed (%s): %s",
                employee.employee_id,
                result.failure_reason.value if result.failure_reason else None,
                result.error_message,
            )
        return result

    async def _finish(
        self,
        ctx: _RunContext,
        outcomes: list[CalculationResult | None],
    ) -> RunSummary:
        """Count outcomes, settle the period status and announce completion."""
        period = ctx.period
        processed = [o for o in outcomes if o is not None]
        succeeded = [o for o in processed if o.success]
        success_count = len(succeeded)
        failure_count = len(processed) - success_count
        skipped_count = len(outcomes) - len(processed)
        cancelled = skipped_count > 0

        period.success_count = success_count
        period.failure_count = failure_count
        period.total_gross_pay = sum((o.gross_pay for o in succeeded), Decimal("0"))
        period.total_deductions = sum((o.total_deductions for o in succeeded), Decimal("0"))
        period.total_net_pay = sum((o.net_pay for o in succeeded), Decimal("0"))
        period.calculation_completed_at = _now()

        if failure_count == 0 and not cancelled:
            PayrollPeriodStateMachine.validate_transition(period.status, PeriodStatus.CLOSED)
            period.status = PeriodStatus.CLOSED.value
        # Otherwise the period stays processing until an operator reviews it.

        try:
            await self.store.save_period(period)
        except Exception as e:
            message = f"Could not save payroll period results: {e}"
            logger.exception("Finalizing payroll period %s failed", ctx.payroll_period_id)
            await self._fail(ctx, message)
            raise PayrollRunError(ctx.payroll_period_id, message) from e

        logger.info(
            "Payroll calculation complete for period %s: %d succeeded, %d failed, %d skipped; status %s",
            period.payroll_period_id,
            success_count,
            failure_count,
            skipped_count,
            period.status,
        )
        self._publish(
            PayrollRunCompleted(
                metadata=self._metadata(ctx),
                period=PeriodSnapshot.of(period),
                success_count=success_count,
                failure_count=failure_count,
                skipped_count=skipped_count,
            )
        )
        return RunSummary(
            payroll_period_id=period.payroll_period_id,
            success_count=success_count,
            failure_count=failure_count,
            initiated_by=ctx.initiated_by,
            skipped_count=skipped_count,
            cancelled=cancelled,
        )

    async def _fail(self, ctx: _RunContext, message: str) -> None:
        """Mark the period failed and announce it. Never raises.

        The period is reloaded from the store first, since a failed write
        may have rolled back the session it was loaded in.
        """
        logger.error("Payroll calculation failed for period %s: %s", ctx.payroll_period_id, message)
        try:
            period = await self.store.get_period(ctx.payroll_period_id)
            ctx.period = period
            period.status = PeriodStatus.FAILED.value
            period.last_error = message
            period.calculation_completed_at = _now()
            await self.store.save_period(period)
        except Exception:
            logger.exception(
                "Could not record failed status for period %s",
                ctx.payroll_period_id,
            )

        self._publish(
            PayrollRunFailed(
                metadata=self._metadata(ctx),
                period=replace(ctx.snapshot, status=PeriodStatus.FAILED.value),
                error_message=message,
            )
        )

    # === Notifications ===

    def _metadata(self, ctx: _RunContext) -> EventMetadata:
        return EventMetadata.create(correlation_id=ctx.run_id, actor_id=ctx.initiated_by)

    def _publish(self, event: PayrollEvent) -> None:
        try:
            self.emitter.publish(event)
        except Exception:
            logger.exception("Could not publish %s", event.event_type)


def _now() -> datetime:
    return datetime.now(timezone.utc)
