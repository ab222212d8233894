"""Default listeners for payroll lifecycle events.

- PayrollAuditLogger: writes log lines and PayrollCalculationLog rows
- PayrollProgressTracker: keeps per-period progress for status screens
- PayrollOfficerNotifier: tells payroll officers how a run ended
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

from payroll_orchestrator.events.types import (
    EmployeePayrollCalculated,
    PayrollEvent,
    PayrollPeriodClosed,
    PayrollPeriodCreated,
    PayrollRunCompleted,
    PayrollRunFailed,
    PayrollRunStarted,
)
from payroll_orchestrator.models import PayrollCalculationLog

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from payroll_orchestrator.events.emitter import AsyncEventEmitter

logger = logging.getLogger(__name__)


class PayrollAuditLogger:
    """Audit trail for every payroll lifecycle event."""

    LOG_TYPES: dict[type[PayrollEvent], str] = {
        PayrollPeriodCreated: "period_created",
        PayrollRunStarted: "run_started",
        EmployeePayrollCalculated: "employee_calculated",
        PayrollRunCompleted: "run_completed",
        PayrollRunFailed: "run_failed",
        PayrollPeriodClosed: "period_closed",
    }

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self.session_factory = session_factory

    async def __call__(self, event: PayrollEvent) -> None:
        entry = self.build_entry(event)
        level = logging.ERROR if entry.severity == "error" else logging.INFO
        logger.log(
            level,
            "%s for period %s (%s): %s",
            entry.log_type,
            event.period.payroll_period_id,
            event.period.name,
            entry.message,
        )

        if self.session_factory is None:
            return
        async with self.session_factory() as session:
            session.add(entry)
            await session.commit()

    def build_entry(self, event: PayrollEvent) -> PayrollCalculationLog:
        """Map an event to an audit row (not yet persisted)."""
        log_type = self.LOG_TYPES.get(type(event), event.event_type)
        severity = "info"
        details: dict[str, Any] = {"event_id": str(event.metadata.event_id)}
        processed = success = failed = None

        if isinstance(event, EmployeePayrollCalculated):
            calc = event.calculation
            message = (
                f"Employee {event.employee.employee_number or event.employee.employee_id} "
                f"calculated: gross {calc.gross_pay}, deductions {calc.total_deductions}, "
                f"net {calc.net_pay}"
            )
            details["employee_id"] = str(event.employee.employee_id)
            details["calculation_id"] = str(event.calculation_id)
        elif isinstance(event, PayrollRunCompleted):
            processed = event.success_count + event.failure_count
            success = event.success_count
            failed = event.failure_count
            message = (
                f"Payroll calculation completed: {success} succeeded, {failed} failed"
            )
            if event.skipped_count:
                message += f", {event.skipped_count} skipped (cancelled)"
            if failed:
                severity = "warning"
        elif isinstance(event, PayrollRunFailed):
            severity = "error"
            message = f"Payroll calculation failed: {event.error_message}"
        elif isinstance(event, PayrollPeriodClosed):
            message = "Payroll period closed"
            if event.acknowledged_failures:
                severity = "warning"
                message += f" with {event.acknowledged_failures} acknowledged failure(s)"
        elif isinstance(event, PayrollRunStarted):
            message = "Payroll calculation started"
        else:
            message = f"Payroll period {event.period.name} created"

        return PayrollCalculationLog(
            payroll_period_id=event.period.payroll_period_id,
            log_type=log_type,
            severity=severity,
            message=message,
            details=details,
            employees_processed=processed,
            employees_success=success,
            employees_failed=failed,
            actor_id=event.user_id,
        )


@dataclass
class PeriodProgress:
    """Calculation progress for one period."""

    total: int = 0
    completed: int = 0
    finished: bool = False

    @property
    def percentage(self) -> Decimal:
        if self.total <= 0:
            return Decimal("0")
        return (Decimal(self.completed) * 100 / self.total).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )


class PayrollProgressTracker:
    """In-memory progress per period, fed by run notifications."""

    def __init__(self) -> None:
        self._progress: dict[UUID, PeriodProgress] = {}

    async def __call__(self, event: PayrollEvent) -> None:
        period_id = event.period.payroll_period_id
        if isinstance(event, PayrollRunStarted):
            self._progress[period_id] = PeriodProgress(total=event.period.total_employees)
            return

        progress = self._progress.setdefault(period_id, PeriodProgress())
        if isinstance(event, EmployeePayrollCalculated):
            progress.total = max(progress.total, event.period.total_employees)
            progress.completed += 1
        elif isinstance(event, (PayrollRunCompleted, PayrollRunFailed)):
            progress.finished = True

    def get(self, payroll_period_id: UUID) -> PeriodProgress | None:
        return self._progress.get(payroll_period_id)


class NotificationChannel(Protocol):
    """Delivery channel for officer notifications (mail, chat, in-app)."""

    async def send(self, subject: str, body: str) -> None: ...


class LoggingChannel:
    """Channel that only logs; used when no real delivery is configured."""

    async def send(self, subject: str, body: str) -> None:
        logger.info("Notification: %s\n%s", subject, body)


class PayrollOfficerNotifier:
    """Notify payroll officers when a run completes or fails."""

    def __init__(self, channel: NotificationChannel | None = None):
        self.channel = channel or LoggingChannel()

    async def __call__(self, event: PayrollEvent) -> None:
        if isinstance(event, PayrollRunCompleted):
            subject, body = self.completed_message(event)
        elif isinstance(event, PayrollRunFailed):
            subject, body = self.failed_message(event)
        else:
            return
        await self.channel.send(subject, body)

    @staticmethod
    def completed_message(event: PayrollRunCompleted) -> tuple[str, str]:
        subject = f"Payroll calculation completed: {event.period.name}"
        lines = [
            f"Payroll calculation completed for period {event.period.name}.",
            f"Successfully calculated: {event.success_count} employees",
        ]
        if event.failure_count > 0:
            lines.append(f"Failed calculations: {event.failure_count} employees")
        if event.skipped_count > 0:
            lines.append(f"Not processed (run cancelled): {event.skipped_count} employees")
        lines.append("Please review the results in the Payroll system.")
        return subject, "\n".join(lines)

    @staticmethod
    def failed_message(event: PayrollRunFailed) -> tuple[str, str]:
        subject = f"Payroll calculation failed: {event.period.name}"
        body = (
            f"Payroll calculation for period {event.period.name} could not complete.\n"
            f"Error: {event.error_message}"
        )
        return subject, body


def register_default_listeners(
    emitter: AsyncEventEmitter,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    channel: NotificationChannel | None = None,
) -> PayrollProgressTracker:
    """Wire the standard listeners; returns the progress tracker."""
    tracker = PayrollProgressTracker()
    emitter.on_all(PayrollAuditLogger(session_factory))
    emitter.on(
        [PayrollRunStarted, EmployeePayrollCalculated, PayrollRunCompleted, PayrollRunFailed],
        tracker,
    )
    emitter.on([PayrollRunCompleted, PayrollRunFailed], PayrollOfficerNotifier(channel))
    return tracker
