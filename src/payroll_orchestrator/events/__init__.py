"""Payroll lifecycle events package.

This package provides:
- Typed lifecycle events for payroll periods and runs
- Event emitter for publishing events to listeners
- Default listeners (audit log, progress, officer notification)
"""

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
from payroll_orchestrator.events.emitter import AsyncEventEmitter, EventHandler

__all__ = [
    "EmployeePayrollCalculated",
    "EventMetadata",
    "PayrollEvent",
    "PayrollPeriodClosed",
    "PayrollPeriodCreated",
    "PayrollRunCompleted",
    "PayrollRunFailed",
    "PayrollRunStarted",
    "PeriodSnapshot",
    "AsyncEventEmitter",
    "EventHandler",
]
