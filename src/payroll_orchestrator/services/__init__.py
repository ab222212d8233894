"""Payroll orchestration services."""

from payroll_orchestrator.services.locking_service import PeriodRunLock
from payroll_orchestrator.services.payroll_run_service import (
    CancellationToken,
    PayrollRunService,
    RunSummary,
)
from payroll_orchestrator.services.sources import (
    EmployeeRoster,
    RateSource,
    SqlAlchemyEmployeeRoster,
    SqlAlchemyRateSource,
)
from payroll_orchestrator.services.state_machine import PayrollPeriodStateMachine, PeriodStatus
from payroll_orchestrator.services.store import PayrollStore, SqlAlchemyPayrollStore

__all__ = [
    "CancellationToken",
    "EmployeeRoster",
    "PayrollPeriodStateMachine",
    "PayrollRunService",
    "PayrollStore",
    "PeriodRunLock",
    "PeriodStatus",
    "RateSource",
    "RunSummary",
    "SqlAlchemyEmployeeRoster",
    "SqlAlchemyPayrollStore",
    "SqlAlchemyRateSource",
]
