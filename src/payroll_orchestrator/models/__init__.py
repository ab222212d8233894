"""SQLAlchemy ORM models."""

from payroll_orchestrator.models.base import Base, TimestampMixin
from payroll_orchestrator.models.employee import (
    AttendanceSummary,
    Employee,
    EmployeeAllowance,
    EmployeeDeduction,
    EmployeePayrollInfo,
)
from payroll_orchestrator.models.payroll import (
    EmployeePayrollCalculation,
    PayrollCalculationLog,
    PayrollPeriod,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "AttendanceSummary",
    "Employee",
    "EmployeeAllowance",
    "EmployeeDeduction",
    "EmployeePayrollInfo",
    "EmployeePayrollCalculation",
    "PayrollCalculationLog",
    "PayrollPeriod",
]
