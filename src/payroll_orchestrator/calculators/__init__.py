"""Per-employee payroll calculation."""

from payroll_orchestrator.calculators.calculator import EmployeePayrollCalculator
from payroll_orchestrator.calculators.types import (
    CalculationInputs,
    CalculationResult,
    CalculationStatus,
    FailureReason,
    RosterEntry,
)

__all__ = [
    "EmployeePayrollCalculator",
    "CalculationInputs",
    "CalculationResult",
    "CalculationStatus",
    "FailureReason",
    "RosterEntry",
]
