"""Type definitions for the per-employee calculation."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class RateType(str, Enum):
    """How the pay rate converts into base pay."""

    MONTHLY = "monthly"
    HOURLY = "hourly"


class DeductionMethod(str, Enum):
    """Deduction calculation methods."""

    FLAT = "flat"
    PERCENT = "percent"


class CalculationStatus(str, Enum):
    """Outcome of one employee's calculation."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Typed reasons a calculation can fail."""

    MISSING_RATE_DATA = "missing_rate_data"
    INVALID_HOURS = "invalid_hours"
    INVALID_DEDUCTION = "invalid_deduction"
    NEGATIVE_NET_PAY = "negative_net_pay"
    INPUT_SOURCE_ERROR = "input_source_error"
    UNEXPECTED_ERROR = "unexpected_error"


@dataclass(frozen=True)
class RosterEntry:
    """An employee submitted to a run."""

    employee_id: UUID
    employee_number: str | None = None
    full_name: str | None = None


@dataclass(frozen=True)
class AllowanceLine:
    name: str
    amount: Decimal


@dataclass(frozen=True)
class DeductionRule:
    """Deduction configuration as supplied by the rate source."""

    code: str
    calc_method: str
    amount: Decimal | None = None
    percent: Decimal | None = None


@dataclass(frozen=True)
class CalculationInputs:
    """Everything the calculator needs for one employee and period."""

    rate_type: str | None
    rate_amount: Decimal | None
    hours_worked: Decimal | None = None
    allowances: tuple[AllowanceLine, ...] = ()
    deductions: tuple[DeductionRule, ...] = ()


@dataclass(frozen=True)
class CalculationResult:
    """Result of calculating pay for one employee.

    Failed results carry zeroed amounts plus ``failure_reason`` and
    ``error_message``; successful results never carry either.
    """

    employee_id: UUID
    payroll_period_id: UUID
    status: CalculationStatus
    gross_pay: Decimal = Decimal("0")
    total_allowances: Decimal = Decimal("0")
    total_deductions: Decimal = Decimal("0")
    net_pay: Decimal = Decimal("0")
    breakdown: dict[str, Any] = field(default_factory=dict)
    failure_reason: FailureReason | None = None
    error_message: str | None = None

    @property
    def success(self) -> bool:
        return self.status == CalculationStatus.SUCCEEDED

    @classmethod
    def failed(
        cls,
        employee_id: UUID,
        payroll_period_id: UUID,
        reason: FailureReason,
        message: str,
    ) -> CalculationResult:
        """Build a failed result."""
        return cls(
            employee_id=employee_id,
            payroll_period_id=payroll_period_id,
            status=CalculationStatus.FAILED,
            failure_reason=reason,
            error_message=message,
        )
