"""Per-employee payroll calculator.

Calculation pipeline (stable order per employee):
1) Validate rate data and hours
2) Compute base pay (monthly rate, or hourly rate x hours)
3) Add allowances to get gross
4) Apply deductions (flat amount or percent of gross)
5) Compute net and reject negative net pay

``calculate`` is a pure function over its arguments, so different
employees can be calculated concurrently without coordination.
``calculate_from_source`` is the boundary to the external rate source:
whatever the source raises is converted into a failed result.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from payroll_orchestrator.calculators.types import (
    CalculationInputs,
    CalculationResult,
    CalculationStatus,
    DeductionMethod,
    DeductionRule,
    FailureReason,
    RateType,
    RosterEntry,
)

if TYPE_CHECKING:
    from payroll_orchestrator.models import PayrollPeriod
    from payroll_orchestrator.services.sources import RateSource

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
HOURS_PER_DAY = Decimal("24")


class CalculationFailure(Exception):
    """Internal signal for a typed validation failure."""

    def __init__(self, reason: FailureReason, message: str):
        self.reason = reason
        self.message = message
        super().__init__(message)


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class EmployeePayrollCalculator:
    """Stateless calculator turning pay inputs into a monetary breakdown."""

    def calculate(
        self,
        employee: RosterEntry,
        period: PayrollPeriod,
        inputs: CalculationInputs,
    ) -> CalculationResult:
        """Calculate one employee's pay for a period. Never raises."""
        try:
            return self._calculate(employee, period, inputs)
        except CalculationFailure as e:
            return CalculationResult.failed(
                employee.employee_id, period.payroll_period_id, e.reason, e.message
            )
        except Exception as e:
            logger.exception("Unexpected error calculating employee %s", employee.employee_id)
            return CalculationResult.failed(
                employee.employee_id,
                period.payroll_period_id,
                FailureReason.UNEXPECTED_ERROR,
                f"Unexpected error: {e}",
            )

    async def calculate_from_source(
        self,
        employee: RosterEntry,
        period: PayrollPeriod,
        source: RateSource,
    ) -> CalculationResult:
        """Fetch inputs from the rate source and calculate. Never raises."""
        try:
            inputs = await source.get_inputs(employee, period)
        except Exception as e:
            logger.warning(
                "Rate source failed for employee %s in period %s: %s",
                employee.employee_id,
                period.payroll_period_id,
                e,
            )
            return CalculationResult.failed(
                employee.employee_id,
                period.payroll_period_id,
                FailureReason.INPUT_SOURCE_ERROR,
                f"Could not load pay inputs: {e}",
            )
        return self.calculate(employee, period, inputs)

    def _calculate(
        self,
        employee: RosterEntry,
        period: PayrollPeriod,
        inputs: CalculationInputs,
    ) -> CalculationResult:
        rate = self._validate_rate(inputs)
        hours = self._validate_hours(inputs, period)

        if inputs.rate_type == RateType.HOURLY:
            base_pay = _money(rate * hours)
        else:
            base_pay = _money(rate)

        allowance_lines = [
            {"name": a.name, "amount": str(_money(a.amount))}
            for a in inputs.allowances
        ]
        total_allowances = sum(
            (_money(a.amount) for a in inputs.allowances), Decimal("0")
        )
        gross = base_pay + total_allowances

        deduction_lines = []
        total_deductions = Decimal("0")
        for rule in inputs.deductions:
            amount = self._calculate_deduction(rule, gross)
            if amount <= 0:
                continue
            deduction_lines.append({"code": rule.code, "amount": str(amount)})
            total_deductions += amount

        net = gross - total_deductions
        if net < 0:
            raise CalculationFailure(
                FailureReason.NEGATIVE_NET_PAY, f"Negative net pay: {net}"
            )

        return CalculationResult(
            employee_id=employee.employee_id,
            payroll_period_id=period.payroll_period_id,
            status=CalculationStatus.SUCCEEDED,
            gross_pay=gross,
            total_allowances=total_allowances,
            total_deductions=total_deductions,
            net_pay=net,
            breakdown={
                "rate_type": inputs.rate_type,
                "rate": str(rate),
                "hours": str(hours) if hours is not None else None,
                "base_pay": str(base_pay),
                "allowances": allowance_lines,
                "deductions": deduction_lines,
            },
        )

    def _validate_rate(self, inputs: CalculationInputs) -> Decimal:
        if inputs.rate_type not in (RateType.MONTHLY.value, RateType.HOURLY.value):
            raise CalculationFailure(
                FailureReason.MISSING_RATE_DATA,
                f"Unknown or missing rate type: {inputs.rate_type!r}",
            )
        if inputs.rate_amount is None or inputs.rate_amount <= 0:
            raise CalculationFailure(
                FailureReason.MISSING_RATE_DATA,
                "No positive pay rate configured",
            )
        return inputs.rate_amount

    def _validate_hours(
        self, inputs: CalculationInputs, period: PayrollPeriod
    ) -> Decimal | None:
        hours = inputs.hours_worked
        if hours is None:
            if inputs.rate_type == RateType.HOURLY:
                raise CalculationFailure(
                    FailureReason.INVALID_HOURS,
                    "Hourly employee has no recorded hours for the period",
                )
            return None

        if hours < 0:
            raise CalculationFailure(
                FailureReason.INVALID_HOURS, f"Negative hours worked: {hours}"
            )

        max_hours = HOURS_PER_DAY * period.day_count
        if hours > max_hours:
            raise CalculationFailure(
                FailureReason.INVALID_HOURS,
                f"Hours worked {hours} exceed the {max_hours} hours in the period",
            )
        return hours

    def _calculate_deduction(self, rule: DeductionRule, gross: Decimal) -> Decimal:
        if rule.calc_method == DeductionMethod.FLAT:
            if rule.amount is None:
                raise CalculationFailure(
                    FailureReason.INVALID_DEDUCTION,
                    f"Deduction {rule.code} has no amount",
                )
            return _money(rule.amount)

        if rule.calc_method == DeductionMethod.PERCENT:
            if rule.percent is None:
                raise CalculationFailure(
                    FailureReason.INVALID_DEDUCTION,
                    f"Deduction {rule.code} has no percent",
                )
            return _money(gross * rule.percent / 100)

        raise CalculationFailure(
            FailureReason.INVALID_DEDUCTION,
            f"Unsupported calc_method for {rule.code}: {rule.calc_method}",
        )
