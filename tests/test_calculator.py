"""Tests for the per-employee payroll calculator."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_orchestrator.calculators.calculator import EmployeePayrollCalculator
from payroll_orchestrator.calculators.types import (
    AllowanceLine,
    CalculationInputs,
    CalculationStatus,
    DeductionRule,
    FailureReason,
    RosterEntry,
)
from payroll_orchestrator.models import PayrollPeriod

@pytest.fixture
def calculator() -> EmployeePayrollCalculator:
    return EmployeePayrollCalculator()


@pytest.fixture
def period() -> PayrollPeriod:
    return PayrollPeriod(
        payroll_period_id=uuid4(),
        name="January 2026",
        period_start=date(2026, 1, 1),
        period_end=date(2026, 1, 31),
        status="processing",
    )


@pytest.fixture
def employee() -> RosterEntry:
    return RosterEntry(employee_id=uuid4(), employee_number="E001", full_name="Ada Lovelace")


class TestSuccessfulCalculation:
    """Gross, deductions and net for valid inputs."""

    def test_monthly_with_allowances_and_deductions(self, calculator, employee, period):
        inputs = CalculationInputs(
            rate_type="monthly",
            rate_amount=Decimal("5000.00"),
            allowances=(
                AllowanceLine(name="Transport", amount=Decimal("300.00")),
                AllowanceLine(name="Meal", amount=Decimal("200.00")),
            ),
            deductions=(
                DeductionRule(code="UNION", calc_method="flat", amount=Decimal("100.00")),
                DeductionRule(code="PENSION", calc_method="percent", percent=Decimal("5")),
            ),
        )

        result = calculator.calculate(employee, period, inputs)

        assert result.success
        assert result.status == CalculationStatus.SUCCEEDED
        assert result.total_allowances == Decimal("500.00")
        assert result.gross_pay == Decimal("5500.00")
        # 100.00 flat + 5% of 5500.00
        assert result.total_deductions == Decimal("375.00")
        assert result.net_pay == Decimal("5125.00")
        assert result.failure_reason is None
        assert result.error_message is None
        assert result.breakdown["base_pay"] == "5000.00"
        assert [d["code"] for d in result.breakdown["deductions"]] == ["UNION", "PENSION"]

    def test_hourly_rate_times_hours(self, calculator, employee, period):
        inputs = CalculationInputs(
            rate_type="hourly",
            rate_amount=Decimal("25.50"),
            hours_worked=Decimal("160"),
        )

        result = calculator.calculate(employee, period, inputs)

        assert result.success
        assert result.gross_pay == Decimal("4080.00")
        assert result.net_pay == Decimal("4080.00")
        assert result.breakdown["hours"] == "160"

    def test_monthly_ignores_missing_hours(self, calculator, employee, period):
        inputs = CalculationInputs(rate_type="monthly", rate_amount=Decimal("3000"))

        result = calculator.calculate(employee, period, inputs)

        assert result.success
        assert result.breakdown["hours"] is None

    def test_percent_deduction_rounds_half_up(self, calculator, employee, period):
        inputs = CalculationInputs(
            rate_type="monthly",
            rate_amount=Decimal("1000.50"),
            deductions=(DeductionRule(code="TAX", calc_method="percent", percent=Decimal("1")),),
        )

        result = calculator.calculate(employee, period, inputs)

        # 1% of 1000.50 = 10.005
        assert result.total_deductions == Decimal("10.01")
        assert result.net_pay == Decimal("990.49")

    def test_zero_deduction_is_skipped(self, calculator, employee, period):
        inputs = CalculationInputs(
            rate_type="monthly",
            rate_amount=Decimal("2000"),
            deductions=(DeductionRule(code="LOAN", calc_method="flat", amount=Decimal("0")),),
        )

        result = calculator.calculate(employee, period, inputs)

        assert result.success
        assert result.total_deductions == Decimal("0")
        assert result.breakdown["deductions"] == []

    def test_net_pay_of_zero_is_allowed(self, calculator, employee, period):
        inputs = CalculationInputs(
            rate_type="monthly",
            rate_amount=Decimal("1000"),
            deductions=(DeductionRule(code="ADVANCE", calc_method="flat", amount=Decimal("1000")),),
        )

        result = calculator.calculate(employee, period, inputs)

        assert result.success
        assert result.net_pay == Decimal("0")

    def test_calculation_is_deterministic(self, calculator, employee, period):
        inputs = CalculationInputs(
            rate_type="hourly",
            rate_amount=Decimal("18.75"),
            hours_worked=Decimal("151.5"),
            deductions=(DeductionRule(code="TAX", calc_method="percent", percent=Decimal("12.5")),),
        )

        assert calculator.calculate(employee, period, inputs) == calculator.calculate(
            employee, period, inputs
        )


class TestValidationFailures:
    """Invalid inputs come back as typed failures, never exceptions."""

    @pytest.mark.parametrize(
        "inputs",
        [
            CalculationInputs(rate_type="monthly", rate_amount=None),
            CalculationInputs(rate_type="monthly", rate_amount=Decimal("0")),
            CalculationInputs(rate_type="hourly", rate_amount=Decimal("-5"), hours_worked=Decimal("8")),
            CalculationInputs(rate_type=None, rate_amount=Decimal("5000")),
            CalculationInputs(rate_type="weekly", rate_amount=Decimal("5000")),
        ],
    )
    def test_missing_rate_data(self, calculator, employee, period, inputs):
        result = calculator.calculate(employee, period, inputs)

        assert result.status == CalculationStatus.FAILED
        assert result.failure_reason == FailureReason.MISSING_RATE_DATA

    @pytest.mark.parametrize(
        "rate_type,hours",
        [
            ("hourly", None),
            ("hourly", Decimal("-1")),
            ("monthly", Decimal("-0.5")),
            # January holds 31 * 24 = 744 hours
            ("hourly", Decimal("744.01")),
        ],
    )
    def test_invalid_hours(self, calculator, employee, period, rate_type, hours):
        inputs = CalculationInputs(
            rate_type=rate_type, rate_amount=Decimal("20"), hours_worked=hours
        )

        result = calculator.calculate(employee, period, inputs)

        assert not result.success
        assert result.failure_reason == FailureReason.INVALID_HOURS

    def test_hours_filling_whole_period_are_accepted(self, calculator, employee, period):
        inputs = CalculationInputs(
            rate_type="hourly", rate_amount=Decimal("10"), hours_worked=Decimal("744")
        )

        assert calculator.calculate(employee, period, inputs).success

    @pytest.mark.parametrize(
        "rule",
        [
            DeductionRule(code="TAX", calc_method="percent"),
            DeductionRule(code="UNION", calc_method="flat"),
            DeductionRule(code="ODD", calc_method="tiered", amount=Decimal("10")),
        ],
    )
    def test_invalid_deduction(self, calculator, employee, period, rule):
        inputs = CalculationInputs(
            rate_type="monthly", rate_amount=Decimal("1000"), deductions=(rule,)
        )

        result = calculator.calculate(employee, period, inputs)

        assert result.failure_reason == FailureReason.INVALID_DEDUCTION
        assert rule.code in result.error_message

    def test_negative_net_pay(self, calculator, employee, period):
        inputs = CalculationInputs(
            rate_type="monthly",
            rate_amount=Decimal("1000"),
            deductions=(DeductionRule(code="LOAN", calc_method="flat", amount=Decimal("1500")),),
        )

        result = calculator.calculate(employee, period, inputs)

        assert result.failure_reason == FailureReason.NEGATIVE_NET_PAY
        assert result.error_message == "Negative net pay: -500.00"
        # Failed results never carry amounts
        assert result.gross_pay == Decimal("0")
        assert result.net_pay == Decimal("0")
        assert result.breakdown == {}

    def test_unexpected_error_is_captured(self, calculator, employee, period):
        inputs = CalculationInputs(rate_type="monthly", rate_amount="5000")  # type: ignore[arg-type]

        result = calculator.calculate(employee, period, inputs)

        assert result.failure_reason == FailureReason.UNEXPECTED_ERROR
        assert result.error_message.startswith("Unexpected error:")

    def test_malformed_input_lines_are_captured(self, calculator, employee, period):
        inputs = CalculationInputs(
            rate_type="monthly",
            rate_amount=Decimal("100"),
            allowances=(None,),  # type: ignore[arg-type]
        )

        result = calculator.calculate(employee, period, inputs)

        assert result.status == CalculationStatus.FAILED
        assert result.failure_reason == FailureReason.UNEXPECTED_ERROR

    def test_failure_identifies_employee_and_period(self, calculator, employee, period):
        result = calculator.calculate(
            employee, period, CalculationInputs(rate_type="monthly", rate_amount=None)
        )

        assert result.employee_id == employee.employee_id
        assert result.payroll_period_id == period.payroll_period_id


@pytest.mark.asyncio
class TestCalculateFromSource:
    """The async boundary to the rate source."""

    async def test_uses_source_inputs(self, calculator, employee, period):
        class Source:
            async def get_inputs(self, employee, period):
                return CalculationInputs(rate_type="monthly", rate_amount=Decimal("4200"))

        result = await calculator.calculate_from_source(employee, period, Source())

        assert result.success
        assert result.net_pay == Decimal("4200.00")

    async def test_source_error_becomes_failure(self, calculator, employee, period):
        class BrokenSource:
            async def get_inputs(self, employee, period):
                raise TimeoutError("rate service timed out")

        result = await calculator.calculate_from_source(employee, period, BrokenSource())

        assert result.failure_reason == FailureReason.INPUT_SOURCE_ERROR
        assert "rate service timed out" in result.error_message

    async def test_malformed_source_inputs_become_failure(self, calculator, employee, period):
        class MalformedSource:
            async def get_inputs(self, employee, period):
                return CalculationInputs(
                    rate_type="monthly",
                    rate_amount=Decimal("100"),
                    allowances=(None,),  # type: ignore[arg-type]
                )

        result = await calculator.calculate_from_source(employee, period, MalformedSource())

        assert not result.success
        assert result.failure_reason == FailureReason.UNEXPECTED_ERROR
        assert result.employee_id == employee.employee_id
