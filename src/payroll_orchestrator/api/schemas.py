"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Payroll period schemas
# ============================================================================


class PayrollPeriodCreate(BaseModel):
    """Schema for opening a payroll period."""

    name: str = Field(min_length=1)
    period_start: date
    period_end: date
    payment_date: date | None = None

    @model_validator(mode="after")
    def check_dates(self) -> "PayrollPeriodCreate":
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class PayrollPeriodResponse(BaseModel):
    """Schema for payroll period response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_period_id: UUID
    name: str
    period_start: date
    period_end: date
    payment_date: date | None = None
    status: str
    total_employees: int
    success_count: int
    failure_count: int
    total_gross_pay: Decimal
    total_deductions: Decimal
    total_net_pay: Decimal
    calculation_started_at: datetime | None = None
    calculation_completed_at: datetime | None = None
    last_error: str | None = None
    created_by: str | None = None
    closed_by: str | None = None
    closed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class PayrollPeriodListResponse(BaseModel):
    """Schema for listing payroll periods."""

    items: list[PayrollPeriodResponse]
    total: int
    page: int
    page_size: int


class ClosePeriodRequest(BaseModel):
    """Operator close of a reviewed period."""

    acknowledge_failures: bool = False


# ============================================================================
# Run schemas
# ============================================================================


class RunSummaryResponse(BaseModel):
    """Outcome of a payroll run."""

    model_config = ConfigDict(from_attributes=True)

    payroll_period_id: UUID
    success_count: int
    failure_count: int
    skipped_count: int
    cancelled: bool
    initiated_by: str | None = None
    period_status: str


class ProgressResponse(BaseModel):
    """Calculation progress of the latest run."""

    payroll_period_id: UUID
    total: int
    completed: int
    percentage: Decimal
    finished: bool


# ============================================================================
# Calculation schemas
# ============================================================================


class CalculationResponse(BaseModel):
    """Schema for a stored employee calculation."""

    model_config = ConfigDict(from_attributes=True)

    calculation_id: UUID
    payroll_period_id: UUID
    employee_id: UUID
    status: str
    gross_pay: Decimal
    total_allowances: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    error_code: str | None = None
    error_message: str | None = None
    breakdown: dict[str, Any] = Field(default_factory=dict)
    version: int
    calculated_by: str | None = None
    calculated_at: datetime


class CalculationListResponse(BaseModel):
    """Schema for listing calculations of a period."""

    items: list[CalculationResponse]
    total: int
    succeeded: int
    failed: int


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: str | None = None
