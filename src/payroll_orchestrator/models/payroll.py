"""Payroll period, calculation, and calculation log models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_orchestrator.models.base import Base, TimestampMixin, utcnow


class PayrollPeriod(Base, TimestampMixin):
    """Pay cycle window and the bookkeeping of its latest run."""

    __tablename__ = "payroll_period"

    payroll_period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="open")

    # Run bookkeeping
    total_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gross_pay: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    total_net_pay: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    calculation_started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    calculation_completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    closed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'processing', 'closed', 'failed')",
            name="payroll_period_status_check",
        ),
        CheckConstraint("period_end >= period_start", name="payroll_period_dates_check"),
    )

    calculations: Mapped[list[EmployeePayrollCalculation]] = relationship(
        back_populates="payroll_period"
    )

    @property
    def day_count(self) -> int:
        """Number of calendar days covered, inclusive."""
        return (self.period_end - self.period_start).days + 1


class EmployeePayrollCalculation(Base):
    """One calculation per (employee, period); recalculation overwrites in place."""

    __tablename__ = "employee_payroll_calculation"

    calculation_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.payroll_period_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    gross_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_allowances: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    net_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String, nullable=False)
    error_code: Mapped[str | None] = mapped_column(String, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    breakdown: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    calculated_by: Mapped[str | None] = mapped_column(String, nullable=True)
    calculated_at: Mapped[datetime] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "payroll_period_id",
            "employee_id",
            name="employee_payroll_calculation_period_employee_unique",
        ),
        CheckConstraint(
            "status IN ('succeeded', 'failed')",
            name="employee_payroll_calculation_status_check",
        ),
        CheckConstraint(
            "(status = 'failed') = (error_code IS NOT NULL)",
            name="employee_payroll_calculation_error_check",
        ),
    )

    payroll_period: Mapped[PayrollPeriod] = relationship(back_populates="calculations")


class PayrollCalculationLog(Base, TimestampMixin):
    """Audit trail entry for payroll lifecycle notifications."""

    __tablename__ = "payroll_calculation_log"

    log_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.payroll_period_id", ondelete="CASCADE"),
        nullable=False,
    )
    log_type: Mapped[str] = mapped_column(String, nullable=False)
    severity: Mapped[str] = mapped_column(String, nullable=False, default="info")
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    employees_processed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    employees_success: Mapped[int | None] = mapped_column(Integer, nullable=True)
    employees_failed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    actor_id: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "severity IN ('info', 'warning', 'error')",
            name="payroll_calculation_log_severity_check",
        ),
    )
