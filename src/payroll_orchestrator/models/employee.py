"""Employee roster and pay input models.

These tables are the relational form of the roster and rate/rule sources
the run service consumes; they are read-only from the run's point of view.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_orchestrator.models.base import Base, TimestampMixin


class Employee(Base, TimestampMixin):
    """Employee master record."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    payroll_info: Mapped[EmployeePayrollInfo | None] = relationship(
        back_populates="employee", uselist=False
    )
    allowances: Mapped[list[EmployeeAllowance]] = relationship(back_populates="employee")
    deductions: Mapped[list[EmployeeDeduction]] = relationship(back_populates="employee")


class EmployeePayrollInfo(Base, TimestampMixin):
    """Pay rate configuration for an employee."""

    __tablename__ = "employee_payroll_info"

    employee_payroll_info_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    rate_type: Mapped[str] = mapped_column(String, nullable=False)
    rate_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "rate_type IN ('monthly', 'hourly')",
            name="employee_payroll_info_rate_type_check",
        ),
    )

    employee: Mapped[Employee] = relationship(back_populates="payroll_info")


class EmployeeAllowance(Base, TimestampMixin):
    """Recurring allowance added to gross pay."""

    __tablename__ = "employee_allowance"

    employee_allowance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    employee: Mapped[Employee] = relationship(back_populates="allowances")


class EmployeeDeduction(Base, TimestampMixin):
    """Recurring deduction (flat amount or percent of gross)."""

    __tablename__ = "employee_deduction"

    employee_deduction_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String, nullable=False)
    calc_method: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    percent: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    employee: Mapped[Employee] = relationship(back_populates="deductions")


class AttendanceSummary(Base, TimestampMixin):
    """Hours worked by an employee within a payroll period."""

    __tablename__ = "attendance_summary"

    attendance_summary_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    payroll_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.payroll_period_id", ondelete="CASCADE"),
        nullable=False,
    )
    hours_worked: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "employee_id",
            "payroll_period_id",
            name="attendance_summary_employee_period_unique",
        ),
    )
