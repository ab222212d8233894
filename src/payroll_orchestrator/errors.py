"""Exception hierarchy for payroll operations.

Per-employee calculation problems are not exceptions: they come back as
failed ``CalculationResult`` values. The classes here cover the cases that
stop an operation as a whole.
"""

from __future__ import annotations

from uuid import UUID


class PayrollError(Exception):
    """Base class for payroll orchestration errors."""


class InvalidTransitionError(PayrollError):
    """Raised when an invalid period state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        from_status = getattr(from_status, "value", from_status)
        to_status = getattr(to_status, "value", to_status)
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PeriodNotFoundError(PayrollError):
    """Raised when a payroll period does not exist."""

    def __init__(self, payroll_period_id: UUID):
        self.payroll_period_id = payroll_period_id
        super().__init__(f"Payroll period {payroll_period_id} not found")


class PayrollRunInProgressError(PayrollError):
    """Raised when a run is requested for a period that is already running."""

    def __init__(self, payroll_period_id: UUID):
        self.payroll_period_id = payroll_period_id
        super().__init__(f"A payroll run is already in progress for period {payroll_period_id}")


class CalculationsImmutableError(PayrollError):
    """Raised when writing calculations into a closed period."""

    def __init__(self, payroll_period_id: UUID):
        self.payroll_period_id = payroll_period_id
        super().__init__(
            f"Calculations for closed period {payroll_period_id} cannot be modified"
        )


class RosterUnavailableError(PayrollError):
    """Raised when the employee roster for a period cannot be loaded."""


class PayrollRunError(PayrollError):
    """Raised when a run aborted on an infrastructure fault.

    The period has been marked ``failed`` and a run-failed notification
    published before this is raised.
    """

    def __init__(self, payroll_period_id: UUID, message: str):
        self.payroll_period_id = payroll_period_id
        self.message = message
        super().__init__(f"Payroll run for period {payroll_period_id} failed: {message}")
