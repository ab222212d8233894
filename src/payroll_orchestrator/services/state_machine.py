"""Payroll period state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from payroll_orchestrator.errors import InvalidTransitionError


class PeriodStatus(str, Enum):
    """Payroll period status values."""

    OPEN = "open"
    PROCESSING = "processing"
    CLOSED = "closed"
    FAILED = "failed"


class PayrollPeriodStateMachine:
    """State machine for payroll period status transitions.

    Allowed transitions:
    - open → processing (run started)
    - processing → processing (re-run after a partial completion)
    - processing → closed (clean run, or operator close after review)
    - processing → failed (run aborted)
    - failed → processing (new run)
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        PeriodStatus.OPEN: [PeriodStatus.PROCESSING],
        PeriodStatus.PROCESSING: [
            PeriodStatus.PROCESSING,
            PeriodStatus.CLOSED,
            PeriodStatus.FAILED,
        ],
        PeriodStatus.FAILED: [PeriodStatus.PROCESSING],
        PeriodStatus.CLOSED: [],  # Terminal state
    }

    # Statuses where a run may be started
    RUN_ALLOWED = {
        PeriodStatus.OPEN,
        PeriodStatus.PROCESSING,
        PeriodStatus.FAILED,
    }

    # Statuses where calculations are immutable
    RESULTS_IMMUTABLE = {
        PeriodStatus.CLOSED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_run(cls, status: str) -> bool:
        """Check if a payroll run may start in this status."""
        return status in cls.RUN_ALLOWED

    @classmethod
    def are_results_immutable(cls, status: str) -> bool:
        """Check if calculations are immutable in this status."""
        return status in cls.RESULTS_IMMUTABLE

    @classmethod
    def is_rerun(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition restarts a run on a period that already ran."""
        return to_status == PeriodStatus.PROCESSING and from_status in (
            PeriodStatus.PROCESSING,
            PeriodStatus.FAILED,
        )

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
