"""Payroll lifecycle events.

All events are immutable frozen dataclasses carrying snapshots rather than
live ORM objects, so listeners running after the run has moved on see the
state as it was when the event was published.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from payroll_orchestrator.calculators.types import CalculationResult, RosterEntry

if TYPE_CHECKING:
    from payroll_orchestrator.models import PayrollPeriod


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every payroll event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID  # Links the events of one run
    actor_id: str | None  # User that triggered the operation
    actor_type: str  # 'user', 'system', 'scheduler'
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        correlation_id: UUID | None = None,
        actor_id: str | None = None,
        actor_type: str = "user",
        source_service: str = "payroll",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class PeriodSnapshot:
    """Point-in-time view of a payroll period."""

    payroll_period_id: UUID
    name: str
    period_start: date
    period_end: date
    status: str
    total_employees: int

    @classmethod
    def of(cls, period: PayrollPeriod) -> PeriodSnapshot:
        return cls(
            payroll_period_id=period.payroll_period_id,
            name=period.name,
            period_start=period.period_start,
            period_end=period.period_end,
            status=period.status,
            total_employees=period.total_employees or 0,
        )


@dataclass(frozen=True)
class PayrollEvent:
    """Base class for all payroll events."""

    metadata: EventMetadata
    period: PeriodSnapshot

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def user_id(self) -> str | None:
        return self.metadata.actor_id

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        return _serialize_dict(data)

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


@dataclass(frozen=True)
class PayrollPeriodCreated(PayrollEvent):
    """A payroll period was opened by an administrator."""


@dataclass(frozen=True)
class PayrollRunStarted(PayrollEvent):
    """A run started; the period is now processing."""


@dataclass(frozen=True)
class EmployeePayrollCalculated(PayrollEvent):
    """One employee's calculation succeeded and was stored."""

    employee: RosterEntry
    calculation: CalculationResult
    calculation_id: UUID
    version: int


@dataclass(frozen=True)
class PayrollRunCompleted(PayrollEvent):
    """Every submitted employee was processed (possibly with failures)."""

    success_count: int
    failure_count: int
    skipped_count: int = 0

    @property
    def total_count(self) -> int:
        return self.success_count + self.failure_count + self.skipped_count


@dataclass(frozen=True)
class PayrollRunFailed(PayrollEvent):
    """The run could not complete at all; the period is failed."""

    error_message: str


@dataclass(frozen=True)
class PayrollPeriodClosed(PayrollEvent):
    """An operator closed the period after review."""

    acknowledged_failures: int = 0
