"""API routes."""

from payroll_orchestrator.api.routes.health import router as health_router
from payroll_orchestrator.api.routes.payroll_periods import router as payroll_periods_router

__all__ = ["payroll_periods_router", "health_router"]
