"""Single-run-per-period locking."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator
from uuid import UUID

from payroll_orchestrator.database import acquire_advisory_lock, release_advisory_lock
from payroll_orchestrator.errors import PayrollRunInProgressError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


class PeriodRunLock:
    """Prevents two runs for the same period from overlapping.

    One instance is shared by everything that starts runs in a process.
    The in-process registry covers runs inside one worker; when an engine
    is supplied, a PostgreSQL advisory lock held on a dedicated connection
    extends the guarantee across processes.
    """

    def __init__(self, engine: AsyncEngine | None = None):
        self.engine = engine
        self._running: set[UUID] = set()

    def is_running(self, payroll_period_id: UUID) -> bool:
        return payroll_period_id in self._running

    @asynccontextmanager
    async def hold(self, payroll_period_id: UUID) -> AsyncIterator[None]:
        """Hold the run lock for a period, raising if it is already held."""
        if payroll_period_id in self._running:
            raise PayrollRunInProgressError(payroll_period_id)
        self._running.add(payroll_period_id)
        try:
            if self.engine is None:
                yield
                return
            async with self._advisory(payroll_period_id):
                yield
        finally:
            self._running.discard(payroll_period_id)

    @asynccontextmanager
    async def _advisory(self, payroll_period_id: UUID) -> AsyncIterator[None]:
        lock_key = f"payroll_period:{payroll_period_id}"
        async with self.engine.connect() as conn:
            if not await acquire_advisory_lock(conn, lock_key):
                raise PayrollRunInProgressError(payroll_period_id)
            try:
                yield
            finally:
                try:
                    await release_advisory_lock(conn, lock_key)
                except Exception:
                    logger.exception("Failed to release advisory lock %s", lock_key)
