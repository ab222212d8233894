"""Tests for the async event emitter."""

import asyncio
import threading
from datetime import date
from uuid import uuid4

import pytest

from payroll_orchestrator.events import (
    AsyncEventEmitter,
    EventMetadata,
    PayrollRunCompleted,
    PayrollRunStarted,
    PeriodSnapshot,
)

pytestmark = pytest.mark.asyncio


def _snapshot() -> PeriodSnapshot:
    return PeriodSnapshot(
        payroll_period_id=uuid4(),
        name="March 2026",
        period_start=date(2026, 3, 1),
        period_end=date(2026, 3, 31),
        status="processing",
        total_employees=2,
    )


def _started() -> PayrollRunStarted:
    return PayrollRunStarted(metadata=EventMetadata.create(actor_id="officer-7"), period=_snapshot())


def _completed() -> PayrollRunCompleted:
    return PayrollRunCompleted(
        metadata=EventMetadata.create(actor_id="officer-7"),
        period=_snapshot(),
        success_count=2,
        failure_count=0,
    )


class TestRegistration:
    async def test_handlers_run_in_registration_order(self):
        emitter = AsyncEventEmitter()
        calls: list[str] = []

        async def first(event):
            calls.append("first")

        async def second(event):
            calls.append("second")

        emitter.on(PayrollRunStarted, first)
        emitter.on(PayrollRunStarted, second)

        await emitter.emit(_started())

        assert calls == ["first", "second"]
        assert emitter.handlers_for(PayrollRunStarted) == [first, second]

    async def test_type_filter(self):
        emitter = AsyncEventEmitter()
        seen: list[str] = []

        async def handler(event):
            seen.append(event.event_type)

        emitter.on([PayrollRunCompleted], handler)

        await emitter.emit(_started())
        await emitter.emit(_completed())

        assert seen == ["PayrollRunCompleted"]

    async def test_on_all_and_off(self):
        emitter = AsyncEventEmitter()
        seen: list[str] = []

        async def handler(event):
            seen.append(event.event_type)

        emitter.on_all(handler)
        await emitter.emit(_started())
        emitter.off(handler)
        await emitter.emit(_completed())

        assert seen == ["PayrollRunStarted"]
        assert emitter.handlers_for(PayrollRunCompleted) == []

    async def test_sync_handler_runs_off_the_event_loop(self):
        emitter = AsyncEventEmitter()
        threads: list[int] = []

        def handler(event):
            threads.append(threading.get_ident())

        emitter.on(PayrollRunStarted, handler)
        errors = await emitter.emit(_started())

        assert errors == []
        assert threads and threads[0] != threading.get_ident()


class TestIsolation:
    async def test_failing_handler_does_not_stop_others(self):
        emitter = AsyncEventEmitter()
        delivered: list[str] = []

        async def broken(event):
            raise RuntimeError("mail server down")

        async def healthy(event):
            delivered.append(event.event_type)

        emitter.on(PayrollRunCompleted, broken)
        emitter.on(PayrollRunCompleted, healthy)

        errors = await emitter.emit(_completed())

        assert delivered == ["PayrollRunCompleted"]
        assert len(errors) == 1
        assert isinstance(errors[0], RuntimeError)

    async def test_slow_handler_times_out(self):
        emitter = AsyncEventEmitter(handler_timeout=0.05)
        delivered: list[str] = []

        async def stalled(event):
            await asyncio.sleep(5)

        async def healthy(event):
            delivered.append(event.event_type)

        emitter.on_all(stalled)
        emitter.on_all(healthy)

        errors = await emitter.emit(_started())

        assert delivered == ["PayrollRunStarted"]
        assert len(errors) == 1
        assert isinstance(errors[0], asyncio.TimeoutError)


class TestPublish:
    async def test_publish_does_not_wait_for_handlers(self):
        emitter = AsyncEventEmitter()
        release = asyncio.Event()
        delivered: list[str] = []

        async def waiting(event):
            await release.wait()
            delivered.append(event.event_type)

        emitter.on_all(waiting)

        emitter.publish(_started())
        await asyncio.sleep(0)

        assert delivered == []
        assert emitter.pending_count == 1

        release.set()
        await emitter.drain()

        assert delivered == ["PayrollRunStarted"]
        assert emitter.pending_count == 0

    async def test_publish_swallows_handler_errors(self):
        emitter = AsyncEventEmitter()

        async def broken(event):
            raise ValueError("bad template")

        emitter.on_all(broken)
        emitter.publish(_completed())

        await emitter.drain()

        assert emitter.pending_count == 0

    async def test_drain_with_nothing_pending(self):
        emitter = AsyncEventEmitter()
        await emitter.drain()
        assert emitter.pending_count == 0


class TestSerialization:
    async def test_event_to_dict(self):
        event = _completed()

        data = event.to_dict()

        assert data["event_type"] == "PayrollRunCompleted"
        assert data["success_count"] == 2
        assert data["period"]["period_start"] == "2026-03-01"
        assert data["metadata"]["actor_id"] == "officer-7"
        assert event.user_id == "officer-7"
        assert event.total_count == 2
        assert '"PayrollRunCompleted"' in event.to_json()
