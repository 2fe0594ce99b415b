import asyncio
import logging
from dataclasses import dataclass, field

import pytest

from achievements.workers.loop import ReconcileLoop
from achievements.workers.runner import (
    ReconcileRuntimeSettings,
    ReconcileRuntimeState,
    run_reconcile_until_stopped,
)
from tests.unit.service_seed import ServiceWorld, competition_fields


@pytest.mark.unit
def test_reconcile_loop_run_once_reports_findings() -> None:
    world = ServiceWorld()

    async def _run() -> None:
        orphan = await world.content.create(owner_id="S1", fields=competition_fields())
        loop = ReconcileLoop(role="reconciler", reconciler=world.reconciler())

        assert await loop.run_once() is True
        assert world.content.soft_deletes == [orphan.content_id]
        assert await loop.run_once() is False

    asyncio.run(_run())


@pytest.mark.unit
def test_reconcile_loop_dry_run_leaves_documents() -> None:
    world = ServiceWorld()

    async def _run() -> None:
        await world.content.create(owner_id="S1", fields=competition_fields())
        loop = ReconcileLoop(role="reconciler", reconciler=world.reconciler(), dry_run=True)

        assert await loop.run_once() is True
        assert world.content.soft_deletes == []

    asyncio.run(_run())


@dataclass
class _Tunable:
    grace_seconds: int = 0
    batch_size: int = 0


@dataclass
class _FlakyLoop:
    calls: int = 0
    reconciler: _Tunable = field(default_factory=_Tunable)

    async def run_once(self) -> bool:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("boom")
        return False


@pytest.mark.unit
def test_runner_survives_errors_and_continues() -> None:
    flaky_loop = _FlakyLoop()
    stop_event = asyncio.Event()
    settings = ReconcileRuntimeSettings(interval_ms=1, error_backoff_ms=1, grace_seconds=42, batch_size=7)
    state = ReconcileRuntimeState()

    async def _run() -> None:
        task = asyncio.create_task(
            run_reconcile_until_stopped(
                reconcile_loop=flaky_loop,  # pyright: ignore[reportArgumentType]
                role="reconciler",
                run_id="run-1",
                stop_event=stop_event,
                settings=settings,
                logger=logging.getLogger("test"),
                state=state,
            )
        )
        await asyncio.sleep(0.02)
        stop_event.set()
        await task

    asyncio.run(_run())
    assert flaky_loop.calls >= 2
    assert flaky_loop.reconciler.grace_seconds == 42
    assert flaky_loop.reconciler.batch_size == 7
    assert state.started is True
    assert state.stopped is True
    assert state.ticks_total >= 2
    assert state.errors_total == 1
    assert state.idle_ticks_total >= 1


@pytest.mark.unit
def test_runner_counts_sweeps_with_findings() -> None:
    world = ServiceWorld()
    loop = ReconcileLoop(role="reconciler", reconciler=world.reconciler())
    stop_event = asyncio.Event()
    settings = ReconcileRuntimeSettings(interval_ms=1, error_backoff_ms=1, grace_seconds=0)
    state = ReconcileRuntimeState()

    async def _run() -> None:
        await world.content.create(owner_id="S1", fields=competition_fields())
        task = asyncio.create_task(
            run_reconcile_until_stopped(
                reconcile_loop=loop,
                role="reconciler",
                run_id="run-findings",
                stop_event=stop_event,
                settings=settings,
                logger=logging.getLogger("test"),
                state=state,
            )
        )
        await asyncio.sleep(0.02)
        stop_event.set()
        await task

    asyncio.run(_run())
    assert state.sweeps_with_findings_total == 1
    assert state.errors_total == 0
    assert len(world.content.soft_deletes) == 1
