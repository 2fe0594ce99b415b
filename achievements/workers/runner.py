from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from achievements.settings import _env_int
from achievements.workers.loop import ReconcileLoop


@dataclass(frozen=True)
class ReconcileRuntimeSettings:
    interval_ms: int = 60000
    error_backoff_ms: int = 5000
    grace_seconds: int = 300
    batch_size: int = 100


@dataclass
class ReconcileRuntimeState:
    started: bool = False
    stopped: bool = False
    ticks_total: int = 0
    sweeps_with_findings_total: int = 0
    idle_ticks_total: int = 0
    errors_total: int = 0


def reconcile_runtime_settings_from_env() -> ReconcileRuntimeSettings:
    return ReconcileRuntimeSettings(
        interval_ms=_env_int("RECONCILE_INTERVAL_MS", 60000),
        error_backoff_ms=_env_int("RECONCILE_ERROR_BACKOFF_MS", 5000),
        grace_seconds=_env_int("RECONCILE_GRACE_SECONDS", 300),
        batch_size=_env_int("RECONCILE_BATCH_SIZE", 100),
    )


async def run_reconcile_until_stopped(
    *,
    reconcile_loop: ReconcileLoop,
    role: str,
    run_id: str,
    stop_event: asyncio.Event,
    settings: ReconcileRuntimeSettings,
    logger: logging.Logger,
    state: ReconcileRuntimeState | None = None,
) -> None:
    reconcile_loop.reconciler.grace_seconds = settings.grace_seconds
    reconcile_loop.reconciler.batch_size = settings.batch_size

    if state is not None:
        state.started = True

    logger.info(
        "reconcile loop started",
        extra={"role": role, "service": role, "run_id": run_id},
    )

    while not stop_event.is_set():
        delay_ms = settings.interval_ms
        try:
            found = await reconcile_loop.run_once()
            if state is not None:
                state.ticks_total += 1
                if found:
                    state.sweeps_with_findings_total += 1
                else:
                    state.idle_ticks_total += 1
            logger.info(
                "reconcile tick",
                extra={
                    "role": role,
                    "service": role,
                    "run_id": run_id,
                    "found": str(found).lower(),
                },
            )
        except Exception:
            if state is not None:
                state.ticks_total += 1
                state.errors_total += 1
            delay_ms = settings.error_backoff_ms
            logger.exception(
                "reconcile tick error",
                extra={"role": role, "service": role, "run_id": run_id},
            )

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay_ms / 1000)
        except TimeoutError:
            continue

    logger.info(
        "reconcile loop stopped",
        extra={"role": role, "service": role, "run_id": run_id},
    )
    if state is not None:
        state.stopped = True
