from __future__ import annotations

from contextlib import asynccontextmanager
import asyncio
from collections.abc import Awaitable, Callable
import logging

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from achievements.api.handlers.achievements import (
    add_attachment_handler,
    create_achievement_handler,
    delete_achievement_handler,
    get_achievement_handler,
    list_achievements_handler,
    reject_achievement_handler,
    submit_achievement_handler,
    update_achievement_handler,
    verify_achievement_handler,
)
from achievements.api.handlers.deps import ApiDeps, resolve_request_actor
from achievements.api.handlers.reports import (
    achievement_statistics_handler,
    owner_report_handler,
    reconcile_handler,
)
from achievements.api.schemas import (
    AchievementFieldsRequest,
    AchievementListResponse,
    AchievementResponse,
    AddAttachmentRequest,
    ErrorResponse,
    HealthResponse,
    OwnerReportResponse,
    ReadyResponse,
    ReconcileMetrics,
    ReconcileResponse,
    ReferenceResponse,
    RejectAchievementRequest,
    StatisticsResponse,
)
from achievements.domain.error_taxonomy import classify_error, http_status_for
from achievements.domain.errors import DomainError
from achievements.domain.guard import ActorContext
from achievements.domain.models import AchievementStatus
from achievements.workers.loop import ReconcileLoop
from achievements.workers.runner import (
    ReconcileRuntimeSettings,
    ReconcileRuntimeState,
    reconcile_runtime_settings_from_env,
    run_reconcile_until_stopped,
)

DOMAIN_ERROR_RESPONSES = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def build_app(
    role: str,
    run_id: str,
    mode: str = "memory",
    reconcile_loop: ReconcileLoop | None = None,
    reconcile_runtime_settings: ReconcileRuntimeSettings | None = None,
    api_deps: ApiDeps | None = None,
    on_startup: Callable[[], Awaitable[None]] | None = None,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
    readiness_probe: Callable[[], Awaitable[bool]] | None = None,
) -> FastAPI:
    logger = logging.getLogger("runtime")
    reconcile_state: ReconcileRuntimeState | None = None
    reconcile_task: asyncio.Task[None] | None = None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal reconcile_task, reconcile_state
        del app
        stop_event: asyncio.Event | None = None

        logger.info(
            "role started",
            extra={"role": role, "service": role, "run_id": run_id},
        )

        if on_startup is not None:
            await on_startup()

        if reconcile_loop is not None:
            settings = reconcile_runtime_settings or reconcile_runtime_settings_from_env()
            reconcile_state = ReconcileRuntimeState()
            stop_event = asyncio.Event()
            reconcile_task = asyncio.create_task(
                run_reconcile_until_stopped(
                    reconcile_loop=reconcile_loop,
                    role=role,
                    run_id=run_id,
                    stop_event=stop_event,
                    settings=settings,
                    logger=logger,
                    state=reconcile_state,
                )
            )

        yield

        if stop_event is not None and reconcile_task is not None:
            stop_event.set()
            await reconcile_task

        if on_shutdown is not None:
            await on_shutdown()

        logger.info(
            "role stopped",
            extra={"role": role, "service": role, "run_id": run_id},
        )

    app = FastAPI(title="achievement-lifecycle", version="0.1.0", lifespan=lifespan)

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        status_code = http_status_for(exc.code)
        log = logger.error if status_code >= 500 else logger.info
        log(
            "request failed",
            extra={
                "role": role,
                "run_id": run_id,
                "operation": f"{request.method} {request.url.path}",
                "error_code": exc.code,
                "retry_classification": classify_error(exc.code),
            },
        )
        return JSONResponse(status_code=status_code, content={"detail": str(exc), "code": exc.code})

    def _deps() -> ApiDeps:
        if api_deps is None:
            raise HTTPException(status_code=503, detail="api dependencies are not available")
        return api_deps

    async def _actor(actor_id: str | None) -> tuple[ActorContext, ApiDeps]:
        deps = _deps()
        actor = await resolve_request_actor(actor_id=actor_id, api_deps=deps)
        return actor, deps

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", role=role, mode=mode)

    @app.get("/ready", response_model=ReadyResponse, tags=["System"])
    async def ready() -> ReadyResponse:
        stores_ready = True
        if readiness_probe is not None:
            stores_ready = await readiness_probe()

        reconcile_loop_enabled = reconcile_loop is not None
        reconcile_loop_ready = True
        metrics = ReconcileMetrics(
            started=False,
            stopped=False,
            ticks_total=0,
            sweeps_with_findings_total=0,
            idle_ticks_total=0,
            errors_total=0,
        )
        if reconcile_loop_enabled:
            reconcile_loop_ready = (
                reconcile_state is not None
                and reconcile_state.started
                and reconcile_task is not None
                and not reconcile_task.done()
            )
            if reconcile_state is not None:
                metrics = ReconcileMetrics(
                    started=reconcile_state.started,
                    stopped=reconcile_state.stopped,
                    ticks_total=reconcile_state.ticks_total,
                    sweeps_with_findings_total=reconcile_state.sweeps_with_findings_total,
                    idle_ticks_total=reconcile_state.idle_ticks_total,
                    errors_total=reconcile_state.errors_total,
                )

        return ReadyResponse(
            status="ready" if stores_ready else "degraded",
            role=role,
            mode=mode,
            stores_ready=stores_ready,
            reconcile_loop_enabled=reconcile_loop_enabled,
            reconcile_loop_ready=reconcile_loop_ready,
            reconcile_metrics=metrics,
        )

    @app.post(
        "/achievements",
        response_model=ReferenceResponse,
        status_code=201,
        responses=DOMAIN_ERROR_RESPONSES,
        tags=["Achievements"],
    )
    async def create_achievement(
        request: AchievementFieldsRequest,
        x_actor_id: str | None = Header(default=None),
    ) -> ReferenceResponse:
        actor, deps = await _actor(x_actor_id)
        return await create_achievement_handler(actor=actor, request=request, api_deps=deps)

    @app.get(
        "/achievements",
        response_model=AchievementListResponse,
        responses=DOMAIN_ERROR_RESPONSES,
        tags=["Achievements"],
    )
    async def list_achievements(
        scope: str = Query(default="own"),
        status: list[AchievementStatus] | None = Query(default=None),
        limit: int | None = Query(default=None, ge=1),
        offset: int = Query(default=0, ge=0),
        x_actor_id: str | None = Header(default=None),
    ) -> AchievementListResponse:
        actor, deps = await _actor(x_actor_id)
        return await list_achievements_handler(
            actor=actor,
            scope=scope,
            statuses=status,
            limit=limit,
            offset=offset,
            api_deps=deps,
        )

    @app.get(
        "/achievements/{achievement_id}",
        response_model=AchievementResponse,
        responses=DOMAIN_ERROR_RESPONSES,
        tags=["Achievements"],
    )
    async def get_achievement(
        achievement_id: str,
        x_actor_id: str | None = Header(default=None),
    ) -> AchievementResponse:
        actor, deps = await _actor(x_actor_id)
        return await get_achievement_handler(actor=actor, achievement_id=achievement_id, api_deps=deps)

    @app.put(
        "/achievements/{achievement_id}",
        response_model=AchievementResponse,
        responses=DOMAIN_ERROR_RESPONSES,
        tags=["Achievements"],
    )
    async def update_achievement(
        achievement_id: str,
        request: AchievementFieldsRequest,
        x_actor_id: str | None = Header(default=None),
    ) -> AchievementResponse:
        actor, deps = await _actor(x_actor_id)
        return await update_achievement_handler(
            actor=actor,
            achievement_id=achievement_id,
            request=request,
            api_deps=deps,
        )

    @app.delete(
        "/achievements/{achievement_id}",
        response_model=ReferenceResponse,
        responses=DOMAIN_ERROR_RESPONSES,
        tags=["Achievements"],
    )
    async def delete_achievement(
        achievement_id: str,
        x_actor_id: str | None = Header(default=None),
    ) -> ReferenceResponse:
        actor, deps = await _actor(x_actor_id)
        return await delete_achievement_handler(actor=actor, achievement_id=achievement_id, api_deps=deps)

    @app.post(
        "/achievements/{achievement_id}/submit",
        response_model=ReferenceResponse,
        responses=DOMAIN_ERROR_RESPONSES,
        tags=["Lifecycle"],
    )
    async def submit_achievement(
        achievement_id: str,
        x_actor_id: str | None = Header(default=None),
    ) -> ReferenceResponse:
        actor, deps = await _actor(x_actor_id)
        return await submit_achievement_handler(actor=actor, achievement_id=achievement_id, api_deps=deps)

    @app.post(
        "/achievements/{achievement_id}/verify",
        response_model=ReferenceResponse,
        responses=DOMAIN_ERROR_RESPONSES,
        tags=["Lifecycle"],
    )
    async def verify_achievement(
        achievement_id: str,
        x_actor_id: str | None = Header(default=None),
    ) -> ReferenceResponse:
        actor, deps = await _actor(x_actor_id)
        return await verify_achievement_handler(actor=actor, achievement_id=achievement_id, api_deps=deps)

    @app.post(
        "/achievements/{achievement_id}/reject",
        response_model=ReferenceResponse,
        responses=DOMAIN_ERROR_RESPONSES,
        tags=["Lifecycle"],
    )
    async def reject_achievement(
        achievement_id: str,
        request: RejectAchievementRequest,
        x_actor_id: str | None = Header(default=None),
    ) -> ReferenceResponse:
        actor, deps = await _actor(x_actor_id)
        return await reject_achievement_handler(
            actor=actor,
            achievement_id=achievement_id,
            note=request.note,
            api_deps=deps,
        )

    @app.post(
        "/achievements/{achievement_id}/attachments",
        response_model=AchievementResponse,
        responses=DOMAIN_ERROR_RESPONSES,
        tags=["Achievements"],
    )
    async def add_attachment(
        achievement_id: str,
        request: AddAttachmentRequest,
        x_actor_id: str | None = Header(default=None),
    ) -> AchievementResponse:
        actor, deps = await _actor(x_actor_id)
        return await add_attachment_handler(
            actor=actor,
            achievement_id=achievement_id,
            request=request,
            api_deps=deps,
        )

    @app.get(
        "/reports/statistics",
        response_model=StatisticsResponse,
        responses=DOMAIN_ERROR_RESPONSES,
        tags=["Reports"],
    )
    async def achievement_statistics(x_actor_id: str | None = Header(default=None)) -> StatisticsResponse:
        actor, deps = await _actor(x_actor_id)
        return await achievement_statistics_handler(actor=actor, api_deps=deps)

    @app.get(
        "/reports/owners/{owner_id}",
        response_model=OwnerReportResponse,
        responses=DOMAIN_ERROR_RESPONSES,
        tags=["Reports"],
    )
    async def owner_report(
        owner_id: str,
        x_actor_id: str | None = Header(default=None),
    ) -> OwnerReportResponse:
        actor, deps = await _actor(x_actor_id)
        return await owner_report_handler(actor=actor, owner_id=owner_id, api_deps=deps)

    @app.post(
        "/admin/reconcile",
        response_model=ReconcileResponse,
        responses=DOMAIN_ERROR_RESPONSES,
        tags=["Maintenance"],
    )
    async def reconcile(
        dry_run: bool = Query(default=True),
        x_actor_id: str | None = Header(default=None),
    ) -> ReconcileResponse:
        actor, deps = await _actor(x_actor_id)
        return await reconcile_handler(actor=actor, dry_run=dry_run, api_deps=deps)

    return app
