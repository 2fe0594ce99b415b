from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from achievements.api.handlers.deps import ApiDeps
from achievements.clients.stub import StaticDirectory, load_static_directory
from achievements.domain.contracts import ContentStore, ReferenceStore
from achievements.repositories.postgres import AsyncpgPoolManager, PostgresContentStore, PostgresReferenceStore
from achievements.repositories.stub import InMemoryContentStore, InMemoryReferenceStore
from achievements.roles import RuntimeRole
from achievements.services.coordinator import AchievementService
from achievements.services.reconcile import OrphanReconciler
from achievements.services.reports import ReportService
from achievements.settings import (
    ListSettings,
    StoreSettings,
    list_settings_from_env,
    store_settings_from_env,
)
from achievements.workers.loop import ReconcileLoop
from achievements.workers.runner import ReconcileRuntimeSettings, reconcile_runtime_settings_from_env


@dataclass
class RuntimeContainer:
    mode: str
    content: ContentStore
    references: ReferenceStore
    directory: StaticDirectory
    api_deps: ApiDeps
    reconcile_loop: ReconcileLoop | None
    on_startup: Callable[[], Awaitable[None]] | None
    on_shutdown: Callable[[], Awaitable[None]] | None
    readiness_probe: Callable[[], Awaitable[bool]] | None


def build_runtime_container(
    role: RuntimeRole,
    *,
    store_settings: StoreSettings | None = None,
    list_settings: ListSettings | None = None,
    reconcile_settings: ReconcileRuntimeSettings | None = None,
    directory: StaticDirectory | None = None,
) -> RuntimeContainer:
    store_settings = store_settings or store_settings_from_env()
    list_settings = list_settings or list_settings_from_env()
    reconcile_settings = reconcile_settings or reconcile_runtime_settings_from_env()
    if directory is None:
        if store_settings.directory_file:
            directory = load_static_directory(store_settings.directory_file)
        else:
            directory = StaticDirectory()

    on_startup: Callable[[], Awaitable[None]] | None = None
    on_shutdown: Callable[[], Awaitable[None]] | None = None
    readiness_probe: Callable[[], Awaitable[bool]] | None = None
    content: ContentStore
    references: ReferenceStore
    if store_settings.database_url:
        reference_pool = _pool_manager(store_settings.database_url, store_settings)
        content_dsn = store_settings.content_dsn or store_settings.database_url
        content_pool = reference_pool if content_dsn == store_settings.database_url else _pool_manager(
            content_dsn, store_settings
        )
        pools = [reference_pool] if content_pool is reference_pool else [reference_pool, content_pool]
        references = PostgresReferenceStore(pool_manager=reference_pool)
        content = PostgresContentStore(pool_manager=content_pool)
        mode = "postgres"

        async def _startup() -> None:
            for pool in pools:
                await pool.startup()

        async def _shutdown() -> None:
            for pool in reversed(pools):
                await pool.shutdown()

        async def _ready() -> bool:
            for pool in pools:
                if not await pool.ping():
                    return False
            return True

        on_startup = _startup
        on_shutdown = _shutdown
        readiness_probe = _ready
    else:
        references = InMemoryReferenceStore()
        content = InMemoryContentStore()
        mode = "memory"

    service = AchievementService(
        content=content,
        references=references,
        verifiers=directory,
        list_default_limit=list_settings.default_limit,
        list_max_limit=list_settings.max_limit,
    )
    reconciler = OrphanReconciler(
        content=content,
        references=references,
        grace_seconds=reconcile_settings.grace_seconds,
        batch_size=reconcile_settings.batch_size,
    )
    api_deps = ApiDeps(
        service=service,
        reports=ReportService(content=content, references=references, verifiers=directory),
        reconciler=reconciler,
        authorization=directory,
        owners=directory,
    )

    reconcile_loop: ReconcileLoop | None = None
    if role.name == "reconciler":
        reconcile_loop = ReconcileLoop(role=role.name, reconciler=reconciler)

    return RuntimeContainer(
        mode=mode,
        content=content,
        references=references,
        directory=directory,
        api_deps=api_deps,
        reconcile_loop=reconcile_loop,
        on_startup=on_startup,
        on_shutdown=on_shutdown,
        readiness_probe=readiness_probe,
    )


def _pool_manager(dsn: str, settings: StoreSettings) -> AsyncpgPoolManager:
    return AsyncpgPoolManager(
        dsn=dsn,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        command_timeout_seconds=settings.command_timeout_seconds,
    )
