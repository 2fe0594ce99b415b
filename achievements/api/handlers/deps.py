from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException

from achievements.domain.contracts import AuthorizationDirectory, OwnerDirectory
from achievements.domain.guard import ActorContext, resolve_actor
from achievements.services.coordinator import AchievementService
from achievements.services.reconcile import OrphanReconciler
from achievements.services.reports import ReportService


@dataclass(frozen=True)
class ApiDeps:
    service: AchievementService
    reports: ReportService
    reconciler: OrphanReconciler
    authorization: AuthorizationDirectory
    owners: OwnerDirectory


async def resolve_request_actor(*, actor_id: str | None, api_deps: ApiDeps) -> ActorContext:
    """Capabilities are looked up on every request and never cached."""
    if actor_id is None or not actor_id.strip():
        raise HTTPException(status_code=401, detail="X-Actor-Id header is required")
    return await resolve_actor(
        actor_id=actor_id.strip(),
        authorization=api_deps.authorization,
        owners=api_deps.owners,
    )
