from __future__ import annotations

from achievements.api.handlers.deps import ApiDeps
from achievements.api.schemas import (
    OrphanFindingResponse,
    OwnerReportResponse,
    ReconcileResponse,
    StatisticsResponse,
)
from achievements.domain.dto import OrphanFinding
from achievements.domain.errors import ForbiddenError
from achievements.domain.guard import ActorContext


async def achievement_statistics_handler(*, actor: ActorContext, api_deps: ApiDeps) -> StatisticsResponse:
    report = await api_deps.reports.achievement_statistics(actor=actor)
    return StatisticsResponse(
        scope=report.scope,
        total=report.total,
        by_status=report.by_status,
        by_category=report.by_category,
        by_competition_level=report.by_competition_level,
    )


async def owner_report_handler(*, actor: ActorContext, owner_id: str, api_deps: ApiDeps) -> OwnerReportResponse:
    report = await api_deps.reports.owner_report(actor=actor, owner_id=owner_id)
    return OwnerReportResponse(
        owner_id=report.owner_id,
        total=report.total,
        by_status=report.by_status,
        verified_score_total=report.verified_score_total,
    )


async def reconcile_handler(*, actor: ActorContext, dry_run: bool, api_deps: ApiDeps) -> ReconcileResponse:
    """On-demand orphan sweep; the reconciler role runs the same sweep on a timer."""
    if not actor.is_admin:
        raise ForbiddenError("reconciliation requires the admin role")
    result = await api_deps.reconciler.reconcile_orphans(dry_run=dry_run)
    return ReconcileResponse(
        scanned=result.scanned,
        dry_run=result.dry_run,
        findings=[_finding_response(item) for item in result.findings],
        repaired=result.repaired,
        failed=result.failed,
        references_scanned=result.references_scanned,
        unresolved=[_finding_response(item) for item in result.unresolved],
    )


def _finding_response(finding: OrphanFinding) -> OrphanFindingResponse:
    return OrphanFindingResponse(
        content_id=finding.content_id,
        owner_id=finding.owner_id,
        reason=finding.reason,
        reference_id=finding.reference_id,
    )
