from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass

from achievements.domain.contracts import ContentStore, ReferenceStore, VerifierDirectory
from achievements.domain.details import CompetitionDetails
from achievements.domain.dto import OwnerReport, StatisticsReport
from achievements.domain.errors import ForbiddenError, NotFoundError, UnauthorizedError
from achievements.domain.guard import PERMISSION_READ, PERMISSION_VERIFY, ActorContext, can_view_owner
from achievements.domain.models import AchievementStatus, ContentListQuery, ReferenceListQuery

logger = logging.getLogger("achievements")

LIVE_STATUSES: tuple[AchievementStatus, ...] = (
    AchievementStatus.DRAFT,
    AchievementStatus.SUBMITTED,
    AchievementStatus.VERIFIED,
    AchievementStatus.REJECTED,
)
UNSPECIFIED_LEVEL = "unspecified"


@dataclass
class ReportService:
    content: ContentStore
    references: ReferenceStore
    verifiers: VerifierDirectory
    batch_size: int = 100

    async def achievement_statistics(self, *, actor: ActorContext) -> StatisticsReport:
        scope, owner_ids = await self._visible_scope(actor)

        by_status: dict[str, int] = {}
        for status in LIVE_STATUSES:
            by_status[str(status)] = await self.references.count_by_filter(
                query=ReferenceListQuery(owner_ids=owner_ids, statuses=(status,))
            )

        by_category: Counter[str] = Counter()
        by_level: Counter[str] = Counter()
        offset = 0
        while True:
            batch = await self.content.list_by_filter(
                query=ContentListQuery(owner_ids=owner_ids, limit=self.batch_size, offset=offset)
            )
            for record in batch:
                by_category[str(record.category)] += 1
                if isinstance(record.details, CompetitionDetails):
                    by_level[record.details.competition_level or UNSPECIFIED_LEVEL] += 1
            if len(batch) < self.batch_size:
                break
            offset += len(batch)

        return StatisticsReport(
            scope=scope,
            total=sum(by_status.values()),
            by_status=by_status,
            by_category=dict(sorted(by_category.items())),
            by_competition_level=dict(sorted(by_level.items())),
        )

    async def owner_report(self, *, actor: ActorContext, owner_id: str) -> OwnerReport:
        if not actor.has(PERMISSION_READ):
            raise ForbiddenError(f"missing permission {PERMISSION_READ}")
        supervisees: frozenset[str] = frozenset()
        if actor.has(PERMISSION_VERIFY):
            supervisees = await self.verifiers.list_supervisees_of(verifier_id=actor.actor_id)
        if not can_view_owner(actor, owner_id, supervisees):
            raise UnauthorizedError(f"not allowed to view achievements of {owner_id}")

        by_status: dict[str, int] = {}
        for status in LIVE_STATUSES:
            by_status[str(status)] = await self.references.count_by_filter(
                query=ReferenceListQuery(owner_ids=(owner_id,), statuses=(status,))
            )

        score_total = 0.0
        offset = 0
        while True:
            verified = await self.references.list_by_filter(
                query=ReferenceListQuery(
                    owner_ids=(owner_id,),
                    statuses=(AchievementStatus.VERIFIED,),
                    limit=self.batch_size,
                    offset=offset,
                )
            )
            for reference in verified:
                try:
                    content = await self.content.get_by_id(content_id=reference.content_ref)
                except NotFoundError:
                    logger.warning(
                        "report entry skipped",
                        extra={"reference_id": reference.reference_id, "content_id": reference.content_ref},
                    )
                    continue
                score_total += content.score
            if len(verified) < self.batch_size:
                break
            offset += len(verified)

        return OwnerReport(
            owner_id=owner_id,
            total=sum(by_status.values()),
            by_status=by_status,
            verified_score_total=score_total,
        )

    async def _visible_scope(self, actor: ActorContext) -> tuple[str, tuple[str, ...] | None]:
        if not actor.has(PERMISSION_READ):
            raise ForbiddenError(f"missing permission {PERMISSION_READ}")
        if actor.is_admin:
            return "all", None
        if actor.has(PERMISSION_VERIFY):
            supervisees = await self.verifiers.list_supervisees_of(verifier_id=actor.actor_id)
            return "supervisees", tuple(sorted(supervisees))
        if actor.owner_id is not None:
            return "owner", (actor.owner_id,)
        raise ForbiddenError("actor has no visible achievements")
