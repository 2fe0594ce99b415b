"""Sweep for content documents and references that no longer pair up.

Synchronous compensation in the coordinator covers failed reference
creates, but a crash between the two writes leaves nothing behind to run
it. The content pass finds those documents after a grace period and
soft-deletes them.

The reference pass walks live references and resolves each content_ref.
A live reference whose document is missing, malformed or soft-deleted is
reported only: the coordinator surfaces it as a data integrity error and
nothing here guesses which side is right.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from achievements.domain.contracts import ContentStore, ReferenceStore
from achievements.domain.dto import OrphanFinding, ReconcileResult
from achievements.domain.errors import DataIntegrityError, NotFoundError
from achievements.domain.models import (
    AchievementStatus,
    ContentListQuery,
    ContentRecord,
    ReferenceListQuery,
    ReferenceRecord,
    SortOrder,
)

logger = logging.getLogger("achievements")

REASON_MISSING_REFERENCE = "missing_reference"
REASON_REFERENCE_DELETED = "reference_deleted"
REASON_CONTENT_MISSING = "content_missing"
REASON_CONTENT_DELETED = "content_deleted"
REASON_CONTENT_MALFORMED = "content_malformed"


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class OrphanReconciler:
    content: ContentStore
    references: ReferenceStore
    grace_seconds: int = 300
    batch_size: int = 100
    clock: Callable[[], datetime] = field(default=_utc_now)

    async def reconcile_orphans(self, *, dry_run: bool = False) -> ReconcileResult:
        cutoff = self.clock() - timedelta(seconds=self.grace_seconds)
        scanned, findings = await self._scan_content(cutoff)
        references_scanned, unresolved = await self._scan_references(cutoff)

        for finding in unresolved:
            logger.error(
                "live reference points at unusable content",
                extra={
                    "reference_id": finding.reference_id,
                    "content_id": finding.content_id,
                    "owner_id": finding.owner_id,
                    "reason": finding.reason,
                },
            )

        repaired: list[str] = []
        failed: list[str] = []
        if not dry_run:
            for finding in findings:
                try:
                    await self.content.soft_delete(content_id=finding.content_id)
                except Exception:
                    logger.exception(
                        "orphan repair failed",
                        extra={"content_id": finding.content_id, "reason": finding.reason},
                    )
                    failed.append(finding.content_id)
                    continue
                logger.warning(
                    "orphan content soft-deleted",
                    extra={
                        "content_id": finding.content_id,
                        "owner_id": finding.owner_id,
                        "reason": finding.reason,
                    },
                )
                repaired.append(finding.content_id)

        return ReconcileResult(
            scanned=scanned,
            findings=findings,
            repaired=repaired,
            failed=failed,
            dry_run=dry_run,
            references_scanned=references_scanned,
            unresolved=unresolved,
        )

    async def _scan_content(self, cutoff: datetime) -> tuple[int, list[OrphanFinding]]:
        scanned = 0
        findings: list[OrphanFinding] = []

        # Paging includes deleted documents so that repairs made later do not
        # shift offsets under the scan.
        offset = 0
        while True:
            batch = await self.content.list_by_filter(
                query=ContentListQuery(
                    include_deleted=True,
                    created_before=cutoff,
                    limit=self.batch_size,
                    offset=offset,
                )
            )
            for record in batch:
                if record.is_deleted:
                    continue
                scanned += 1
                finding = await self._inspect_content(record)
                if finding is not None:
                    findings.append(finding)
            if len(batch) < self.batch_size:
                break
            offset += len(batch)
        return scanned, findings

    async def _scan_references(self, cutoff: datetime) -> tuple[int, list[OrphanFinding]]:
        scanned = 0
        unresolved: list[OrphanFinding] = []

        # Oldest first: references created during the scan land after the cursor.
        offset = 0
        while True:
            batch = await self.references.list_by_filter(
                query=ReferenceListQuery(
                    sort_order=SortOrder.ASC,
                    limit=self.batch_size,
                    offset=offset,
                )
            )
            for reference in batch:
                scanned += 1
                finding = await self._inspect_reference(reference, cutoff)
                if finding is not None:
                    unresolved.append(finding)
            if len(batch) < self.batch_size:
                break
            offset += len(batch)
        return scanned, unresolved

    async def _inspect_content(self, record: ContentRecord) -> OrphanFinding | None:
        reference = await self.references.get_by_content_ref(content_ref=record.content_id)
        if reference is None:
            return OrphanFinding(
                content_id=record.content_id,
                owner_id=record.owner_id,
                reason=REASON_MISSING_REFERENCE,
            )
        if reference.status == AchievementStatus.DELETED:
            return OrphanFinding(
                content_id=record.content_id,
                owner_id=record.owner_id,
                reason=REASON_REFERENCE_DELETED,
                reference_id=reference.reference_id,
            )
        return None

    async def _inspect_reference(self, reference: ReferenceRecord, cutoff: datetime) -> OrphanFinding | None:
        try:
            content = await self.content.get_by_id(content_id=reference.content_ref, include_deleted=True)
        except NotFoundError:
            reason = REASON_CONTENT_MISSING
        except DataIntegrityError:
            reason = REASON_CONTENT_MALFORMED
        else:
            # A delete in flight sits between its two writes for a moment.
            if content.deleted_at is None or content.deleted_at >= cutoff:
                return None
            reason = REASON_CONTENT_DELETED
        return OrphanFinding(
            content_id=reference.content_ref,
            owner_id=reference.owner_id,
            reason=reason,
            reference_id=reference.reference_id,
        )
