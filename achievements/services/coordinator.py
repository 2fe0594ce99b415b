"""Keeps the content store and the reference store consistent.

Every operation resolves the reference first, asks the guard whether the
actor may act, asks the lifecycle whether the status allows it, and only
then writes. The reference store is authoritative for status; the content
store is authoritative for payload.

Write ordering:

- create: content first, then reference. A failed reference write
  soft-deletes the fresh content document before the error propagates.
- delete: content first, then reference. The reference flip is the commit
  point; a retry after a partial failure is safe because content
  soft-delete is idempotent. A delete that loses the flip to another status
  change restores the content, unless the winner was itself a delete.
- draft edits: compare-and-set on ``draft``, content write, then a re-read
  of the reference. A status change that committed in between gets the
  prior content snapshot written back and the edit fails as stale.
- status changes: reference only, compare-and-set on the observed status.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from achievements.domain.contracts import ContentStore, ReferenceStore, VerifierDirectory
from achievements.domain.errors import (
    DataIntegrityError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    StaleStatusError,
)
from achievements.domain.guard import (
    PERMISSION_READ,
    ActorContext,
    authorize_create,
    authorize_event,
    authorize_read,
    authorize_verifier,
)
from achievements.domain.lifecycle import AchievementEvent, TransitionOutcome, decide_transition
from achievements.domain.models import (
    Achievement,
    AchievementPage,
    AchievementStatus,
    Attachment,
    ContentFields,
    ContentRecord,
    ReferenceListQuery,
    ReferenceRecord,
    SortOrder,
)
from achievements.domain.validation import validate_attachment, validate_content_fields

logger = logging.getLogger("achievements")


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class AchievementService:
    content: ContentStore
    references: ReferenceStore
    verifiers: VerifierDirectory
    list_default_limit: int = 10
    list_max_limit: int = 100
    clock: Callable[[], datetime] = field(default=_utc_now)

    async def create_achievement(self, *, actor: ActorContext, fields: ContentFields) -> ReferenceRecord:
        owner_id = authorize_create(actor)
        fields = validate_content_fields(fields)

        content = await self.content.create(owner_id=owner_id, fields=fields)
        try:
            reference = await self.references.create(owner_id=owner_id, content_ref=content.content_id)
        except (Exception, asyncio.CancelledError) as exc:
            # Compensation must finish even when the caller was cancelled.
            await asyncio.shield(self._discard_orphan(content=content, cause=exc))
            raise

        logger.info(
            "achievement created",
            extra={
                "reference_id": reference.reference_id,
                "content_id": content.content_id,
                "owner_id": owner_id,
                "actor_id": actor.actor_id,
            },
        )
        return reference

    async def update_achievement(
        self,
        *,
        actor: ActorContext,
        reference_id: str,
        fields: ContentFields,
    ) -> Achievement:
        fields = validate_content_fields(fields)
        reference, _ = await self._prepare(actor=actor, reference_id=reference_id, event=AchievementEvent.EDIT)
        touched, content = await self._write_draft(
            reference,
            lambda: self.content.update(content_id=reference.content_ref, fields=fields),
            operation="draft update",
        )

        logger.info(
            "achievement updated",
            extra={"reference_id": reference_id, "actor_id": actor.actor_id},
        )
        return Achievement(reference=touched, content=content)

    async def add_attachment(
        self,
        *,
        actor: ActorContext,
        reference_id: str,
        attachment: Attachment,
    ) -> Achievement:
        validate_attachment(attachment)
        reference, _ = await self._prepare(actor=actor, reference_id=reference_id, event=AchievementEvent.EDIT)
        touched, content = await self._write_draft(
            reference,
            lambda: self.content.append_attachment(content_id=reference.content_ref, attachment=attachment),
            operation="attachment upload",
        )

        logger.info(
            "attachment added",
            extra={
                "reference_id": reference_id,
                "actor_id": actor.actor_id,
                "filename": attachment.filename,
            },
        )
        return Achievement(reference=touched, content=content)

    async def submit_achievement(self, *, actor: ActorContext, reference_id: str) -> ReferenceRecord:
        return await self._transition(actor=actor, reference_id=reference_id, event=AchievementEvent.SUBMIT)

    async def verify_achievement(self, *, actor: ActorContext, reference_id: str) -> ReferenceRecord:
        return await self._transition(actor=actor, reference_id=reference_id, event=AchievementEvent.VERIFY)

    async def reject_achievement(self, *, actor: ActorContext, reference_id: str, note: str) -> ReferenceRecord:
        return await self._transition(
            actor=actor,
            reference_id=reference_id,
            event=AchievementEvent.REJECT,
            note=note,
        )

    async def delete_achievement(self, *, actor: ActorContext, reference_id: str) -> ReferenceRecord:
        reference, _ = await self._prepare(actor=actor, reference_id=reference_id, event=AchievementEvent.DELETE)

        try:
            content = await self.content.get_by_id(content_id=reference.content_ref, include_deleted=True)
        except NotFoundError as exc:
            raise self._integrity_error(reference, "content missing for delete") from exc

        # Already soft-deleted content means an earlier or concurrent attempt
        # got past the first write; only the reference flip is left to do.
        deleted_here = not content.is_deleted
        if deleted_here:
            await self.content.soft_delete(content_id=reference.content_ref)

        try:
            deleted = await self.references.soft_delete(
                reference_id=reference_id,
                expected_status=reference.status,
            )
        except StaleStatusError as exc:
            # A concurrent delete that won the flip still needs the content gone.
            if deleted_here and exc.actual_status != AchievementStatus.DELETED:
                await self._restore_content(reference)
            raise

        logger.info(
            "achievement deleted",
            extra={
                "reference_id": reference_id,
                "content_id": reference.content_ref,
                "actor_id": actor.actor_id,
                "from_status": reference.status,
            },
        )
        return deleted

    async def read_achievement(self, *, actor: ActorContext, reference_id: str) -> Achievement:
        reference = await self.references.get_by_id(reference_id=reference_id)
        authorize_read(actor, reference)
        content = await self._resolve_content(reference)
        return Achievement(reference=reference, content=content)

    async def list_for_owner(
        self,
        *,
        actor: ActorContext,
        limit: int | None = None,
        offset: int = 0,
        statuses: tuple[AchievementStatus, ...] | None = None,
    ) -> AchievementPage:
        if not actor.has(PERMISSION_READ):
            raise ForbiddenError(f"missing permission {PERMISSION_READ}")
        if actor.owner_id is None:
            raise ForbiddenError("actor has no owner profile")
        return await self._join_page(
            owner_ids=(actor.owner_id,),
            statuses=statuses,
            limit=limit,
            offset=offset,
        )

    async def list_for_verifier(
        self,
        *,
        actor: ActorContext,
        limit: int | None = None,
        offset: int = 0,
        statuses: tuple[AchievementStatus, ...] | None = None,
    ) -> AchievementPage:
        authorize_verifier(actor)
        supervisees = await self.verifiers.list_supervisees_of(verifier_id=actor.actor_id)
        return await self._join_page(
            owner_ids=tuple(sorted(supervisees)),
            statuses=statuses,
            limit=limit,
            offset=offset,
        )

    async def list_all(
        self,
        *,
        actor: ActorContext,
        limit: int | None = None,
        offset: int = 0,
        statuses: tuple[AchievementStatus, ...] | None = None,
    ) -> AchievementPage:
        if not actor.is_admin:
            raise ForbiddenError("listing every achievement requires the admin role")
        return await self._join_page(owner_ids=None, statuses=statuses, limit=limit, offset=offset)

    async def _prepare(
        self,
        *,
        actor: ActorContext,
        reference_id: str,
        event: AchievementEvent,
        note: str | None = None,
    ) -> tuple[ReferenceRecord, TransitionOutcome]:
        reference = await self.references.get_by_id(reference_id=reference_id)
        authorize_event(actor, reference, event)
        outcome = decide_transition(
            current_status=reference.status,
            event=event,
            actor_id=actor.actor_id,
            now=self.clock(),
            note=note,
        )
        return reference, outcome

    async def _transition(
        self,
        *,
        actor: ActorContext,
        reference_id: str,
        event: AchievementEvent,
        note: str | None = None,
    ) -> ReferenceRecord:
        reference, outcome = await self._prepare(actor=actor, reference_id=reference_id, event=event, note=note)
        try:
            updated = await self.references.update(
                reference=outcome.apply(reference, now=self.clock()),
                expected_status=outcome.from_status,
            )
        except StaleStatusError as exc:
            logger.info(
                "transition lost a concurrent race",
                extra={
                    "reference_id": reference_id,
                    "event": str(event),
                    "expected_status": exc.expected_status,
                    "actual_status": exc.actual_status,
                },
            )
            raise

        logger.info(
            "achievement transitioned",
            extra={
                "reference_id": reference_id,
                "event": str(event),
                "from_status": outcome.from_status,
                "to_status": outcome.to_status,
                "actor_id": actor.actor_id,
            },
        )
        return updated

    async def _write_draft(
        self,
        reference: ReferenceRecord,
        write: Callable[[], Awaitable[ContentRecord]],
        *,
        operation: str,
    ) -> tuple[ReferenceRecord, ContentRecord]:
        try:
            before = await self.content.get_by_id(content_id=reference.content_ref)
        except NotFoundError as exc:
            raise self._integrity_error(reference, f"content missing for {operation}") from exc

        touched = await self.references.update(reference=reference, expected_status=AchievementStatus.DRAFT)
        try:
            content = await write()
        except NotFoundError as exc:
            current = await self.references.get_by_id(reference_id=reference.reference_id)
            if current.status != AchievementStatus.DRAFT:
                raise self._stale_edit(reference, current.status, operation) from exc
            raise self._integrity_error(reference, f"content missing for {operation}") from exc

        # The compare-and-set only proves draft at one instant; the edit
        # stands only if nothing moved the reference before the write landed.
        current = await self.references.get_by_id(reference_id=reference.reference_id)
        if current.status != AchievementStatus.DRAFT:
            await self._revert_content(reference, before)
            raise self._stale_edit(reference, current.status, operation)
        return touched, content

    async def _revert_content(self, reference: ReferenceRecord, before: ContentRecord) -> None:
        try:
            await self.content.revert(record=before)
        except Exception as exc:
            logger.exception(
                "content revert failed after lost edit race",
                extra={"reference_id": reference.reference_id, "content_id": reference.content_ref},
            )
            raise self._integrity_error(reference, "content changed after the draft was left") from exc

    def _stale_edit(self, reference: ReferenceRecord, actual: AchievementStatus, operation: str) -> StaleStatusError:
        logger.warning(
            "edit lost a concurrent race",
            extra={
                "reference_id": reference.reference_id,
                "content_id": reference.content_ref,
                "expected_status": AchievementStatus.DRAFT,
                "actual_status": actual,
                "reason": operation,
            },
        )
        return StaleStatusError(
            reference_id=reference.reference_id,
            expected_status=AchievementStatus.DRAFT,
            actual_status=actual,
        )

    async def _resolve_content(self, reference: ReferenceRecord) -> ContentRecord:
        include_deleted = reference.status == AchievementStatus.DELETED
        try:
            content = await self.content.get_by_id(
                content_id=reference.content_ref,
                include_deleted=include_deleted,
            )
        except NotFoundError as exc:
            raise self._integrity_error(reference, "content document unresolved") from exc

        if content.owner_id != reference.owner_id:
            raise self._integrity_error(reference, "content owner does not match reference owner")
        return content

    async def _join_page(
        self,
        *,
        owner_ids: tuple[str, ...] | None,
        statuses: tuple[AchievementStatus, ...] | None,
        limit: int | None,
        offset: int,
    ) -> AchievementPage:
        if offset < 0:
            raise InvalidInputError("offset must be non-negative")
        query = ReferenceListQuery(
            owner_ids=owner_ids,
            statuses=statuses,
            sort_order=SortOrder.DESC,
            limit=self._clamp_limit(limit),
            offset=offset,
        )
        references = await self.references.list_by_filter(query=query)
        total = await self.references.count_by_filter(query=query)

        items: list[Achievement] = []
        skipped: list[str] = []
        for reference in references:
            try:
                content = await self._resolve_content(reference)
            except DataIntegrityError:
                logger.warning(
                    "list entry skipped",
                    extra={"reference_id": reference.reference_id, "content_id": reference.content_ref},
                )
                skipped.append(reference.reference_id)
                continue
            items.append(Achievement(reference=reference, content=content))

        return AchievementPage(items=items, total=total, limit=query.limit, offset=offset, skipped=skipped)

    def _clamp_limit(self, limit: int | None) -> int:
        if limit is None or limit <= 0:
            return self.list_default_limit
        return min(limit, self.list_max_limit)

    async def _discard_orphan(self, *, content: ContentRecord, cause: BaseException) -> None:
        try:
            await self.content.soft_delete(content_id=content.content_id)
        except Exception:
            logger.exception(
                "compensation failed, orphan content left for reconciliation",
                extra={"content_id": content.content_id, "owner_id": content.owner_id},
            )
            return
        logger.warning(
            "reference create failed, content soft-deleted",
            extra={
                "content_id": content.content_id,
                "owner_id": content.owner_id,
                "error": type(cause).__name__,
            },
        )

    async def _restore_content(self, reference: ReferenceRecord) -> None:
        try:
            await self.content.restore(content_id=reference.content_ref)
        except Exception:
            logger.exception(
                "content restore failed after lost delete race",
                extra={"reference_id": reference.reference_id, "content_id": reference.content_ref},
            )
            return
        logger.warning(
            "delete lost a concurrent race, content restored",
            extra={"reference_id": reference.reference_id, "content_id": reference.content_ref},
        )

    def _integrity_error(self, reference: ReferenceRecord, reason: str) -> DataIntegrityError:
        logger.error(
            "data integrity violation",
            extra={
                "reference_id": reference.reference_id,
                "content_id": reference.content_ref,
                "status": reference.status,
                "reason": reason,
            },
        )
        return DataIntegrityError(f"{reason}: achievement {reference.reference_id}")
