from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from achievements.domain.details import AchievementDetails
from achievements.domain.errors import NotFoundError, StaleStatusError
from achievements.domain.ids import new_content_id, new_reference_id
from achievements.domain.models import (
    AchievementCategory,
    AchievementStatus,
    Attachment,
    ContentFields,
    ContentListQuery,
    ContentRecord,
    ReferenceListQuery,
    ReferenceRecord,
    SortOrder,
)


@dataclass
class _ContentRow:
    seq: int
    content_id: str
    owner_id: str
    category: AchievementCategory
    title: str
    description: str
    details: AchievementDetails
    attachments: list[Attachment]
    tags: tuple[str, ...]
    score: float
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None


@dataclass
class _ReferenceRow:
    seq: int
    reference_id: str
    owner_id: str
    content_ref: str
    status: AchievementStatus
    created_at: datetime
    updated_at: datetime
    submitted_at: datetime | None = None
    verified_at: datetime | None = None
    verifier_id: str | None = None
    rejection_note: str | None = None


@dataclass
class InMemoryContentStore:
    """Non-network document store with deterministic behavior for local mode."""

    documents: dict[str, _ContentRow] = field(default_factory=dict)
    soft_deletes: list[str] = field(default_factory=list)
    restores: list[str] = field(default_factory=list)
    reverts: list[str] = field(default_factory=list)
    next_seq: int = 1

    async def create(self, *, owner_id: str, fields: ContentFields) -> ContentRecord:
        now = datetime.now(tz=UTC)
        content_id = new_content_id()
        self.documents[content_id] = _ContentRow(
            seq=self.next_seq,
            content_id=content_id,
            owner_id=owner_id,
            category=fields.category,
            title=fields.title,
            description=fields.description,
            details=fields.details,
            attachments=list(fields.attachments),
            tags=fields.tags,
            score=fields.score,
            created_at=now,
            updated_at=now,
        )
        self.next_seq += 1
        return _content_snapshot(self.documents[content_id])

    async def get_by_id(self, *, content_id: str, include_deleted: bool = False) -> ContentRecord:
        row = self._row(content_id, include_deleted=include_deleted)
        return _content_snapshot(row)

    async def update(self, *, content_id: str, fields: ContentFields) -> ContentRecord:
        row = self._row(content_id, include_deleted=False)
        row.category = fields.category
        row.title = fields.title
        row.description = fields.description
        row.details = fields.details
        row.tags = fields.tags
        row.score = fields.score
        row.updated_at = datetime.now(tz=UTC)
        return _content_snapshot(row)

    async def append_attachment(self, *, content_id: str, attachment: Attachment) -> ContentRecord:
        row = self._row(content_id, include_deleted=False)
        row.attachments.append(attachment)
        row.updated_at = datetime.now(tz=UTC)
        return _content_snapshot(row)

    async def soft_delete(self, *, content_id: str) -> ContentRecord:
        row = self._row(content_id, include_deleted=True)
        if row.deleted_at is None:
            now = datetime.now(tz=UTC)
            row.deleted_at = now
            row.updated_at = now
            self.soft_deletes.append(content_id)
        return _content_snapshot(row)

    async def restore(self, *, content_id: str) -> ContentRecord:
        row = self._row(content_id, include_deleted=True)
        if row.deleted_at is not None:
            row.deleted_at = None
            row.updated_at = datetime.now(tz=UTC)
            self.restores.append(content_id)
        return _content_snapshot(row)

    async def revert(self, *, record: ContentRecord) -> ContentRecord:
        row = self._row(record.content_id, include_deleted=True)
        row.category = record.category
        row.title = record.title
        row.description = record.description
        row.details = record.details
        row.attachments = list(record.attachments)
        row.tags = record.tags
        row.score = record.score
        row.updated_at = record.updated_at
        self.reverts.append(record.content_id)
        return _content_snapshot(row)

    async def list_by_owner(self, *, owner_id: str, limit: int, offset: int) -> list[ContentRecord]:
        return await self.list_by_filter(
            query=ContentListQuery(owner_ids=(owner_id,), limit=limit, offset=offset)
        )

    async def list_by_filter(self, *, query: ContentListQuery) -> list[ContentRecord]:
        rows: list[_ContentRow] = []
        for row in self.documents.values():
            if query.owner_ids is not None and row.owner_id not in set(query.owner_ids):
                continue
            if query.categories is not None and row.category not in set(query.categories):
                continue
            if not query.include_deleted and row.deleted_at is not None:
                continue
            if query.created_before is not None and row.created_at >= query.created_before:
                continue
            rows.append(row)

        rows.sort(key=lambda item: item.seq)
        return [_content_snapshot(row) for row in rows[query.offset : query.offset + query.limit]]

    def _row(self, content_id: str, *, include_deleted: bool) -> _ContentRow:
        row = self.documents.get(content_id)
        if row is None or (row.deleted_at is not None and not include_deleted):
            raise NotFoundError(f"content document not found: {content_id}")
        return row


@dataclass
class InMemoryReferenceStore:
    """Non-network reference store; status writes are compare-and-set."""

    references: dict[str, _ReferenceRow] = field(default_factory=dict)
    status_writes: list[tuple[str, str, str]] = field(default_factory=list)
    next_seq: int = 1

    async def create(self, *, owner_id: str, content_ref: str) -> ReferenceRecord:
        now = datetime.now(tz=UTC)
        reference_id = new_reference_id()
        self.references[reference_id] = _ReferenceRow(
            seq=self.next_seq,
            reference_id=reference_id,
            owner_id=owner_id,
            content_ref=content_ref,
            status=AchievementStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        self.next_seq += 1
        return _reference_snapshot(self.references[reference_id])

    async def get_by_id(self, *, reference_id: str) -> ReferenceRecord:
        row = self.references.get(reference_id)
        if row is None:
            raise NotFoundError(f"achievement not found: {reference_id}")
        return _reference_snapshot(row)

    async def get_by_content_ref(self, *, content_ref: str) -> ReferenceRecord | None:
        for row in self.references.values():
            if row.content_ref == content_ref:
                return _reference_snapshot(row)
        return None

    async def update(
        self,
        *,
        reference: ReferenceRecord,
        expected_status: AchievementStatus,
    ) -> ReferenceRecord:
        row = self.references.get(reference.reference_id)
        if row is None:
            raise NotFoundError(f"achievement not found: {reference.reference_id}")
        if row.status != expected_status:
            raise StaleStatusError(
                reference_id=reference.reference_id,
                expected_status=expected_status,
                actual_status=row.status,
            )

        # owner_id, content_ref and created_at are immutable after creation.
        if row.status != reference.status:
            self.status_writes.append((row.reference_id, row.status, reference.status))
        row.status = reference.status
        row.submitted_at = reference.submitted_at
        row.verified_at = reference.verified_at
        row.verifier_id = reference.verifier_id
        row.rejection_note = reference.rejection_note
        row.updated_at = datetime.now(tz=UTC)
        return _reference_snapshot(row)

    async def soft_delete(
        self,
        *,
        reference_id: str,
        expected_status: AchievementStatus,
    ) -> ReferenceRecord:
        current = await self.get_by_id(reference_id=reference_id)
        return await self.update(
            reference=replace(current, status=AchievementStatus.DELETED),
            expected_status=expected_status,
        )

    async def list_by_owner(self, *, owner_id: str, limit: int, offset: int) -> list[ReferenceRecord]:
        return await self.list_by_filter(
            query=ReferenceListQuery(owner_ids=(owner_id,), limit=limit, offset=offset)
        )

    async def list_by_filter(self, *, query: ReferenceListQuery) -> list[ReferenceRecord]:
        rows = self._filtered(query)
        reverse = query.sort_order == SortOrder.DESC
        rows.sort(key=lambda item: (item.created_at, item.seq), reverse=reverse)
        return [_reference_snapshot(row) for row in rows[query.offset : query.offset + query.limit]]

    async def count_by_filter(self, *, query: ReferenceListQuery) -> int:
        return len(self._filtered(query))

    def _filtered(self, query: ReferenceListQuery) -> list[_ReferenceRow]:
        rows: list[_ReferenceRow] = []
        for row in self.references.values():
            if query.owner_ids is not None and row.owner_id not in set(query.owner_ids):
                continue
            if query.statuses is not None and row.status not in set(query.statuses):
                continue
            if not query.include_deleted and row.status == AchievementStatus.DELETED:
                continue
            rows.append(row)
        return rows


def _content_snapshot(row: _ContentRow) -> ContentRecord:
    return ContentRecord(
        content_id=row.content_id,
        owner_id=row.owner_id,
        category=row.category,
        title=row.title,
        description=row.description,
        details=row.details,
        attachments=tuple(row.attachments),
        tags=row.tags,
        score=row.score,
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
    )


def _reference_snapshot(row: _ReferenceRow) -> ReferenceRecord:
    return ReferenceRecord(
        reference_id=row.reference_id,
        owner_id=row.owner_id,
        content_ref=row.content_ref,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
        submitted_at=row.submitted_at,
        verified_at=row.verified_at,
        verifier_id=row.verifier_id,
        rejection_note=row.rejection_note,
    )
