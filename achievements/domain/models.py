from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from achievements.domain.details import AchievementDetails


# Canonical achievement lifecycle states.
#
# IMPORTANT:
# - Keep this enum synchronized with achievements/domain/lifecycle.py
#   (TRANSITION_RULES and ALLOWED_TRANSITIONS).
# - Keep this enum synchronized with the DB status CHECK constraint in
#   db/migrations/000001_bootstrap.up.sql.
class AchievementStatus(StrEnum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    REJECTED = "rejected"

    # Terminal state. References are never physically removed.
    DELETED = "deleted"


class AchievementCategory(StrEnum):
    ACADEMIC = "academic"
    COMPETITION = "competition"
    ORGANIZATION = "organization"
    PUBLICATION = "publication"
    CERTIFICATION = "certification"
    OTHER = "other"


class SortOrder(StrEnum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class Attachment:
    filename: str
    url: str
    mime_type: str
    uploaded_at: datetime


@dataclass(frozen=True)
class ContentFields:
    """Caller-supplied payload for the mutable part of a content document."""

    category: AchievementCategory
    title: str
    description: str
    details: AchievementDetails
    tags: tuple[str, ...] = ()
    score: float = 0.0
    attachments: tuple[Attachment, ...] = ()


@dataclass(frozen=True)
class ContentRecord:
    content_id: str
    owner_id: str
    category: AchievementCategory
    title: str
    description: str
    details: AchievementDetails
    attachments: tuple[Attachment, ...]
    tags: tuple[str, ...]
    score: float
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class ReferenceRecord:
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


@dataclass(frozen=True)
class ReferenceListQuery:
    owner_ids: tuple[str, ...] | None = None
    statuses: tuple[AchievementStatus, ...] | None = None
    sort_order: SortOrder = SortOrder.DESC
    limit: int = 10
    offset: int = 0

    @property
    def include_deleted(self) -> bool:
        # Deleted references only show up when a caller asks for them by name.
        return self.statuses is not None and AchievementStatus.DELETED in self.statuses


@dataclass(frozen=True)
class ContentListQuery:
    owner_ids: tuple[str, ...] | None = None
    categories: tuple[AchievementCategory, ...] | None = None
    include_deleted: bool = False
    created_before: datetime | None = None
    limit: int = 100
    offset: int = 0


@dataclass(frozen=True)
class Achievement:
    reference: ReferenceRecord
    content: ContentRecord

    @property
    def achievement_id(self) -> str:
        return self.reference.reference_id


@dataclass(frozen=True)
class AchievementPage:
    items: list[Achievement]
    total: int
    limit: int
    offset: int
    skipped: list[str] = field(default_factory=list)
