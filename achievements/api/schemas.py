from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from achievements.domain.models import AchievementStatus


ACHIEVEMENT_ID_PATTERN = r"^ach_[0-9A-HJKMNP-TV-Z]{26}$"
CONTENT_ID_PATTERN = r"^doc_[0-9A-HJKMNP-TV-Z]{26}$"


class ErrorResponse(BaseModel):
    detail: str
    code: str | None = None


class ReconcileMetrics(BaseModel):
    started: bool
    stopped: bool
    ticks_total: int
    sweeps_with_findings_total: int
    idle_ticks_total: int
    errors_total: int


class HealthResponse(BaseModel):
    status: str
    role: str
    mode: str


class ReadyResponse(BaseModel):
    status: str
    role: str
    mode: str
    stores_ready: bool
    reconcile_loop_enabled: bool
    reconcile_loop_ready: bool
    reconcile_metrics: ReconcileMetrics


class AchievementFieldsRequest(BaseModel):
    category: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=256)
    description: str = Field(default="", max_length=10000)
    details: dict[str, object] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list, max_length=50)
    score: float = Field(default=0.0, ge=0)


class RejectAchievementRequest(BaseModel):
    note: str = Field(min_length=1, max_length=2000)


class AddAttachmentRequest(BaseModel):
    filename: str = Field(min_length=1, max_length=256)
    url: str = Field(min_length=1, max_length=2048)
    mime_type: str = Field(min_length=1, max_length=128)


class AttachmentResponse(BaseModel):
    filename: str
    url: str
    mime_type: str
    uploaded_at: datetime


class ReferenceResponse(BaseModel):
    achievement_id: str = Field(pattern=ACHIEVEMENT_ID_PATTERN)
    owner_id: str
    content_ref: str = Field(pattern=CONTENT_ID_PATTERN)
    status: AchievementStatus
    created_at: datetime
    updated_at: datetime
    submitted_at: datetime | None = None
    verified_at: datetime | None = None
    verifier_id: str | None = None
    rejection_note: str | None = None


class ContentResponse(BaseModel):
    content_id: str = Field(pattern=CONTENT_ID_PATTERN)
    category: str
    title: str
    description: str
    details: dict[str, object]
    attachments: list[AttachmentResponse]
    tags: list[str]
    score: float
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None


class AchievementResponse(BaseModel):
    reference: ReferenceResponse
    content: ContentResponse


class AchievementListResponse(BaseModel):
    items: list[AchievementResponse]
    total: int = Field(ge=0)
    limit: int = Field(ge=1)
    offset: int = Field(ge=0)
    skipped: list[str] = Field(default_factory=list)


class StatisticsResponse(BaseModel):
    scope: str
    total: int = Field(ge=0)
    by_status: dict[str, int]
    by_category: dict[str, int]
    by_competition_level: dict[str, int]


class OwnerReportResponse(BaseModel):
    owner_id: str
    total: int = Field(ge=0)
    by_status: dict[str, int]
    verified_score_total: float


class OrphanFindingResponse(BaseModel):
    content_id: str
    owner_id: str
    reason: str
    reference_id: str | None = None


class ReconcileResponse(BaseModel):
    scanned: int = Field(ge=0)
    dry_run: bool
    findings: list[OrphanFindingResponse]
    repaired: list[str]
    failed: list[str]
    references_scanned: int = Field(ge=0)
    unresolved: list[OrphanFindingResponse]
