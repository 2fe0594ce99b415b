from __future__ import annotations

from datetime import UTC, datetime

from achievements.api.handlers.deps import ApiDeps
from achievements.api.schemas import (
    AchievementFieldsRequest,
    AchievementListResponse,
    AchievementResponse,
    AddAttachmentRequest,
    AttachmentResponse,
    ContentResponse,
    ReferenceResponse,
)
from achievements.domain.details import details_to_dict
from achievements.domain.errors import InvalidInputError
from achievements.domain.guard import ActorContext
from achievements.domain.models import (
    Achievement,
    AchievementPage,
    AchievementStatus,
    Attachment,
    ContentFields,
    ContentRecord,
    ReferenceRecord,
)
from achievements.domain.validation import build_content_fields

LIST_SCOPES = ("own", "supervised", "all")


async def create_achievement_handler(
    *,
    actor: ActorContext,
    request: AchievementFieldsRequest,
    api_deps: ApiDeps,
) -> ReferenceResponse:
    reference = await api_deps.service.create_achievement(actor=actor, fields=_fields_from_request(request))
    return reference_response(reference)


async def get_achievement_handler(
    *,
    actor: ActorContext,
    achievement_id: str,
    api_deps: ApiDeps,
) -> AchievementResponse:
    achievement = await api_deps.service.read_achievement(actor=actor, reference_id=achievement_id)
    return achievement_response(achievement)


async def list_achievements_handler(
    *,
    actor: ActorContext,
    scope: str,
    statuses: list[AchievementStatus] | None,
    limit: int | None,
    offset: int,
    api_deps: ApiDeps,
) -> AchievementListResponse:
    status_filter = tuple(statuses) if statuses else None
    if scope == "own":
        page = await api_deps.service.list_for_owner(
            actor=actor, limit=limit, offset=offset, statuses=status_filter
        )
    elif scope == "supervised":
        page = await api_deps.service.list_for_verifier(
            actor=actor, limit=limit, offset=offset, statuses=status_filter
        )
    elif scope == "all":
        page = await api_deps.service.list_all(actor=actor, limit=limit, offset=offset, statuses=status_filter)
    else:
        raise InvalidInputError(f"unsupported scope '{scope}'. Supported: {', '.join(LIST_SCOPES)}")
    return page_response(page)


async def update_achievement_handler(
    *,
    actor: ActorContext,
    achievement_id: str,
    request: AchievementFieldsRequest,
    api_deps: ApiDeps,
) -> AchievementResponse:
    achievement = await api_deps.service.update_achievement(
        actor=actor,
        reference_id=achievement_id,
        fields=_fields_from_request(request),
    )
    return achievement_response(achievement)


async def add_attachment_handler(
    *,
    actor: ActorContext,
    achievement_id: str,
    request: AddAttachmentRequest,
    api_deps: ApiDeps,
) -> AchievementResponse:
    attachment = Attachment(
        filename=request.filename,
        url=request.url,
        mime_type=request.mime_type,
        uploaded_at=datetime.now(tz=UTC),
    )
    achievement = await api_deps.service.add_attachment(
        actor=actor,
        reference_id=achievement_id,
        attachment=attachment,
    )
    return achievement_response(achievement)


async def submit_achievement_handler(
    *,
    actor: ActorContext,
    achievement_id: str,
    api_deps: ApiDeps,
) -> ReferenceResponse:
    reference = await api_deps.service.submit_achievement(actor=actor, reference_id=achievement_id)
    return reference_response(reference)


async def verify_achievement_handler(
    *,
    actor: ActorContext,
    achievement_id: str,
    api_deps: ApiDeps,
) -> ReferenceResponse:
    reference = await api_deps.service.verify_achievement(actor=actor, reference_id=achievement_id)
    return reference_response(reference)


async def reject_achievement_handler(
    *,
    actor: ActorContext,
    achievement_id: str,
    note: str,
    api_deps: ApiDeps,
) -> ReferenceResponse:
    reference = await api_deps.service.reject_achievement(actor=actor, reference_id=achievement_id, note=note)
    return reference_response(reference)


async def delete_achievement_handler(
    *,
    actor: ActorContext,
    achievement_id: str,
    api_deps: ApiDeps,
) -> ReferenceResponse:
    reference = await api_deps.service.delete_achievement(actor=actor, reference_id=achievement_id)
    return reference_response(reference)


def reference_response(reference: ReferenceRecord) -> ReferenceResponse:
    return ReferenceResponse(
        achievement_id=reference.reference_id,
        owner_id=reference.owner_id,
        content_ref=reference.content_ref,
        status=reference.status,
        created_at=reference.created_at,
        updated_at=reference.updated_at,
        submitted_at=reference.submitted_at,
        verified_at=reference.verified_at,
        verifier_id=reference.verifier_id,
        rejection_note=reference.rejection_note,
    )


def content_response(content: ContentRecord) -> ContentResponse:
    return ContentResponse(
        content_id=content.content_id,
        category=str(content.category),
        title=content.title,
        description=content.description,
        details=details_to_dict(content.details),
        attachments=[
            AttachmentResponse(
                filename=item.filename,
                url=item.url,
                mime_type=item.mime_type,
                uploaded_at=item.uploaded_at,
            )
            for item in content.attachments
        ],
        tags=list(content.tags),
        score=content.score,
        created_at=content.created_at,
        updated_at=content.updated_at,
        deleted_at=content.deleted_at,
    )


def achievement_response(achievement: Achievement) -> AchievementResponse:
    return AchievementResponse(
        reference=reference_response(achievement.reference),
        content=content_response(achievement.content),
    )


def page_response(page: AchievementPage) -> AchievementListResponse:
    return AchievementListResponse(
        items=[achievement_response(item) for item in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
        skipped=list(page.skipped),
    )


def _fields_from_request(request: AchievementFieldsRequest) -> ContentFields:
    return build_content_fields(
        category=request.category,
        title=request.title,
        description=request.description,
        details=request.details,
        tags=request.tags,
        score=request.score,
    )
