from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import replace

from achievements.domain.details import parse_details
from achievements.domain.errors import InvalidInputError
from achievements.domain.models import AchievementCategory, Attachment, ContentFields


def build_content_fields(
    *,
    category: str,
    title: str,
    description: str = "",
    details: Mapping[str, object] | None = None,
    tags: Iterable[str] = (),
    score: float = 0.0,
    attachments: Iterable[Attachment] = (),
) -> ContentFields:
    try:
        parsed_category = AchievementCategory(category)
    except ValueError as exc:
        supported = ", ".join(item.value for item in AchievementCategory)
        raise InvalidInputError(f"unsupported category '{category}'. Supported: {supported}") from exc

    return validate_content_fields(
        ContentFields(
            category=parsed_category,
            title=title,
            description=description,
            details=parse_details(parsed_category, details),
            tags=tuple(tags),
            score=score,
            attachments=tuple(attachments),
        )
    )


def validate_content_fields(fields: ContentFields) -> ContentFields:
    title = fields.title.strip()
    if not title:
        raise InvalidInputError("title is required")
    if fields.details.category != fields.category:
        raise InvalidInputError(
            f"details for {fields.details.category} do not match category {fields.category}"
        )
    if isinstance(fields.score, bool) or not isinstance(fields.score, int | float):
        raise InvalidInputError("score must be a number")
    if not math.isfinite(fields.score) or fields.score < 0:
        raise InvalidInputError("score must be a finite non-negative number")

    for attachment in fields.attachments:
        validate_attachment(attachment)

    return replace(
        fields,
        title=title,
        description=fields.description.strip(),
        tags=_normalize_tags(fields.tags),
        score=float(fields.score),
    )


def validate_attachment(attachment: Attachment) -> Attachment:
    if not attachment.filename.strip():
        raise InvalidInputError("attachment filename is required")
    if not attachment.url.strip():
        raise InvalidInputError("attachment url is required")
    if not attachment.mime_type.strip():
        raise InvalidInputError("attachment mime type is required")
    return attachment


def _normalize_tags(tags: Iterable[str]) -> tuple[str, ...]:
    # Tags are a set; keep first-seen order so reads stay stable.
    seen: dict[str, None] = {}
    for tag in tags:
        cleaned = tag.strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return tuple(seen)
