"""JSON shape of achievement documents as stored in the document table."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime

from achievements.domain.details import details_to_dict, parse_details
from achievements.domain.errors import DataIntegrityError, InvalidInputError
from achievements.domain.models import AchievementCategory, Attachment, ContentFields, ContentRecord


def document_from_fields(fields: ContentFields, *, include_attachments: bool = True) -> dict[str, object]:
    document: dict[str, object] = {
        "title": fields.title,
        "description": fields.description,
        "details": details_to_dict(fields.details),
        "tags": list(fields.tags),
        "score": fields.score,
    }
    if include_attachments:
        document["attachments"] = [attachment_to_dict(item) for item in fields.attachments]
    return document


def document_from_record(record: ContentRecord) -> dict[str, object]:
    return {
        "title": record.title,
        "description": record.description,
        "details": details_to_dict(record.details),
        "tags": list(record.tags),
        "score": record.score,
        "attachments": [attachment_to_dict(item) for item in record.attachments],
    }


def attachment_to_dict(attachment: Attachment) -> dict[str, object]:
    return {
        "filename": attachment.filename,
        "url": attachment.url,
        "mime_type": attachment.mime_type,
        "uploaded_at": attachment.uploaded_at.isoformat(),
    }


def attachment_from_dict(payload: Mapping[str, object]) -> Attachment:
    return Attachment(
        filename=str(payload["filename"]),
        url=str(payload["url"]),
        mime_type=str(payload["mime_type"]),
        uploaded_at=datetime.fromisoformat(str(payload["uploaded_at"])),
    )


def content_record_from_row(row: Mapping[str, object]) -> ContentRecord:
    public_id = str(row["public_id"])
    document = row["document"]
    if not isinstance(document, dict):
        raise DataIntegrityError(f"content document {public_id} is not a JSON object")

    try:
        category = AchievementCategory(str(row["category"]))
        details_raw = document.get("details") or {}
        if not isinstance(details_raw, dict):
            raise InvalidInputError("details must be an object")
        details = parse_details(category, details_raw)
        attachments = tuple(attachment_from_dict(item) for item in document.get("attachments") or [])
    except (ValueError, KeyError, TypeError, InvalidInputError) as exc:
        raise DataIntegrityError(f"content document {public_id} is malformed: {exc}") from exc

    return ContentRecord(
        content_id=public_id,
        owner_id=str(row["owner_id"]),
        category=category,
        title=str(document.get("title") or ""),
        description=str(document.get("description") or ""),
        details=details,
        attachments=attachments,
        tags=tuple(str(tag) for tag in document.get("tags") or []),
        score=float(document.get("score") or 0.0),
        created_at=row["created_at"],  # type: ignore[arg-type]
        updated_at=row["updated_at"],  # type: ignore[arg-type]
        deleted_at=row["deleted_at"],  # type: ignore[arg-type]
    )
