from dataclasses import replace
from datetime import UTC, datetime

import pytest

from achievements.domain.details import OtherDetails
from achievements.domain.errors import InvalidInputError
from achievements.domain.models import AchievementCategory, Attachment
from achievements.domain.validation import build_content_fields, validate_attachment, validate_content_fields


@pytest.mark.unit
def test_build_normalizes_title_description_and_tags() -> None:
    fields = build_content_fields(
        category="academic",
        title="  Dean's list ",
        description=" spring term ",
        tags=[" honors", "honors", "", "gpa "],
        score=5,
    )

    assert fields.category == AchievementCategory.ACADEMIC
    assert fields.title == "Dean's list"
    assert fields.description == "spring term"
    assert fields.tags == ("honors", "gpa")
    assert fields.score == 5.0
    assert isinstance(fields.score, float)


@pytest.mark.unit
def test_unknown_category_lists_supported_values() -> None:
    with pytest.raises(InvalidInputError, match="Supported: academic"):
        build_content_fields(category="sports", title="X")


@pytest.mark.unit
@pytest.mark.parametrize("score", [-1.0, float("nan"), float("inf")])
def test_score_must_be_finite_and_non_negative(score: float) -> None:
    with pytest.raises(InvalidInputError):
        build_content_fields(category="other", title="X", score=score)


@pytest.mark.unit
def test_blank_title_is_rejected() -> None:
    with pytest.raises(InvalidInputError, match="title is required"):
        build_content_fields(category="other", title="   ")


@pytest.mark.unit
def test_details_must_match_category() -> None:
    fields = build_content_fields(category="competition", title="X")

    with pytest.raises(InvalidInputError, match="do not match"):
        validate_content_fields(replace(fields, details=OtherDetails()))


@pytest.mark.unit
def test_boolean_score_is_rejected() -> None:
    fields = build_content_fields(category="other", title="X")

    with pytest.raises(InvalidInputError, match="score must be a number"):
        validate_content_fields(replace(fields, score=True))


@pytest.mark.unit
@pytest.mark.parametrize("missing", ["filename", "url", "mime_type"])
def test_attachment_fields_are_required(missing: str) -> None:
    attachment = Attachment(
        filename="diploma.pdf",
        url="https://files.example.org/diploma.pdf",
        mime_type="application/pdf",
        uploaded_at=datetime(2026, 3, 1, tzinfo=UTC),
    )

    assert validate_attachment(attachment) is attachment
    with pytest.raises(InvalidInputError):
        validate_attachment(replace(attachment, **{missing: " "}))
