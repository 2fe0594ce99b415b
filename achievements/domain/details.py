"""Category-specific achievement details.

Each category has its own variant with typed optional fields. Keys a variant
does not know about are kept verbatim in ``extra`` so that new front-end
fields survive a round trip without a schema change.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import ClassVar

from achievements.domain.errors import InvalidInputError
from achievements.domain.models import AchievementCategory


@dataclass(frozen=True)
class AcademicDetails:
    category: ClassVar[AchievementCategory] = AchievementCategory.ACADEMIC
    course: str | None = None
    semester: str | None = None
    grade: str | None = None
    extra: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class CompetitionDetails:
    category: ClassVar[AchievementCategory] = AchievementCategory.COMPETITION
    competition_name: str | None = None
    competition_level: str | None = None
    rank: int | None = None
    medal_type: str | None = None
    event_date: str | None = None
    location: str | None = None
    organizer: str | None = None
    extra: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class OrganizationDetails:
    category: ClassVar[AchievementCategory] = AchievementCategory.ORGANIZATION
    organization_name: str | None = None
    position: str | None = None
    period_start: str | None = None
    period_end: str | None = None
    extra: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class PublicationDetails:
    category: ClassVar[AchievementCategory] = AchievementCategory.PUBLICATION
    publication_type: str | None = None
    publication_title: str | None = None
    authors: tuple[str, ...] = ()
    publisher: str | None = None
    issn: str | None = None
    extra: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class CertificationDetails:
    category: ClassVar[AchievementCategory] = AchievementCategory.CERTIFICATION
    certification_name: str | None = None
    issued_by: str | None = None
    certification_number: str | None = None
    valid_until: str | None = None
    extra: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class OtherDetails:
    category: ClassVar[AchievementCategory] = AchievementCategory.OTHER
    extra: dict[str, object] = field(default_factory=dict)


AchievementDetails = (
    AcademicDetails
    | CompetitionDetails
    | OrganizationDetails
    | PublicationDetails
    | CertificationDetails
    | OtherDetails
)

DETAILS_BY_CATEGORY: dict[AchievementCategory, type[AchievementDetails]] = {
    AchievementCategory.ACADEMIC: AcademicDetails,
    AchievementCategory.COMPETITION: CompetitionDetails,
    AchievementCategory.ORGANIZATION: OrganizationDetails,
    AchievementCategory.PUBLICATION: PublicationDetails,
    AchievementCategory.CERTIFICATION: CertificationDetails,
    AchievementCategory.OTHER: OtherDetails,
}

# Every known field is optional text except the ones listed here.
_INT_FIELDS = frozenset({"rank"})
_TEXT_LIST_FIELDS = frozenset({"authors"})


def parse_details(category: AchievementCategory, raw: Mapping[str, object] | None) -> AchievementDetails:
    variant = DETAILS_BY_CATEGORY[category]
    known = {item.name for item in fields(variant)} - {"extra"}
    values: dict[str, object] = {}
    extra: dict[str, object] = {}

    for key, value in (raw or {}).items():
        key = str(key)
        if key not in known:
            extra[key] = value
            continue
        if value is None:
            continue
        values[key] = _coerce_known(category=category, key=key, value=value)

    return variant(**values, extra=extra)  # type: ignore[arg-type]


def details_to_dict(details: AchievementDetails) -> dict[str, object]:
    payload: dict[str, object] = dict(details.extra)
    for item in fields(details):
        if item.name == "extra":
            continue
        value = getattr(details, item.name)
        if value is None or value == ():
            continue
        payload[item.name] = list(value) if isinstance(value, tuple) else value
    return payload


def _coerce_known(*, category: AchievementCategory, key: str, value: object) -> object:
    if key in _INT_FIELDS:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidInputError(f"details.{key} must be an integer for {category} achievements")
        return value
    if key in _TEXT_LIST_FIELDS:
        if not isinstance(value, list | tuple) or not all(isinstance(item, str) for item in value):
            raise InvalidInputError(f"details.{key} must be a list of strings for {category} achievements")
        return tuple(value)
    if not isinstance(value, str):
        raise InvalidInputError(f"details.{key} must be a string for {category} achievements")
    return value
