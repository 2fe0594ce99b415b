from __future__ import annotations

from typing import Protocol, runtime_checkable

from achievements.domain.models import (
    AchievementStatus,
    Attachment,
    ContentFields,
    ContentListQuery,
    ContentRecord,
    ReferenceListQuery,
    ReferenceRecord,
)


COMPARE_AND_SET_SQL_CONTRACT = "UPDATE ... WHERE public_id = $1 AND status = $2 RETURNING ..."


@runtime_checkable
class ContentStore(Protocol):
    """Schemaless achievement documents.

    ``get_by_id`` raises NotFoundError for absent documents and, unless
    ``include_deleted`` is set, for soft-deleted ones. ``create`` mints a new
    identity on every call and must not be retried blindly.
    """

    async def create(self, *, owner_id: str, fields: ContentFields) -> ContentRecord: ...

    async def get_by_id(self, *, content_id: str, include_deleted: bool = False) -> ContentRecord: ...

    async def update(self, *, content_id: str, fields: ContentFields) -> ContentRecord: ...

    async def append_attachment(self, *, content_id: str, attachment: Attachment) -> ContentRecord: ...

    # Idempotent: an already soft-deleted document keeps its original marker.
    async def soft_delete(self, *, content_id: str) -> ContentRecord: ...

    # Clears the soft-delete marker; used only to undo a delete whose
    # reference flip lost a race.
    async def restore(self, *, content_id: str) -> ContentRecord: ...

    # Writes a snapshot's payload and updated_at back verbatim, leaving the
    # soft-delete marker alone; used only to undo an edit whose draft status
    # was lost before the write landed.
    async def revert(self, *, record: ContentRecord) -> ContentRecord: ...

    async def list_by_owner(self, *, owner_id: str, limit: int, offset: int) -> list[ContentRecord]: ...

    async def list_by_filter(self, *, query: ContentListQuery) -> list[ContentRecord]: ...


@runtime_checkable
class ReferenceStore(Protocol):
    """Structured reference records, authoritative for status.

    Status writes are compare-and-set: the caller passes the status it
    observed and the store raises StaleStatusError when the row moved on.
    Compatible with a single Postgres row update guarded by the status column.
    """

    async def create(self, *, owner_id: str, content_ref: str) -> ReferenceRecord: ...

    async def get_by_id(self, *, reference_id: str) -> ReferenceRecord: ...

    async def get_by_content_ref(self, *, content_ref: str) -> ReferenceRecord | None: ...

    async def update(
        self,
        *,
        reference: ReferenceRecord,
        expected_status: AchievementStatus,
    ) -> ReferenceRecord: ...

    async def soft_delete(
        self,
        *,
        reference_id: str,
        expected_status: AchievementStatus,
    ) -> ReferenceRecord: ...

    async def list_by_owner(self, *, owner_id: str, limit: int, offset: int) -> list[ReferenceRecord]: ...

    async def list_by_filter(self, *, query: ReferenceListQuery) -> list[ReferenceRecord]: ...

    async def count_by_filter(self, *, query: ReferenceListQuery) -> int: ...


@runtime_checkable
class AuthorizationDirectory(Protocol):
    async def resolve_capabilities(self, *, actor_id: str) -> frozenset[str]: ...

    async def resolve_role(self, *, actor_id: str) -> str | None: ...


@runtime_checkable
class OwnerDirectory(Protocol):
    """Maps an authenticated principal to the student profile used as owner_id."""

    async def resolve_owner_profile(self, *, user_id: str) -> str | None: ...


@runtime_checkable
class VerifierDirectory(Protocol):
    async def list_supervisees_of(self, *, verifier_id: str) -> frozenset[str]: ...
