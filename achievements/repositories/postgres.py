from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
import importlib
import json
from typing import Any

from achievements.domain.errors import (
    ConstraintViolationError,
    DomainError,
    NotFoundError,
    StaleStatusError,
    StoreUnavailableError,
)
from achievements.domain.ids import new_content_id, new_reference_id
from achievements.domain.models import (
    AchievementStatus,
    Attachment,
    ContentFields,
    ContentListQuery,
    ContentRecord,
    ReferenceListQuery,
    ReferenceRecord,
    SortOrder,
)
from achievements.repositories.documents import (
    attachment_to_dict,
    content_record_from_row,
    document_from_fields,
    document_from_record,
)
from achievements.repositories.sql_loader import load_sql

try:
    asyncpg_module = importlib.import_module("asyncpg")
except ModuleNotFoundError:  # pragma: no cover
    asyncpg_module = None  # type: ignore[assignment]


SQL_CREATE_REFERENCE = load_sql("create_reference.sql")
SQL_GET_REFERENCE = load_sql("get_reference.sql")
SQL_GET_REFERENCE_BY_CONTENT_REF = load_sql("get_reference_by_content_ref.sql")
SQL_UPDATE_REFERENCE_STATUS = load_sql("update_reference_status.sql")
SQL_CREATE_DOCUMENT = load_sql("create_document.sql")
SQL_GET_DOCUMENT = load_sql("get_document.sql")
SQL_UPDATE_DOCUMENT = load_sql("update_document.sql")
SQL_APPEND_DOCUMENT_ATTACHMENT = load_sql("append_document_attachment.sql")
SQL_SOFT_DELETE_DOCUMENT = load_sql("soft_delete_document.sql")
SQL_RESTORE_DOCUMENT = load_sql("restore_document.sql")
SQL_REVERT_DOCUMENT = load_sql("revert_document.sql")

REFERENCE_COLUMNS = (
    "public_id, owner_id, content_ref, status, submitted_at, verified_at, "
    "verifier_id, rejection_note, created_at, updated_at"
)
DOCUMENT_COLUMNS = "public_id, owner_id, category, document, created_at, updated_at, deleted_at"


def _is_unique_violation(exc: Exception) -> bool:
    return getattr(exc, "sqlstate", None) == "23505"


def _is_connection_error(exc: Exception) -> bool:
    if asyncpg_module is None:  # pragma: no cover
        return False
    return isinstance(exc, (asyncpg_module.PostgresConnectionError, asyncpg_module.InterfaceError))


@asynccontextmanager
async def _store_errors(store: str) -> AsyncIterator[None]:
    """Translate driver failures into the domain error vocabulary."""
    try:
        yield
    except DomainError:
        raise
    except (OSError, TimeoutError) as exc:
        raise StoreUnavailableError(f"{store} store is unavailable: {exc}") from exc
    except Exception as exc:
        if _is_unique_violation(exc):
            raise ConstraintViolationError(f"{store} store rejected a duplicate key") from exc
        if _is_connection_error(exc):
            raise StoreUnavailableError(f"{store} store is unavailable: {exc}") from exc
        raise


@dataclass
class AsyncpgPoolManager:
    dsn: str
    min_size: int = 1
    max_size: int = 5
    command_timeout_seconds: int = 10
    pool: Any | None = None

    async def startup(self) -> None:
        if asyncpg_module is None:  # pragma: no cover
            raise RuntimeError("asyncpg is required for postgres store mode")
        if self.pool is not None:
            return

        async def _init_connection(conn: Any) -> None:
            await conn.set_type_codec(
                "json",
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog",
            )
            await conn.set_type_codec(
                "jsonb",
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog",
            )

        self.pool = await asyncpg_module.create_pool(
            dsn=self.dsn,
            min_size=self.min_size,
            max_size=max(self.max_size, self.min_size),
            command_timeout=self.command_timeout_seconds,
            init=_init_connection,
        )

    async def shutdown(self) -> None:
        if self.pool is None:
            return
        await self.pool.close()
        self.pool = None

    async def ping(self) -> bool:
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except Exception:
            return False
        return True


@dataclass
class PostgresContentStore:
    """Achievement documents kept as JSONB rows, soft-deleted via deleted_at."""

    pool_manager: AsyncpgPoolManager

    def _pool(self) -> Any:
        if self.pool_manager.pool is None:
            raise RuntimeError("postgres pool is not initialized")
        return self.pool_manager.pool

    async def create(self, *, owner_id: str, fields: ContentFields) -> ContentRecord:
        pool = self._pool()
        async with _store_errors("content"), pool.acquire() as conn:
            row = await conn.fetchrow(
                SQL_CREATE_DOCUMENT,
                new_content_id(),
                owner_id,
                str(fields.category),
                document_from_fields(fields),
            )
        if row is None:
            raise StoreUnavailableError("content store did not return the created document")
        return content_record_from_row(row)

    async def get_by_id(self, *, content_id: str, include_deleted: bool = False) -> ContentRecord:
        pool = self._pool()
        async with _store_errors("content"), pool.acquire() as conn:
            row = await conn.fetchrow(SQL_GET_DOCUMENT, content_id)
        if row is None or (row["deleted_at"] is not None and not include_deleted):
            raise NotFoundError(f"content document not found: {content_id}")
        return content_record_from_row(row)

    async def update(self, *, content_id: str, fields: ContentFields) -> ContentRecord:
        pool = self._pool()
        async with _store_errors("content"), pool.acquire() as conn:
            row = await conn.fetchrow(
                SQL_UPDATE_DOCUMENT,
                content_id,
                str(fields.category),
                document_from_fields(fields, include_attachments=False),
            )
        if row is None:
            raise NotFoundError(f"content document not found: {content_id}")
        return content_record_from_row(row)

    async def append_attachment(self, *, content_id: str, attachment: Attachment) -> ContentRecord:
        pool = self._pool()
        async with _store_errors("content"), pool.acquire() as conn:
            row = await conn.fetchrow(SQL_APPEND_DOCUMENT_ATTACHMENT, content_id, attachment_to_dict(attachment))
        if row is None:
            raise NotFoundError(f"content document not found: {content_id}")
        return content_record_from_row(row)

    async def soft_delete(self, *, content_id: str) -> ContentRecord:
        pool = self._pool()
        async with _store_errors("content"), pool.acquire() as conn:
            row = await conn.fetchrow(SQL_SOFT_DELETE_DOCUMENT, content_id)
        if row is None:
            raise NotFoundError(f"content document not found: {content_id}")
        return content_record_from_row(row)

    async def restore(self, *, content_id: str) -> ContentRecord:
        pool = self._pool()
        async with _store_errors("content"), pool.acquire() as conn:
            row = await conn.fetchrow(SQL_RESTORE_DOCUMENT, content_id)
        if row is None:
            raise NotFoundError(f"content document not found: {content_id}")
        return content_record_from_row(row)

    async def revert(self, *, record: ContentRecord) -> ContentRecord:
        pool = self._pool()
        async with _store_errors("content"), pool.acquire() as conn:
            row = await conn.fetchrow(
                SQL_REVERT_DOCUMENT,
                record.content_id,
                str(record.category),
                document_from_record(record),
                record.updated_at,
            )
        if row is None:
            raise NotFoundError(f"content document not found: {record.content_id}")
        return content_record_from_row(row)

    async def list_by_owner(self, *, owner_id: str, limit: int, offset: int) -> list[ContentRecord]:
        return await self.list_by_filter(
            query=ContentListQuery(owner_ids=(owner_id,), limit=limit, offset=offset)
        )

    async def list_by_filter(self, *, query: ContentListQuery) -> list[ContentRecord]:
        where_parts: list[str] = []
        args: list[object] = []

        if query.owner_ids is not None:
            args.append(list(query.owner_ids))
            where_parts.append(f"owner_id = ANY(${len(args)}::text[])")
        if query.categories is not None:
            args.append([str(item) for item in query.categories])
            where_parts.append(f"category = ANY(${len(args)}::text[])")
        if not query.include_deleted:
            where_parts.append("deleted_at IS NULL")
        if query.created_before is not None:
            args.append(query.created_before)
            where_parts.append(f"created_at < ${len(args)}")

        where_sql = f"WHERE {' AND '.join(where_parts)}" if where_parts else ""
        args.extend([query.limit, query.offset])
        sql = (
            f"SELECT {DOCUMENT_COLUMNS} FROM achievement_documents {where_sql} "
            f"ORDER BY id ASC LIMIT ${len(args) - 1} OFFSET ${len(args)}"
        )

        pool = self._pool()
        async with _store_errors("content"), pool.acquire() as conn:
            rows = await conn.fetch(sql, *args)
        return [content_record_from_row(row) for row in rows]


@dataclass
class PostgresReferenceStore:
    """Reference rows; status writes are a single guarded UPDATE."""

    pool_manager: AsyncpgPoolManager

    def _pool(self) -> Any:
        if self.pool_manager.pool is None:
            raise RuntimeError("postgres pool is not initialized")
        return self.pool_manager.pool

    async def create(self, *, owner_id: str, content_ref: str) -> ReferenceRecord:
        pool = self._pool()
        async with _store_errors("reference"), pool.acquire() as conn:
            row = await conn.fetchrow(SQL_CREATE_REFERENCE, new_reference_id(), owner_id, content_ref)
        if row is None:
            raise StoreUnavailableError("reference store did not return the created row")
        return _reference_from_row(row)

    async def get_by_id(self, *, reference_id: str) -> ReferenceRecord:
        pool = self._pool()
        async with _store_errors("reference"), pool.acquire() as conn:
            row = await conn.fetchrow(SQL_GET_REFERENCE, reference_id)
        if row is None:
            raise NotFoundError(f"achievement not found: {reference_id}")
        return _reference_from_row(row)

    async def get_by_content_ref(self, *, content_ref: str) -> ReferenceRecord | None:
        pool = self._pool()
        async with _store_errors("reference"), pool.acquire() as conn:
            row = await conn.fetchrow(SQL_GET_REFERENCE_BY_CONTENT_REF, content_ref)
        if row is None:
            return None
        return _reference_from_row(row)

    async def update(
        self,
        *,
        reference: ReferenceRecord,
        expected_status: AchievementStatus,
    ) -> ReferenceRecord:
        current = None
        pool = self._pool()
        async with _store_errors("reference"), pool.acquire() as conn:
            row = await conn.fetchrow(
                SQL_UPDATE_REFERENCE_STATUS,
                reference.reference_id,
                str(expected_status),
                str(reference.status),
                reference.submitted_at,
                reference.verified_at,
                reference.verifier_id,
                reference.rejection_note,
            )
            if row is None:
                current = await conn.fetchrow(SQL_GET_REFERENCE, reference.reference_id)
        if row is not None:
            return _reference_from_row(row)
        if current is None:
            raise NotFoundError(f"achievement not found: {reference.reference_id}")
        raise StaleStatusError(
            reference_id=reference.reference_id,
            expected_status=expected_status,
            actual_status=current["status"],
        )

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
        where_sql, args = _reference_filter(query)
        order_direction = "DESC" if query.sort_order == SortOrder.DESC else "ASC"
        args.extend([query.limit, query.offset])
        sql = (
            f"SELECT {REFERENCE_COLUMNS} FROM achievement_references {where_sql} "
            f"ORDER BY created_at {order_direction}, id {order_direction} "
            f"LIMIT ${len(args) - 1} OFFSET ${len(args)}"
        )

        pool = self._pool()
        async with _store_errors("reference"), pool.acquire() as conn:
            rows = await conn.fetch(sql, *args)
        return [_reference_from_row(row) for row in rows]

    async def count_by_filter(self, *, query: ReferenceListQuery) -> int:
        where_sql, args = _reference_filter(query)
        pool = self._pool()
        async with _store_errors("reference"), pool.acquire() as conn:
            total = await conn.fetchval(f"SELECT COUNT(*) FROM achievement_references {where_sql}", *args)
        return int(total or 0)


def _reference_filter(query: ReferenceListQuery) -> tuple[str, list[object]]:
    where_parts: list[str] = []
    args: list[object] = []

    if query.owner_ids is not None:
        args.append(list(query.owner_ids))
        where_parts.append(f"owner_id = ANY(${len(args)}::text[])")
    if query.statuses is not None:
        args.append([str(item) for item in query.statuses])
        where_parts.append(f"status = ANY(${len(args)}::text[])")
    if not query.include_deleted:
        where_parts.append("status <> 'deleted'")

    where_sql = f"WHERE {' AND '.join(where_parts)}" if where_parts else ""
    return where_sql, args


def _reference_from_row(row: Any) -> ReferenceRecord:
    return ReferenceRecord(
        reference_id=row["public_id"],
        owner_id=row["owner_id"],
        content_ref=row["content_ref"],
        status=AchievementStatus(row["status"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        submitted_at=row["submitted_at"],
        verified_at=row["verified_at"],
        verifier_id=row["verifier_id"],
        rejection_note=row["rejection_note"],
    )
