from __future__ import annotations

import asyncio
import importlib

import pytest

from achievements.domain.contracts import COMPARE_AND_SET_SQL_CONTRACT
from achievements.domain.errors import (
    ConstraintViolationError,
    NotFoundError,
    StoreUnavailableError,
)
from achievements.repositories.postgres import (
    SQL_SOFT_DELETE_DOCUMENT,
    SQL_UPDATE_DOCUMENT,
    SQL_UPDATE_REFERENCE_STATUS,
    AsyncpgPoolManager,
    PostgresReferenceStore,
    _store_errors,
)
from achievements.repositories.sql_loader import load_sql


class _UniqueViolation(Exception):
    sqlstate = "23505"


async def _raise_inside(exc: BaseException) -> None:
    async with _store_errors("reference"):
        raise exc


@pytest.mark.unit
def test_status_update_sql_is_guarded_by_expected_status() -> None:
    assert "WHERE public_id = $1" in COMPARE_AND_SET_SQL_CONTRACT
    assert "WHERE public_id = $1" in SQL_UPDATE_REFERENCE_STATUS
    assert "AND status = $2" in SQL_UPDATE_REFERENCE_STATUS
    assert "RETURNING" in SQL_UPDATE_REFERENCE_STATUS


@pytest.mark.unit
def test_document_update_keeps_attachments_and_soft_delete_keeps_marker() -> None:
    assert "attachments" in SQL_UPDATE_DOCUMENT
    assert "deleted_at IS NULL" in SQL_UPDATE_DOCUMENT
    assert "COALESCE(deleted_at" in SQL_SOFT_DELETE_DOCUMENT


@pytest.mark.unit
def test_os_and_timeout_errors_become_store_unavailable() -> None:
    with pytest.raises(StoreUnavailableError, match="reference store is unavailable"):
        asyncio.run(_raise_inside(ConnectionRefusedError("refused")))
    with pytest.raises(StoreUnavailableError):
        asyncio.run(_raise_inside(TimeoutError()))


@pytest.mark.unit
def test_unique_violation_becomes_constraint_violation() -> None:
    with pytest.raises(ConstraintViolationError):
        asyncio.run(_raise_inside(_UniqueViolation("duplicate key")))


@pytest.mark.unit
def test_driver_interface_errors_become_store_unavailable() -> None:
    asyncpg = importlib.import_module("asyncpg")

    with pytest.raises(StoreUnavailableError):
        asyncio.run(_raise_inside(asyncpg.InterfaceError("pool is closed")))


@pytest.mark.unit
def test_domain_and_unknown_errors_pass_through() -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(_raise_inside(NotFoundError("achievement not found: ach_1")))
    with pytest.raises(KeyError):
        asyncio.run(_raise_inside(KeyError("public_id")))


@pytest.mark.unit
def test_store_refuses_work_before_pool_startup() -> None:
    store = PostgresReferenceStore(pool_manager=AsyncpgPoolManager(dsn="postgres://unused"))

    with pytest.raises(RuntimeError, match="pool is not initialized"):
        asyncio.run(store.get_by_id(reference_id="ach_1"))
    assert asyncio.run(store.pool_manager.ping()) is False


@pytest.mark.unit
def test_unknown_statement_names_fail_loudly() -> None:
    assert load_sql("get_reference.sql").startswith("SELECT")
    with pytest.raises(FileNotFoundError, match="drop_everything.sql"):
        load_sql("drop_everything.sql")
