from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import UTC, datetime

import pytest

from achievements.domain.errors import NotFoundError, StaleStatusError
from achievements.domain.guard import resolve_actor
from achievements.domain.models import (
    AchievementStatus,
    Attachment,
    ContentListQuery,
    ReferenceListQuery,
)
from achievements.domain.validation import build_content_fields
from achievements.repositories.postgres import (
    AsyncpgPoolManager,
    PostgresContentStore,
    PostgresReferenceStore,
)
from achievements.services.coordinator import AchievementService
from achievements.services.reconcile import OrphanReconciler
from tests.integration.postgres_test_utils import apply_down, apply_up, fresh_schema, require_postgres
from tests.unit.service_seed import STUDENT_S1, VERIFIER_V1, seeded_directory


@pytest.mark.integration
def test_migration_up_down_up_contract() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        await fresh_schema(dsn=dsn)
        manager = AsyncpgPoolManager(dsn=dsn)
        await manager.startup()
        try:
            assert await manager.ping() is True
            with pytest.raises(NotFoundError):
                await PostgresReferenceStore(pool_manager=manager).get_by_id(reference_id="ach_missing")
        finally:
            await manager.shutdown()

        await apply_down(dsn=dsn)
        await apply_up(dsn=dsn)

    asyncio.run(_run())


@pytest.mark.integration
def test_content_documents_round_trip_through_jsonb() -> None:
    dsn = require_postgres()
    attachment = Attachment(
        filename="diploma.pdf",
        url="https://files.example.org/diploma.pdf",
        mime_type="application/pdf",
        uploaded_at=datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
    )

    async def _run() -> None:
        await fresh_schema(dsn=dsn)
        manager = AsyncpgPoolManager(dsn=dsn)
        await manager.startup()
        store = PostgresContentStore(pool_manager=manager)
        try:
            created = await store.create(
                owner_id="S1",
                fields=build_content_fields(
                    category="competition",
                    title="Olympiad",
                    details={"competition_level": "national", "team": "Blue"},
                    tags=["math"],
                    score=12,
                ),
            )
            await store.append_attachment(content_id=created.content_id, attachment=attachment)
            updated = await store.update(
                content_id=created.content_id,
                fields=build_content_fields(category="competition", title="Olympiad (final)"),
            )
            assert updated.title == "Olympiad (final)"
            assert updated.attachments == (attachment,)

            loaded = await store.get_by_id(content_id=created.content_id)
            assert loaded == updated

            first_delete = await store.soft_delete(content_id=created.content_id)
            second_delete = await store.soft_delete(content_id=created.content_id)
            assert first_delete.deleted_at == second_delete.deleted_at
            with pytest.raises(NotFoundError):
                await store.get_by_id(content_id=created.content_id)
            with pytest.raises(NotFoundError):
                await store.update(content_id=created.content_id, fields=build_content_fields(category="other", title="X"))

            assert await store.list_by_owner(owner_id="S1", limit=10, offset=0) == []
            everything = await store.list_by_filter(query=ContentListQuery(owner_ids=("S1",), include_deleted=True))
            assert [item.content_id for item in everything] == [created.content_id]

            restored = await store.restore(content_id=created.content_id)
            assert restored.deleted_at is None

            reverted = await store.revert(record=created)
            assert reverted.title == "Olympiad"
            assert reverted.tags == ("math",)
            assert reverted.attachments == ()
            assert reverted.updated_at == created.updated_at
        finally:
            await manager.shutdown()

    asyncio.run(_run())


@pytest.mark.integration
def test_reference_status_update_is_compare_and_set() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        await fresh_schema(dsn=dsn)
        manager = AsyncpgPoolManager(dsn=dsn)
        await manager.startup()
        store = PostgresReferenceStore(pool_manager=manager)
        try:
            created = await store.create(owner_id="S1", content_ref="doc_1")
            submitted = replace(created, status=AchievementStatus.SUBMITTED, submitted_at=datetime.now(tz=UTC))

            results = await asyncio.gather(
                store.update(reference=submitted, expected_status=AchievementStatus.DRAFT),
                store.update(reference=submitted, expected_status=AchievementStatus.DRAFT),
                return_exceptions=True,
            )

            winners = [item for item in results if not isinstance(item, BaseException)]
            losers = [item for item in results if isinstance(item, BaseException)]
            assert len(winners) == 1
            assert len(losers) == 1
            assert isinstance(losers[0], StaleStatusError)
            assert winners[0].status == AchievementStatus.SUBMITTED

            found = await store.get_by_content_ref(content_ref="doc_1")
            assert found is not None
            assert found.reference_id == created.reference_id
            total = await store.count_by_filter(query=ReferenceListQuery(owner_ids=("S1",)))
            assert total == 1
        finally:
            await manager.shutdown()

    asyncio.run(_run())


@pytest.mark.integration
def test_service_flow_and_reconcile_against_postgres() -> None:
    dsn = require_postgres()
    directory = seeded_directory()

    async def _run() -> None:
        await fresh_schema(dsn=dsn)
        manager = AsyncpgPoolManager(dsn=dsn)
        await manager.startup()
        content = PostgresContentStore(pool_manager=manager)
        references = PostgresReferenceStore(pool_manager=manager)
        service = AchievementService(content=content, references=references, verifiers=directory)
        try:
            s1 = await resolve_actor(actor_id=STUDENT_S1, authorization=directory, owners=directory)
            v1 = await resolve_actor(actor_id=VERIFIER_V1, authorization=directory, owners=directory)
            created = await service.create_achievement(
                actor=s1,
                fields=build_content_fields(category="competition", title="X"),
            )
            await service.submit_achievement(actor=s1, reference_id=created.reference_id)
            verified = await service.verify_achievement(actor=v1, reference_id=created.reference_id)
            assert verified.verifier_id == VERIFIER_V1

            page = await service.list_for_owner(actor=s1)
            assert [item.achievement_id for item in page.items] == [created.reference_id]

            orphan = await content.create(owner_id="S1", fields=build_content_fields(category="other", title="o"))
            reconciler = OrphanReconciler(
                content=content,
                references=references,
                grace_seconds=0,
                clock=lambda: datetime(2999, 1, 1, tzinfo=UTC),
            )
            result = await reconciler.reconcile_orphans()
            assert result.repaired == [orphan.content_id]
        finally:
            await manager.shutdown()

    asyncio.run(_run())

