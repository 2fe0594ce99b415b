from __future__ import annotations

from datetime import UTC, datetime

import pytest

from achievements.domain.errors import InvalidInputError, InvalidStateError, InvalidTransitionError
from achievements.domain.lifecycle import (
    ALLOWED_TRANSITIONS,
    TRANSITION_RULES,
    AchievementEvent,
    decide_transition,
    is_transition_allowed,
)
from achievements.domain.models import AchievementStatus, ReferenceRecord

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

LEGAL = {
    (AchievementStatus.DRAFT, AchievementEvent.SUBMIT): AchievementStatus.SUBMITTED,
    (AchievementStatus.SUBMITTED, AchievementEvent.VERIFY): AchievementStatus.VERIFIED,
    (AchievementStatus.SUBMITTED, AchievementEvent.REJECT): AchievementStatus.REJECTED,
    (AchievementStatus.DRAFT, AchievementEvent.EDIT): AchievementStatus.DRAFT,
    (AchievementStatus.DRAFT, AchievementEvent.DELETE): AchievementStatus.DELETED,
    (AchievementStatus.REJECTED, AchievementEvent.DELETE): AchievementStatus.DELETED,
}

ALL_PAIRS = [(status, event) for status in AchievementStatus for event in AchievementEvent]


@pytest.mark.unit
@pytest.mark.parametrize(("status", "event"), [pair for pair in ALL_PAIRS if pair not in LEGAL])
def test_illegal_pairs_raise_invalid_transition(status: AchievementStatus, event: AchievementEvent) -> None:
    with pytest.raises(InvalidTransitionError) as exc_info:
        decide_transition(current_status=status, event=event, actor_id="V1", now=NOW, note="why")

    assert isinstance(exc_info.value, InvalidStateError)
    assert exc_info.value.current_status == status
    assert exc_info.value.requested_status == TRANSITION_RULES[event].target_state
    assert is_transition_allowed(status, event) is False


@pytest.mark.unit
@pytest.mark.parametrize(("status", "event"), list(LEGAL))
def test_legal_pairs_reach_their_target(status: AchievementStatus, event: AchievementEvent) -> None:
    outcome = decide_transition(current_status=status, event=event, actor_id="V1", now=NOW, note="why")

    assert outcome.from_status == status
    assert outcome.to_status == LEGAL[(status, event)]
    assert outcome.to_status in ALLOWED_TRANSITIONS[status]


@pytest.mark.unit
def test_rule_table_and_transition_map_agree() -> None:
    derived: dict[AchievementStatus, set[AchievementStatus]] = {status: set() for status in AchievementStatus}
    for rule in TRANSITION_RULES.values():
        for source in rule.source_states:
            derived[source].add(rule.target_state)

    assert derived == ALLOWED_TRANSITIONS
    assert AchievementStatus.DRAFT not in ALLOWED_TRANSITIONS[AchievementStatus.REJECTED]


@pytest.mark.unit
def test_side_effect_fields_per_event() -> None:
    submit = decide_transition(
        current_status=AchievementStatus.DRAFT, event=AchievementEvent.SUBMIT, actor_id="S1", now=NOW
    )
    assert submit.submitted_at == NOW
    assert submit.verifier_id is None

    verify = decide_transition(
        current_status=AchievementStatus.SUBMITTED, event=AchievementEvent.VERIFY, actor_id="V1", now=NOW
    )
    assert verify.verified_at == NOW
    assert verify.verifier_id == "V1"

    reject = decide_transition(
        current_status=AchievementStatus.SUBMITTED,
        event=AchievementEvent.REJECT,
        actor_id="V1",
        now=NOW,
        note=" incomplete ",
    )
    assert reject.rejection_note == "incomplete"
    assert reject.verified_at is None

    edit = decide_transition(
        current_status=AchievementStatus.DRAFT, event=AchievementEvent.EDIT, actor_id="S1", now=NOW
    )
    assert edit.changes_status is False


@pytest.mark.unit
def test_reject_without_note_is_invalid_input() -> None:
    with pytest.raises(InvalidInputError):
        decide_transition(
            current_status=AchievementStatus.SUBMITTED,
            event=AchievementEvent.REJECT,
            actor_id="V1",
            now=NOW,
            note=None,
        )


@pytest.mark.unit
def test_outcome_apply_keeps_identity_and_sets_fields() -> None:
    created = datetime(2026, 2, 1, tzinfo=UTC)
    reference = ReferenceRecord(
        reference_id="ach_1",
        owner_id="S1",
        content_ref="doc_1",
        status=AchievementStatus.SUBMITTED,
        created_at=created,
        updated_at=created,
        submitted_at=created,
    )
    outcome = decide_transition(
        current_status=reference.status, event=AchievementEvent.VERIFY, actor_id="V1", now=NOW
    )

    applied = outcome.apply(reference, now=NOW)

    assert applied.status == AchievementStatus.VERIFIED
    assert applied.owner_id == "S1"
    assert applied.content_ref == "doc_1"
    assert applied.created_at == created
    assert applied.submitted_at == created
    assert applied.verified_at == NOW
    assert applied.updated_at == NOW
    assert reference.status == AchievementStatus.SUBMITTED
