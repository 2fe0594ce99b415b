from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import StrEnum
from typing import Literal

from achievements.domain.errors import InvalidInputError, InvalidTransitionError
from achievements.domain.models import AchievementStatus, ReferenceRecord

ActorKind = Literal["owner", "verifier"]


class AchievementEvent(StrEnum):
    SUBMIT = "submit"
    VERIFY = "verify"
    REJECT = "reject"
    EDIT = "edit"
    DELETE = "delete"


@dataclass(frozen=True)
class TransitionRule:
    event: AchievementEvent
    source_states: frozenset[AchievementStatus]
    target_state: AchievementStatus
    actor: ActorKind
    requires_note: bool = False


TRANSITION_RULES: dict[AchievementEvent, TransitionRule] = {
    AchievementEvent.SUBMIT: TransitionRule(
        event=AchievementEvent.SUBMIT,
        source_states=frozenset({AchievementStatus.DRAFT}),
        target_state=AchievementStatus.SUBMITTED,
        actor="owner",
    ),
    AchievementEvent.VERIFY: TransitionRule(
        event=AchievementEvent.VERIFY,
        source_states=frozenset({AchievementStatus.SUBMITTED}),
        target_state=AchievementStatus.VERIFIED,
        actor="verifier",
    ),
    AchievementEvent.REJECT: TransitionRule(
        event=AchievementEvent.REJECT,
        source_states=frozenset({AchievementStatus.SUBMITTED}),
        target_state=AchievementStatus.REJECTED,
        actor="verifier",
        requires_note=True,
    ),
    AchievementEvent.EDIT: TransitionRule(
        event=AchievementEvent.EDIT,
        source_states=frozenset({AchievementStatus.DRAFT}),
        target_state=AchievementStatus.DRAFT,
        actor="owner",
    ),
    AchievementEvent.DELETE: TransitionRule(
        event=AchievementEvent.DELETE,
        source_states=frozenset({AchievementStatus.DRAFT, AchievementStatus.REJECTED}),
        target_state=AchievementStatus.DELETED,
        actor="owner",
    ),
}


# There is deliberately no rejected -> draft edge: resubmission after a
# rejection is a product decision that has not been made.
ALLOWED_TRANSITIONS: dict[AchievementStatus, set[AchievementStatus]] = {
    AchievementStatus.DRAFT: {AchievementStatus.DRAFT, AchievementStatus.SUBMITTED, AchievementStatus.DELETED},
    AchievementStatus.SUBMITTED: {AchievementStatus.VERIFIED, AchievementStatus.REJECTED},
    AchievementStatus.VERIFIED: set(),
    AchievementStatus.REJECTED: {AchievementStatus.DELETED},
    AchievementStatus.DELETED: set(),
}


@dataclass(frozen=True)
class TransitionOutcome:
    event: AchievementEvent
    from_status: AchievementStatus
    to_status: AchievementStatus
    submitted_at: datetime | None = None
    verified_at: datetime | None = None
    verifier_id: str | None = None
    rejection_note: str | None = None

    @property
    def changes_status(self) -> bool:
        return self.from_status != self.to_status

    def apply(self, reference: ReferenceRecord, *, now: datetime) -> ReferenceRecord:
        """Return the reference with the new status and side-effect fields set."""
        updated = replace(reference, status=self.to_status, updated_at=now)
        if self.submitted_at is not None:
            updated = replace(updated, submitted_at=self.submitted_at)
        if self.verified_at is not None:
            updated = replace(updated, verified_at=self.verified_at)
        if self.verifier_id is not None:
            updated = replace(updated, verifier_id=self.verifier_id)
        if self.rejection_note is not None:
            updated = replace(updated, rejection_note=self.rejection_note)
        return updated


def is_transition_allowed(status: AchievementStatus, event: AchievementEvent) -> bool:
    return status in TRANSITION_RULES[event].source_states


def decide_transition(
    *,
    current_status: AchievementStatus,
    event: AchievementEvent,
    actor_id: str,
    now: datetime,
    note: str | None = None,
) -> TransitionOutcome:
    """Decide the outcome of ``event`` on a reference in ``current_status``.

    Pure: performs no I/O and does not check who the actor is allowed to be.
    Role and ownership are the authorization guard's job; the caller is
    expected to have run it first.
    """
    rule = TRANSITION_RULES[event]
    if current_status not in rule.source_states:
        raise InvalidTransitionError(
            current_status=current_status,
            event=event,
            requested_status=rule.target_state,
        )

    if rule.requires_note and not (note or "").strip():
        raise InvalidInputError(f"{event} requires a non-empty note")

    outcome = TransitionOutcome(event=event, from_status=current_status, to_status=rule.target_state)
    if event == AchievementEvent.SUBMIT:
        return replace(outcome, submitted_at=now)
    if event == AchievementEvent.VERIFY:
        return replace(outcome, verified_at=now, verifier_id=actor_id)
    if event == AchievementEvent.REJECT:
        return replace(outcome, verifier_id=actor_id, rejection_note=(note or "").strip())
    return outcome
