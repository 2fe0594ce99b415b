"""Ownership and capability checks for achievement operations.

This module is the only place that compares an actor with a record's owner.
Predicates (``can_*``) answer yes/no for UI-style questions and also check
that the lifecycle allows the event from the record's current status. The
``authorize_*`` helpers raise the matching domain error and leave status
legality to the state machine, so a caller always learns about missing
rights before learning about the record's state.
"""

from __future__ import annotations

from collections.abc import Set
from dataclasses import dataclass

from achievements.domain.contracts import AuthorizationDirectory, OwnerDirectory
from achievements.domain.errors import ForbiddenError, UnauthorizedError
from achievements.domain.lifecycle import TRANSITION_RULES, AchievementEvent, is_transition_allowed
from achievements.domain.models import ReferenceRecord

PERMISSION_CREATE = "achievement:create"
PERMISSION_READ = "achievement:read"
PERMISSION_UPDATE = "achievement:update"
PERMISSION_DELETE = "achievement:delete"
PERMISSION_VERIFY = "achievement:verify"

ROLE_STUDENT = "student"
ROLE_VERIFIER = "verifier"
ROLE_ADMIN = "admin"

EVENT_PERMISSIONS: dict[AchievementEvent, str] = {
    AchievementEvent.SUBMIT: PERMISSION_UPDATE,
    AchievementEvent.EDIT: PERMISSION_UPDATE,
    AchievementEvent.DELETE: PERMISSION_DELETE,
    AchievementEvent.VERIFY: PERMISSION_VERIFY,
    AchievementEvent.REJECT: PERMISSION_VERIFY,
}


@dataclass(frozen=True)
class ActorContext:
    """Capabilities of one caller, resolved once per request.

    Never cache this across requests: roles and permissions may change
    between calls.
    """

    actor_id: str
    role: str | None
    capabilities: frozenset[str]
    owner_id: str | None = None

    def has(self, permission: str) -> bool:
        return permission in self.capabilities

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


async def resolve_actor(
    *,
    actor_id: str,
    authorization: AuthorizationDirectory,
    owners: OwnerDirectory,
) -> ActorContext:
    capabilities = await authorization.resolve_capabilities(actor_id=actor_id)
    role = await authorization.resolve_role(actor_id=actor_id)
    owner_id = await owners.resolve_owner_profile(user_id=actor_id)
    return ActorContext(
        actor_id=actor_id,
        role=role,
        capabilities=frozenset(capabilities),
        owner_id=owner_id,
    )


def is_owner(actor: ActorContext, owner_id: str) -> bool:
    return actor.owner_id is not None and actor.owner_id == owner_id


def can_create(actor: ActorContext) -> bool:
    return actor.owner_id is not None and actor.has(PERMISSION_CREATE)


def can_read(actor: ActorContext, reference: ReferenceRecord) -> bool:
    if not actor.has(PERMISSION_READ):
        return False
    return is_owner(actor, reference.owner_id) or actor.has(PERMISSION_VERIFY) or actor.is_admin


def can_edit(actor: ActorContext, reference: ReferenceRecord) -> bool:
    return _can(actor, reference, AchievementEvent.EDIT)


def can_submit(actor: ActorContext, reference: ReferenceRecord) -> bool:
    return _can(actor, reference, AchievementEvent.SUBMIT)


def can_verify(actor: ActorContext, reference: ReferenceRecord) -> bool:
    return _can(actor, reference, AchievementEvent.VERIFY)


def can_reject(actor: ActorContext, reference: ReferenceRecord) -> bool:
    return _can(actor, reference, AchievementEvent.REJECT)


def can_delete(actor: ActorContext, reference: ReferenceRecord) -> bool:
    return _can(actor, reference, AchievementEvent.DELETE)


def can_view_owner(actor: ActorContext, owner_id: str, supervisees: Set[str]) -> bool:
    if actor.is_admin:
        return True
    if is_owner(actor, owner_id):
        return True
    return actor.has(PERMISSION_VERIFY) and owner_id in supervisees


def authorize_create(actor: ActorContext) -> str:
    """Return the owner id new achievements are created under."""
    if actor.owner_id is None:
        raise ForbiddenError("only students with an owner profile can create achievements")
    if not actor.has(PERMISSION_CREATE):
        raise ForbiddenError(f"missing permission {PERMISSION_CREATE}")
    return actor.owner_id


def authorize_read(actor: ActorContext, reference: ReferenceRecord) -> None:
    if not actor.has(PERMISSION_READ):
        raise ForbiddenError(f"missing permission {PERMISSION_READ}")
    if not can_read(actor, reference):
        raise UnauthorizedError("not your achievement")


def authorize_event(actor: ActorContext, reference: ReferenceRecord, event: AchievementEvent) -> None:
    denial = _denial(actor, reference, event)
    if denial is not None:
        raise denial


def authorize_verifier(actor: ActorContext) -> None:
    if not actor.has(PERMISSION_VERIFY):
        raise ForbiddenError(f"missing permission {PERMISSION_VERIFY}")


def _can(actor: ActorContext, reference: ReferenceRecord, event: AchievementEvent) -> bool:
    if _denial(actor, reference, event) is not None:
        return False
    return is_transition_allowed(reference.status, event)


def _denial(
    actor: ActorContext,
    reference: ReferenceRecord,
    event: AchievementEvent,
) -> UnauthorizedError | ForbiddenError | None:
    rule = TRANSITION_RULES[event]
    permission = EVENT_PERMISSIONS[event]
    if rule.actor == "owner":
        if not is_owner(actor, reference.owner_id):
            return UnauthorizedError("not your achievement")
        if not actor.has(permission):
            return ForbiddenError(f"missing permission {permission}")
        return None

    if not actor.has(permission):
        return ForbiddenError(f"{event} requires the verifier role")
    return None
