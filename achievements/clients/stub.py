from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from achievements.domain.guard import (
    PERMISSION_CREATE,
    PERMISSION_DELETE,
    PERMISSION_READ,
    PERMISSION_UPDATE,
    PERMISSION_VERIFY,
    ROLE_ADMIN,
    ROLE_STUDENT,
    ROLE_VERIFIER,
)

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_ADMIN: frozenset(
        {PERMISSION_CREATE, PERMISSION_READ, PERMISSION_UPDATE, PERMISSION_DELETE, PERMISSION_VERIFY}
    ),
    ROLE_STUDENT: frozenset({PERMISSION_CREATE, PERMISSION_READ, PERMISSION_UPDATE, PERMISSION_DELETE}),
    ROLE_VERIFIER: frozenset({PERMISSION_READ, PERMISSION_VERIFY}),
}


@dataclass
class StaticDirectory:
    """In-process stand-in for the authorization, owner and verifier directories."""

    roles: dict[str, str] = field(default_factory=dict)
    capability_overrides: dict[str, frozenset[str]] = field(default_factory=dict)
    owner_profiles: dict[str, str] = field(default_factory=dict)
    supervisees: dict[str, set[str]] = field(default_factory=dict)
    lookups: list[tuple[str, str]] = field(default_factory=list)

    def register_student(self, *, user_id: str, owner_id: str, advisor_id: str | None = None) -> None:
        self.roles[user_id] = ROLE_STUDENT
        self.owner_profiles[user_id] = owner_id
        if advisor_id is not None:
            self.supervisees.setdefault(advisor_id, set()).add(owner_id)

    def register_verifier(self, *, user_id: str, supervisees: Iterable[str] = ()) -> None:
        self.roles[user_id] = ROLE_VERIFIER
        self.supervisees.setdefault(user_id, set()).update(supervisees)

    def register_admin(self, *, user_id: str) -> None:
        self.roles[user_id] = ROLE_ADMIN

    async def resolve_capabilities(self, *, actor_id: str) -> frozenset[str]:
        self.lookups.append(("capabilities", actor_id))
        override = self.capability_overrides.get(actor_id)
        if override is not None:
            return override
        role = self.roles.get(actor_id)
        if role is None:
            return frozenset()
        return ROLE_PERMISSIONS.get(role, frozenset())

    async def resolve_role(self, *, actor_id: str) -> str | None:
        self.lookups.append(("role", actor_id))
        return self.roles.get(actor_id)

    async def resolve_owner_profile(self, *, user_id: str) -> str | None:
        self.lookups.append(("owner", user_id))
        return self.owner_profiles.get(user_id)

    async def list_supervisees_of(self, *, verifier_id: str) -> frozenset[str]:
        self.lookups.append(("supervisees", verifier_id))
        return frozenset(self.supervisees.get(verifier_id, set()))


def load_static_directory(path: str | Path) -> StaticDirectory:
    """Seed a directory from a YAML (or JSON) file with students, verifiers and admins."""
    payload = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(payload, dict):
        raise ValueError("directory file must be a YAML object")
    directory = StaticDirectory()
    for student in payload.get("students", []):
        directory.register_student(
            user_id=student["user_id"],
            owner_id=student["owner_id"],
            advisor_id=student.get("advisor_id"),
        )
    for verifier in payload.get("verifiers", []):
        directory.register_verifier(user_id=verifier["user_id"], supervisees=verifier.get("supervisees", []))
    for admin_id in payload.get("admins", []):
        directory.register_admin(user_id=admin_id)
    return directory
