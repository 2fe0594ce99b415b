from __future__ import annotations

from dataclasses import dataclass

SUPPORTED_ROLES = (
    "api",
    "reconciler",
)


@dataclass(frozen=True)
class RuntimeRole:
    name: str

    @property
    def serves_api(self) -> bool:
        return self.name == "api"


def validate_role(role: str) -> RuntimeRole:
    if role in SUPPORTED_ROLES:
        return RuntimeRole(name=role)

    supported = ", ".join(SUPPORTED_ROLES)
    raise ValueError(
        f"Unsupported role '{role}'. Supported roles: {supported}. "
        "Note: database migrations are applied externally, not by an app role."
    )
