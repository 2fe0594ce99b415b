from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from achievements.clients.stub import StaticDirectory, load_static_directory
from achievements.domain.contracts import AuthorizationDirectory, OwnerDirectory, VerifierDirectory
from achievements.domain.guard import PERMISSION_CREATE, PERMISSION_VERIFY

DIRECTORY_YAML = """
students:
  - user_id: user-s1
    owner_id: S1
    advisor_id: V1
  - user_id: user-s2
    owner_id: S2
verifiers:
  - user_id: V1
    supervisees: [S3]
admins:
  - admin-1
"""


@pytest.mark.unit
def test_static_directory_satisfies_directory_protocols() -> None:
    directory = StaticDirectory()

    assert isinstance(directory, AuthorizationDirectory)
    assert isinstance(directory, OwnerDirectory)
    assert isinstance(directory, VerifierDirectory)


@pytest.mark.unit
def test_directory_loads_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "directory.yaml"
    path.write_text(DIRECTORY_YAML, encoding="utf-8")

    directory = load_static_directory(path)

    async def _run() -> None:
        assert await directory.resolve_owner_profile(user_id="user-s1") == "S1"
        assert await directory.resolve_role(actor_id="admin-1") == "admin"
        assert PERMISSION_CREATE in await directory.resolve_capabilities(actor_id="user-s2")
        assert PERMISSION_VERIFY in await directory.resolve_capabilities(actor_id="V1")
        assert await directory.list_supervisees_of(verifier_id="V1") == frozenset({"S1", "S3"})
        assert await directory.resolve_capabilities(actor_id="stranger") == frozenset()

    asyncio.run(_run())


@pytest.mark.unit
def test_directory_accepts_json_files(tmp_path: Path) -> None:
    path = tmp_path / "directory.json"
    path.write_text('{"admins": ["admin-1"]}', encoding="utf-8")

    directory = load_static_directory(path)

    assert directory.roles == {"admin-1": "admin"}


@pytest.mark.unit
def test_directory_file_must_be_a_mapping(tmp_path: Path) -> None:
    path = tmp_path / "directory.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="must be a YAML object"):
        load_static_directory(path)
