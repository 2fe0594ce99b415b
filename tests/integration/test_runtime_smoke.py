import subprocess
import sys

import pytest

from achievements.roles import SUPPORTED_ROLES


@pytest.mark.integration
@pytest.mark.parametrize("role", SUPPORTED_ROLES)
def test_role_starts_in_memory_mode_via_dry_run(role: str) -> None:
    proc = subprocess.run(
        [sys.executable, "-m", "achievements.main", "--role", role, "--dry-run-startup"],
        capture_output=True,
        text=True,
        check=False,
    )
    assert proc.returncode == 0, proc.stderr
    assert "dry-run startup complete" in proc.stdout


@pytest.mark.integration
def test_unknown_role_exits_with_usage_error() -> None:
    proc = subprocess.run(
        [sys.executable, "-m", "achievements.main", "--role", "migrator", "--dry-run-startup"],
        capture_output=True,
        text=True,
        check=False,
    )
    assert proc.returncode == 2
    assert "Unsupported role 'migrator'" in proc.stderr
