import pytest

from achievements.settings import (
    ListSettings,
    StoreSettings,
    list_settings_from_env,
    store_settings_from_env,
)
from achievements.workers.runner import ReconcileRuntimeSettings, reconcile_runtime_settings_from_env

STORE_ENV = (
    "DATABASE_URL",
    "CONTENT_DATABASE_URL",
    "DB_POOL_MIN_SIZE",
    "DB_POOL_MAX_SIZE",
    "DB_COMMAND_TIMEOUT_SECONDS",
    "DIRECTORY_FILE",
)


@pytest.mark.unit
def test_store_settings_default_to_memory_mode(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in STORE_ENV:
        monkeypatch.delenv(name, raising=False)

    settings = store_settings_from_env()

    assert settings == StoreSettings()
    assert settings.content_dsn is None


@pytest.mark.unit
def test_store_settings_read_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgres://app:app@db:5432/refs")
    monkeypatch.setenv("CONTENT_DATABASE_URL", "postgres://app:app@db:5432/docs")
    monkeypatch.setenv("DB_POOL_MIN_SIZE", "2")
    monkeypatch.setenv("DB_POOL_MAX_SIZE", "8")
    monkeypatch.setenv("DB_COMMAND_TIMEOUT_SECONDS", "3")
    monkeypatch.setenv("DIRECTORY_FILE", "/etc/achievements/directory.json")

    settings = store_settings_from_env()

    assert settings.database_url == "postgres://app:app@db:5432/refs"
    assert settings.content_dsn == "postgres://app:app@db:5432/docs"
    assert settings.pool_min_size == 2
    assert settings.pool_max_size == 8
    assert settings.command_timeout_seconds == 3
    assert settings.directory_file == "/etc/achievements/directory.json"


@pytest.mark.unit
def test_content_store_shares_reference_database_by_default() -> None:
    settings = StoreSettings(database_url="postgres://app:app@db:5432/app")
    assert settings.content_dsn == "postgres://app:app@db:5432/app"


@pytest.mark.unit
def test_list_settings_fall_back_on_bad_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LIST_DEFAULT_LIMIT", "abc")
    monkeypatch.setenv("LIST_MAX_LIMIT", "-1")

    assert list_settings_from_env() == ListSettings()


@pytest.mark.unit
def test_list_default_never_exceeds_max(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LIST_DEFAULT_LIMIT", "50")
    monkeypatch.setenv("LIST_MAX_LIMIT", "20")

    assert list_settings_from_env() == ListSettings(default_limit=20, max_limit=20)


@pytest.mark.unit
def test_reconcile_runtime_settings_read_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RECONCILE_INTERVAL_MS", "250")
    monkeypatch.setenv("RECONCILE_ERROR_BACKOFF_MS", "500")
    monkeypatch.setenv("RECONCILE_GRACE_SECONDS", "60")
    monkeypatch.setenv("RECONCILE_BATCH_SIZE", "25")

    settings = reconcile_runtime_settings_from_env()

    assert settings == ReconcileRuntimeSettings(
        interval_ms=250,
        error_backoff_ms=500,
        grace_seconds=60,
        batch_size=25,
    )


@pytest.mark.unit
def test_reconcile_runtime_settings_fall_back_on_bad_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RECONCILE_INTERVAL_MS", "abc")
    monkeypatch.setenv("RECONCILE_ERROR_BACKOFF_MS", "0")
    monkeypatch.setenv("RECONCILE_GRACE_SECONDS", "-10")
    monkeypatch.delenv("RECONCILE_BATCH_SIZE", raising=False)

    assert reconcile_runtime_settings_from_env() == ReconcileRuntimeSettings()
