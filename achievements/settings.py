from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class StoreSettings:
    database_url: str | None = None
    content_database_url: str | None = None
    pool_min_size: int = 1
    pool_max_size: int = 5
    command_timeout_seconds: int = 10
    directory_file: str | None = None

    @property
    def content_dsn(self) -> str | None:
        # The content store may live in its own database; it shares the
        # reference database when no separate URL is configured.
        return self.content_database_url or self.database_url


@dataclass(frozen=True)
class ListSettings:
    default_limit: int = 10
    max_limit: int = 100


def store_settings_from_env() -> StoreSettings:
    return StoreSettings(
        database_url=os.getenv("DATABASE_URL") or None,
        content_database_url=os.getenv("CONTENT_DATABASE_URL") or None,
        pool_min_size=_env_int("DB_POOL_MIN_SIZE", 1),
        pool_max_size=_env_int("DB_POOL_MAX_SIZE", 5),
        command_timeout_seconds=_env_int("DB_COMMAND_TIMEOUT_SECONDS", 10),
        directory_file=os.getenv("DIRECTORY_FILE") or None,
    )


def list_settings_from_env() -> ListSettings:
    default_limit = _env_int("LIST_DEFAULT_LIMIT", 10)
    max_limit = _env_int("LIST_MAX_LIMIT", 100)
    return ListSettings(default_limit=min(default_limit, max_limit), max_limit=max_limit)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default

    try:
        parsed = int(value)
    except ValueError:
        return default

    return parsed if parsed > 0 else default
