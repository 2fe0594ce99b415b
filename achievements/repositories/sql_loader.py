from __future__ import annotations

from functools import cache
from pathlib import Path

SQL_DIR = Path(__file__).with_name("sql")


@cache
def load_sql(name: str) -> str:
    """Return one statement from the sql/ directory shipped with the package."""
    path = SQL_DIR / name
    if not path.is_file():
        raise FileNotFoundError(f"statement {name} is not shipped in {SQL_DIR}")
    return path.read_text(encoding="utf-8").strip()
