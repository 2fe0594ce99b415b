from __future__ import annotations

import importlib

ulid_module = importlib.import_module("ulid")


def new_reference_id() -> str:
    return f"ach_{ulid_module.new().str}"


def new_content_id() -> str:
    return f"doc_{ulid_module.new().str}"
