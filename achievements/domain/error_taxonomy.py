from __future__ import annotations

from collections.abc import Mapping
from typing import Literal

# Canonical error vocabulary for all achievement operations.
ErrorCode = Literal[
    "not_found",
    "unauthorized",
    "forbidden",
    "invalid_state",
    "invalid_input",
    "data_integrity",
    "store_unavailable",
    "constraint_violation",
    "internal_error",
]

RetryClassification = Literal["recoverable", "terminal"]

CANONICAL_ERROR_CODES: tuple[ErrorCode, ...] = (
    "not_found",
    "unauthorized",
    "forbidden",
    "invalid_state",
    "invalid_input",
    "data_integrity",
    "store_unavailable",
    "constraint_violation",
    "internal_error",
)

# Only transient store failures may be retried, and only by the caller's
# infrastructure. The coordinator never retries side-effecting writes.
RECOVERABLE_ERROR_CODES: frozenset[ErrorCode] = frozenset({"store_unavailable"})

HTTP_STATUS_BY_CODE: Mapping[ErrorCode, int] = {
    "not_found": 404,
    "unauthorized": 403,
    "forbidden": 403,
    "invalid_state": 409,
    "invalid_input": 422,
    "data_integrity": 500,
    "store_unavailable": 503,
    "constraint_violation": 409,
    "internal_error": 500,
}


def is_canonical_error_code(code: str) -> bool:
    return code in CANONICAL_ERROR_CODES


def classify_error(code: ErrorCode) -> RetryClassification:
    if code in RECOVERABLE_ERROR_CODES:
        return "recoverable"
    return "terminal"


def resolve_error_code(code: str) -> ErrorCode:
    if is_canonical_error_code(code):
        return code  # type: ignore[return-value]
    return "internal_error"


def http_status_for(code: str) -> int:
    return HTTP_STATUS_BY_CODE[resolve_error_code(code)]
