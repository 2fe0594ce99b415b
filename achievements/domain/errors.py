from __future__ import annotations

from achievements.domain.error_taxonomy import ErrorCode


class DomainError(Exception):
    code: ErrorCode = "internal_error"


class NotFoundError(DomainError):
    code: ErrorCode = "not_found"


class UnauthorizedError(DomainError):
    """Actor is not the owner of the achievement."""

    code: ErrorCode = "unauthorized"


class ForbiddenError(DomainError):
    """Actor lacks the role or permission the operation requires."""

    code: ErrorCode = "forbidden"


class InvalidStateError(DomainError):
    code: ErrorCode = "invalid_state"


class InvalidTransitionError(InvalidStateError):
    def __init__(self, *, current_status: str, event: str, requested_status: str) -> None:
        super().__init__(
            f"invalid transition: cannot {event} from {current_status} (requested {requested_status})"
        )
        self.current_status = current_status
        self.event = event
        self.requested_status = requested_status


class StaleStatusError(InvalidStateError):
    """Stored status changed between read and write."""

    def __init__(self, *, reference_id: str, expected_status: str, actual_status: str | None) -> None:
        super().__init__(
            f"reference {reference_id} status changed: expected {expected_status}, found {actual_status}"
        )
        self.reference_id = reference_id
        self.expected_status = expected_status
        self.actual_status = actual_status


class InvalidInputError(DomainError):
    code: ErrorCode = "invalid_input"


class DataIntegrityError(DomainError):
    code: ErrorCode = "data_integrity"


class StoreUnavailableError(DomainError):
    code: ErrorCode = "store_unavailable"


class ConstraintViolationError(DomainError):
    code: ErrorCode = "constraint_violation"
