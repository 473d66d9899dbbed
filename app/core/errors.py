"""Domain error taxonomy for the enrollment core.

Services raise these; they never know about HTTP.  The API layer maps
each ErrorKind to a status code in one place (app.main).
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    BAD_REQUEST = "bad_request"
    VALIDATION = "validation"


class EnrollmentError(Exception):
    """Base class for classifiable failures surfaced to callers."""

    kind: ErrorKind = ErrorKind.BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(EnrollmentError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(EnrollmentError):
    kind = ErrorKind.CONFLICT


class DuplicateEnrollmentError(ConflictError):
    """Raised by a store when (user_id, course_id) already has an enrollment."""

    def __init__(
        self, message: str = "User is already enrolled in this course"
    ) -> None:
        super().__init__(message)


class BadRequestError(EnrollmentError):
    kind = ErrorKind.BAD_REQUEST


class EnrollmentValidationError(EnrollmentError):
    kind = ErrorKind.VALIDATION


class PersistenceError(Exception):
    """A store could not apply a write.  Not surfaced to callers as-is."""
