"""
Practice engine error taxonomy.

Every failure of a public engine operation is raised as a PracticeError
subclass. The kind and status code travel with the exception so the API
layer can report them without inspecting messages.
"""

from __future__ import annotations


class PracticeError(Exception):
    """Base class for all engine errors."""

    kind: str = "internal"
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "message": self.message}


class InvalidArgumentError(PracticeError):
    """Malformed or missing input."""

    kind = "invalid_argument"
    status_code = 400


class NotFoundError(PracticeError):
    """Referenced session, delivery or question does not exist."""

    kind = "not_found"
    status_code = 404


class ForbiddenError(PracticeError):
    """The caller does not own the referenced resource."""

    kind = "forbidden"
    status_code = 403


class InvalidStateError(PracticeError):
    """The session is not in the lifecycle state the operation needs."""

    kind = "invalid_state"
    status_code = 400


class ConflictError(PracticeError):
    """Duplicate attempt or a racing session transition."""

    kind = "conflict"
    status_code = 409


class NoQuestionsAvailableError(PracticeError):
    """Candidate pool is empty even after the fallback pool."""

    kind = "no_questions_available"
    status_code = 404


class InternalError(PracticeError):
    """Persistence or unexpected failure."""

    kind = "internal"
    status_code = 500
