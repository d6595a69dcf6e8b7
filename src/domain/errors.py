"""
Custom application-specific exceptions.

Every exception carries a machine-readable ``kind`` and the HTTP status the
API layer answers with, so handlers never need to branch on type.
"""
from typing import Any, Optional


class BaseAppException(Exception):
    """Base exception for the application."""
    kind = "ServerError"
    status_code = 500

    def __init__(self, message: str = "", details: Optional[Any] = None):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.kind
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.kind, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class NotFoundError(BaseAppException):
    """Raised when a quiz, question, attempt or user does not exist."""
    kind = "NotFound"
    status_code = 404


class ForbiddenError(BaseAppException):
    """Raised when the requester may not see or touch a resource."""
    kind = "Forbidden"
    status_code = 403


class ConflictError(BaseAppException):
    """Raised when a state transition is not allowed (e.g. mutating a completed attempt)."""
    kind = "Conflict"
    status_code = 409


class TimeLimitExceededError(ConflictError):
    """Raised when an answer arrives after the attempt's deadline."""
    kind = "TimeLimitExceeded"


class RequestValidationError(BaseAppException):
    """Raised for malformed payloads: missing ids, answer shape mismatches, broken question definitions."""
    kind = "ValidationError"
    status_code = 400


class UnsupportedQuestionTypeError(BaseAppException):
    """Raised when a question record has a type the grading engine does not know."""
    kind = "UnsupportedQuestionType"
    status_code = 422


class AuthenticationError(BaseAppException):
    """Raised when credentials are missing or wrong."""
    kind = "Unauthorized"
    status_code = 401


class ConcurrentModificationError(ConflictError):
    """Raised when a conditional attempt update lost a race with another writer."""
