"""Application error taxonomy.

Every error the services raise on purpose is an ``AppError`` tagged with an
``ErrorKind``. The HTTP layer maps each one to its status code and turns it
into the uniform ``{"success": false, "error": {...}}`` envelope.
"""
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    UNAUTHENTICATED = "unauthenticated"
    BAD_REQUEST = "bad_request"
    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    INTERNAL = "internal"


class AppError(Exception):
    kind = ErrorKind.INTERNAL
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, code: str | None = None, details: Any = None):
        self.message = message or self.default_message
        if code:
            self.code = code
        self.details = details
        super().__init__(self.message)

    def to_envelope(self) -> dict:
        error: dict[str, Any] = {"message": self.message, "code": self.code}
        if self.details is not None:
            error["details"] = self.details
        return {"success": False, "error": error}


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class UnauthorizedError(AppError):
    """The caller is authenticated but does not own the resource."""

    kind = ErrorKind.UNAUTHORIZED
    status_code = 403
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class AuthenticationError(AppError):
    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401
    code = "INVALID_TOKEN"
    default_message = "Invalid or expired token"


class BadRequestError(AppError):
    kind = ErrorKind.BAD_REQUEST
    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"


class ValidationError(AppError):
    kind = ErrorKind.VALIDATION
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class DuplicateError(AppError):
    kind = ErrorKind.DUPLICATE
    status_code = 409
    code = "DUPLICATE"
    default_message = "Resource already exists"


class InternalError(AppError):
    pass


class StorageError(InternalError):
    code = "STORAGE_ERROR"
    default_message = "Object storage operation failed"

    def __init__(self, message: str | None = None, retryable: bool = True, **kwargs):
        super().__init__(message, **kwargs)
        self.retryable = retryable
