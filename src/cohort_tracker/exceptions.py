"""Cohort tracker domain errors.

Every error surfaced to a caller is a DomainError carrying an ErrorCode, so
API consumers can branch on ``code`` rather than parse messages.
"""

import enum


class ErrorCode(str, enum.Enum):
    """Discriminator for errors returned to callers."""

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INVALID_REQUEST = "INVALID_REQUEST"


class DomainError(Exception):
    """Base exception for all cohort tracker errors.

    Attributes:
        code: Error kind
        status_code: HTTP status the error maps to
        message: Human readable description
    """

    code: ErrorCode = ErrorCode.INVALID_REQUEST
    status_code: int = 400
    default_message: str = "Invalid request"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.message, "code": self.code.value}


class UnauthorizedError(DomainError):
    """No valid session accompanies the request."""

    code = ErrorCode.UNAUTHORIZED
    status_code = 401
    default_message = "Not authenticated"


class ForbiddenError(DomainError):
    """Authenticated, but lacking the role or ownership required."""

    code = ErrorCode.FORBIDDEN
    status_code = 403
    default_message = "Insufficient permissions"


class NotFoundError(DomainError):
    """Referenced entity does not exist (or is outside the caller's tenant)."""

    code = ErrorCode.NOT_FOUND
    status_code = 404
    default_message = "Resource not found"


class ConflictError(DomainError):
    """Uniqueness violation or repeated one-time action."""

    code = ErrorCode.CONFLICT
    status_code = 409
    default_message = "Resource already exists"


class InvalidRequestError(DomainError):
    """Malformed input or an operation that would break an invariant."""

    code = ErrorCode.INVALID_REQUEST
    status_code = 400
    default_message = "Invalid request"
