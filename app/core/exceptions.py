from typing import Any, Dict, Optional

from fastapi import status


class AppError(Exception):
    """Base class for errors that map onto a client-facing JSON response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        error: Optional[str] = None,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.error
        if error is not None:
            self.error = error
        if status_code is not None:
            self.status_code = status_code
        self.code = code
        self.extra = extra or {}
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error, "message": self.message}
        if self.code:
            payload["code"] = self.code
        payload.update(self.extra)
        return payload


class RequestValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Validation error"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Authentication required"


class TokenExpiredError(AuthenticationError):
    error = "Invalid token"

    def __init__(self, message: str = "Token has expired", **kwargs):
        super().__init__(message, code="TOKEN_EXPIRED", **kwargs)


class InvalidTokenError(AuthenticationError):
    error = "Invalid token"

    def __init__(self, message: str = "Invalid token", **kwargs):
        super().__init__(message, code="TOKEN_INVALID", **kwargs)


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "Access denied"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not found"


class ConflictError(AppError):
    """Raised when a unique field (email, Google id, phone, thread id) is already taken."""

    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"


class UpstreamError(AppError):
    """Raised when the LLM, email or OAuth provider fails; the cause is only logged."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Upstream service failure"
