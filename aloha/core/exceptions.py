from fastapi import status
from typing import Any, List, Optional


class APIError(Exception):
    def __init__(self, status_code: int, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.errors = errors or []


class AuthError(APIError):
    """Base class for authentication and session failures.

    Each subclass is one stable error kind: a fixed ``code``, HTTP status and
    user-facing message. Handlers map them to responses without inspecting
    the message text.
    """

    code = "AUTH_ERROR"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            status_code=type(self).status_code,
            message=message or type(self).message,
        )


class InvalidCredentials(AuthError):
    # Shared by "unknown email" and "wrong password".
    code = "AUTH_INVALID_CREDENTIALS"
    message = "Invalid email or password"


class AlreadyExists(AuthError):
    code = "USER_ALREADY_EXISTS"
    status_code = status.HTTP_409_CONFLICT
    message = "An account with this email already exists"


class TokenMissing(AuthError):
    code = "AUTH_TOKEN_MISSING"
    message = "Authentication token is required"


class TokenInvalid(AuthError):
    code = "AUTH_TOKEN_INVALID"
    message = "Invalid authentication token"


class TokenExpired(AuthError):
    code = "AUTH_TOKEN_EXPIRED"
    message = "Your session has expired. Please log in again"


class TokenRevoked(AuthError):
    code = "AUTH_TOKEN_REVOKED"
    message = "Your session has been revoked"


class InsufficientPermissions(AuthError):
    code = "AUTH_INSUFFICIENT_PERMISSIONS"
    status_code = status.HTTP_403_FORBIDDEN
    message = "You do not have permission to perform this action"

    def __init__(self, required_role: Optional[str] = None):
        super().__init__()
        self.required_role = required_role


class StoreUnavailable(AuthError):
    code = "SYS_STORE_UNAVAILABLE"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Service temporarily unavailable. Please try again later"

    def __init__(self, store: str):
        super().__init__()
        self.store = store


class UserNotFound(AuthError):
    code = "USER_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    message = "User not found"
