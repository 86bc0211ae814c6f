"""
Error taxonomy for the library API.

Every expected failure is a subclass of LibraryAPIError and carries the HTTP status
and the user-facing message it maps to. Anything else is an internal error.
"""

from enum import Enum
from typing import Dict, Optional


class LibraryAPIError(Exception):
    """Base class for errors that map to a fixed HTTP response."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class AuthenticationError(LibraryAPIError):
    """Missing, invalid or expired credential."""

    status_code = 401
    message = "Authentication error"

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class MissingCredentialError(AuthenticationError):
    message = "Missing authentication token"


class TokenErrorKind(str, Enum):
    """Why a token failed verification."""
    MALFORMED = "malformed"
    TAMPERED = "tampered"
    CLAIMS = "claims"


class InvalidTokenError(AuthenticationError):
    message = "Invalid token"

    def __init__(self, kind: TokenErrorKind, message: Optional[str] = None):
        super().__init__(message)
        self.kind = kind


class ExpiredTokenError(AuthenticationError):
    message = "Token expired"


class UnknownActorError(AuthenticationError):
    message = "User not found"


class InvalidCredentialsError(AuthenticationError):
    message = "Incorrect email or password"


class AuthorizationError(LibraryAPIError):
    """Valid identity, insufficient privilege."""

    status_code = 403
    message = "Access denied: insufficient rights"


class NotFoundError(LibraryAPIError):
    """Resource absent, or hidden because the caller does not own it."""

    status_code = 404
    message = "Resource not found"


class ConflictError(LibraryAPIError):
    """Uniqueness violation."""

    status_code = 409
    message = "Resource already exists"


class RateLimitExceeded(LibraryAPIError):
    status_code = 429
    message = "Too many requests, please try again later"

    def __init__(self, retry_after: int, message: Optional[str] = None):
        super().__init__(message)
        self.retry_after = retry_after

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"Retry-After": str(self.retry_after)}


class StoreErrorKind(str, Enum):
    """Failure kinds reported by the storage layer."""
    DUPLICATE_KEY = "duplicate_key"
    UNAVAILABLE = "unavailable"


class StoreError(Exception):
    """
    Raised by the database service instead of driver exceptions.

    Callers branch on ``kind``; ``field`` names the unique key that was violated
    when ``kind`` is DUPLICATE_KEY.
    """

    def __init__(self, kind: StoreErrorKind, field: Optional[str] = None, detail: str = ""):
        self.kind = kind
        self.field = field
        self.detail = detail
        super().__init__(f"{kind.value}: {field or detail}")
