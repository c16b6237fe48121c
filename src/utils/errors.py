"""Error taxonomy shared by the session manager, the HTTP clients and the store."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    NETWORK_UNAVAILABLE = "network_unavailable"
    TOKEN_INVALID = "token_invalid"
    TOKEN_UNRECOVERABLE = "token_unrecoverable"
    STORAGE_FAILURE = "storage_failure"


class StorefrontError(Exception):
    """Base error for the storefront."""

    kind: ErrorKind

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class InvalidCredentials(StorefrontError):
    """Username/password rejected; the message is safe to show to the user."""

    kind = ErrorKind.INVALID_CREDENTIALS


class NetworkUnavailable(StorefrontError):
    """Transient transport failure (no connection, timeout, 5xx, garbage body)."""

    kind = ErrorKind.NETWORK_UNAVAILABLE


class TokenInvalidOrExpired(StorefrontError):
    """The identity service rejected a bearer or refresh token."""

    kind = ErrorKind.TOKEN_INVALID


class TokenExpiredUnrecoverable(StorefrontError):
    """Refresh failed too; the session has been dropped."""

    kind = ErrorKind.TOKEN_UNRECOVERABLE


class StorageFailure(StorefrontError):
    """Persistent store write failed. Never raised past the store."""

    kind = ErrorKind.STORAGE_FAILURE
