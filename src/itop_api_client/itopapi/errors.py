"""Exceptions raised by the iTop REST API client."""

import enum


class ApiStatus(enum.IntEnum):
    """Status codes published by the iTop REST API."""

    OK = 0
    UNAUTHORIZED = 1
    MISSING_VERSION = 2
    MISSING_JSON = 3
    INVALID_JSON = 4
    MISSING_AUTH_USER = 5
    MISSING_AUTH_PWD = 6
    UNSUPPORTED_VERSION = 10
    UNKNOWN_OPERATION = 11
    UNSAFE = 12
    INTERNAL_ERROR = 100


class ITopError(Exception):
    """Base class for all client errors."""


class TransportError(ITopError):
    """Raised when the HTTP exchange fails or the body is not an API envelope."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ApiError(ITopError):
    """Raised when the API envelope carries a non-zero ``code``."""

    def __init__(self, message: str, code: int):
        super().__init__(message)
        self.code = code

    @property
    def status(self) -> ApiStatus | None:
        """Documented status for ``code``, or None for codes outside the table."""
        try:
            return ApiStatus(self.code)
        except ValueError:
            return None

    def __str__(self) -> str:
        name = self.status.name if self.status is not None else "UNKNOWN"
        return f"[{self.code} {name}] {super().__str__()}"


class AuthorizationError(ITopError):
    """Raised when the credential check reports ``authorized: false``."""


class NotConnectedError(ITopError):
    """Raised when an operation is issued before ``connect``."""
