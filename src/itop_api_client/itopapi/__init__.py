"""iTop REST API client package.

Provides an asynchronous client for the iTop JSON API that returns results
in a caller-selected shape with minimal processing.

Exports:
    ITopApiClient: HTTP client with authentication and error handling.
    prepare_result: Envelope-to-result shaping used by every call.
    types: Module containing the session and envelope models.
    DEFAULT_API_VERSION: Default REST API version.
    DEFAULT_TIMEOUT: Default HTTP request timeout.
"""

from . import types
from .client import (
    DEFAULT_API_VERSION,
    DEFAULT_COMMENT,
    DEFAULT_TIMEOUT,
    ITopApiClient,
    build_request,
)
from .errors import (
    ApiError,
    ApiStatus,
    AuthorizationError,
    ITopError,
    NotConnectedError,
    TransportError,
)
from .results import prepare_result
from .types import ReturnMode

__all__ = [
    "DEFAULT_API_VERSION",
    "DEFAULT_COMMENT",
    "DEFAULT_TIMEOUT",
    "ApiError",
    "ApiStatus",
    "AuthorizationError",
    "ITopApiClient",
    "ITopError",
    "NotConnectedError",
    "ReturnMode",
    "TransportError",
    "build_request",
    "prepare_result",
    "types",
]
