"""iTop REST API client.

Provides an asynchronous HTTP client for the iTop JSON API: credential
check, request serialization, Basic or form authentication, error
classification and result shaping.
"""

import base64
import json
import time
from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import urlencode

import httpx
import pydantic
import structlog

from .errors import (
    ApiError,
    AuthorizationError,
    NotConnectedError,
    TransportError,
)
from .results import prepare_result
from .types import AuthMode, Envelope, ObjectKey, ReturnMode, Session

# Drops every event. Default when no logger is injected.
SILENT_LOGGER = structlog.wrap_logger(structlog.ReturnLogger(), processors=[])

DEFAULT_API_VERSION = "1.3"

DEFAULT_COMMENT = "iTop API client"

DEFAULT_TIMEOUT = 30.0

WILDCARD = "*"

STIMULUS_PREFIX = "ev_"


def build_request(
    operation: str,
    obj_class: str,
    key: ObjectKey | None = None,
    *,
    fields: Mapping[str, Any] | None = None,
    stimulus: str | None = None,
    simulate: bool | None = None,
) -> dict[str, Any]:
    """Build the ``json_data`` payload of an operation.

    Optional parts are left out when not given. ``output_fields`` and
    ``comment`` are added later by :meth:`ITopApiClient.api_call`.
    """
    json_data: dict[str, Any] = {"operation": operation, "class": obj_class}
    if key is not None:
        json_data["key"] = key
    if stimulus is not None:
        json_data["stimulus"] = stimulus
    if fields is not None:
        json_data["fields"] = dict(fields)
    if simulate is not None:
        json_data["simulate"] = simulate
    return json_data


def _output_fields_list(output_fields: Iterable[str] | None) -> list[str]:
    fields = list(output_fields) if output_fields is not None else []
    return fields or [WILDCARD]


class ITopApiClient:
    """HTTP client for the iTop REST API.

    Every operation goes through :meth:`api_call`, which serializes the
    payload, authenticates, posts it, classifies errors and shapes the
    result. The session set up by :meth:`connect` is read-only afterwards,
    so concurrent calls on one client need no locking.

    Can be used as an async context manager for automatic cleanup.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        log: Any = None,
    ):
        """Initialize the client.

        Args:
            timeout: Request timeout in seconds (default: 30.0).
            transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
            log: Logger receiving request events (default: silent).
                Pass ``structlog.get_logger()`` to see them.

        Raises:
            ValueError: If timeout is not positive.
        """
        if timeout <= 0:
            msg = "timeout must be positive"
            raise ValueError(msg)

        self._timeout = timeout
        self._transport = transport
        self._log = log if log is not None else SILENT_LOGGER
        self._session: Session | None = None
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the underlying httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    @property
    def session(self) -> Session:
        """Session established by :meth:`connect`.

        Raises:
            NotConnectedError: If the client is not connected.
        """
        if self._session is None:
            msg = "Client is not connected, call connect() first"
            raise NotConnectedError(msg)
        return self._session

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def __aenter__(self):
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager and cleanup resources."""
        await self.close()

    async def close(self):
        """Close the HTTP client if open."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def connect(
        self,
        url: str,
        user: str,
        password: str,
        comment: str = DEFAULT_COMMENT,
        api_version: str = DEFAULT_API_VERSION,
        basic_auth: bool = True,
    ) -> None:
        """Store the session and verify the credentials.

        Runs ``core/check_credentials`` and succeeds only when the server
        answers ``authorized: true``. On any failure the session is dropped
        so that ``connect`` can be attempted again.

        Args:
            url: Address of the REST endpoint (``.../webservices/rest.php``).
            user: iTop login.
            password: iTop password.
            comment: Text recorded in the change history of modified objects.
            api_version: REST API version (default: 1.3).
            basic_auth: Send credentials in an ``Authorization`` header
                (default) instead of ``auth_user``/``auth_pwd`` form fields.

        Raises:
            RuntimeError: If the client is already connected.
            ValueError: If url is empty.
            AuthorizationError: If the server rejects the credentials.
            ApiError: If the credential check returns a non-zero code.
            TransportError: If the HTTP exchange fails.
        """
        if self._session is not None:
            msg = "Client is already connected"
            raise RuntimeError(msg)
        if not url:
            msg = "url cannot be empty"
            raise ValueError(msg)

        self._session = Session(
            url=url,
            user=user,
            password=password,
            comment=comment,
            api_version=str(api_version),
            auth_mode=AuthMode.BASIC if basic_auth else AuthMode.FORM,
        )
        self._log.info(
            "Connecting",
            url=url,
            user=user,
            auth_mode=self._session.auth_mode.value,
        )

        json_data = {
            "operation": "core/check_credentials",
            "user": user,
            "password": password,
        }
        try:
            result = await self.api_call(json_data, ret_mode=ReturnMode.ALL)
            if not result.get("authorized"):
                msg = "Authorization failed, check user credentials"
                raise AuthorizationError(msg)
        except BaseException:
            self._session = None
            raise

        self._log.info("Connected", url=url, user=user)

    def _build_form(self, json_data: Mapping[str, Any]) -> tuple[str, dict[str, str]]:
        """Serialize the payload and attach credentials per auth mode."""
        session = self.session
        data = {
            "version": session.api_version,
            "json_data": json.dumps(json_data),
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        if session.auth_mode is AuthMode.BASIC:
            credentials = f"{session.user}:{session.password}".encode()
            headers["Authorization"] = "Basic " + base64.b64encode(credentials).decode()
        else:
            data["auth_user"] = session.user
            data["auth_pwd"] = session.password
        return urlencode(data), headers

    async def api_call(
        self,
        json_data: Mapping[str, Any],
        output_fields: Iterable[str] | None = None,
        ret_mode: ReturnMode | str | None = None,
        ret_fields_only: bool | None = None,
    ) -> Any:
        """Call the iTop JSON API.

        Args:
            json_data: Operation payload (``operation``, ``class``, ``key``,
                ...). Not modified.
            output_fields: Attributes to return (default: ``["*"]``).
            ret_mode: ``"array"`` (default), ``"object"`` or ``"all"``.
            ret_fields_only: Return only each object's ``fields`` in array
                mode. Defaults to True when specific output fields were
                requested and to False for the wildcard.

        Returns:
            The result shaped by :func:`prepare_result`.

        Raises:
            NotConnectedError: If called before ``connect``.
            TransportError: If the HTTP request fails, returns a non-success
                status, or the body is not a valid API envelope.
            ApiError: If the API returns a non-zero code.
        """
        fields = _output_fields_list(output_fields)
        if ret_fields_only is None:
            ret_fields_only = any(field != WILDCARD for field in fields)

        payload = dict(json_data)
        payload["output_fields"] = ",".join(fields)
        payload["comment"] = self.session.comment
        body, headers = self._build_form(payload)

        operation = payload.get("operation")
        start_time = time.time()
        self._log.debug(
            "Making API request",
            method="POST",
            operation=operation,
            obj_class=payload.get("class"),
            output_fields=payload["output_fields"],
        )
        try:
            response = await self.client.post(
                self.session.url,
                content=body,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            self._log.exception(
                "API request failed",
                operation=operation,
                duration_seconds=round(time.time() - start_time, 3),
            )
            msg = f"HTTP request failed: {exc}"
            raise TransportError(msg) from exc

        duration = time.time() - start_time
        self._log.debug(
            "API request completed",
            operation=operation,
            status_code=response.status_code,
            duration_seconds=round(duration, 3),
        )
        self._check_http_status(response)
        data = self._parse_envelope(response)

        return prepare_result(data, ret_mode, ret_fields_only)

    dispatch = api_call

    def _check_http_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        msg = f"HTTP {response.status_code} {response.reason_phrase}"
        self._log.error("API HTTP error", status_code=response.status_code)
        raise TransportError(msg, status_code=response.status_code)

    def _parse_envelope(self, response: httpx.Response) -> dict[str, Any]:
        """Decode the body and raise on a non-zero API code."""
        try:
            data = response.json()
            envelope = Envelope.model_validate(data)
        except (ValueError, pydantic.ValidationError) as exc:
            msg = f"Malformed API response: {exc}"
            raise TransportError(msg, status_code=response.status_code) from exc

        if envelope.code != 0:
            self._log.error(
                "API error response",
                code=envelope.code,
                error_message=envelope.message,
            )
            raise ApiError(envelope.message or "", envelope.code)
        return data

    async def list_operations(self) -> dict[str, Any]:
        """List the operations available for the session's API version."""
        json_data = {"operation": "list_operations", "class": ""}
        return await self.api_call(json_data, ret_mode=ReturnMode.ALL)

    introspect = list_operations

    async def get(
        self,
        obj_class: str,
        key: ObjectKey,
        output_fields: Iterable[str] | None = None,
        ret_mode: ReturnMode | str | None = None,
        ret_fields_only: bool | None = None,
    ) -> Any:
        """Fetch objects by id, OQL query or attribute filter (``core/get``)."""
        json_data = build_request("core/get", obj_class, key)
        return await self.api_call(json_data, output_fields, ret_mode, ret_fields_only)

    fetch = get

    async def create(
        self,
        obj_class: str,
        fields: Mapping[str, Any],
        output_fields: Iterable[str] | None = None,
        ret_mode: ReturnMode | str | None = None,
        ret_fields_only: bool | None = None,
    ) -> Any:
        """Create an object (``core/create``)."""
        json_data = build_request("core/create", obj_class, fields=fields)
        return await self.api_call(json_data, output_fields, ret_mode, ret_fields_only)

    async def apply_stimulus(
        self,
        obj_class: str,
        key: ObjectKey,
        stimulus: str,
        fields: Mapping[str, Any] | None = None,
        output_fields: Iterable[str] | None = None,
        ret_mode: ReturnMode | str | None = None,
        ret_fields_only: bool | None = None,
    ) -> Any:
        """Apply a lifecycle stimulus (``core/apply_stimulus``).

        The stimulus is given without its ``ev_`` prefix: ``"resolve"`` is
        sent as ``"ev_resolve"``.
        """
        json_data = build_request(
            "core/apply_stimulus",
            obj_class,
            key,
            stimulus=STIMULUS_PREFIX + stimulus,
            fields=fields if fields is not None else {},
        )
        return await self.api_call(json_data, output_fields, ret_mode, ret_fields_only)

    transition = apply_stimulus

    async def update(
        self,
        obj_class: str,
        key: ObjectKey,
        fields: Mapping[str, Any],
        output_fields: Iterable[str] | None = None,
        ret_mode: ReturnMode | str | None = None,
        ret_fields_only: bool | None = None,
    ) -> Any:
        """Update objects (``core/update``)."""
        json_data = build_request("core/update", obj_class, key, fields=fields)
        return await self.api_call(json_data, output_fields, ret_mode, ret_fields_only)

    modify = update

    async def delete(
        self,
        obj_class: str,
        key: ObjectKey,
        simulate: bool = True,
        output_fields: Iterable[str] | None = None,
        ret_mode: ReturnMode | str | None = None,
        ret_fields_only: bool | None = None,
    ) -> Any:
        """Delete objects (``core/delete``).

        With ``simulate`` (the default) the server only reports what would be
        deleted. Pass ``simulate=False`` to actually delete.
        """
        json_data = build_request("core/delete", obj_class, key, simulate=simulate)
        return await self.api_call(json_data, output_fields, ret_mode, ret_fields_only)

    remove = delete
