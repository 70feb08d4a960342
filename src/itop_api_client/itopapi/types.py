"""Session and response types for the iTop REST API.

Pydantic models representing the connection parameters of a client and the
envelope returned by the iTop JSON API. Only the envelope structure is
validated; object fields are passed through untouched.
"""

import enum
from collections.abc import Mapping
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

# Scalar id, OQL query string, or a structured attribute filter such as
# {"name": "Doe", "org_id": 2}. The server interprets all three.
ObjectKey: TypeAlias = int | str | Mapping[str, Any]


class AuthMode(str, enum.Enum):
    """How credentials are sent with each request."""

    BASIC = "basic"
    FORM = "form"


class ReturnMode(str, enum.Enum):
    """Shape of the value returned by an API call."""

    ARRAY = "array"
    OBJECT = "object"
    ALL = "all"


class Session(BaseModel):
    """Connection parameters established by ``connect``.

    Frozen: a session never changes once the client is connected.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    user: str
    password: str = Field(repr=False)
    comment: str = "iTop API client"
    api_version: str = "1.3"
    auth_mode: AuthMode = AuthMode.BASIC


class ObjectRecord(BaseModel):
    """A single object entry of the ``objects`` mapping."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    code: int = 0
    message: str | None = ""
    class_name: str = Field("", alias="class")
    key: int | str | None = None
    fields: dict[str, Any] | None = Field(default_factory=dict)


class Envelope(BaseModel):
    """Top-level structure returned by every API call.

    Operations add their own keys (``authorized`` for credential checks,
    ``operations`` for introspection), so extra keys are kept.
    """

    model_config = ConfigDict(extra="allow")

    code: int
    message: str | None = ""
    objects: dict[str, ObjectRecord] | None = None
