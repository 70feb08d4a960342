"""Shared fixtures: an in-memory iTop server behind ``httpx.MockTransport``."""

import base64
import json
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
import pytest_asyncio

from itop_api_client.itopapi import client

URL = "http://itop.test/webservices/rest.php"
USER = "admin"
PASSWORD = "s3cret"


@dataclass
class SentRequest:
    """A request received by the fake server, decoded."""

    request: httpx.Request
    form: dict[str, str]
    json_data: dict[str, Any]


class FakeITop:
    """Minimal iTop REST endpoint keeping objects in memory.

    Supports the operations the client wraps. ``response`` can be set to a
    fixed ``httpx.Response`` to bypass the emulation entirely.
    """

    def __init__(self, user: str = USER, password: str = PASSWORD):
        self.user = user
        self.password = password
        self.objects: dict[tuple[str, int], dict[str, Any]] = {}
        self.next_id = 1
        self.requests: list[SentRequest] = []
        self.response: httpx.Response | None = None

    @property
    def last(self) -> SentRequest:
        return self.requests[-1]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def add(self, obj_class: str, fields: dict[str, Any]) -> int:
        obj_id = self.next_id
        self.next_id += 1
        stored = {"id": obj_id, **fields}
        stored["friendlyname"] = " ".join(
            str(stored[name]) for name in ("first_name", "name") if name in stored
        )
        self.objects[(obj_class, obj_id)] = stored
        return obj_id

    def handler(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        json_data = json.loads(form["json_data"])
        self.requests.append(SentRequest(request, form, json_data))
        if self.response is not None:
            return self.response

        operation = json_data["operation"]
        if operation == "core/check_credentials":
            authorized = (
                json_data.get("user") == self.user
                and json_data.get("password") == self.password
            )
            return httpx.Response(
                200,
                json={"code": 0, "message": "", "authorized": authorized},
            )
        if not self._authenticated(request, form):
            return httpx.Response(200, json={"code": 1, "message": "Error: Invalid login"})
        if operation == "list_operations":
            return httpx.Response(
                200,
                json={
                    "code": 0,
                    "message": "Operations: 7",
                    "version": form["version"],
                    "operations": [{"verb": "core/get"}, {"verb": "core/create"}],
                },
            )

        handler = {
            "core/get": self._get,
            "core/create": self._create,
            "core/update": self._update,
            "core/delete": self._delete,
            "core/apply_stimulus": self._apply_stimulus,
        }.get(operation)
        if handler is None:
            return httpx.Response(
                200,
                json={"code": 11, "message": f"Unknown verb '{operation}'"},
            )
        keys = handler(json_data)
        return httpx.Response(200, json=self._envelope(keys, json_data))

    def _authenticated(self, request: httpx.Request, form: dict[str, str]) -> bool:
        header = request.headers.get("Authorization")
        if header is not None:
            user, _, password = base64.b64decode(header.split()[1]).decode().partition(":")
        else:
            user, password = form.get("auth_user"), form.get("auth_pwd")
        return user == self.user and password == self.password

    def _match(self, obj_class: str, key: Any) -> list[tuple[str, int]]:
        if isinstance(key, dict):
            return [
                k
                for k, fields in self.objects.items()
                if k[0] == obj_class
                and all(fields.get(name) == value for name, value in key.items())
            ]
        if isinstance(key, str) and not key.isdigit():
            return [k for k in self.objects if k[0] == obj_class]
        wanted = (obj_class, int(key))
        return [wanted] if wanted in self.objects else []

    def _get(self, json_data):
        return self._match(json_data["class"], json_data["key"])

    def _create(self, json_data):
        return [(json_data["class"], self.add(json_data["class"], json_data["fields"]))]

    def _update(self, json_data):
        keys = self._match(json_data["class"], json_data["key"])
        for key in keys:
            self.objects[key].update(json_data["fields"])
        return keys

    def _delete(self, json_data):
        keys = self._match(json_data["class"], json_data["key"])
        if not json_data.get("simulate", False):
            return [(k, self.objects.pop(k)) for k in keys]
        return keys

    def _apply_stimulus(self, json_data):
        keys = self._match(json_data["class"], json_data["key"])
        for key in keys:
            self.objects[key]["status"] = json_data["stimulus"].removeprefix("ev_")
            self.objects[key].update(json_data.get("fields", {}))
        return keys

    def _envelope(self, keys, json_data) -> dict[str, Any]:
        wanted = json_data["output_fields"].split(",")
        objects = {}
        for key in keys:
            if isinstance(key[1], dict):
                (obj_class, obj_id), fields = key
            else:
                obj_class, obj_id = key
                fields = self.objects[key]
            if wanted != ["*"]:
                fields = {name: fields.get(name) for name in wanted}
            objects[f"{obj_class}::{obj_id}"] = {
                "code": 0,
                "message": "",
                "class": obj_class,
                "key": str(obj_id),
                "fields": dict(fields),
            }
        return {
            "code": 0,
            "message": f"Found: {len(objects)}",
            "objects": objects or None,
        }


@pytest.fixture
def fake_itop() -> FakeITop:
    """Empty fake iTop server accepting the default credentials."""
    return FakeITop()


@pytest_asyncio.fixture
async def api_client(fake_itop: FakeITop):
    """Client connected to the fake server with Basic authentication."""
    itop = client.ITopApiClient(transport=fake_itop.transport())
    await itop.connect(url=URL, user=USER, password=PASSWORD)
    yield itop
    await itop.close()
