from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from invoicer.core.schema import InventorySettings, Profile
from invoicer.infrastructure import InventoryClient

API_BASE = "https://inventory.test/api"
ACCOUNTS_URL = "https://accounts.test"

Handler = Callable[[httpx.Request], httpx.Response]


class InventoryApiStub:
    """Routes mocked inventory requests to per-endpoint handlers.

    Handlers are keyed by ``(METHOD, path)`` where path is relative to the API
    base, e.g. ``("GET", "/v1/contacts")``.
    """

    def __init__(self) -> None:
        self.handlers: dict[tuple[str, str], Handler] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, handler: Handler | dict | httpx.Response) -> None:
        if isinstance(handler, dict):
            body = handler
            handler = lambda _request, body=body: httpx.Response(200, json=body)  # noqa: E731
        elif isinstance(handler, httpx.Response):
            response = handler
            handler = lambda _request, response=response: response  # noqa: E731
        self.handlers[(method.upper(), path)] = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        prefix = httpx.URL(API_BASE).path
        if path.startswith(prefix):
            path = path[len(prefix):]
        handler = self.handlers.get((request.method, path))
        if handler is None:
            return httpx.Response(404, json={"code": 404, "message": f"no stub for {request.method} {path}"})
        return handler(request)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        prefix = httpx.URL(API_BASE).path
        return [
            request
            for request in self.requests
            if request.method == method.upper() and request.url.path == f"{prefix}{path}"
        ]

    @staticmethod
    def body(request: httpx.Request) -> dict[str, Any]:
        return json.loads(request.content.decode("utf-8"))


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def emit(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def progress(self) -> list[dict[str, Any]]:
        return [payload for event, payload in self.events if event == "invoice_result"]

    def names(self) -> list[str]:
        return [event for event, _ in self.events]


def found_contact(email: str, contact_id: str = "c-1", person_ids: tuple[str, ...] = ("p-1",)) -> dict:
    return {
        "code": 0,
        "message": "success",
        "contacts": [
            {
                "contact_id": contact_id,
                "email": email,
                "contact_persons": [{"contact_person_id": pid} for pid in person_ids],
            }
        ],
    }


def created_invoice(invoice_id: str = "inv-1", number: str = "INV-000001") -> dict:
    return {"code": 0, "message": "The invoice has been created.", "invoice": {"invoice_id": invoice_id, "invoice_number": number}}


@pytest.fixture()
def api_stub() -> InventoryApiStub:
    return InventoryApiStub()


@pytest.fixture()
def profile() -> Profile:
    return Profile(profile_name="acme", inventory=InventorySettings(org_id="600001", access_token="static-token"))


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


def make_inventory_client(stub: InventoryApiStub) -> InventoryClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(stub))
    return InventoryClient(api_base=API_BASE, accounts_url=ACCOUNTS_URL, http_client=http_client)


@pytest.fixture()
async def inventory_client(api_stub):
    client = make_inventory_client(api_stub)
    yield client
    await client._client.aclose()
