from __future__ import annotations

import logging

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import created_invoice, found_contact, make_inventory_client
from invoicer.app import create_app
from invoicer.core.schema import Profile
from invoicer.infrastructure import InMemoryProfileRepository
from invoicer.middleware import request_context
from invoicer.settings import Settings

TERMINAL_EVENTS = {"bulk_complete", "bulk_ended", "bulk_error"}

ORGANIZATION = {
    "organization_id": "600001",
    "name": "Acme Ltd",
    "contact_name": "Old Name",
    "email": "owner@acme.test",
    "fiscal_year_start_month": 3,
    "time_zone": "Europe/London",
    "currency_id": "cur-1",
    "address": {"city": "London", "zip": "N1"},
}


@pytest.fixture()
def client(api_stub, profile):
    settings = Settings()
    settings.SETTLE_DELAY_MS = 0
    app = create_app(
        settings,
        inventory_client=make_inventory_client(api_stub),
        profile_repository=InMemoryProfileRepository([profile, Profile(profile_name="bare")]),
    )
    with TestClient(app) as test_client:
        yield test_client


def _stub_single_invoice(api_stub, persons=({"contact_person_id": "p-1"},)) -> None:
    api_stub.on("GET", "/v1/contacts", found_contact("jane@x.com"))
    api_stub.on("GET", "/v1/contacts/c-1", {"code": 0, "contact": {"contact_id": "c-1", "contact_persons": list(persons)}})
    api_stub.on("POST", "/v1/invoices", created_invoice())
    api_stub.on("POST", "/v1/contacts/c-1/email", {"code": 0, "message": "Your email has been sent."})


def _receive_until_terminal(ws) -> list[dict]:
    events = []
    while True:
        message = ws.receive_json()
        events.append(message)
        if message["event"] in TERMINAL_EVENTS:
            return events


# ---- http ----


def test_root_lists_entry_points(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["socket"] == "/api/ws"


def test_profiles_are_listed_without_secrets(client):
    response = client.get("/api/profiles")
    assert response.json() == {
        "items": [
            {"profile_name": "acme", "inventory": {"org_id": "600001"}},
            {"profile_name": "bare", "inventory": None},
        ]
    }


def test_control_of_unknown_job_is_a_noop(client):
    response = client.post("/api/jobs/ghost_acme_invoice/control", json={"action": "end"})
    assert response.status_code == 200
    assert response.json() == {"job_id": "ghost_acme_invoice", "action": "end", "applied": False, "status": None}
    assert client.get("/api/jobs").json() == {"items": []}


def test_control_of_registered_job(client):
    client.app.state.job_registry.create("s_acme_invoice")

    response = client.post("/api/jobs/s_acme_invoice/control", json={"action": "pause"})

    assert response.json()["applied"] is True
    assert response.json()["status"] == "paused"
    assert client.get("/api/jobs").json() == {"items": [{"job_id": "s_acme_invoice", "status": "paused"}]}


def test_control_requests_are_logged_with_job_id(client, caplog):
    caplog.set_level(logging.INFO, logger="invoicer.request")

    client.post("/api/jobs/s_acme_invoice/control", json={"action": "end"})

    messages = [r.getMessage() for r in caplog.records if r.name == "invoicer.request"]
    assert any("job_id=s_acme_invoice" in m and "status=200" in m for m in messages)


def test_request_context_names_job_or_profile():
    assert request_context("/api/jobs/s_acme_invoice/control") == " job_id=s_acme_invoice"
    assert request_context("/api/profiles/acme/status") == " profile=acme"
    assert request_context("/api/invoices/single") == ""


def test_control_rejects_unknown_action(client):
    response = client.post("/api/jobs/any/control", json={"action": "restart"})
    assert response.status_code == 422
    assert response.json()["error"] == "Validation error"


def test_single_invoice_success(client, api_stub):
    _stub_single_invoice(api_stub)

    response = client.post(
        "/api/invoices/single",
        json={"email": " jane@x.com ", "subject": "Invoice", "body": "Hi", "selected_profile_name": "acme"},
    )

    data = response.json()
    assert data["success"] is True
    assert data["message"] == "Invoice INV-000001 created and email sent successfully."
    assert data["full_response"]["contact"]["status"] == "found"

    invoice_body = api_stub.body(api_stub.calls("POST", "/v1/invoices")[0])
    assert invoice_body == {
        "customer_id": "c-1",
        "contact_person_ids": ["p-1"],
        "line_items": [{"name": "Service", "description": "General service provided", "rate": 0.0, "quantity": 1.0}],
    }
    email_body = api_stub.body(api_stub.calls("POST", "/v1/contacts/c-1/email")[0])
    assert email_body == {
        "subject": "Invoice",
        "body": "Hi",
        "send_from_org_email_id": False,
        "to_mail_ids": ["jane@x.com"],
    }


def test_single_invoice_requires_all_fields(client, api_stub):
    response = client.post("/api/invoices/single", json={"email": "jane@x.com", "selected_profile_name": "acme"})
    assert response.json() == {"success": False, "error": "Missing required fields."}
    assert api_stub.requests == []


def test_single_invoice_unknown_profile(client):
    response = client.post(
        "/api/invoices/single",
        json={"email": "jane@x.com", "subject": "S", "body": "B", "selected_profile_name": "bare"},
    )
    assert response.json() == {"success": False, "error": "Inventory profile not configured."}


def test_single_invoice_without_contact_person(client, api_stub):
    _stub_single_invoice(api_stub, persons=())

    response = client.post(
        "/api/invoices/single",
        json={"email": "jane@x.com", "subject": "S", "body": "B", "selected_profile_name": "acme"},
    )

    data = response.json()
    assert data["success"] is False
    assert data["error"] == "Could not find a contact person for the contact."
    assert api_stub.calls("POST", "/v1/invoices") == []


def test_get_organization(client, api_stub):
    api_stub.on("GET", "/v1/organizations/600001", {"code": 0, "organization": ORGANIZATION})

    response = client.get("/api/profiles/acme/organization")

    assert response.json() == {"success": True, "data": ORGANIZATION}


def test_update_organization_display_name(client, api_stub):
    api_stub.on("GET", "/v1/organizations/600001", {"code": 0, "organization": ORGANIZATION})
    api_stub.on(
        "PUT",
        "/v1/organizations/600001",
        lambda request: httpx.Response(200, json={"code": 0, "organization": {**ORGANIZATION, "contact_name": "New Name"}}),
    )

    response = client.put("/api/profiles/acme/organization", json={"display_name": "New Name"})

    assert response.json()["success"] is True
    body = api_stub.body(api_stub.calls("PUT", "/v1/organizations/600001")[0])
    assert body["contact_name"] == "New Name"
    assert body["fiscal_year_start_month"] == "april"
    assert body["address"] == {
        "street_address1": "",
        "street_address2": "",
        "city": "London",
        "state": "",
        "country": "",
        "zip": "N1",
    }
    assert body["custom_fields"] == []


def test_update_organization_detects_ignored_change(client, api_stub):
    api_stub.on("GET", "/v1/organizations/600001", {"code": 0, "organization": ORGANIZATION})
    api_stub.on("PUT", "/v1/organizations/600001", {"code": 0, "organization": ORGANIZATION})

    response = client.put("/api/profiles/acme/organization", json={"display_name": "New Name"})

    data = response.json()
    assert data["success"] is False
    assert "permissions" in data["error"]


def test_update_organization_requires_name(client):
    response = client.put("/api/profiles/acme/organization", json={"display_name": ""})
    assert response.status_code == 422


def test_api_status(client, api_stub):
    api_stub.on("GET", "/v1/organizations/600001", {"code": 0, "organization": ORGANIZATION})

    assert client.get("/api/profiles/acme/status").json()["message"] == "Connected to Acme Ltd."
    bare = client.get("/api/profiles/bare/status").json()
    assert bare["success"] is False
    assert bare["message"] == "Inventory profile not configured."


def test_recipient_upload(client):
    response = client.post(
        "/api/recipients/parse",
        files={"file": ("clients.csv", b"Name,Email\nJane,jane@x.com\nBob,bob@x.com\n", "text/csv")},
    )
    assert response.json() == {"filename": "clients.csv", "count": 2, "items": ["jane@x.com", "bob@x.com"]}


def test_recipient_upload_rejects_unknown_type(client):
    response = client.post("/api/recipients/parse", files={"file": ("clients.pdf", b"%PDF", "application/pdf")})
    assert response.status_code == 400
    assert response.json() == {"error": "unsupported recipient file type: .pdf"}


# ---- websocket ----


def _stub_bulk(api_stub, *, fail_lookup_for: set[str] = frozenset()) -> None:
    def lookup(request: httpx.Request) -> httpx.Response:
        email = request.url.params["email"]
        if email in fail_lookup_for:
            raise httpx.ConnectError("network is unreachable", request=request)
        return httpx.Response(200, json=found_contact(email, contact_id=f"c-{email.split('@')[0]}"))

    api_stub.on("GET", "/v1/contacts", lookup)
    api_stub.on("POST", "/v1/invoices", created_invoice(number="INV-9"))
    for name in ("a", "b"):
        api_stub.on("POST", f"/v1/contacts/c-{name}/email", {"code": 0})


def _start(ws, **overrides) -> None:
    data = {
        "emails": ["a@x.com", "b@x.com"],
        "subject": "Your invoice",
        "body": "Hello",
        "delay": 0,
        "selected_profile_name": "acme",
    }
    data.update(overrides)
    ws.send_json({"event": "start_bulk_invoice", "data": data})


def test_socket_bulk_run_streams_progress_and_completion(client, api_stub):
    _stub_bulk(api_stub, fail_lookup_for={"a@x.com"})

    with client.websocket_connect("/api/ws") as ws:
        connected = ws.receive_json()
        assert connected["event"] == "connected"
        session_id = connected["data"]["session_id"]

        _start(ws)
        started = ws.receive_json()
        events = _receive_until_terminal(ws)

    assert started == {
        "event": "job_started",
        "data": {"job_id": f"{session_id}_acme_invoice", "profile_name": "acme", "job_type": "invoice", "total": 2},
    }
    progress = [(e["data"]["row_number"], e["data"]["stage"], e["data"].get("success")) for e in events[:-1]]
    assert progress == [
        (1, "contact", None),
        (1, "complete", False),
        (2, "contact", None),
        (2, "invoice", None),
        (2, "complete", True),
    ]
    assert {e["event"] for e in events[:-1]} == {"invoice_result"}
    assert events[-1] == {"event": "bulk_complete", "data": {"profile_name": "acme", "job_type": "invoice"}}
    assert client.app.state.job_registry.snapshot() == []


def test_socket_rejects_second_job_for_same_profile_and_ends_first(client, api_stub):
    _stub_bulk(api_stub)

    with client.websocket_connect("/api/ws") as ws:
        ws.receive_json()
        _start(ws, delay=30)
        assert ws.receive_json()["event"] == "job_started"

        _start(ws)
        seen = []
        while True:
            message = ws.receive_json()
            seen.append(message)
            if message["event"] == "bulk_error":
                break
        assert seen[-1]["data"]["message"] == "A bulk invoice job is already running for this profile."

        ws.send_json({"event": "end_job", "data": {"selected_profile_name": "acme"}})
        events = _receive_until_terminal(ws)

    assert events[-1]["event"] == "bulk_ended"
    rows = {e["data"]["row_number"] for e in seen + events if e["event"] == "invoice_result"}
    assert rows == {1}


def test_socket_reports_bad_messages(client):
    with client.websocket_connect("/api/ws") as ws:
        ws.receive_json()

        ws.send_text("not json")
        assert ws.receive_json() == {"event": "error", "data": {"message": "Messages must be JSON."}}

        ws.send_json({"event": "launch"})
        assert ws.receive_json() == {"event": "error", "data": {"message": "Unknown event 'launch'."}}

        ws.send_json({"event": "start_bulk_invoice", "data": {"emails": ["a@x.com"]}})
        invalid = ws.receive_json()
        assert invalid["event"] == "error"
        assert invalid["data"]["message"] == "Invalid bulk invoice request."


def test_socket_start_without_profile_config_emits_bulk_error(client, api_stub):
    with client.websocket_connect("/api/ws") as ws:
        ws.receive_json()
        _start(ws, selected_profile_name="bare")
        assert ws.receive_json()["event"] == "job_started"
        events = _receive_until_terminal(ws)

    assert events == [
        {
            "event": "bulk_error",
            "data": {
                "profile_name": "bare",
                "job_type": "invoice",
                "message": "Inventory profile configuration is missing.",
            },
        }
    ]
    assert api_stub.requests == []
