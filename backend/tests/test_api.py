from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from app_factory import AppFactory
from domain.models import utcnow
from main import app

from conftest import VALID_DETAILS, make_repair, scheduled_message

AUTH = {"Authorization": "Bearer customer-token"}


@pytest.fixture
def client(fake_api, fake_storage, fake_scheduling):
    app.state.factory = AppFactory(
        storage=fake_storage, scheduling=fake_scheduling, api_transport=fake_api.transport()
    )
    with TestClient(app) as test_client:
        yield test_client
    del app.state.factory


def open_wizard(client, **body):
    response = client.post("/api/wizard", json=body, headers=AUTH)
    assert response.status_code == 201, response.text
    return response.json()


def test_requires_bearer_token(client):
    assert client.post("/api/wizard", json={}).status_code == 401
    assert client.get("/api/repairs", headers={"Authorization": "Basic abc"}).status_code == 401


def test_open_new_wizard(client):
    state = open_wizard(client)

    assert state["mode"] == "new"
    assert state["current_step"] == 1
    assert state["total_steps"] == 5
    assert state["service_location"] == {"type": "service_center"}
    assert state["diagnostic_fee"] == 2000


def test_session_bound_to_token(client):
    sid = open_wizard(client)["session_id"]

    response = client.get(f"/api/wizard/{sid}", headers={"Authorization": "Bearer someone-else"})

    assert response.status_code == 404
    assert response.json()["error_code"] == "session_not_found"


def test_validation_errors_block_next(client):
    sid = open_wizard(client)["session_id"]
    client.patch(f"/api/wizard/{sid}/fields", json={"fields": dict(VALID_DETAILS, boat_year="2999")}, headers=AUTH)

    response = client.post(f"/api/wizard/{sid}/next", headers=AUTH)

    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "validation_failed"
    assert body["errors"] == {"boat_year": "Year cannot be in the future"}


def test_upload_schedule_flow(client, fake_scheduling):
    sid = open_wizard(client)["session_id"]
    state = client.patch(f"/api/wizard/{sid}/fields", json={"fields": VALID_DETAILS}, headers=AUTH).json()
    assert state["errors"] == {}
    assert state["diagnostic_fee"] == 2500
    assert client.post(f"/api/wizard/{sid}/next", headers=AUTH).json()["current_step"] == 2

    response = client.post(
        f"/api/wizard/{sid}/uploads",
        files=[("files", ("hull.jpg", b"jpeg-bytes", "image/jpeg"))],
        headers=AUTH,
    )
    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "uploaded"
    assert body["state"]["photos"][0]["originalName"] == "hull.jpg"

    preview = client.get(f"/api/wizard/{sid}/uploads/0/preview", headers=AUTH)
    assert preview.content == b"jpeg-bytes"
    assert preview.headers["content-type"] == "image/jpeg"

    # not listening yet
    assert client.post(f"/api/wizard/{sid}/schedule/messages", json=scheduled_message(), headers=AUTH).json() == {
        "handled": False,
        "confirmed": False,
        "scheduled_date_time": None,
        "error": None,
    }

    client.post(f"/api/wizard/{sid}/next", headers=AUTH)
    widget = client.get(f"/api/wizard/{sid}/schedule/widget", headers=AUTH).json()
    assert widget["listening"] is True
    assert len(widget["children"]) == 1

    result = client.post(f"/api/wizard/{sid}/schedule/messages", json=scheduled_message(), headers=AUTH).json()
    assert result["handled"] and result["confirmed"]

    state = client.post(f"/api/wizard/{sid}/next", headers=AUTH).json()
    assert state["current_step"] == 4
    assert state["calendly_event_id"] == "evt-123"

    payment = client.get(f"/api/wizard/{sid}/payment", headers=AUTH).json()
    assert payment == {"diagnostic_fee": 2500, "currency": "lkr", "payment_completed": False, "payment": None}


def test_payment_intent_outside_payment_step(client):
    sid = open_wizard(client)["session_id"]

    response = client.post(
        f"/api/wizard/{sid}/payment/intent", json={"name": "Nimal", "email": "nimal@example.com"}, headers=AUTH
    )

    assert response.status_code == 409
    assert response.json()["error_code"] == "invalid_wizard_state"


def test_edit_request_end_to_end(client, fake_api):
    fake_api.add_repair(make_repair("r1", scheduled=utcnow() + timedelta(days=10)))

    state = open_wizard(client, repair_id="r1")
    sid = state["session_id"]
    assert state["mode"] == "edit"
    assert state["total_steps"] == 3
    # scheduling/payment stay hidden when editing
    assert state["scheduled_date_time"] is None
    assert state["diagnostic_fee"] is None
    assert client.get(f"/api/wizard/{sid}/payment", headers=AUTH).status_code == 404

    client.post(f"/api/wizard/{sid}/next", headers=AUTH)
    client.post(f"/api/wizard/{sid}/next", headers=AUTH)
    response = client.post(f"/api/wizard/{sid}/submit", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["redirect_to"] == "/my-repairs"
    assert "scheduledDateTime" not in fake_api.updated[0]
    # session is gone after submit
    assert client.get(f"/api/wizard/{sid}", headers=AUTH).status_code == 404


def test_delete_inside_cutoff_is_refused(client, fake_api):
    fake_api.add_repair(make_repair("r1", scheduled=utcnow() + timedelta(days=1)))

    response = client.delete("/api/repairs/r1", headers=AUTH)

    assert response.status_code == 409
    assert response.json()["error"].startswith("Cannot delete within 3 days")
    assert fake_api.paths("DELETE") == []


def test_delete_outside_cutoff(client, fake_api):
    fake_api.add_repair(make_repair("r1", scheduled=utcnow() + timedelta(days=10)))

    response = client.delete("/api/repairs/r1", headers=AUTH)

    assert response.status_code == 200
    assert fake_api.paths("DELETE") == ["/api/boat-repairs/r1/customer-delete"]


def test_unknown_repair_passes_api_status_through(client):
    response = client.delete("/api/repairs/nope", headers=AUTH)
    assert response.status_code == 404
    assert response.json()["error"] == "Repair request not found"


def test_list_and_pdf(client, fake_api):
    fake_api.add_repair(make_repair("r1"))

    listing = client.get("/api/repairs", headers=AUTH).json()
    assert listing["data"][0]["bookingId"] == "BR-0042"

    pdf = client.get("/api/repairs/r1/pdf", headers=AUTH)
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["components"]["sessions"]["active_sessions"] == 0


def test_unreadable_repair_is_not_deleted(client, fake_api):
    repair = make_repair("r1", scheduled=utcnow() + timedelta(days=10))
    del repair["boatDetails"]
    fake_api.add_repair(repair)

    response = client.delete("/api/repairs/r1", headers=AUTH)

    assert response.status_code == 502
    assert response.json()["error_code"] == "repair_api_error"
    assert fake_api.paths("DELETE") == []


def test_superscript_year_is_filtered(client):
    sid = open_wizard(client)["session_id"]

    response = client.patch(f"/api/wizard/{sid}/fields", json={"fields": {"boat_year": "199²"}}, headers=AUTH)

    assert response.status_code == 200
    state = response.json()
    assert state["form"]["boat_year"] == "199"
    assert state["errors"]["boat_year"] == "Year must be exactly 4 digits"


def test_video_preview_redirects_to_storage(client):
    sid = open_wizard(client)["session_id"]
    client.patch(f"/api/wizard/{sid}/fields", json={"fields": VALID_DETAILS}, headers=AUTH)
    client.post(f"/api/wizard/{sid}/next", headers=AUTH)
    client.post(
        f"/api/wizard/{sid}/uploads",
        files=[("files", ("noise.mp4", b"mp4-bytes", "video/mp4"))],
        headers=AUTH,
    )

    preview = client.get(f"/api/wizard/{sid}/uploads/0/preview", headers=AUTH, follow_redirects=False)
    assert preview.status_code == 307
    assert preview.headers["location"] == "https://res.cloudinary.com/demo/video/upload/noise.mp4"

    assert client.get(f"/api/wizard/{sid}/uploads/5/preview", headers=AUTH).status_code == 404
