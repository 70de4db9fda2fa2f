"""
Shared fakes for the repair wizard tests

External services are replaced at the provider interfaces, the repair API
is faked at the HTTP layer with httpx.MockTransport
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from domain.errors import SchedulingConfirmationError, UploadCancelledError
from domain.models import UploadResult
from providers.interfaces import SchedulingProvider, StorageProvider
from providers.payment.payment_delegate import PaymentDelegate
from services.repair_api_client import RepairApiClient
from services.repair_wizard import RepairWizard

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)
API_URL = "http://repair-api.test"

VALID_DETAILS = {
    "service_type": "engine_repair",
    "boat_type": "speedboat",
    "boat_make": "Yamaha",
    "boat_model": "AR190",
    "boat_year": "2018",
    "engine_type": "outboard",
    "hull_material": "fiberglass",
    "problem_description": "Engine stalls after ten minutes at cruising speed",
}


def make_repair(repair_id="r1", scheduled=None, status="pending"):
    """Repair request the way the API returns it"""
    return {
        "_id": repair_id,
        "bookingId": "BR-0042",
        "serviceType": "hull_repair",
        "problemDescription": "Crack along the port side below the waterline",
        "serviceDescription": "",
        "boatDetails": {
            "boatType": "speedboat",
            "boatMake": "Yamaha",
            "boatModel": "AR190",
            "boatYear": 2018,
            "engineType": "outboard",
            "hullMaterial": "fiberglass",
        },
        "photos": [
            {
                "filename": "boat-repairs/crack",
                "originalName": "crack.jpg",
                "cloudinaryUrl": "https://res.cloudinary.com/demo/image/upload/boat-repairs/crack.jpg",
                "cloudinaryId": "boat-repairs/crack",
                "uploadedAt": "2026-05-01T10:00:00Z",
            }
        ],
        "scheduledDateTime": scheduled.isoformat() if scheduled else None,
        "calendlyEventId": "evt-1",
        "serviceLocation": {"type": "marina", "marinaName": "Colombo Marina", "dockNumber": "B12"},
        "status": status,
    }


def scheduled_message(uri="https://api.calendly.com/scheduled_events/evt-123"):
    return {"event": "calendly.event_scheduled", "payload": {"event": {"uri": uri}}}


class FakeRepairApi:
    """In-memory stand-in for the marketplace repair + payment API"""

    def __init__(self):
        self.repairs = {}
        self.requests = []
        self.created = []
        self.updated = []
        self.fail_next = None  # (status, message)

    def add_repair(self, repair):
        self.repairs[repair["_id"]] = repair
        return repair

    def paths(self, method=None):
        return [r.url.path for r in self.requests if method is None or r.method == method]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if self.fail_next:
            status, message = self.fail_next
            self.fail_next = None
            return httpx.Response(status, json={"success": False, "message": message})

        path = request.url.path
        method = request.method

        if path == "/api/payments/create-payment-intent":
            body = json.loads(request.content)
            data = {
                "clientSecret": "pi_123_secret_456",
                "paymentId": "pay_1",
                "amount": body["amount"],
                "currency": body["currency"],
            }
            return httpx.Response(200, json={"success": True, "data": data})

        rest = path[len("/api/boat-repairs"):]
        if method == "POST" and rest == "":
            body = json.loads(request.content)
            self.created.append(body)
            data = dict(body, _id="r-new", bookingId="BR-1001")
            return httpx.Response(
                201,
                json={"success": True, "message": "Repair request created", "data": data, "bookingId": "BR-1001"},
            )
        if method == "GET" and rest == "/my-repairs":
            return httpx.Response(200, json={"success": True, "data": list(self.repairs.values())})

        parts = rest.strip("/").split("/")
        repair = self.repairs.get(parts[0])
        if repair is None:
            return httpx.Response(404, json={"success": False, "message": "Repair request not found"})

        action = parts[1] if len(parts) > 1 else ""
        if method == "GET" and action == "":
            return httpx.Response(200, json={"success": True, "data": repair})
        if method == "PUT" and action == "customer-edit":
            body = json.loads(request.content)
            self.updated.append(body)
            return httpx.Response(200, json={"success": True, "data": dict(repair, **body)})
        if method == "PATCH" and action == "cancel":
            repair["status"] = "cancelled"
            return httpx.Response(200, json={"success": True, "data": repair})
        if method == "DELETE" and action == "customer-delete":
            self.repairs.pop(parts[0])
            return httpx.Response(200, json={"success": True, "message": "Repair request deleted"})
        if method == "GET" and action == "pdf":
            return httpx.Response(200, content=b"%PDF-1.4 fake", headers={"Content-Type": "application/pdf"})

        return httpx.Response(404, json={"success": False, "message": "Not found"})


class FakeStorage(StorageProvider):
    configured = True

    def __init__(self, block: bool = False):
        self.block = block
        self.calls = []

    async def upload_files(self, files, options=None, on_progress=None, cancel_event=None):
        self.calls.append([f.filename for f in files])
        if self.block:
            # sits "in flight" until the customer cancels
            await cancel_event.wait()
            raise UploadCancelledError()

        if on_progress:
            on_progress(50.0)
            on_progress(100.0)
        return [
            UploadResult(
                public_id=f"boat-repairs/{source.filename}",
                secure_url=f"https://res.cloudinary.com/demo/{source.media_kind.value}/upload/{source.filename}",
                original_filename=source.filename,
                size=source.size,
                media_kind=source.media_kind,
            )
            for source in files
        ]


class FakeScheduling(SchedulingProvider):
    token = "calendly-token"

    def __init__(self, start: datetime = None, error: str = None):
        self.start = start or NOW + timedelta(days=7)
        self.error = error
        self.starts = {}
        self.lookups = []

    async def fetch_event_start(self, event_uri: str) -> datetime:
        self.lookups.append(event_uri)
        await asyncio.sleep(0)
        if self.error:
            raise SchedulingConfirmationError(self.error)
        return self.starts.get(event_uri, self.start)

    def widget_embed(self):
        return {"url": "https://calendly.com/test/30min", "prefill": {}, "utm": {}}


@pytest.fixture
def fake_api():
    return FakeRepairApi()


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_scheduling():
    return FakeScheduling()


@pytest.fixture
def api_client(fake_api):
    return RepairApiClient("customer-token", base_url=API_URL, transport=fake_api.transport())


@pytest.fixture
def make_wizard(fake_api, fake_storage, fake_scheduling):
    def factory(repair_id=None, storage=None, scheduling=None, max_preview_bytes=None):
        transport = fake_api.transport()
        return RepairWizard(
            api_client=RepairApiClient("customer-token", base_url=API_URL, transport=transport),
            storage=storage or fake_storage,
            scheduling=scheduling or fake_scheduling,
            payment=PaymentDelegate("customer-token", api_url=API_URL, transport=transport),
            repair_id=repair_id,
            max_preview_bytes=max_preview_bytes,
            clock=lambda: NOW,
        )

    return factory


@pytest.fixture
def wizard(make_wizard):
    return make_wizard()
