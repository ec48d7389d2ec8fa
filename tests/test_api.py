"""Tests for the HTTP layer."""

import logging

import pytest
from fastapi.testclient import TestClient

from advisory_scheduler.api.app import create_app
from advisory_scheduler.errors import StorageUnavailableError
from advisory_scheduler.store.reservations import InMemoryReservationStore
from advisory_scheduler.store.templates import InMemoryTemplateStore
from tests.conftest import SERVICE


class UnreachableReservationStore(InMemoryReservationStore):
    async def find_active(self, service_type, window_start, window_end, now):
        raise StorageUnavailableError("connection refused")


def _client(clock, admin_api_key="", reservations=None) -> TestClient:
    app = create_app(
        templates=InMemoryTemplateStore(),
        reservations=reservations or InMemoryReservationStore(),
        clock=clock,
        conflict_mode="overlap",
        admin_api_key=admin_api_key,
        compaction_interval=0,
    )
    return TestClient(app)


@pytest.fixture
def client(clock):
    return _client(clock)


def _hold(client, time="14:00", owner="user-1"):
    return client.post("/holds", json={
        "date": "16/06/2025",
        "time": time,
        "serviceType": SERVICE,
        "ownerId": owner,
        "ownerEmail": f"{owner}@example.com",
    })


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "REQ-test"})
        assert response.headers["X-Request-ID"] == "REQ-test"

    def test_request_id_generated(self, client):
        assert client.get("/health").headers["X-Request-ID"].startswith("REQ-")

    def test_request_id_on_log_records(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="advisory_scheduler"):
            response = client.post(
                "/holds",
                json={
                    "date": "16/06/2025",
                    "time": "14:00",
                    "ownerId": "user-1",
                    "ownerEmail": "user-1@example.com",
                },
                headers={"X-Request-ID": "REQ-trace"},
            )
        assert response.status_code == 201
        acquired = [r for r in caplog.records if r.getMessage().startswith("Hold ")]
        assert acquired
        assert all(r.request_id == "REQ-trace" for r in acquired)

    def test_services(self, client):
        ids = [s["id"] for s in client.get("/services").json()]
        assert SERVICE in ids

    def test_service_details(self, client):
        body = client.get("/services/SwingTrading").json()
        assert body["duration_minutes"] == 120
        assert client.get("/services/Yoga").status_code == 404


class TestAvailabilityCheck:
    def test_default_service_type(self, client):
        response = client.post("/availability/check", json={"date": "16/06/2025", "time": "14:00"})
        assert response.status_code == 200
        body = response.json()
        assert body["available"] is True
        assert body["conflicts"] == 0
        assert body["serviceType"] == SERVICE
        assert "requestedStart" in body

    def test_legacy_alias(self, client):
        response = client.post(
            "/availability/check",
            json={"date": "2025-06-16", "time": "14:00", "servicioTipo": "SwingTrading"},
        )
        assert response.json()["serviceType"] == "SwingTrading"

    def test_bad_time(self, client):
        response = client.post("/availability/check", json={"date": "2025-06-16", "time": "25:00"})
        assert response.status_code == 400
        assert response.json()["field"] == "time"

    def test_unknown_service(self, client):
        response = client.post(
            "/availability/check", json={"date": "2025-06-16", "time": "14:00", "serviceType": "Yoga"}
        )
        assert response.status_code == 400
        assert response.json()["field"] == "serviceType"

    def test_matching_subtype(self, client):
        response = client.post("/availability/check", json={
            "date": "2025-06-16", "time": "14:00", "serviceType": "SwingTrading",
            "advisoryOrTrainingSubtype": "entrenamiento",
        })
        assert response.status_code == 200

    def test_mismatched_subtype(self, client):
        response = client.post("/availability/check", json={
            "date": "2025-06-16", "time": "14:00", "advisoryOrTrainingSubtype": "training",
        })
        assert response.status_code == 400
        assert response.json()["field"] == "advisoryOrTrainingSubtype"

    def test_storage_failure_is_503(self, clock):
        client = _client(clock, reservations=UnreachableReservationStore())
        response = client.post("/availability/check", json={"date": "2025-06-16", "time": "14:00"})
        assert response.status_code == 503
        assert response.json()["error"] == "storage_unavailable"


class TestBookingFlow:
    def test_hold_pay_and_check(self, client):
        hold = _hold(client)
        assert hold.status_code == 201
        booking_id = hold.json()["id"]
        assert hold.json()["status"] == "pending"

        paid = client.post("/webhooks/payment", json={"bookingId": booking_id, "status": "paid"})
        assert paid.status_code == 200
        assert paid.json()["status"] == "confirmed"
        assert paid.json()["paymentStatus"] == "paid"

        again = client.post(f"/holds/{booking_id}/promote")
        assert again.json()["status"] == "confirmed"

        check = client.post("/availability/check", json={"date": "16/06/2025", "time": "14:00"})
        assert check.json()["available"] is False
        assert check.json()["conflicts"] == 1

        assert client.get(f"/bookings/{booking_id}").json()["status"] == "confirmed"

    def test_second_hold_conflicts(self, client):
        _hold(client)
        response = _hold(client, owner="user-2")
        assert response.status_code == 409
        assert response.json()["available"] is False

    def test_release(self, client):
        booking_id = _hold(client).json()["id"]
        response = client.post(f"/holds/{booking_id}/release")
        assert response.json()["status"] == "cancelled"
        assert _hold(client, owner="user-2").status_code == 201

    def test_payment_failed(self, client):
        booking_id = _hold(client).json()["id"]
        response = client.post("/webhooks/payment", json={"bookingId": booking_id, "status": "failed"})
        assert response.json()["paymentStatus"] == "failed"

    def test_refund_of_unpaid_hold(self, client):
        booking_id = _hold(client).json()["id"]
        response = client.post(
            "/webhooks/payment", json={"bookingId": booking_id, "status": "refunded"}
        )
        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"

    def test_hold_expires(self, client, clock):
        _hold(client)
        clock.advance(minutes=16)
        assert _hold(client, owner="user-2").status_code == 201

    def test_unknown_booking(self, client):
        assert client.get("/bookings/BK-MISSING").status_code == 404

    def test_owner_bookings(self, client):
        first = _hold(client, time="14:00").json()["id"]
        second = _hold(client, time="10:00").json()["id"]
        client.post(f"/holds/{first}/release")
        _hold(client, time="16:00", owner="user-2")

        response = client.get("/bookings", params={"ownerId": "user-1"})
        assert response.status_code == 200
        body = response.json()
        assert [b["id"] for b in body] == [second, first]
        assert [b["status"] for b in body] == ["pending", "cancelled"]
        assert client.get("/bookings", params={"ownerId": "nobody"}).json() == []

    def test_owner_required(self, client):
        assert client.get("/bookings").status_code == 422

    def test_started_slot_rejected(self, client):
        response = client.post("/holds", json={
            "date": "2025-06-01",
            "time": "08:00",
            "ownerId": "user-1",
            "ownerEmail": "user-1@example.com",
        })
        assert response.status_code == 400
        assert response.json()["field"] == "time"


class TestTemplatesAndSlots:
    def test_create_and_list_slots(self, client):
        response = client.post(
            "/templates", json={"serviceType": SERVICE, "dayOfWeek": 1, "startTime": "10:00"}
        )
        assert response.status_code == 201
        assert response.json()["endTime"] == "11:00"

        slots = client.get(
            "/availability/slots",
            params={"serviceType": SERVICE, "start": "2025-06-02", "end": "2025-06-16"},
        ).json()
        assert [s["date"] for s in slots] == ["2025-06-02", "2025-06-09", "2025-06-16"]
        assert slots[2]["displayDate"] == "Lun 16 Jun"

    def test_template_conflict(self, client):
        client.post("/templates", json={"serviceType": SERVICE, "dayOfWeek": 1, "startTime": "10:00"})
        response = client.post(
            "/templates", json={"serviceType": SERVICE, "dayOfWeek": 1, "startTime": "10:15"}
        )
        assert response.status_code == 409
        body = response.json()
        assert body["isValid"] is False
        assert body["conflicts"][0]["startTime"] == "10:00"
        assert body["suggestions"]

    def test_validate_schedule(self, client):
        client.post("/templates", json={"serviceType": SERVICE, "dayOfWeek": 1, "startTime": "10:00"})
        response = client.post("/schedules/validate", json={
            "dayOfWeek": 1, "startTime": "10:15", "endTime": "11:15", "graceMinutes": 30,
        })
        assert response.status_code == 200
        assert response.json()["isValid"] is False

    def test_update_deactivate_activate(self, client):
        template_id = client.post(
            "/templates", json={"serviceType": SERVICE, "dayOfWeek": 1, "startTime": "10:00"}
        ).json()["id"]
        patched = client.patch(f"/templates/{template_id}", json={"startTime": "12:00"})
        assert patched.json()["startTime"] == "12:00"

        assert client.post(f"/templates/{template_id}/deactivate").json()["active"] is False
        assert client.get("/templates").json() == []
        assert len(client.get("/templates", params={"includeInactive": "true"}).json()) == 1
        assert client.post(f"/templates/{template_id}/activate").json()["active"] is True

    def test_inverted_range(self, client):
        response = client.get(
            "/availability/slots", params={"start": "2025-06-16", "end": "2025-06-02"}
        )
        assert response.status_code == 400


class TestAdminKey:
    def test_missing_key_rejected(self, clock):
        client = _client(clock, admin_api_key="secret")
        assert client.get("/templates").status_code == 401

    def test_valid_key_accepted(self, clock):
        client = _client(clock, admin_api_key="secret")
        assert client.get("/templates", headers={"X-Admin-Key": "secret"}).status_code == 200

    def test_public_routes_open(self, clock):
        client = _client(clock, admin_api_key="secret")
        response = client.post("/availability/check", json={"date": "2025-06-16", "time": "14:00"})
        assert response.status_code == 200
