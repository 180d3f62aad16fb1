"""
Tests for the HTTP surface: request mapping and error status codes.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from booking_engine.main import app
from booking_engine.wiring.dependencies import get_booking_engine
from booking_engine.domain.entities.policy import BookingPolicy
from factories import RESTAURANT, SALON, TUESDAY, at

CUSTOMER = {"role": "customer", "identity": "cust-1"}
STAFF = {"role": "staff", "identity": "staff-ana"}


@pytest.fixture
def client(engine):
    app.dependency_overrides[get_booking_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def haircut(start="2025-06-04T10:00:00+00:00", end="2025-06-04T10:45:00+00:00", **extra):
    body = {
        "business_id": SALON,
        "service_id": "haircut",
        "start": start,
        "end": end,
        "customer_ref": "cust-1",
    }
    body.update(extra)
    return body


def create(client, **extra):
    response = client.post("/api/v1/bookings", json={"request": haircut(**extra), "actor": CUSTOMER})
    assert response.status_code == 201
    return response.json()


def operate(client, booking_id, operation_type, actor=STAFF, payload=None):
    body = {"operation_type": operation_type, "actor": actor}
    if payload is not None:
        body["payload"] = payload
    return client.post(f"/api/v1/businesses/{SALON}/bookings/{booking_id}/operations", json=body)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_validate_reports_errors_without_booking(client):
    response = client.post(
        "/api/v1/bookings/validate",
        json=haircut(start="2025-06-02T09:00:00+00:00", end="2025-06-02T09:45:00+00:00"),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["is_valid"] is False
    assert "insufficient_advance_notice" in {e["violation_type"] for e in body["errors"]}
    assert body["evaluated"]


def test_create_and_fetch_booking(client):
    created = create(client)

    assert created["status"] == "requested"
    assert created["resource_id"] == "staff-ana"

    fetched = client.get(f"/api/v1/businesses/{SALON}/bookings/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == created["id"]


def test_create_conflict_is_409(client):
    create(client)
    create(client)

    response = client.post("/api/v1/bookings", json={"request": haircut(), "actor": CUSTOMER})

    assert response.status_code == 409


def test_create_invalid_is_400(client):
    response = client.post(
        "/api/v1/bookings",
        json={"request": haircut(start="2025-06-04T11:00:00+00:00", end="2025-06-04T10:00:00+00:00"), "actor": CUSTOMER},
    )

    assert response.status_code == 400
    assert response.json()["detail"]["violations"][0]["violation_type"] == "invalid_time_range"


def test_unknown_business_is_404(client):
    response = client.post(
        "/api/v1/bookings",
        json={"request": haircut(business_id="nowhere"), "actor": CUSTOMER},
    )

    assert response.status_code == 404


def test_lifecycle_over_http(client):
    created = create(client)

    confirmed = operate(client, created["id"], "confirm")
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"

    moved = operate(
        client,
        created["id"],
        "reschedule",
        actor=CUSTOMER,
        payload={"new_start": "2025-06-05T11:00:00+00:00", "new_end": "2025-06-05T11:45:00+00:00"},
    )
    assert moved.status_code == 200
    assert moved.json()["related_booking_id"] == created["id"]

    history = client.get(f"/api/v1/businesses/{SALON}/bookings/{created['id']}/history").json()
    assert [h["to_status"] for h in history] == ["requested", "confirmed", "rescheduled"]

    operations = client.get(f"/api/v1/businesses/{SALON}/bookings/{created['id']}/operations").json()
    assert operations[-1]["related_booking_id"] == moved.json()["id"]


def test_operation_error_codes(client):
    created = create(client)

    assert operate(client, created["id"], "confirm", actor=CUSTOMER).status_code == 403
    assert operate(client, created["id"], "complete").status_code == 409
    assert operate(client, created["id"], "reschedule", actor=CUSTOMER, payload={}).status_code == 400
    assert operate(client, "missing", "cancel").status_code == 404


def test_policy_refusal_is_422(client, clock):
    created = create(client)
    operate(client, created["id"], "confirm")
    clock.now = at(TUESDAY, 12)

    response = operate(
        client,
        created["id"],
        "reschedule",
        actor=CUSTOMER,
        payload={"new_start": "2025-06-05T11:00:00+00:00", "new_end": "2025-06-05T11:45:00+00:00"},
    )

    assert response.status_code == 422
    assert response.json()["detail"]["reasons"]


def test_slots_and_suggestions(client):
    slots = client.get(f"/api/v1/businesses/{SALON}/services/haircut/slots", params={"day": "2025-06-03"})
    suggestions = client.get(
        f"/api/v1/businesses/{SALON}/services/haircut/suggestions",
        params={"preferred_day": "2025-06-03", "count": 2},
    )

    assert slots.status_code == 200
    assert any(slot["available"] for slot in slots.json())
    assert len(suggestions.json()) == 2
    assert client.get(f"/api/v1/businesses/{SALON}/services/massage/slots", params={"day": "2025-06-03"}).status_code == 404


def test_policy_preview(client):
    created = create(client)
    operate(client, created["id"], "confirm")

    response = client.get(
        f"/api/v1/businesses/{SALON}/bookings/{created['id']}/policy/cancel",
        params={"now": "2025-06-04T07:00:00+00:00"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["allowed"] is True
    assert float(body["fee_amount"]) == 20.0


def test_naive_times_are_accepted(client):
    created = create(client, start="2025-06-04T10:00:00", end="2025-06-04T10:45:00")

    assert created["resource_id"] == "staff-ana"
    assert float(created["price"]) == 60.0


def test_conflicting_policies_are_a_500_on_create(client, config):
    """Two policy versions in force at once is a setup problem, reported with its message."""
    config.add_policy(BookingPolicy(business_id=SALON, version=2))

    response = client.post("/api/v1/bookings", json={"request": haircut(), "actor": CUSTOMER})

    assert response.status_code == 500
    assert "version" in response.json()["detail"]


def test_waitlist_over_http(client):
    dinner = {
        "business_id": RESTAURANT,
        "service_id": "dinner",
        "start": "2025-06-02T19:00:00+00:00",
        "end": "2025-06-02T20:30:00+00:00",
        "customer_ref": "cust-1",
        "party_size": 6,
    }

    free = client.post("/api/v1/bookings/waitlist", json={"request": dinner, "actor": CUSTOMER})
    assert free.status_code == 400
    assert free.json()["detail"]["violations"][0]["violation_type"] == "slot_available"

    assert client.post("/api/v1/bookings", json={"request": dinner, "actor": CUSTOMER}).status_code == 201
    joined = client.post("/api/v1/bookings/waitlist", json={"request": dinner, "actor": CUSTOMER})

    assert joined.status_code == 201
    assert joined.json()["position"] == 1
    assert joined.json()["estimated_wait_minutes"] == 45
    listed = client.get(f"/api/v1/businesses/{RESTAURANT}/waitlist").json()
    assert [entry["id"] for entry in listed] == [joined.json()["id"]]
