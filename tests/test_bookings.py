# Booking API test suite: creation, overlap rules, status transitions with their availability and
# commission side effects, edits, and the list/stats views.
from __future__ import annotations

from typing import Tuple

from fastapi.testclient import TestClient

from estatedesk import models
from estatedesk.db import SessionLocal

from conftest import auth_headers


def booking_body(property_id: int, owner_agent_id: int, check_in: str, check_out: str, **extra) -> dict:
    body = {
        "property_id": property_id,
        "owner_agent_id": owner_agent_id,
        "client_name": "Omar Client",
        "client_email": "omar@example.com",
        "client_phone": "+971501234567",
        "check_in": check_in,
        "check_out": check_out,
        "total_amount": 1000,
    }
    body.update(extra)
    return body


def setup_listing(make_agent, make_property) -> Tuple[str, dict, dict]:
    token, agent = make_agent("owner@example.com", "Olivia Owner", agency_name="Harbor Homes")
    prop = make_property(token)
    return token, agent, prop


def create_booking(client: TestClient, token: str, body: dict) -> dict:
    r = client.post("/api/bookings", headers=auth_headers(token), json=body)
    assert r.status_code == 201, r.text
    return r.json()


def set_status(client: TestClient, token: str, booking_id: int, status: str):
    return client.patch(f"/api/bookings/{booking_id}/status", headers=auth_headers(token), json={"status": status})


def availability_rows(property_id: int) -> list:
    db = SessionLocal()
    try:
        return [
            (r.is_available, r.booking_id, r.notes)
            for r in db.query(models.PropertyAvailability)
            .filter(models.PropertyAvailability.property_id == property_id)
            .order_by(models.PropertyAvailability.id)
        ]
    finally:
        db.close()


def test_create_booking_returns_booking_and_commission(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)

    data = create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))
    booking, commission = data["booking"], data["commission"]

    assert booking["status"] == "pending"
    assert booking["duration"] == "4 nights"
    assert booking["booking_agent_id"] == agent["id"]
    assert booking["total_amount"] == 1000
    assert booking["availability"][0]["is_available"] is False
    assert booking["availability"][0]["notes"] == "Booked by Omar Client"

    assert commission["booking_id"] == booking["id"]
    assert commission["total_amount"] == 100
    assert commission["platform_fee"] == 20
    assert commission["owner_commission"] == 56
    assert commission["booking_commission"] == 24
    assert commission["status"] == "pending"


def test_overlapping_booking_rejected_without_side_effects(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)
    create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))

    r = client.post(
        "/api/bookings",
        headers=auth_headers(token),
        json=booking_body(prop["id"], agent["id"], "2025-06-03", "2025-06-07"),
    )
    assert r.status_code == 400
    assert "not available" in r.json()["detail"]

    db = SessionLocal()
    try:
        assert db.query(models.Booking).count() == 1
        assert db.query(models.Commission).count() == 1
        assert db.query(models.PropertyAvailability).count() == 1
    finally:
        db.close()


def test_invalid_dates_and_missing_references(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)

    r = client.post("/api/bookings", headers=auth_headers(token), json=booking_body(prop["id"], agent["id"], "2025-06-05", "2025-06-05"))
    assert r.status_code == 400
    r = client.post("/api/bookings", headers=auth_headers(token), json=booking_body(prop["id"], agent["id"], "2025-06-05", "2025-06-01"))
    assert r.status_code == 400

    r = client.post("/api/bookings", headers=auth_headers(token), json=booking_body(9999, agent["id"], "2025-06-01", "2025-06-05"))
    assert r.status_code == 404
    assert r.json()["detail"] == "Property not found"
    r = client.post("/api/bookings", headers=auth_headers(token), json=booking_body(prop["id"], 9999, "2025-06-01", "2025-06-05"))
    assert r.status_code == 404

    # Schema validation: short name, non-positive amount
    r = client.post(
        "/api/bookings",
        headers=auth_headers(token),
        json=booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05", client_name="O"),
    )
    assert r.status_code == 400
    r = client.post(
        "/api/bookings",
        headers=auth_headers(token),
        json=booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05", total_amount=0),
    )
    assert r.status_code == 400


def test_confirm_then_pay_marks_commission_paid(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)
    booking = create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))["booking"]

    r = set_status(client, token, booking["id"], "confirmed")
    assert r.status_code == 200, r.text
    assert r.json()["booking"]["status"] == "confirmed"
    assert availability_rows(prop["id"]) == [(False, booking["id"], "Confirmed booking")]

    r = set_status(client, token, booking["id"], "paid")
    assert r.status_code == 200, r.text
    paid = r.json()["booking"]
    assert paid["status"] == "paid"
    assert paid["commission"]["status"] == "paid"
    assert paid["commission"]["paid_at"] is not None
    # Still blocked
    assert availability_rows(prop["id"])[0][0] is False


def test_cancel_releases_availability(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)
    booking = create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))["booking"]
    set_status(client, token, booking["id"], "confirmed")

    r = set_status(client, token, booking["id"], "cancelled")
    assert r.status_code == 200
    assert r.json()["message"] == "Booking cancelled"
    assert availability_rows(prop["id"]) == [(True, None, "Cancelled")]

    # Same window can be booked again
    create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))


def test_invalid_transitions_rejected(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)
    booking = create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))["booking"]

    r = set_status(client, token, booking["id"], "paid")
    assert r.status_code == 400
    assert "Cannot change booking status" in r.json()["detail"]

    # Same status is a no-op
    r = set_status(client, token, booking["id"], "pending")
    assert r.status_code == 200
    assert r.json()["booking"]["status"] == "pending"

    assert set_status(client, token, booking["id"], "cancelled").status_code == 200
    assert set_status(client, token, booking["id"], "confirmed").status_code == 400

    # Unknown status names fail validation
    assert set_status(client, token, booking["id"], "teleported").status_code == 400


def test_request_cancellation(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)
    booking = create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))["booking"]

    r = client.patch(f"/api/bookings/{booking['id']}/request-cancellation", headers=auth_headers(token))
    assert r.status_code == 200, r.text
    assert r.json()["booking"]["status"] == "cancellation_requested"
    assert availability_rows(prop["id"]) == [(False, booking["id"], "Cancellation requested")]

    # Only pending or confirmed bookings may ask
    r = client.patch(f"/api/bookings/{booking['id']}/request-cancellation", headers=auth_headers(token))
    assert r.status_code == 400

    # Declining the request puts the booking back to confirmed
    r = set_status(client, token, booking["id"], "confirmed")
    assert r.status_code == 200
    assert r.json()["booking"]["status"] == "confirmed"


def test_delete_archives_and_releases(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)
    booking = create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))["booking"]

    r = client.delete(f"/api/bookings/{booking['id']}", headers=auth_headers(token))
    assert r.status_code == 200
    assert r.json()["booking"]["status"] == "archived"
    assert availability_rows(prop["id"]) == [(True, None, "Archived")]

    # Still readable, and archived bookings cannot be edited
    assert client.get(f"/api/bookings/{booking['id']}", headers=auth_headers(token)).status_code == 200
    r = client.put(f"/api/bookings/{booking['id']}", headers=auth_headers(token), json={"notes": "late"})
    assert r.status_code == 400


def test_update_dates_moves_block_and_recomputes(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)
    first = create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))["booking"]
    create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-20", "2025-06-25"))

    # Overlapping its own dates is fine
    r = client.put(
        f"/api/bookings/{first['id']}",
        headers=auth_headers(token),
        json={"check_in": "2025-06-03", "check_out": "2025-06-12", "total_amount": 2000},
    )
    assert r.status_code == 200, r.text
    updated = r.json()
    assert updated["duration"] == "1 week"
    assert updated["availability"][0]["start_date"] == "2025-06-03"
    assert updated["availability"][0]["end_date"] == "2025-06-12"
    assert updated["commission"]["total_amount"] == 200
    assert updated["commission"]["owner_commission"] == 112

    # Colliding with the other booking is not
    r = client.put(
        f"/api/bookings/{first['id']}",
        headers=auth_headers(token),
        json={"check_in": "2025-06-18", "check_out": "2025-06-21"},
    )
    assert r.status_code == 400

    r = client.put(
        f"/api/bookings/{first['id']}",
        headers=auth_headers(token),
        json={"check_in": "2025-06-12", "check_out": "2025-06-10"},
    )
    assert r.status_code == 400


def test_update_with_invalid_status_saves_nothing(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)
    booking = create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))["booking"]

    r = client.put(
        f"/api/bookings/{booking['id']}",
        headers=auth_headers(token),
        json={
            "client_name": "Changed Name",
            "total_amount": 5000,
            "check_in": "2025-06-10",
            "check_out": "2025-06-14",
            "status": "paid",
        },
    )
    assert r.status_code == 400
    assert "Cannot change booking status from pending to paid" in r.json()["detail"]

    after = client.get(f"/api/bookings/{booking['id']}", headers=auth_headers(token)).json()
    assert after["client_name"] == "Omar Client"
    assert after["total_amount"] == 1000
    assert after["check_in"] == "2025-06-01"
    assert after["status"] == "pending"
    assert after["commission"]["total_amount"] == 100
    assert after["availability"][0]["start_date"] == "2025-06-01"
    assert availability_rows(prop["id"]) == [(False, booking["id"], "Booked by Omar Client")]


def test_update_fields_and_status_in_one_request(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)
    booking = create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))["booking"]

    r = client.put(
        f"/api/bookings/{booking['id']}",
        headers=auth_headers(token),
        json={"client_name": "Changed Name", "total_amount": 2000, "status": "confirmed"},
    )
    assert r.status_code == 200, r.text
    updated = r.json()
    assert updated["client_name"] == "Changed Name"
    assert updated["status"] == "confirmed"
    assert updated["commission"]["total_amount"] == 200
    assert availability_rows(prop["id"]) == [(False, booking["id"], "Confirmed booking")]

    # Cancelling through an edit releases the block like the status endpoint does
    r = client.put(f"/api/bookings/{booking['id']}", headers=auth_headers(token), json={"status": "cancelled"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "cancelled"
    assert availability_rows(prop["id"]) == [(True, None, "Cancelled")]


def test_total_is_frozen_once_commission_paid(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)
    booking = create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))["booking"]
    set_status(client, token, booking["id"], "confirmed")
    assert set_status(client, token, booking["id"], "paid").status_code == 200

    r = client.put(f"/api/bookings/{booking['id']}", headers=auth_headers(token), json={"total_amount": 3000})
    assert r.status_code == 400
    assert r.json()["detail"] == "Cannot change the total of a booking whose commission is paid"

    after = client.get(f"/api/bookings/{booking['id']}", headers=auth_headers(token)).json()
    assert after["total_amount"] == 1000
    assert after["commission"]["total_amount"] == 100
    assert after["commission"]["status"] == "paid"

    # Other fields stay editable, and resending the same total is not a change
    r = client.put(
        f"/api/bookings/{booking['id']}",
        headers=auth_headers(token),
        json={"notes": "Paid by transfer", "total_amount": 1000},
    )
    assert r.status_code == 200, r.text
    assert r.json()["notes"] == "Paid by transfer"


def test_list_filters_pagination_and_stats(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)
    b1 = create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))["booking"]
    create_booking(
        client, token, booking_body(prop["id"], agent["id"], "2025-07-01", "2025-07-05", client_name="Zara Guest", total_amount=500)
    )
    create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-08-01", "2025-08-03", total_amount=250))
    set_status(client, token, b1["id"], "confirmed")

    r = client.get("/api/bookings", headers=auth_headers(token), params={"limit": 2})
    assert r.status_code == 200, r.text
    data = r.json()
    assert len(data["bookings"]) == 2
    assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert data["stats"]["total_bookings"] == 3
    assert data["stats"]["total_revenue"] == 1750
    assert data["stats"]["status_breakdown"] == {"pending": 2, "confirmed": 1}

    r = client.get("/api/bookings", headers=auth_headers(token), params={"search": "zara"})
    assert [b["client_name"] for b in r.json()["bookings"]] == ["Zara Guest"]

    r = client.get("/api/bookings", headers=auth_headers(token), params={"status": "confirmed"})
    assert [b["id"] for b in r.json()["bookings"]] == [b1["id"]]

    r = client.get(
        "/api/bookings", headers=auth_headers(token), params={"start_date": "2025-06-15", "end_date": "2025-07-31"}
    )
    assert r.json()["stats"]["total_bookings"] == 1


def test_stats_endpoint(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)
    b1 = create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))["booking"]
    create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-10", "2025-06-12", total_amount=500))
    set_status(client, token, b1["id"], "confirmed")
    set_status(client, token, b1["id"], "paid")

    r = client.get("/api/bookings/stats", headers=auth_headers(token), params={"agency_id": agent["agency_id"]})
    assert r.status_code == 200, r.text
    stats = r.json()
    assert stats["overall"] == {"total_bookings": 2, "total_revenue": 1500, "average_booking_value": 750}
    assert {s["status"]: s["count"] for s in stats["status_breakdown"]} == {"paid": 1, "pending": 1}
    assert stats["monthly_trends"] == [{"month": "2025-06", "booking_count": 2, "total_revenue": 1500}]
    assert stats["top_properties"][0]["property_id"] == prop["id"]
    assert stats["top_properties"][0]["booking_count"] == 2
    assert stats["commissions"] == {"total_commission": 100, "platform_earnings": 20, "agent_earnings": 80}


def test_agent_and_agency_views(client: TestClient, make_agent, make_property):
    owner_token, owner, prop = setup_listing(make_agent, make_property)
    other_token, other = make_agent("broker@example.com", "Ben Broker", agency_name="City Brokers")

    # Broker from another agency books the owner's listing
    booking = create_booking(
        client,
        other_token,
        booking_body(prop["id"], owner["id"], "2025-06-01", "2025-06-05", booking_agent_id=other["id"]),
    )["booking"]
    assert booking["booking_agent_id"] == other["id"]

    r = client.get(f"/api/bookings/agent/{owner['id']}/booking-requests", headers=auth_headers(owner_token))
    assert r.status_code == 200
    assert [b["id"] for b in r.json()] == [booking["id"]]
    # The broker's own agency has no incoming requests
    r = client.get(f"/api/bookings/agent/{other['id']}/booking-requests", headers=auth_headers(other_token))
    assert r.json() == []

    set_status(client, owner_token, booking["id"], "confirmed")
    set_status(client, owner_token, booking["id"], "paid")

    r = client.get(f"/api/bookings/agent/{other['id']}", headers=auth_headers(other_token))
    assert r.status_code == 200
    stats = r.json()["stats"]
    assert stats["total_bookings"] == 1
    assert stats["booking_commission"] == 24
    assert stats["owner_commission"] == 0
    assert stats["total_commission"] == 24

    r = client.get(f"/api/bookings/agency/{owner['agency_id']}", headers=auth_headers(owner_token))
    assert r.status_code == 200
    assert r.json()["stats"]["total_bookings"] == 1
    assert client.get("/api/bookings/agency/9999", headers=auth_headers(owner_token)).status_code == 404

    r = client.get(f"/api/bookings/property/{prop['id']}", headers=auth_headers(owner_token))
    assert r.status_code == 200
    assert len(r.json()["bookings"]) == 1
    assert r.json()["availability"][0]["booking_id"] == booking["id"]


def test_outsiders_cannot_change_status(client: TestClient, make_agent, make_property):
    token, agent, prop = setup_listing(make_agent, make_property)
    booking = create_booking(client, token, booking_body(prop["id"], agent["id"], "2025-06-01", "2025-06-05"))["booking"]
    stranger_token, _ = make_agent("stranger@example.com", agency_name="Elsewhere")

    assert set_status(client, stranger_token, booking["id"], "cancelled").status_code == 403
    assert client.get("/api/bookings/9999", headers=auth_headers(token)).status_code == 404
