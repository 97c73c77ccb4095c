# API client: read caching, invalidation after writes, and error mapping.
import pytest
from fastapi.testclient import TestClient

from estatedesk.client import ApiError, EstateDeskClient, QueryCache

from conftest import OTP_CODE


@pytest.fixture()
def api(client: TestClient) -> EstateDeskClient:
    api = EstateDeskClient(session=client)
    api.request_otp("client@example.com", name="Cleo Client")
    api.verify_otp("client@example.com", OTP_CODE)
    api.onboarding_branding("Client Homes", "#336699")
    return api


def test_query_cache_expiry_and_invalidation(monkeypatch):
    now = [100.0]
    monkeypatch.setattr("estatedesk.client.time.monotonic", lambda: now[0])

    cache = QueryCache(ttl_seconds=10)
    key = QueryCache.key("/api/bookings", {"page": 1, "status": None})
    assert key == ("/api/bookings", (("page", "1"),))
    cache.set(key, {"bookings": []})
    cache.set(QueryCache.key("/api/sales-properties"), [])

    assert cache.get(key) == (True, {"bookings": []})
    assert cache.invalidate(["/api/bookings"]) == 1
    assert cache.get(key) == (False, None)
    assert len(cache) == 1

    now[0] += 11
    assert cache.get(QueryCache.key("/api/sales-properties")) == (False, None)
    assert len(cache) == 0


def test_sign_in_sets_token(api: EstateDeskClient):
    assert api.token
    me = api.me()
    assert me["email"] == "client@example.com"
    assert me["agency"]["name"] == "Client Homes"


def test_reads_are_cached_until_a_write_invalidates(api: EstateDeskClient):
    listing = api.create_rental_property(title="Cached Loft", location="JLT", property_type="loft", price=300)

    first = api.list_rental_properties()
    assert [p["title"] for p in first["items"]] == ["Cached Loft"]
    assert len(api.cache) == 1

    # Served from cache: a change made behind the client's back is not visible
    api.session.put(
        f"/api/properties/rental/{listing['id']}",
        headers=api._headers(),
        json={"title": "Renamed Loft"},
    )
    assert api.list_rental_properties()["items"][0]["title"] == "Cached Loft"

    api.update_property_status(listing["id"], "published")
    refreshed = api.list_rental_properties()
    assert refreshed["items"][0]["title"] == "Renamed Loft"
    assert refreshed["items"][0]["status"] == "published"


def test_booking_write_refreshes_booking_views(api: EstateDeskClient):
    me = api.me()
    listing = api.create_rental_property(title="Booked Loft", location="JLT", property_type="loft", price=300)
    assert api.list_bookings()["stats"]["total_bookings"] == 0

    created = api.create_booking(
        property_id=listing["id"],
        owner_agent_id=me["id"],
        client_name="Hana Guest",
        client_email="hana@example.com",
        client_phone="+971511111",
        check_in="2026-01-10",
        check_out="2026-01-15",
        total_amount=1500,
    )
    assert api.list_bookings()["stats"]["total_bookings"] == 1

    api.update_booking_status(created["booking"]["id"], "confirmed")
    assert api.get_booking(created["booking"]["id"])["status"] == "confirmed"
    assert len(api.agent_commissions(me["id"])) == 1


def test_errors_raise_api_error(api: EstateDeskClient):
    with pytest.raises(ApiError) as exc:
        api.get_booking(9999)
    assert exc.value.status_code == 404
    assert exc.value.detail == "Booking not found"

    with pytest.raises(ApiError) as exc:
        api.create_booking(property_id=1)
    assert exc.value.status_code == 400
    assert isinstance(exc.value.detail, list)

    api.token = None
    api.cache.clear()
    with pytest.raises(ApiError) as exc:
        api.me()
    assert exc.value.status_code == 401
