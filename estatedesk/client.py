# HTTP client for the EstateDesk API with a small GET cache.
# Writes drop the cached resources they affect so the next read refetches.
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, Optional, Tuple

import requests

logger = logging.getLogger("estatedesk.client")

DEFAULT_TIMEOUT_SECONDS = 15

# Resource prefixes refreshed after each kind of write
BOOKING_RESOURCES = ("/api/bookings", "/api/properties", "/api/commissions")
PROPERTY_RESOURCES = ("/api/properties", "/api/agents", "/api/bookings/property")
SALES_RESOURCES = ("/api/sales-properties", "/api/sales-transactions", "/api/sales-commissions")
PROFILE_RESOURCES = ("/api/profile", "/api/auth/me", "/api/agents")


class ApiError(Exception):
    def __init__(self, status_code: int, detail: Any) -> None:
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


CacheKey = Tuple[str, Tuple[Tuple[str, str], ...]]


class QueryCache:
    """GET responses keyed by path and query params, each kept for `ttl_seconds`."""

    def __init__(self, ttl_seconds: float = 30.0) -> None:
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[CacheKey, Tuple[float, Any]] = {}

    @staticmethod
    def key(path: str, params: Optional[Dict[str, Any]] = None) -> CacheKey:
        items = tuple(sorted((k, str(v)) for k, v in (params or {}).items() if v is not None))
        return path, items

    def get(self, key: CacheKey) -> Tuple[bool, Any]:
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        expires_at, value = entry
        if expires_at <= time.monotonic():
            del self._entries[key]
            return False, None
        return True, value

    def set(self, key: CacheKey, value: Any) -> None:
        self._entries[key] = (time.monotonic() + self.ttl_seconds, value)

    def invalidate(self, prefixes: Iterable[str]) -> int:
        """Drop every entry whose path starts with one of `prefixes`. Returns how many were dropped."""
        prefixes = tuple(prefixes)
        stale = [k for k in self._entries if k[0].startswith(prefixes)]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class EstateDeskClient:
    """
    Thin wrapper over the REST API.

    `session` can be any object with a requests-style `request()` method, so a
    FastAPI TestClient works as well as a `requests.Session`.
    """

    def __init__(
        self,
        base_url: str = "",
        token: Optional[str] = None,
        session: Any = None,
        cache_ttl: float = 30.0,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session if session is not None else requests.Session()
        self.cache = QueryCache(cache_ttl)
        self.timeout = timeout

    # ----------------
    # Transport
    # ----------------
    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        kwargs.setdefault("headers", self._headers())
        if isinstance(self.session, requests.Session):
            kwargs.setdefault("timeout", self.timeout)
        res = self.session.request(method, f"{self.base_url}{path}", **kwargs)
        if res.status_code >= 400:
            try:
                body = res.json()
                detail = body.get("detail", body) if isinstance(body, dict) else body
            except ValueError:
                detail = res.text
            logger.debug("client.error", extra={"method": method, "path": path, "status": res.status_code})
            raise ApiError(res.status_code, detail)
        if res.status_code == 204 or not res.content:
            return None
        return res.json()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None, use_cache: bool = True) -> Any:
        key = QueryCache.key(path, params)
        if use_cache:
            hit, value = self.cache.get(key)
            if hit:
                return value
        clean = {k: v for k, v in (params or {}).items() if v is not None}
        value = self._request("GET", path, params=clean or None)
        self.cache.set(key, value)
        return value

    def _write(self, method: str, path: str, invalidates: Iterable[str], **kwargs: Any) -> Any:
        value = self._request(method, path, **kwargs)
        self.cache.invalidate(invalidates)
        return value

    # ----------------
    # Auth
    # ----------------
    def request_otp(self, email: str, name: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/api/auth/request-otp", json={"email": email, "name": name})

    def verify_otp(self, email: str, code: str) -> Dict[str, Any]:
        data = self._request("POST", "/api/auth/verify-otp", json={"email": email, "code": code})
        self._sign_in(data)
        return data

    def request_login_otp(self, email: str) -> Dict[str, Any]:
        return self._request("POST", "/api/auth/request-login-otp", json={"email": email})

    def verify_login_otp(self, email: str, code: str) -> Dict[str, Any]:
        data = self._request("POST", "/api/auth/verify-login-otp", json={"email": email, "code": code})
        self._sign_in(data)
        return data

    def _sign_in(self, data: Dict[str, Any]) -> None:
        # Cached reads belong to the previous identity
        self.token = data["access_token"]
        self.cache.clear()

    def me(self) -> Dict[str, Any]:
        return self._get("/api/auth/me")

    # ----------------
    # Profile and onboarding
    # ----------------
    def get_profile(self) -> Dict[str, Any]:
        return self._get("/api/profile")

    def update_profile(self, **changes: Any) -> Dict[str, Any]:
        return self._write("PATCH", "/api/profile", PROFILE_RESOURCES, json=changes)

    def onboarding_branding(self, agency_name: str, primary_color: str, **extra: Any) -> Dict[str, Any]:
        body = {"agency_name": agency_name, "primary_color": primary_color, **extra}
        return self._write("POST", "/api/onboarding/step3", PROFILE_RESOURCES, json=body)

    def onboarding_contact(self, phone: str, locations: list, **extra: Any) -> Dict[str, Any]:
        body = {"phone": phone, "locations": locations, **extra}
        return self._write("POST", "/api/onboarding/step4", PROFILE_RESOURCES, json=body)

    # ----------------
    # Agents
    # ----------------
    def list_agents(self, agency_id: Optional[int] = None) -> list:
        return self._get("/api/agents", {"agency_id": agency_id})

    def get_agent(self, agent_id: int) -> Dict[str, Any]:
        return self._get(f"/api/agents/{agent_id}")

    def delete_agent(self, agent_id: int) -> None:
        self._write("DELETE", f"/api/agents/{agent_id}", PROFILE_RESOURCES + PROPERTY_RESOURCES)

    # ----------------
    # Bookings
    # ----------------
    def list_bookings(self, **filters: Any) -> Dict[str, Any]:
        return self._get("/api/bookings", filters)

    def get_booking(self, booking_id: int) -> Dict[str, Any]:
        return self._get(f"/api/bookings/{booking_id}")

    def booking_stats(self, **filters: Any) -> Dict[str, Any]:
        return self._get("/api/bookings/stats", filters)

    def agent_bookings(self, agent_id: int, **filters: Any) -> Dict[str, Any]:
        return self._get(f"/api/bookings/agent/{agent_id}", filters)

    def booking_requests(self, agent_id: int) -> list:
        return self._get(f"/api/bookings/agent/{agent_id}/booking-requests")

    def agency_bookings(self, agency_id: int, **filters: Any) -> Dict[str, Any]:
        return self._get(f"/api/bookings/agency/{agency_id}", filters)

    def property_bookings(self, property_id: int) -> Dict[str, Any]:
        return self._get(f"/api/bookings/property/{property_id}")

    def create_booking(self, **booking: Any) -> Dict[str, Any]:
        return self._write("POST", "/api/bookings", BOOKING_RESOURCES, json=booking)

    def update_booking(self, booking_id: int, **changes: Any) -> Dict[str, Any]:
        return self._write("PUT", f"/api/bookings/{booking_id}", BOOKING_RESOURCES, json=changes)

    def update_booking_status(self, booking_id: int, status: str) -> Dict[str, Any]:
        return self._write("PATCH", f"/api/bookings/{booking_id}/status", BOOKING_RESOURCES, json={"status": status})

    def request_cancellation(self, booking_id: int) -> Dict[str, Any]:
        return self._write("PATCH", f"/api/bookings/{booking_id}/request-cancellation", BOOKING_RESOURCES)

    def delete_booking(self, booking_id: int) -> Dict[str, Any]:
        return self._write("DELETE", f"/api/bookings/{booking_id}", BOOKING_RESOURCES)

    # ----------------
    # Rental properties
    # ----------------
    def list_rental_properties(self, **filters: Any) -> Dict[str, Any]:
        return self._get("/api/properties/rental", filters)

    def get_rental_property(self, property_id: int) -> Dict[str, Any]:
        return self._get(f"/api/properties/rental/{property_id}")

    def create_rental_property(self, **fields: Any) -> Dict[str, Any]:
        return self._write("POST", "/api/properties/rental", PROPERTY_RESOURCES, json=fields)

    def update_rental_property(self, property_id: int, **changes: Any) -> Dict[str, Any]:
        return self._write("PUT", f"/api/properties/rental/{property_id}", PROPERTY_RESOURCES, json=changes)

    def delete_rental_property(self, property_id: int) -> None:
        self._write("DELETE", f"/api/properties/rental/{property_id}", PROPERTY_RESOURCES)

    def update_property_status(self, property_id: int, status: str) -> Dict[str, Any]:
        return self._write(
            "PATCH", f"/api/properties/rental/{property_id}/status", PROPERTY_RESOURCES, json={"status": status}
        )

    def bulk_update_property_status(self, property_ids: list, status: str) -> Dict[str, Any]:
        return self._write(
            "POST",
            "/api/properties/bulk/status",
            PROPERTY_RESOURCES,
            json={"property_ids": property_ids, "status": status},
        )

    def agency_property_stats(self, agency_id: int) -> Dict[str, Any]:
        return self._get(f"/api/properties/agency/{agency_id}/stats")

    def property_availability(self, property_id: int, **window: Any) -> list:
        return self._get(f"/api/properties/rental/{property_id}/availability", window)

    def add_availability(self, property_id: int, **row: Any) -> Dict[str, Any]:
        return self._write(
            "PATCH", f"/api/properties/rental/{property_id}/availability", PROPERTY_RESOURCES, json=row
        )

    # ----------------
    # Sales and commissions
    # ----------------
    def list_sales_properties(self, **filters: Any) -> list:
        return self._get("/api/sales-properties", filters)

    def create_sales_property(self, **fields: Any) -> Dict[str, Any]:
        return self._write("POST", "/api/sales-properties", SALES_RESOURCES, json=fields)

    def update_sales_property(self, property_id: int, **changes: Any) -> Dict[str, Any]:
        return self._write("PUT", f"/api/sales-properties/{property_id}", SALES_RESOURCES, json=changes)

    def create_sales_transaction(self, **fields: Any) -> Dict[str, Any]:
        return self._write("POST", "/api/sales-transactions", SALES_RESOURCES, json=fields)

    def list_sales_transactions(self, **filters: Any) -> list:
        return self._get("/api/sales-transactions", filters)

    def update_sales_transaction_status(self, transaction_id: int, status: str) -> Dict[str, Any]:
        return self._write(
            "PATCH", f"/api/sales-transactions/{transaction_id}/status", SALES_RESOURCES, json={"status": status}
        )

    def list_commissions(self, **filters: Any) -> list:
        return self._get("/api/commissions", filters)

    def agent_commissions(self, agent_id: int) -> list:
        return self._get(f"/api/commissions/agent/{agent_id}")

    def agent_sales_commissions(self, agent_id: int) -> list:
        return self._get(f"/api/sales-commissions/agent/{agent_id}")

    # ----------------
    # Storage
    # ----------------
    def upload_url(self, file_name: str, file_type: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/api/upload-url", json={"file_name": file_name, "file_type": file_type})
