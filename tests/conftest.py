# Pytest configuration for backend API tests.
# Forces a local SQLite DB, disables Redis and outbound providers, and pins OTP codes.
import os
from typing import Callable, Dict, Iterator, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

# Test-time environment: local SQLite DB, Redis disabled, predictable JWT secret
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ESTATEDESK_JWT_SECRET", "test-secret")
os.environ.setdefault("ADMIN_EMAILS", "admin@example.com")
os.environ["OTP_SWEEP_INTERVAL_SECONDS"] = "0"
# No real email or media provider during tests
os.environ["RESEND_API_KEY"] = ""
for _var in ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET"):
    os.environ[_var] = ""

import sys
# Ensure the repo root is on sys.path so 'estatedesk' resolves when running pytest from the repo root
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from estatedesk.main import app  # noqa: E402
from estatedesk.db import Base, engine  # noqa: E402
from estatedesk import otp  # noqa: E402

OTP_CODE = "123456"


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_db() -> Iterator[None]:
    """
    Session-level database bootstrap using a local SQLite file.

    Drops and recreates schema once per test session to ensure a clean slate.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_db() -> Iterator[None]:
    """Function-level isolation: drop and recreate schema before each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def _fixed_otp(monkeypatch: pytest.MonkeyPatch) -> None:
    # Every issued code is OTP_CODE so tests can complete sign-in
    monkeypatch.setattr(otp, "generate_code", lambda: OTP_CODE)


@pytest.fixture()
def client() -> Iterator[TestClient]:
    """FastAPI TestClient bound to the application for HTTP-level tests."""
    with TestClient(app) as c:
        yield c


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_agent(client: TestClient) -> Callable[..., Tuple[str, dict]]:
    """
    Factory: register and verify an agent, optionally creating its agency.

    Returns (access_token, agent JSON as returned by the last step).
    """
    def _make(email: str, name: str = "Agent", agency_name: Optional[str] = None) -> Tuple[str, dict]:
        r = client.post("/api/auth/request-otp", json={"email": email, "name": name})
        assert r.status_code == 200, r.text
        r = client.post("/api/auth/verify-otp", json={"email": email, "code": OTP_CODE})
        assert r.status_code == 200, r.text
        token, agent = r.json()["access_token"], r.json()["agent"]
        if agency_name:
            r = client.post(
                "/api/onboarding/step3",
                headers=auth_headers(token),
                json={"agency_name": agency_name, "primary_color": "#0044aa"},
            )
            assert r.status_code == 200, r.text
            agent = r.json()
        return token, agent

    return _make


@pytest.fixture()
def make_property(client: TestClient) -> Callable[..., dict]:
    """Factory: create a rental listing as the given agent."""
    def _make(token: str, title: str = "Sea View Apartment", **fields) -> dict:
        body = {
            "title": title,
            "location": "Dubai Marina",
            "property_type": "apartment",
            "price": 450,
            **fields,
        }
        r = client.post("/api/properties/rental", headers=auth_headers(token), json=body)
        assert r.status_code == 201, r.text
        return r.json()

    return _make


class FakeRedis:
    """In-memory stand-in for the SET NX PX / compare-and-delete calls the property lock makes."""

    def __init__(self) -> None:
        self.store: Dict[str, str] = {}

    def set(self, key: str, value: str, nx: bool = False, px: Optional[int] = None) -> Optional[bool]:
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def eval(self, script: str, numkeys: int, key: str, token: str) -> int:
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


@pytest.fixture()
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> FakeRedis:
    """Route property locks through a FakeRedis; the rate limiter stays off."""
    fake = FakeRedis()
    monkeypatch.setattr("estatedesk.locks.get_redis", lambda: fake)
    return fake
