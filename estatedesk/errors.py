# Domain errors raised by services and translated to HTTP responses in main.py.
# Route handlers may still raise fastapi.HTTPException directly for auth/permission checks.
from __future__ import annotations

from typing import Any


class DomainError(Exception):
    status_code = 400

    def __init__(self, detail: Any) -> None:
        super().__init__(detail)
        self.detail = detail


class NotFoundError(DomainError):
    status_code = 404


class InvalidRequestError(DomainError):
    """Input passed schema validation but violates a business rule (bad dates, bad transition)."""
    status_code = 400


class UnavailableError(DomainError):
    """Requested window intersects a blocked availability range."""
    status_code = 400


class StorageNotConfiguredError(DomainError):
    status_code = 503


class BusyError(DomainError):
    """Another request holds the property lock; the client should retry shortly."""
    status_code = 429

    def __init__(self, retry_after: int = 1) -> None:
        super().__init__({"error": "busy", "retry_after": retry_after})
        self.retry_after = retry_after
