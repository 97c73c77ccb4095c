# Per-property Redis locks serializing writes to a property's bookings and availability rows.
# Fail open: without Redis the database row lock inside the transaction is the only guard.
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator
from uuid import uuid4

from .errors import BusyError
from .redis_client import get_redis

logger = logging.getLogger("estatedesk.locks")

PROPERTY_LOCK_TTL_MS = 5000

# Compare-and-delete so an expired holder cannot free a lock another request has since taken
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


def property_lock_key(property_id: int) -> str:
    return f"lock:booking:property:{property_id}"


@contextmanager
def redis_try_lock(key: str, ttl_ms: int = PROPERTY_LOCK_TTL_MS) -> Iterator[bool]:
    """
    Try to take `key` with SET NX PX and yield whether the caller holds it.

    Yields True when Redis is disabled or erroring, so callers carry on unguarded.
    """
    r = get_redis()
    if r is None:
        yield True
        return

    token = uuid4().hex
    try:
        acquired = bool(r.set(key, token, nx=True, px=ttl_ms))
    except Exception as exc:
        logger.warning("lock.acquire_failed", extra={"key": key, "error": str(exc)})
        yield True
        return

    try:
        yield acquired
    finally:
        if acquired:
            try:
                r.eval(_RELEASE_SCRIPT, 1, key, token)
            except Exception as exc:
                # Left to expire by TTL
                logger.debug("lock.release_failed", extra={"key": key, "error": str(exc)})


@contextmanager
def property_lock(property_id: int, ttl_ms: int = PROPERTY_LOCK_TTL_MS) -> Iterator[None]:
    """
    Hold the property's lock for the body, or raise BusyError (429) if another request has it.

        with property_lock(booking.property_id):
            booking_service.change_status(db, booking, "cancelled")
    """
    key = property_lock_key(property_id)
    with redis_try_lock(key, ttl_ms=ttl_ms) as locked:
        if not locked:
            logger.info("lock.busy", extra={"property_id": property_id})
            raise BusyError(retry_after=1)
        yield
