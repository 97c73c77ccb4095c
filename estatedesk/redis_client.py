# Shared Redis connection used by booking locks and rate limiting.
# Opt-in via REDIS_ENABLED; every caller treats a None client as "Redis unavailable" and carries on.
import logging
import os
from typing import Optional

_logger = logging.getLogger("estatedesk.redis")


def _truthy(val: Optional[str]) -> bool:
    if val is None:
        return False
    return val.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def is_redis_enabled() -> bool:
    return _truthy(os.getenv("REDIS_ENABLED", "false"))


# Cached client and a one-shot guard: a failed connect keeps this process fail-open
_client = None
_initialized = False


def get_redis():
    """
    Return a connected Redis client, or None when disabled or unreachable.

    The first call connects and pings; a failure is remembered so later calls
    return None immediately instead of paying the connect timeout again.
    """
    global _client, _initialized
    if not is_redis_enabled():
        return None
    if _client is not None:
        return _client
    if _initialized:
        return None

    url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    try:
        import redis

        client = redis.Redis.from_url(
            url,
            socket_timeout=0.25,
            socket_connect_timeout=0.25,
            retry_on_timeout=False,
            health_check_interval=0,
        )
        client.ping()
        _client = client
        _logger.info("Connected to Redis at %s", url)
    except Exception as exc:
        _logger.warning("Redis unavailable, continuing without it: %s", exc)
        _client = None
    _initialized = True
    return _client


def redis_status() -> str:
    """'disabled', 'connected' or 'unavailable'; reported by /healthz."""
    if not is_redis_enabled():
        return "disabled"
    r = get_redis()
    if r is None:
        return "unavailable"
    try:
        r.ping()
    except Exception as exc:
        _logger.warning("Redis ping failed: %s", exc)
        return "unavailable"
    return "connected"
