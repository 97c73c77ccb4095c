# Redis-backed fixed-window rate limiter, used as a FastAPI dependency.
# Keys: rl:v1:ip:{ip}:{scope}; fail-open when Redis is disabled or erroring.
import logging
import os
from typing import Callable, Literal, Optional

from fastapi import HTTPException, Request, status

from .redis_client import get_redis, is_redis_enabled

logger = logging.getLogger("estatedesk.rate_limit")

# otp_request: sending codes (email cost + abuse), otp_verify: guessing codes, write: mutations
Scope = Literal["otp_request", "otp_verify", "write"]

_DEFAULT_LIMITS = {
    "otp_request": 5,
    "otp_verify": 10,
    "write": 60,
}


def _to_int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


def _window_seconds() -> int:
    return _to_int(os.getenv("RATE_LIMIT_WINDOW_SECONDS"), 60)


# RATE_LIMIT_OTP_REQUEST_PER_WINDOW, RATE_LIMIT_OTP_VERIFY_PER_WINDOW, RATE_LIMIT_WRITE_PER_WINDOW
def _limit_for_scope(scope: Scope) -> int:
    return _to_int(os.getenv(f"RATE_LIMIT_{scope.upper()}_PER_WINDOW"), _DEFAULT_LIMITS[scope])


def _client_ip(request: Request) -> str:
    # Remote address only; X-Forwarded-For is not trusted here
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit(scope: Scope) -> Callable[[Request], None]:
    """
    Build a dependency that allows at most N requests per IP per window for `scope`.

    The first hit in a window sets the key's TTL; later hits share it. Over the
    limit the request fails with 429 and a retry_after hint.
    """
    window = _window_seconds()
    limit = _limit_for_scope(scope)

    def _dependency(request: Request) -> None:
        if not is_redis_enabled():
            return
        r = get_redis()
        if r is None:
            return

        ip = _client_ip(request)
        key = f"rl:v1:ip:{ip}:{scope}"
        try:
            current = r.incr(key, amount=1)
            if current == 1:
                r.expire(key, window)
            if current > limit:
                ttl = r.ttl(key)
                retry_after = ttl if isinstance(ttl, int) and ttl > 0 else window
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail={
                        "error": "rate_limited",
                        "scope": scope,
                        "limit": limit,
                        "window_seconds": window,
                        "retry_after": retry_after,
                    },
                )
        except HTTPException:
            raise
        except Exception as exc:
            logger.warning("Rate limit fail-open (scope=%s, ip=%s): %s", scope, ip, exc)

    return _dependency
