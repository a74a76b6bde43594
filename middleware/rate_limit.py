# middleware/rate_limit.py
"""
Rate limiting with slowapi.

Every route gets RATE_LIMIT_DEFAULT through SlowAPIMiddleware (wired in main.py).
A route can tighten it:

    from middleware.rate_limit import limiter

    @router.post("")
    @limiter.limit("10/minute")
    def create(request: Request, ...):
        ...
"""
import logging
import os

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)


def _get_rate_limit_key(request: Request) -> str:
    """
    Bucket by the first X-Forwarded-For hop when behind the platform proxy,
    else by the socket peer address.
    """
    forwarded = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    return get_remote_address(request)


DEFAULT_RATE_LIMIT = os.getenv("RATE_LIMIT_DEFAULT", "120/minute")
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "1").lower() not in ("0", "false", "no")

limiter = Limiter(
    key_func=_get_rate_limit_key,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
    strategy="fixed-window",
    enabled=RATE_LIMIT_ENABLED,
)

logger.info("rate limiting %s default=%s", "enabled" if RATE_LIMIT_ENABLED else "disabled", DEFAULT_RATE_LIMIT)
