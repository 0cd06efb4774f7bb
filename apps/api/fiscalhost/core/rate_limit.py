"""Rate limiting for the API.

Two layers share one storage backend:

- ``limiter``: slowapi per-route limits keyed by remote address.
- ``RateLimit``: an explicit fixed-window counter keyed by an arbitrary
  scope string, for checks that depend on request data (e.g. an email).

Windows are fixed, not sliding: two calls 59s apart may land in the same
window or in two different ones depending on alignment.
"""

import logging
import os
import time

from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter
from slowapi import Limiter
from slowapi.util import get_remote_address

from fiscalhost.core.config import settings
from fiscalhost.core.redis_client import get_redis_url, redis_available

logger = logging.getLogger(__name__)

MEMORY_STORAGE_URI = "memory://"
IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
DEFAULT_LIMITS = (
    []
    if IS_TESTING or settings.RATE_LIMIT_API <= 0
    else [f"{settings.RATE_LIMIT_API}/minute"]
)


def _resolve_storage_uri() -> str:
    # Redis for multi-worker support; in-memory for tests or when Redis is down
    if IS_TESTING:
        return MEMORY_STORAGE_URI
    redis_url = get_redis_url()
    if not redis_url:
        return MEMORY_STORAGE_URI
    if not redis_available():
        logger.warning("Redis unavailable for rate limiting, using in-memory storage")
        return MEMORY_STORAGE_URI
    return redis_url


STORAGE_URI = _resolve_storage_uri()

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=STORAGE_URI,
    default_limits=DEFAULT_LIMITS,
)

_storage = storage_from_string(STORAGE_URI)
_strategy = FixedWindowRateLimiter(_storage)


class RateLimit:
    """
    Bound the number of calls for ``key`` to ``limit`` per ``period_seconds``.

    Usage:
        rate_limit = RateLimit(f"confirm_guest_account_ip_{ip}", 5, 60)
        if not rate_limit.register_call():
            raise RateLimitExceededError(...)
    """

    def __init__(self, key: str, limit: int, period_seconds: int = 60):
        self.key = key
        self.limit = limit
        self.period_seconds = period_seconds
        self._item = RateLimitItemPerSecond(limit, period_seconds)

    def register_call(self) -> bool:
        """Count one call; False when the quota for this window is exhausted."""
        if self.limit <= 0:
            return True
        return _strategy.hit(self._item, self.key)

    def seconds_until_reset(self) -> int:
        """Seconds until the current window ends (0 when unknown)."""
        stats = _strategy.get_window_stats(self._item, self.key)
        return max(0, int(stats.reset_time - time.time()))


def reset_rate_limits() -> None:
    """Clear every counter (test helper; also used by the admin CLI)."""
    _storage.reset()
    limiter.reset()
