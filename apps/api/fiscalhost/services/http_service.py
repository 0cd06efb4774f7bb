"""Outbound HTTP helpers for provider APIs (Resend, Stripe)."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


def _backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    delay = min(max_delay, base_delay * (2**attempt))
    # Jitter so concurrent workers don't retry in lockstep
    return delay + random.uniform(0, delay / 2) if delay else 0.0


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: frozenset[int] | set[int] | None = None,
) -> httpx.Response:
    """
    Run ``request_fn`` with exponential backoff.

    Retries network errors and ``retry_statuses`` responses. The last
    response is returned as-is; the last network error is re-raised.
    """
    statuses = retry_statuses or DEFAULT_RETRY_STATUSES
    last_attempt = max_attempts - 1

    for attempt in range(max_attempts):
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if attempt >= last_attempt:
                raise
            logger.warning("HTTP request failed, retrying", exc_info=exc)
        else:
            if response.status_code not in statuses or attempt >= last_attempt:
                return response
            logger.warning("HTTP request returned %s, retrying", response.status_code)

        delay = _backoff_delay(attempt, base_delay, max_delay)
        if delay:
            await asyncio.sleep(delay)

    raise RuntimeError("request_with_retries called with max_attempts < 1")
