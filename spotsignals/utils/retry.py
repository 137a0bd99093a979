"""
SpotSignals - Fetch Retry

Backoff for market data requests. Only transport-level failures are
retried. An HTTP error status or an unusable payload is raised as
MarketDataError and surfaces on the first attempt.
"""

from __future__ import annotations

import asyncio
import functools
import random
from typing import Any, Awaitable, Callable, Optional, Type

import httpx
import structlog

log = structlog.get_logger(__name__)

TRANSIENT_ERRORS: tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    httpx.TransportError,
)

AsyncFn = Callable[..., Awaitable[Any]]


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    factor: float = 2.0,
    jitter: bool = True,
) -> float:
    """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
    raw = base_delay * factor ** (attempt - 1)
    spread = random.uniform(0.5, 1.5) if jitter else 1.0
    return min(raw * spread, max_delay)


def with_retry(
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    factor: float = 2.0,
    transient: tuple[Type[Exception], ...] = TRANSIENT_ERRORS,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
) -> Callable[[AsyncFn], AsyncFn]:
    """Wrap an async fetch so transient failures are retried with backoff.

    The last failure is re-raised once ``attempts`` calls have failed.
    ``on_retry(attempt, exc, delay)`` runs before each sleep.

    Usage::

        fetch = with_retry(attempts=settings.market_retry_attempts)(client.fetch_once)
    """

    def wrap(fetch: AsyncFn) -> AsyncFn:
        @functools.wraps(fetch)
        async def retrying(*args: Any, **kwargs: Any) -> Any:
            attempt = 1
            while True:
                try:
                    return await fetch(*args, **kwargs)
                except transient as exc:
                    if attempt >= attempts:
                        log.error(
                            "fetch_retries_exhausted",
                            call=fetch.__qualname__,
                            attempts=attempt,
                            error=str(exc),
                        )
                        raise
                    delay = backoff_delay(attempt, base_delay, max_delay, factor)
                    log.warning(
                        "fetch_retry",
                        call=fetch.__qualname__,
                        attempt=attempt,
                        of=attempts,
                        delay_s=round(delay, 2),
                        error=str(exc),
                    )
                    if on_retry:
                        on_retry(attempt, exc, delay)
                    await asyncio.sleep(delay)
                    attempt += 1

        return retrying

    return wrap
