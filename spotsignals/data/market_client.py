"""
SpotSignals - Market Data Client

Fetches OHLCV candles (optionally annotated with indicator evaluations)
from the market history API. Ranges larger than the per-request cap are
split into sequential batches whose results are concatenated in time
order. Support/resistance levels for pattern scoring come from the
same API.
"""

from __future__ import annotations

import math
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional, Sequence

import httpx
import structlog
from pydantic import ValidationError

from spotsignals.config import Settings, get_settings
from spotsignals.errors import InvalidInputError, MarketDataError
from spotsignals.models import Candle, TimeRange
from spotsignals.utils.retry import with_retry
from spotsignals.utils.validators import validate_candles, validate_time_range

log = structlog.get_logger(__name__)

_MINUTE = 60 * 1000
_HOUR = 60 * _MINUTE

INTERVAL_MS: dict[str, int] = {
    "ONE_MINUTE": _MINUTE,
    "FIVE_MINUTE": 5 * _MINUTE,
    "FIVE_MINUTES": 5 * _MINUTE,
    "FIFTEEN_MINUTE": 15 * _MINUTE,
    "FIFTEEN_MINUTES": 15 * _MINUTE,
    "THIRTY_MINUTE": 30 * _MINUTE,
    "THIRTY_MINUTES": 30 * _MINUTE,
    "ONE_HOUR": _HOUR,
    "TWO_HOUR": 2 * _HOUR,
    "TWO_HOURS": 2 * _HOUR,
    "FOUR_HOUR": 4 * _HOUR,
    "FOUR_HOURS": 4 * _HOUR,
    "SIX_HOUR": 6 * _HOUR,
    "SIX_HOURS": 6 * _HOUR,
    "ONE_DAY": 24 * _HOUR,
}


def interval_to_ms(interval: str) -> int:
    """Interval name to milliseconds; unknown names fall back to one hour."""
    return INTERVAL_MS.get(interval.upper(), _HOUR)


class MarketDataClient:
    """Async client for the candle history endpoint.

    Construct one per application and pass it to whatever needs candles.

    Usage:
        client = MarketDataClient(get_settings())
        candles = await client.fetch_candles("BTC-USD", "ONE_HOUR", start_ms, end_ms)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_delay: float = 1.0,
    ):
        settings = settings or get_settings()
        self._base_url = settings.market_api_base_url.rstrip("/")
        self._timeout = settings.market_api_timeout
        self.max_candles_per_request = settings.market_max_candles_per_request
        self._api_key = settings.market_api_key
        self._http_client = http_client
        self._fetch_batch = with_retry(
            attempts=settings.market_retry_attempts,
            base_delay=retry_delay,
        )(self._fetch_batch_once)

    async def fetch_candles(
        self,
        symbol: str,
        interval: str,
        start: int,
        end: int,
        evaluators: Optional[Sequence[str]] = None,
        on_progress: Optional[Callable[[str], None]] = None,
    ) -> list[Candle]:
        """Fetch candles covering [start, end], batching when needed.

        Args:
            symbol: Market symbol, e.g. "BTC-USD".
            interval: Interval name, e.g. "ONE_HOUR".
            start: Range start in epoch ms.
            end: Range end in epoch ms.
            evaluators: Indicator evaluations to attach (e.g. ["rsi", "macd"]).
            on_progress: Optional callback receiving batch progress lines.

        Raises:
            InvalidInputError: empty symbol or start >= end.
            MarketDataError: error status or malformed payload.
        """
        if not symbol or not symbol.strip():
            raise InvalidInputError("Symbol cannot be empty")
        validate_time_range(TimeRange(start=start, end=end))

        interval_ms = interval_to_ms(interval)
        aligned_start = (start // interval_ms) * interval_ms
        aligned_end = math.ceil(end / interval_ms) * interval_ms
        total = (aligned_end - aligned_start) // interval_ms + 1

        log.info(
            "market_fetch_start",
            symbol=symbol,
            interval=interval,
            start=aligned_start,
            end=aligned_end,
            candles_needed=total,
        )

        if total <= self.max_candles_per_request:
            candles = await self._fetch_batch(symbol, interval, aligned_start, aligned_end, evaluators)
        else:
            candles = await self._fetch_batched(
                symbol, interval, aligned_start, aligned_end, interval_ms, total, evaluators, on_progress,
            )

        try:
            validate_candles(candles)
        except InvalidInputError as exc:
            raise MarketDataError(f"Market API returned unordered candles: {exc}") from exc

        log.info("market_fetch_complete", symbol=symbol, candles=len(candles))
        return candles

    async def _fetch_batched(
        self,
        symbol: str,
        interval: str,
        aligned_start: int,
        aligned_end: int,
        interval_ms: int,
        total: int,
        evaluators: Optional[Sequence[str]],
        on_progress: Optional[Callable[[str], None]],
    ) -> list[Candle]:
        """Sequential batches of at most ``max_candles_per_request`` candles."""
        cap = self.max_candles_per_request
        total_batches = math.ceil(total / cap)
        results: list[Candle] = []

        current = aligned_start
        batch = 1
        while current <= aligned_end:
            remaining = (aligned_end - current) // interval_ms + 1
            batch_end = min(current + (min(remaining, cap) - 1) * interval_ms, aligned_end)

            message = f"Fetching batch {batch}/{total_batches}"
            log.info("market_fetch_batch", batch=batch, total_batches=total_batches,
                     start=current, end=batch_end)
            if on_progress:
                on_progress(message)

            results.extend(await self._fetch_batch(symbol, interval, current, batch_end, evaluators))
            current = batch_end + interval_ms
            batch += 1

        return results

    async def _fetch_batch_once(
        self,
        symbol: str,
        interval: str,
        start: int,
        end: int,
        evaluators: Optional[Sequence[str]] = None,
    ) -> list[Candle]:
        params = {
            "symbol": symbol,
            "granularity": interval,
            "start_time": str(start),
            "end_time": str(end),
        }
        if evaluators:
            params["evaluators"] = ",".join(evaluators)

        async with self._session() as client:
            resp = await client.get(f"{self._base_url}/history", params=params)

        if resp.status_code >= 400:
            log.error("market_api_error", status=resp.status_code, body=resp.text[:500])
            raise MarketDataError(f"HTTP error! status: {resp.status_code}, message: {resp.text}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise MarketDataError("Invalid API response: body is not JSON") from exc

        raw = payload.get("candles") if isinstance(payload, dict) else None
        if not isinstance(raw, list):
            raise MarketDataError("Invalid API response: missing candles array")

        try:
            return [_parse_candle(item) for item in raw]
        except (KeyError, TypeError, ValueError, ValidationError) as exc:
            raise MarketDataError(f"Invalid candle in API response: {exc}") from exc

    async def fetch_support_resistance(self, symbol: str) -> tuple[list[float], list[float]]:
        """Support and resistance prices the market API has computed for a symbol.

        Raises:
            InvalidInputError: empty symbol.
            MarketDataError: transport failure, error status or malformed payload.
        """
        if not symbol or not symbol.strip():
            raise InvalidInputError("Symbol cannot be empty")

        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        try:
            async with self._session() as client:
                resp = await client.post(
                    f"{self._base_url}/v1/market-data/support-resistance-levels",
                    json={"symbol": symbol},
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            log.error("levels_fetch_failed", symbol=symbol, error=str(exc))
            raise MarketDataError(f"Failed to fetch support/resistance levels: {exc}") from exc

        if resp.status_code >= 400:
            log.error("market_api_error", status=resp.status_code, body=resp.text[:500])
            raise MarketDataError(
                f"Failed to fetch support/resistance levels: status {resp.status_code}"
            )

        try:
            payload = resp.json()
            supports = [float(p) for p in payload.get("supports") or []]
            resistances = [float(p) for p in payload.get("resistances") or []]
        except (AttributeError, TypeError, ValueError) as exc:
            raise MarketDataError(f"Invalid support/resistance response: {exc}") from exc

        log.info("levels_fetched", symbol=symbol, supports=len(supports), resistances=len(resistances))
        return supports, resistances

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client


def _parse_candle(item: dict) -> Candle:
    return Candle(
        timestamp=int(item["timestamp"]),
        open=float(item["open"]),
        high=float(item["high"]),
        low=float(item["low"]),
        close=float(item["close"]),
        volume=float(item.get("volume") or 0),
        evaluations=item.get("evaluations") or [],
    )
