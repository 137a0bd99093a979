"""
SpotSignals - Trend Line Engine

Finds a support or resistance line through a symbol's swing points:
fetch candles, pick swing highs (resistance) or swing lows (support),
fit with RANSAC, and render the line over the requested time range.
"""

from __future__ import annotations

import time
from typing import Callable, Optional, Sequence

import numpy as np
import structlog

from spotsignals.data.market_client import MarketDataClient
from spotsignals.engines.extrema import find_peaks, find_valleys
from spotsignals.engines.ransac import RobustLineFitter, render_line
from spotsignals.errors import InsufficientDataError, InvalidInputError
from spotsignals.models import (
    Candle,
    LevelKind,
    TimeRange,
    TrendLineRequest,
    TrendLineResult,
    TrendPoint,
)
from spotsignals.utils.validators import validate_candles, validate_time_range, validate_window

log = structlog.get_logger(__name__)


def system_clock_ms() -> int:
    return int(time.time() * 1000)


class TrendLineEngine:
    """Support/resistance trend line search.

    Usage:
        engine = TrendLineEngine(MarketDataClient(settings), rng=np.random.default_rng(1))
        result = await engine.run(TrendLineRequest(symbol="BTC-USD", interval="ONE_HOUR",
                                                   time_range=TimeRange(start=s, end=e)))
    """

    def __init__(
        self,
        market: Optional[MarketDataClient] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], int] = system_clock_ms,
        extrema_window: int = 5,
        fitter: Optional[RobustLineFitter] = None,
    ):
        self.market = market
        self.rng = rng
        self.clock = clock
        self.extrema_window = validate_window(extrema_window, "extrema_window")
        self.fitter = fitter or RobustLineFitter()

    async def run(
        self,
        request: TrendLineRequest,
        on_progress: Optional[Callable[[str], None]] = None,
    ) -> TrendLineResult:
        """Fetch candles for the request and fit a trend line through them.

        The end of the range is clamped to the current time.
        """
        if self.market is None:
            raise InvalidInputError("TrendLineEngine.run needs a MarketDataClient")
        if not request.symbol.strip():
            raise InvalidInputError("Symbol cannot be empty")
        validate_time_range(request.time_range)

        now = self.clock()
        end = min(request.time_range.end, now)
        if end < request.time_range.end:
            log.info("trendline_end_clamped", requested=request.time_range.end, clamped=end)
        if request.time_range.start >= end:
            raise InvalidInputError("Invalid time range: start is in the future")

        _progress(on_progress, f"Fetching {request.symbol} {request.interval} candles")
        candles = await self.market.fetch_candles(
            request.symbol,
            request.interval,
            request.time_range.start,
            end,
            on_progress=on_progress,
        )
        _progress(on_progress, f"Retrieved {len(candles)} candles")

        return self.detect(
            candles,
            request.line_type,
            request.time_range,
            min_points=request.min_points,
            threshold=request.threshold,
            max_iterations=request.max_iterations,
            on_progress=on_progress,
        )

    def detect(
        self,
        candles: Sequence[Candle],
        line_type: LevelKind,
        time_range: TimeRange,
        min_points: int = 3,
        threshold: float = 0.02,
        max_iterations: int = 1000,
        on_progress: Optional[Callable[[str], None]] = None,
    ) -> TrendLineResult:
        """Fit a trend line through already-fetched candles.

        Raises:
            InsufficientDataError: fewer swing points than ``min_points``.
        """
        validate_candles(candles)
        validate_time_range(time_range)

        key_points = self.key_points(candles, line_type)
        log.info(
            "trendline_key_points",
            line_type=line_type.value,
            candles=len(candles),
            points=len(key_points),
        )

        if len(key_points) < min_points:
            raise InsufficientDataError(
                f"{line_type.value} points",
                len(key_points),
                min_points,
                message=_insufficient_message(line_type, len(key_points), min_points),
            )

        _progress(on_progress, f"Running RANSAC over {len(key_points)} {line_type.value} points")
        result = self.fitter.fit(
            key_points,
            min_points=min_points,
            threshold=threshold,
            max_iterations=max_iterations,
            rng=self.rng,
        )
        if result is None:
            # a single key point cannot define a line
            raise InsufficientDataError(f"{line_type.value} points", len(key_points), 2)

        result.line_type = line_type
        result.rendered_endpoints = render_line(result.equation, time_range)

        log.info(
            "trendline_fitted",
            line_type=line_type.value,
            inliers=len(result.points),
            total=len(key_points),
            confidence=round(result.confidence, 4),
            slope=result.equation.slope,
        )
        _progress(
            on_progress,
            f"Trend line ready: {len(result.points)}/{len(key_points)} points, "
            f"confidence {result.confidence * 100:.1f}%",
        )
        return result

    def key_points(self, candles: Sequence[Candle], line_type: LevelKind) -> list[TrendPoint]:
        if line_type is LevelKind.RESISTANCE:
            return find_peaks(candles, self.extrema_window)
        return find_valleys(candles, self.extrema_window)


def _insufficient_message(line_type: LevelKind, found: int, required: int) -> str:
    kind = line_type.value
    if found == 0:
        suggestion = "Try expanding the time range or using a different interval."
    else:
        suggestion = f"Only found {found} points. Try expanding the time range to find more {kind} points."
    return f"Insufficient {kind} points found. Need at least {required}, found {found}. {suggestion}"


def _progress(callback: Optional[Callable[[str], None]], message: str) -> None:
    if callback:
        callback(message)
