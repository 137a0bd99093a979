"""
SpotSignals - Divergence Detection

Compares consecutive price extrema with the indicator extrema nearest to
them in time:

Regular (reversal):
  - Bearish: price higher high + indicator lower high
  - Bullish: price lower low + indicator higher low
Hidden (continuation):
  - Hidden bearish: price lower high + indicator higher high
  - Hidden bullish: price higher low + indicator lower low

Volume divergence is a separate scan that needs no indicator series: a
higher price high printed on lower volume than the previous high.
"""

from __future__ import annotations

from typing import Optional, Sequence

import structlog

from spotsignals.engines.extrema import candle_series, find_highs, find_lows, find_extrema
from spotsignals.errors import InsufficientDataError
from spotsignals.models import (
    Candle,
    Divergence,
    DivergenceKind,
    DivergenceOptions,
    DivergencePoint,
    DivergenceType,
    ExtremumKind,
    ExtremumPoint,
    SeriesPoint,
)
from spotsignals.utils.validators import validate_candles, validate_series

log = structlog.get_logger(__name__)

_HOUR_MS = 60 * 60 * 1000


class DivergenceDetector:
    """Price vs. oscillator divergence detector.

    Usage:
        detector = DivergenceDetector()
        divergences = detector.detect(candles, rsi_series, "RSI")
        weak_rallies = detector.detect_volume(candles)
    """

    def __init__(self, min_indicator_points: int = 10):
        self.min_indicator_points = min_indicator_points

    # ──────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────

    def detect(
        self,
        candles: Sequence[Candle],
        indicator: Sequence[SeriesPoint],
        indicator_name: str,
        options: Optional[DivergenceOptions] = None,
    ) -> list[Divergence]:
        """Detect regular and/or hidden divergences against an indicator.

        Args:
            candles: Time-ordered candles.
            indicator: Indicator values aligned to the same candles.
            indicator_name: Label used in results (e.g. "RSI").
            options: Lookback, strength floor and families to report.

        Returns:
            Divergences with ``strength >= min_strength``, unordered.

        Raises:
            InsufficientDataError: indicator series shorter than
                ``min_indicator_points``.
        """
        options = options or DivergenceOptions()
        validate_candles(candles)
        validate_series(indicator, indicator_name)

        if len(indicator) < self.min_indicator_points:
            raise InsufficientDataError(
                f"{indicator_name} data points", len(indicator), self.min_indicator_points
            )
        if len(candles) < 2:
            return []

        matching_window = self._matching_window(candles)
        lookback = max(2, min(options.lookback, len(candles) // 4))

        price_peaks = find_highs(candle_series(candles, "high"), lookback)
        price_troughs = find_lows(candle_series(candles, "low"), lookback)
        indicator_extrema = find_extrema(indicator, lookback)
        indicator_peaks = [p for p in indicator_extrema if p.kind is ExtremumKind.HIGH]
        indicator_troughs = [p for p in indicator_extrema if p.kind is ExtremumKind.LOW]

        price_range = max(c.high for c in candles) - min(c.low for c in candles)
        values = [p.value for p in indicator]
        indicator_range = max(values) - min(values)
        avg_volume = sum(c.volume for c in candles) / len(candles)

        kinds = set(options.kinds)
        want_regular = DivergenceType.REGULAR in kinds or DivergenceType.ALL in kinds
        want_hidden = DivergenceType.HIDDEN in kinds or DivergenceType.ALL in kinds

        scans: list[tuple[DivergenceKind, list[ExtremumPoint], list[ExtremumPoint]]] = []
        if want_regular:
            scans.append((DivergenceKind.BEARISH, price_peaks, indicator_peaks))
            scans.append((DivergenceKind.BULLISH, price_troughs, indicator_troughs))
        if want_hidden:
            scans.append((DivergenceKind.HIDDEN_BEARISH, price_peaks, indicator_peaks))
            scans.append((DivergenceKind.HIDDEN_BULLISH, price_troughs, indicator_troughs))

        divergences: list[Divergence] = []
        for kind, price_points, indicator_points in scans:
            for prev_price, curr_price in zip(price_points, price_points[1:]):
                prev_ind = self._nearest(indicator_points, prev_price.timestamp, matching_window)
                curr_ind = self._nearest(indicator_points, curr_price.timestamp, matching_window)
                if prev_ind is None or curr_ind is None:
                    continue
                if not _matches(kind, prev_price, curr_price, prev_ind, curr_ind):
                    continue

                strength = self._strength(
                    curr_price.value - prev_price.value,
                    curr_ind.value - prev_ind.value,
                    price_range,
                    indicator_range,
                )
                if strength < options.min_strength:
                    continue

                confidence = self._confidence(
                    strength,
                    prev_price.timestamp,
                    curr_price.timestamp,
                    candles[curr_price.index].volume,
                    avg_volume,
                )
                divergences.append(Divergence(
                    kind=kind,
                    indicator_name=indicator_name,
                    start=DivergencePoint(
                        timestamp=prev_price.timestamp,
                        price=prev_price.value,
                        indicator_value=prev_ind.value,
                    ),
                    end=DivergencePoint(
                        timestamp=curr_price.timestamp,
                        price=curr_price.value,
                        indicator_value=curr_ind.value,
                    ),
                    strength=strength,
                    confidence=confidence,
                    description=_describe(kind, indicator_name, prev_price, curr_price, prev_ind, curr_ind),
                ))

        log.debug(
            "divergences_detected",
            indicator=indicator_name,
            lookback=lookback,
            price_peaks=len(price_peaks),
            price_troughs=len(price_troughs),
            found=len(divergences),
        )
        return divergences

    def detect_volume(
        self,
        candles: Sequence[Candle],
        options: Optional[DivergenceOptions] = None,
    ) -> list[Divergence]:
        """Bearish volume divergence: higher mid-price high on lower volume."""
        options = options or DivergenceOptions()
        validate_candles(candles)

        mid = [
            SeriesPoint(timestamp=c.timestamp, value=(c.high + c.low) / 2)
            for c in candles
        ]
        peaks = find_highs(mid, options.lookback)

        divergences: list[Divergence] = []
        for prev, curr in zip(peaks, peaks[1:]):
            prev_volume = candles[prev.index].volume
            curr_volume = candles[curr.index].volume

            if not (curr.value > prev.value and curr_volume < prev_volume) or prev_volume <= 0:
                continue

            strength = (prev_volume - curr_volume) / prev_volume * 100
            if strength < options.min_strength:
                continue

            divergences.append(Divergence(
                kind=DivergenceKind.BEARISH,
                indicator_name="volume",
                start=DivergencePoint(timestamp=prev.timestamp, price=prev.value, indicator_value=prev_volume),
                end=DivergencePoint(timestamp=curr.timestamp, price=curr.value, indicator_value=curr_volume),
                strength=min(strength, 100.0),
                confidence=75.0 if strength > 50 else 50.0,
                description=(
                    f"Volume divergence: Price made new high (${curr.value:.2f}), "
                    f"but volume decreased by {strength:.1f}% - Weak rally"
                ),
            ))

        log.debug("volume_divergences_detected", peaks=len(peaks), found=len(divergences))
        return divergences

    # ──────────────────────────────────────────
    # Scoring
    # ──────────────────────────────────────────

    @staticmethod
    def _strength(
        price_diff: float,
        indicator_diff: float,
        price_range: float,
        indicator_range: float,
    ) -> float:
        """0-100; zero unless price and indicator moved in opposite directions."""
        if price_range == 0 or indicator_range == 0:
            return 0.0

        opposite = (price_diff > 0 > indicator_diff) or (price_diff < 0 < indicator_diff)
        if not opposite:
            return 0.0

        price_pct = abs(price_diff / price_range) * 100
        indicator_pct = abs(indicator_diff / indicator_range) * 100
        return min((price_pct + indicator_pct) * 2, 100.0)

    @staticmethod
    def _confidence(
        strength: float,
        start_ts: int,
        end_ts: int,
        volume_at_end: float,
        avg_volume: float,
    ) -> float:
        confidence = 50.0
        if strength > 70:
            confidence += 20
        elif strength > 50:
            confidence += 10

        if volume_at_end and avg_volume and volume_at_end > avg_volume * 1.5:
            confidence += 15

        hours = (end_ts - start_ts) / _HOUR_MS
        if 4 <= hours <= 48:
            confidence += 15

        return min(confidence, 100.0)

    # ──────────────────────────────────────────
    # Matching
    # ──────────────────────────────────────────

    @staticmethod
    def _matching_window(candles: Sequence[Candle]) -> float:
        """1.5x the average spacing between candles."""
        avg_interval = (candles[-1].timestamp - candles[0].timestamp) / (len(candles) - 1)
        return avg_interval * 1.5

    @staticmethod
    def _nearest(
        points: Sequence[ExtremumPoint], timestamp: int, window: float
    ) -> Optional[ExtremumPoint]:
        """Indicator extremum closest in time, strictly inside the window.

        Equidistant candidates resolve to the earliest one.
        """
        best: Optional[ExtremumPoint] = None
        best_gap = window
        for p in points:
            gap = abs(p.timestamp - timestamp)
            if gap < best_gap:
                best, best_gap = p, gap
        return best


def _matches(
    kind: DivergenceKind,
    prev_price: ExtremumPoint,
    curr_price: ExtremumPoint,
    prev_ind: ExtremumPoint,
    curr_ind: ExtremumPoint,
) -> bool:
    price_up = curr_price.value > prev_price.value
    price_down = curr_price.value < prev_price.value
    ind_up = curr_ind.value > prev_ind.value
    ind_down = curr_ind.value < prev_ind.value

    if kind in (DivergenceKind.BEARISH, DivergenceKind.HIDDEN_BULLISH):
        return price_up and ind_down
    return price_down and ind_up


def _describe(
    kind: DivergenceKind,
    name: str,
    prev_price: ExtremumPoint,
    curr_price: ExtremumPoint,
    prev_ind: ExtremumPoint,
    curr_ind: ExtremumPoint,
) -> str:
    p0, p1, i0, i1 = prev_price.value, curr_price.value, prev_ind.value, curr_ind.value
    if kind is DivergenceKind.BEARISH:
        return (f"Bearish divergence: Price made higher high (${p1:.2f} > ${p0:.2f}), "
                f"but {name} made lower high ({i1:.2f} < {i0:.2f})")
    if kind is DivergenceKind.BULLISH:
        return (f"Bullish divergence: Price made lower low (${p1:.2f} < ${p0:.2f}), "
                f"but {name} made higher low ({i1:.2f} > {i0:.2f})")
    if kind is DivergenceKind.HIDDEN_BEARISH:
        return (f"Hidden bearish divergence: Price made lower high (${p1:.2f} < ${p0:.2f}), "
                f"but {name} made higher high ({i1:.2f} > {i0:.2f}) - Trend continuation signal")
    return (f"Hidden bullish divergence: Price made higher low (${p1:.2f} > ${p0:.2f}), "
            f"but {name} made lower low ({i1:.2f} < {i0:.2f}) - Trend continuation signal")
