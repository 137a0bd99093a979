"""
SpotSignals - MACD Crossover Detection

Scores MACD/signal-line crossovers and MACD zero-line crossovers over a
precomputed MACD series (see ``engines.indicators``).
"""

from __future__ import annotations

from typing import Optional, Sequence

import structlog

from spotsignals.models import (
    CrossoverType,
    MACDCrossover,
    MACDCrossoverKind,
    MACDCrossoverOptions,
    MACDCrossoverResult,
    MACDPoint,
)

log = structlog.get_logger(__name__)


class MACDCrossoverDetector:
    """Signal-line and zero-line crossover detector.

    Usage:
        detector = MACDCrossoverDetector()
        result = detector.detect(macd_points, MACDCrossoverOptions(kinds=["all"]))
    """

    def detect(
        self,
        series: Sequence[MACDPoint],
        options: Optional[MACDCrossoverOptions] = None,
    ) -> MACDCrossoverResult:
        """Find crossovers, keep the most confident ``max_results``.

        The kept crossovers are returned newest first.
        """
        options = options or MACDCrossoverOptions()
        if len(series) < 2:
            return MACDCrossoverResult()

        kinds = set(options.kinds)
        want_all = CrossoverType.ALL in kinds
        want_bullish = want_all or CrossoverType.BULLISH in kinds
        want_bearish = want_all or CrossoverType.BEARISH in kinds
        want_zero = want_all or CrossoverType.ZERO in kinds

        avg_separation = sum(abs(p.macd - p.signal) for p in series) / len(series)
        crossovers: list[MACDCrossover] = []

        for previous, current in zip(series, series[1:]):
            candidates: list[tuple[MACDCrossoverKind, float]] = []

            if want_bullish and previous.macd <= previous.signal and current.macd > current.signal:
                candidates.append((
                    MACDCrossoverKind.BULLISH,
                    self._signal_strength(current, previous, avg_separation, bullish=True),
                ))
            if want_bearish and previous.macd >= previous.signal and current.macd < current.signal:
                candidates.append((
                    MACDCrossoverKind.BEARISH,
                    self._signal_strength(current, previous, avg_separation, bullish=False),
                ))
            if want_zero and previous.macd <= 0 < current.macd:
                candidates.append((MACDCrossoverKind.BULLISH_ZERO, self._zero_strength(current, previous)))
            if want_zero and previous.macd >= 0 > current.macd:
                candidates.append((MACDCrossoverKind.BEARISH_ZERO, self._zero_strength(current, previous)))

            for kind, strength in candidates:
                if strength < options.min_strength:
                    continue
                crossovers.append(MACDCrossover(
                    kind=kind,
                    timestamp=current.timestamp,
                    price=current.price,
                    macd_value=current.macd,
                    signal_value=current.signal,
                    histogram_value=current.histogram,
                    strength=strength,
                    confidence=self._confidence(strength, current, previous, options.include_histogram),
                    description=_describe(kind, current),
                    previous=previous,
                ))

        crossovers.sort(key=lambda x: (x.confidence, x.strength), reverse=True)
        total = len(crossovers)
        kept = crossovers[:options.max_results]
        kept.sort(key=lambda x: x.timestamp, reverse=True)

        log.debug("macd_crossovers_detected", points=len(series), found=total, kept=len(kept))
        return MACDCrossoverResult(
            crossovers=kept,
            total_found=total,
            filtered=total > options.max_results,
        )

    # ──────────────────────────────────────────
    # Scoring
    # ──────────────────────────────────────────

    @staticmethod
    def _signal_strength(
        current: MACDPoint, previous: MACDPoint, avg_separation: float, bullish: bool
    ) -> float:
        strength = 50.0

        # how decisively the lines separated
        if avg_separation > 0:
            strength += min(20.0, abs(current.macd - current.signal) / avg_separation * 10)

        momentum_diff = abs(current.macd - previous.macd) - abs(current.signal - previous.signal)
        if bullish and momentum_diff > 0:
            strength += min(15.0, momentum_diff * 100)
        elif not bullish and momentum_diff < 0:
            strength += min(15.0, abs(momentum_diff) * 100)

        histogram_change = current.histogram - previous.histogram
        if (bullish and histogram_change > 0) or (not bullish and histogram_change < 0):
            strength += min(15.0, abs(histogram_change) * 100)

        return min(100.0, max(0.0, strength))

    @staticmethod
    def _zero_strength(current: MACDPoint, previous: MACDPoint) -> float:
        strength = 50.0
        strength += min(20.0, abs(current.macd) * 50)
        strength += min(20.0, abs(current.macd - previous.macd) * 100)

        signal_aligned = current.signal > 0 if current.macd > 0 else current.signal < 0
        if signal_aligned:
            strength += 10

        return min(100.0, max(0.0, strength))

    @staticmethod
    def _confidence(
        strength: float, current: MACDPoint, previous: MACDPoint, include_histogram: bool
    ) -> float:
        confidence = strength * 0.7

        if include_histogram:
            confirms = (
                (current.histogram > previous.histogram and current.macd > current.signal)
                or (current.histogram < previous.histogram and current.macd < current.signal)
            )
            if confirms:
                confidence += 15

        if abs(current.macd - current.signal) > 0.5:
            confidence += 15

        return min(100.0, max(0.0, confidence))


def _describe(kind: MACDCrossoverKind, p: MACDPoint) -> str:
    if kind is MACDCrossoverKind.BULLISH:
        return (f"Bullish MACD crossover - MACD line ({p.macd:.2f}) crossed above "
                f"signal line ({p.signal:.2f}) at price ${p.price:.2f}")
    if kind is MACDCrossoverKind.BEARISH:
        return (f"Bearish MACD crossover - MACD line ({p.macd:.2f}) crossed below "
                f"signal line ({p.signal:.2f}) at price ${p.price:.2f}")
    if kind is MACDCrossoverKind.BULLISH_ZERO:
        return (f"Bullish zero-line crossover - MACD ({p.macd:.2f}) crossed above zero "
                f"at price ${p.price:.2f}, indicating positive momentum")
    return (f"Bearish zero-line crossover - MACD ({p.macd:.2f}) crossed below zero "
            f"at price ${p.price:.2f}, indicating negative momentum")
