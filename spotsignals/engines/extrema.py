"""
SpotSignals - Extrema Detection

Strict local maxima / minima over a symmetric window. Shared by the trend
line, divergence and volume-divergence detectors.

A point at index i is a HIGH when every other point in [i-window, i+window]
is strictly lower; LOW is the mirror. Any tie disqualifies the point, so a
flat plateau yields no extremum at all.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from spotsignals.models import Candle, ExtremumKind, ExtremumPoint, SeriesPoint, TrendPoint


def find_extrema(series: Sequence[SeriesPoint], window: int) -> list[ExtremumPoint]:
    """Find strict local highs and lows in a time series.

    Args:
        series: Time-ordered samples.
        window: Number of neighbours on each side a point must beat.

    Returns:
        Extrema in index order. Empty when the series is shorter than
        ``2 * window + 1``.
    """
    if window < 1 or len(series) < 2 * window + 1:
        return []

    values = np.array([p.value for p in series], dtype=float)
    extrema: list[ExtremumPoint] = []

    for i in range(window, len(values) - window):
        current = values[i]
        neighbours = np.concatenate((values[i - window:i], values[i + 1:i + window + 1]))

        if np.all(neighbours < current):
            kind = ExtremumKind.HIGH
        elif np.all(neighbours > current):
            kind = ExtremumKind.LOW
        else:
            continue

        extrema.append(ExtremumPoint(
            timestamp=series[i].timestamp,
            value=float(current),
            index=i,
            kind=kind,
        ))

    return extrema


def find_highs(series: Sequence[SeriesPoint], window: int) -> list[ExtremumPoint]:
    return [p for p in find_extrema(series, window) if p.kind is ExtremumKind.HIGH]


def find_lows(series: Sequence[SeriesPoint], window: int) -> list[ExtremumPoint]:
    return [p for p in find_extrema(series, window) if p.kind is ExtremumKind.LOW]


def candle_series(candles: Sequence[Candle], field: str) -> list[SeriesPoint]:
    """Project one candle attribute ("high", "low", "close", "volume") to a series."""
    return [SeriesPoint(timestamp=c.timestamp, value=getattr(c, field)) for c in candles]


def find_peaks(candles: Sequence[Candle], window: int = 5) -> list[TrendPoint]:
    """Swing highs of the candle highs, as resistance line candidates."""
    return [
        TrendPoint(timestamp=p.timestamp, price=p.value)
        for p in find_highs(candle_series(candles, "high"), window)
    ]


def find_valleys(candles: Sequence[Candle], window: int = 5) -> list[TrendPoint]:
    """Swing lows of the candle lows, as support line candidates."""
    return [
        TrendPoint(timestamp=p.timestamp, price=p.value)
        for p in find_lows(candle_series(candles, "low"), window)
    ]
