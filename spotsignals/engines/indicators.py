"""
SpotSignals - Indicator Series

Builds the oscillator series the divergence and MACD detectors consume.
Two sources:

  - evaluations pre-attached to candles by the market data API, matched by name
  - local computation with the `ta` library on a pandas DataFrame
"""

from __future__ import annotations

from typing import Optional, Sequence

import pandas as pd
from ta.momentum import RSIIndicator
from ta.trend import MACD

from spotsignals.models import Candle, IndicatorEvaluation, MACDPoint, SeriesPoint


# ──────────────────────────────────────────────
# Pre-annotated evaluations
# ──────────────────────────────────────────────

def find_evaluation(candle: Candle, name: str) -> Optional[IndicatorEvaluation]:
    """First evaluation whose name contains ``name`` (case-insensitive)."""
    needle = name.lower()
    for evaluation in candle.evaluations:
        if needle in (evaluation.name or "").lower():
            return evaluation
    return None


def indicator_series_from_candles(
    candles: Sequence[Candle],
    name: str,
    value_name: Optional[str] = None,
) -> list[SeriesPoint]:
    """Extract one indicator output per candle from its evaluations.

    Args:
        candles: Candles as returned by the market data client.
        name: Evaluation name to match, e.g. "rsi".
        value_name: Output to read within the evaluation. Defaults to the
            value named like the evaluation, else its first value.

    Candles without a matching evaluation are skipped, so the series may
    have gaps.
    """
    wanted = (value_name or name).lower()
    series: list[SeriesPoint] = []
    for candle in candles:
        evaluation = find_evaluation(candle, name)
        if evaluation is None or not evaluation.values:
            continue
        chosen = next((v for v in evaluation.values if v.name.lower() == wanted), None)
        if chosen is None:
            if value_name is not None:
                continue
            chosen = evaluation.values[0]
        series.append(SeriesPoint(timestamp=candle.timestamp, value=chosen.value))
    return series


def extract_macd_series(candles: Sequence[Candle]) -> list[MACDPoint]:
    """Read macd / signal / histogram from "macd" evaluations.

    A missing histogram is derived as ``macd - signal``.
    """
    points: list[MACDPoint] = []
    for candle in candles:
        evaluation = find_evaluation(candle, "macd")
        if evaluation is None or not evaluation.values:
            continue

        by_name = {v.name: v.value for v in evaluation.values}
        if "macd" not in by_name or "signal" not in by_name:
            continue

        macd, signal = by_name["macd"], by_name["signal"]
        points.append(MACDPoint(
            timestamp=candle.timestamp,
            macd=macd,
            signal=signal,
            histogram=by_name.get("histogram", macd - signal),
            price=candle.close,
        ))
    return points


# ──────────────────────────────────────────────
# Local computation (ta)
# ──────────────────────────────────────────────

def candles_to_dataframe(candles: Sequence[Candle]) -> pd.DataFrame:
    """Convert candles to a DataFrame indexed by timestamp."""
    df = pd.DataFrame({
        "timestamp": [c.timestamp for c in candles],
        "open": [c.open for c in candles],
        "high": [c.high for c in candles],
        "low": [c.low for c in candles],
        "close": [c.close for c in candles],
        "volume": [float(c.volume) for c in candles],
    })
    df.set_index("timestamp", inplace=True)
    return df


def compute_rsi_series(candles: Sequence[Candle], window: int = 14) -> list[SeriesPoint]:
    """RSI of closes; warm-up values are dropped."""
    if len(candles) <= window:
        return []
    df = candles_to_dataframe(candles)
    rsi = RSIIndicator(df["close"], window=window).rsi().dropna()
    return [SeriesPoint(timestamp=int(ts), value=float(v)) for ts, v in rsi.items()]


def compute_macd_series(
    candles: Sequence[Candle],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> list[MACDPoint]:
    """MACD line, signal and histogram of closes; warm-up rows are dropped."""
    if len(candles) < slow:
        return []
    df = candles_to_dataframe(candles)
    macd = MACD(df["close"], window_slow=slow, window_fast=fast, window_sign=signal)

    frame = pd.DataFrame({
        "macd": macd.macd(),
        "signal": macd.macd_signal(),
        "histogram": macd.macd_diff(),
        "price": df["close"],
    }).dropna()

    return [
        MACDPoint(
            timestamp=int(ts),
            macd=float(row.macd),
            signal=float(row.signal),
            histogram=float(row.histogram),
            price=float(row.price),
        )
        for ts, row in frame.iterrows()
    ]
