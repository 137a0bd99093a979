"""
SpotSignals - Shared test fixtures

Hand-built candle sets with known swing points. Timestamps are hourly,
starting 2024-01-01 00:00 UTC.
"""

import numpy as np
import pytest

from spotsignals.config import Settings
from spotsignals.models import Candle, SeriesPoint

BASE_TS = 1_704_067_200_000
HOUR_MS = 3_600_000


def _ts(i: int) -> int:
    return BASE_TS + i * HOUR_MS


def _candles_from_highs(highs: list[float], volumes: list[float] | None = None) -> list[Candle]:
    volumes = volumes or [1000.0] * len(highs)
    return [
        Candle(timestamp=_ts(i), open=h - 1, high=h, low=h - 2, close=h - 1, volume=v)
        for i, (h, v) in enumerate(zip(highs, volumes))
    ]


def _two_peaks(first_peak: float, second_peak: float, n: int = 50) -> list[float]:
    """Peaks at index 15 and 35, falling away one unit per bar."""
    return [
        first_peak - abs(i - 15) if i < 25 else second_peak - abs(i - 35)
        for i in range(n)
    ]


@pytest.fixture
def settings():
    return Settings(market_api_base_url="https://market.test")


@pytest.fixture
def rng():
    return np.random.default_rng(7)


@pytest.fixture
def hourly_ts():
    return _ts


@pytest.fixture
def candles_from_highs():
    return _candles_from_highs


@pytest.fixture
def higher_high_candles():
    """50 candles whose highs peak at 110 (bar 15) then 115 (bar 35)."""
    return _candles_from_highs(_two_peaks(110, 115))


@pytest.fixture
def lower_high_rsi():
    """RSI-like series peaking at 70 (bar 15) then 60 (bar 35)."""
    return [SeriesPoint(timestamp=_ts(i), value=v) for i, v in enumerate(_two_peaks(70, 60))]


@pytest.fixture
def flat_candles():
    return [
        Candle(timestamp=_ts(i), open=100, high=101, low=99, close=100, volume=1000)
        for i in range(30)
    ]
