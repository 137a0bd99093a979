"""
SpotSignals - Technical Analysis Detection Engine

Turns time-ordered OHLCV candles into trading signals: RANSAC trend lines,
candlestick patterns, price/indicator divergences and MACD crossovers.
"""

from spotsignals.engines.divergence_engine import DivergenceDetector
from spotsignals.engines.extrema import find_extrema
from spotsignals.engines.macd_engine import MACDCrossoverDetector
from spotsignals.engines.pattern_engine import PatternDetector
from spotsignals.engines.ransac import RobustLineFitter
from spotsignals.engines.trendline_engine import TrendLineEngine
from spotsignals.errors import (
    InsufficientDataError,
    InvalidInputError,
    MarketDataError,
    SignalEngineError,
)
from spotsignals.tools import SignalToolbox, ToolKind

__all__ = [
    "DivergenceDetector",
    "InsufficientDataError",
    "InvalidInputError",
    "MACDCrossoverDetector",
    "MarketDataError",
    "PatternDetector",
    "RobustLineFitter",
    "SignalEngineError",
    "SignalToolbox",
    "ToolKind",
    "TrendLineEngine",
    "find_extrema",
]
