"""
SpotSignals - Pydantic Models

Value types flowing in and out of the detection engines. Engines accept
these, return these, and the tool layer serializes them with
``model_dump(mode="json")``. Timestamps are integer milliseconds since the
Unix epoch (UTC).
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from spotsignals.config import Settings


# ──────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────

class ExtremumKind(str, Enum):
    """Local maximum or minimum."""
    HIGH = "high"
    LOW = "low"


class LevelKind(str, Enum):
    """Horizontal level or trend line role."""
    SUPPORT = "support"
    RESISTANCE = "resistance"


class PatternKind(str, Enum):
    """Recognised candlestick shapes."""
    DOJI = "Doji"
    HAMMER = "Hammer"
    SHOOTING_STAR = "ShootingStar"
    BULLISH_ENGULFING = "BullishEngulfing"
    BEARISH_ENGULFING = "BearishEngulfing"


class DivergenceKind(str, Enum):
    """Divergence classification."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    HIDDEN_BULLISH = "hidden_bullish"
    HIDDEN_BEARISH = "hidden_bearish"


class DivergenceType(str, Enum):
    """Families of divergence a caller can ask for."""
    REGULAR = "regular"
    HIDDEN = "hidden"
    ALL = "all"


class MACDCrossoverKind(str, Enum):
    """Signal-line and zero-line crossovers."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    BULLISH_ZERO = "bullish_zero"
    BEARISH_ZERO = "bearish_zero"


class CrossoverType(str, Enum):
    """Crossover families a caller can ask for."""
    BULLISH = "bullish"
    BEARISH = "bearish"
    ZERO = "zero"
    ALL = "all"


# ──────────────────────────────────────────────
# Market Data Models
# ──────────────────────────────────────────────

class IndicatorValue(BaseModel):
    """One named output of an indicator evaluation (e.g. macd / signal)."""
    model_config = ConfigDict(allow_inf_nan=False)

    name: str
    timestamp: int
    value: float


class IndicatorEvaluation(BaseModel):
    """Indicator outputs attached to a candle by the market data source."""
    name: str
    values: list[IndicatorValue] = Field(default_factory=list)


class Candle(BaseModel):
    """Single OHLCV candle."""
    model_config = ConfigDict(allow_inf_nan=False)

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    evaluations: list[IndicatorEvaluation] = Field(default_factory=list)


class SeriesPoint(BaseModel):
    """A scalar time series sample (indicator value, price, volume...)."""
    model_config = ConfigDict(allow_inf_nan=False)

    timestamp: int
    value: float


class TimeRange(BaseModel):
    """Closed time interval in epoch milliseconds."""
    start: int
    end: int


# ──────────────────────────────────────────────
# Extrema
# ──────────────────────────────────────────────

class ExtremumPoint(BaseModel):
    """A strict local maximum or minimum of a series."""
    timestamp: int
    value: float
    index: int
    kind: ExtremumKind


# ──────────────────────────────────────────────
# Trend Lines
# ──────────────────────────────────────────────

class TrendPoint(BaseModel):
    """A (timestamp, price) point a trend line is fitted through."""
    model_config = ConfigDict(allow_inf_nan=False)

    timestamp: int
    price: float


class LineEquation(BaseModel):
    """price = slope * timestamp + intercept (slope in price per ms)."""
    model_config = ConfigDict(allow_inf_nan=False)

    slope: float = 0.0
    intercept: float = 0.0

    def predict(self, timestamp: float) -> float:
        return self.slope * timestamp + self.intercept


class RenderedTrendLine(BaseModel):
    """Line endpoints evaluated at a requested time range, ready to draw."""
    start_time: int
    end_time: int
    start_price: float
    end_price: float
    color: str = "#FF5733"
    line_width: int = 2
    style: str = "solid"


class TrendLineResult(BaseModel):
    """RANSAC fit: inliers, equation and inlier ratio."""
    points: list[TrendPoint] = Field(default_factory=list)
    equation: LineEquation = Field(default_factory=LineEquation)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    rendered_endpoints: Optional[RenderedTrendLine] = None
    line_type: Optional[LevelKind] = None


class TrendLineRequest(BaseModel):
    """Parameters of a trend-line search over a symbol's history."""
    symbol: str
    interval: str
    time_range: TimeRange
    line_type: LevelKind = LevelKind.RESISTANCE
    min_points: int = Field(3, ge=2)
    threshold: float = Field(0.02, gt=0)
    max_iterations: int = Field(1000, ge=1)


# ──────────────────────────────────────────────
# Candlestick Patterns
# ──────────────────────────────────────────────

class NearLevel(BaseModel):
    """Support/resistance level a pattern formed next to."""
    kind: LevelKind
    price: float
    relative_distance: float


class Pattern(BaseModel):
    """A detected candlestick pattern."""
    kind: PatternKind
    significance: float
    description: str
    candle_timestamps: list[int]
    price: float
    volume: float = 0.0
    near_level: Optional[NearLevel] = None


class PatternConfig(BaseModel):
    """Thresholds and level boosts for candlestick scoring."""
    model_config = ConfigDict(allow_inf_nan=False)

    min_volume_ratio: float = 1.2
    min_significance: float = 0.5
    level_proximity_threshold: float = 0.01
    support_boost: float = 2.0
    resistance_boost: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings) -> PatternConfig:
        return cls(
            min_volume_ratio=settings.pattern_min_volume_ratio,
            min_significance=settings.pattern_min_significance,
            level_proximity_threshold=settings.pattern_level_proximity,
            support_boost=settings.pattern_support_boost,
            resistance_boost=settings.pattern_resistance_boost,
        )


# ──────────────────────────────────────────────
# Divergences
# ──────────────────────────────────────────────

class DivergencePoint(BaseModel):
    """Price and indicator readings at one end of a divergence."""
    timestamp: int
    price: float
    indicator_value: float


class Divergence(BaseModel):
    """Price/indicator disagreement between two consecutive extrema."""
    kind: DivergenceKind
    indicator_name: str
    start: DivergencePoint
    end: DivergencePoint
    strength: float = Field(ge=0.0, le=100.0)
    confidence: float = Field(ge=0.0, le=100.0)
    description: str


class DivergenceOptions(BaseModel):
    """Extrema lookback, strength floor and which families to report."""
    model_config = ConfigDict(allow_inf_nan=False)

    lookback: int = Field(5, ge=1)
    min_strength: float = 30.0
    kinds: list[DivergenceType] = Field(default_factory=lambda: [DivergenceType.REGULAR])

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> DivergenceOptions:
        values = {
            "lookback": settings.divergence_lookback,
            "min_strength": settings.divergence_min_strength,
        }
        values.update(overrides)
        return cls(**values)


# ──────────────────────────────────────────────
# MACD Crossovers
# ──────────────────────────────────────────────

class MACDPoint(BaseModel):
    """MACD line, signal line and histogram at one candle."""
    model_config = ConfigDict(allow_inf_nan=False)

    timestamp: int
    macd: float
    signal: float
    histogram: float
    price: float


class MACDCrossover(BaseModel):
    """A scored MACD crossover."""
    kind: MACDCrossoverKind
    timestamp: int
    price: float
    macd_value: float
    signal_value: float
    histogram_value: float
    strength: float = Field(ge=0.0, le=100.0)
    confidence: float = Field(ge=0.0, le=100.0)
    description: str
    previous: Optional[MACDPoint] = None


class MACDCrossoverResult(BaseModel):
    """Top crossovers plus how many were found before truncation."""
    crossovers: list[MACDCrossover] = Field(default_factory=list)
    total_found: int = 0
    filtered: bool = False


class MACDCrossoverOptions(BaseModel):
    """Which crossovers to report and how many."""
    model_config = ConfigDict(allow_inf_nan=False)

    kinds: list[CrossoverType] = Field(
        default_factory=lambda: [CrossoverType.BULLISH, CrossoverType.BEARISH]
    )
    min_strength: float = 30.0
    include_histogram: bool = True
    max_results: int = Field(10, ge=1)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides) -> MACDCrossoverOptions:
        values = {
            "min_strength": settings.macd_min_strength,
            "max_results": settings.macd_max_results,
        }
        values.update(overrides)
        return cls(**values)
