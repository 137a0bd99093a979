"""
SpotSignals - Candlestick Pattern Detection

Rule-based detection of five classic candlestick shapes, scored by shape
quality and volume, boosted when they form at supplied support/resistance
levels, then filtered and deduplicated by price.

Candlestick Patterns:
  Single:  Doji, Hammer, Shooting Star
  Double:  Bullish Engulfing, Bearish Engulfing
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

import structlog

from spotsignals.models import Candle, LevelKind, NearLevel, Pattern, PatternConfig, PatternKind
from spotsignals.utils.validators import validate_candles, validate_levels

log = structlog.get_logger(__name__)

BULLISH_PATTERNS = frozenset({PatternKind.HAMMER, PatternKind.BULLISH_ENGULFING})
BEARISH_PATTERNS = frozenset({PatternKind.SHOOTING_STAR, PatternKind.BEARISH_ENGULFING})
NEUTRAL_PATTERNS = frozenset({PatternKind.DOJI})

# Dedup bucket width, in price units
_PRICE_BUCKET = 0.002


class PatternDetector:
    """Candlestick pattern detector with support/resistance-aware scoring.

    Usage:
        detector = PatternDetector()
        patterns = detector.detect(candles, supports=[42000.0], resistances=[45500.0])
    """

    def __init__(self, config: Optional[PatternConfig] = None):
        self.config = config or PatternConfig()

    # ──────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────

    def detect(
        self,
        candles: Sequence[Candle],
        supports: Sequence[float] = (),
        resistances: Sequence[float] = (),
    ) -> list[Pattern]:
        """Scan candles for patterns and return the most significant ones.

        The first candle only serves as context for the second one, and
        engulfing pairs are read as (candle, next candle).

        Returns:
            At most ``clamp(floor(len(candles) * 0.05), 1, 5)`` patterns,
            ordered by their first candle timestamp.
        """
        validate_candles(candles)
        supports = validate_levels(supports, "supports")
        resistances = validate_levels(resistances, "resistances")

        if len(candles) < 2:
            return []

        avg_volume = self._average_volume(candles)
        patterns: list[Pattern] = []

        for i in range(1, len(candles)):
            candle = candles[i]
            prev = candles[i - 1]

            patterns.extend(self._doji(candle, avg_volume))
            patterns.extend(self._hammer(candle, prev, avg_volume))
            patterns.extend(self._shooting_star(candle, prev, avg_volume))

            if i < len(candles) - 1:
                patterns.extend(self._engulfing(candle, candles[i + 1], avg_volume))

        self._apply_level_boosts(patterns, supports, resistances)
        result = self._filter(patterns, len(candles), avg_volume)

        log.debug(
            "patterns_detected",
            candles=len(candles),
            raw=len(patterns),
            kept=len(result),
        )
        return result

    # ──────────────────────────────────────────
    # Single-Candle Patterns
    # ──────────────────────────────────────────

    def _volume_bonus(self, volume: float, avg_volume: float, weight: float) -> float:
        volume_ratio = volume / avg_volume if avg_volume > 0 else 1.0
        if volume_ratio > self.config.min_volume_ratio:
            return weight * min(volume_ratio - 1, 1)
        return 0.0

    def _doji(self, c: Candle, avg_volume: float) -> list[Pattern]:
        """Tiny body relative to range, indecision."""
        body = abs(c.close - c.open)
        rng = c.high - c.low
        if rng <= 0:
            return []

        body_pct = body / rng * 100
        if body_pct >= 10:
            return []

        upper_shadow = c.high - max(c.open, c.close)
        lower_shadow = min(c.open, c.close) - c.low
        shadow_balance = abs(upper_shadow - lower_shadow) / rng

        significance = 0.5
        if shadow_balance < 0.1:
            significance += 0.15
        if body_pct < 5:
            significance += 0.1
        significance += self._volume_bonus(c.volume, avg_volume, 0.1)

        return [Pattern(
            kind=PatternKind.DOJI,
            significance=significance,
            description=f"Doji pattern (body {body_pct:.1f}% of range)",
            candle_timestamps=[c.timestamp],
            price=c.close,
            volume=c.volume,
        )]

    def _hammer(self, c: Candle, prev: Candle, avg_volume: float) -> list[Pattern]:
        """Long lower shadow, almost no upper shadow."""
        body = abs(c.close - c.open)
        lower_shadow = min(c.open, c.close) - c.low
        upper_shadow = c.high - max(c.open, c.close)

        if not (lower_shadow > body * 2 and upper_shadow < body * 0.3):
            return []

        in_downtrend = prev.close > c.close
        significance = (0.8 if in_downtrend else 0.6) + self._volume_bonus(c.volume, avg_volume, 0.1)

        return [Pattern(
            kind=PatternKind.HAMMER,
            significance=significance,
            description=f"Hammer pattern{' in downtrend' if in_downtrend else ''}",
            candle_timestamps=[c.timestamp],
            price=c.close,
            volume=c.volume,
        )]

    def _shooting_star(self, c: Candle, prev: Candle, avg_volume: float) -> list[Pattern]:
        """Long upper shadow, almost no lower shadow."""
        body = abs(c.close - c.open)
        upper_shadow = c.high - max(c.open, c.close)
        lower_shadow = min(c.open, c.close) - c.low

        if not (upper_shadow > body * 2 and lower_shadow < body * 0.3):
            return []

        in_uptrend = prev.close < c.close
        significance = (0.8 if in_uptrend else 0.6) + self._volume_bonus(c.volume, avg_volume, 0.1)

        return [Pattern(
            kind=PatternKind.SHOOTING_STAR,
            significance=significance,
            description=f"Shooting Star pattern{' in uptrend' if in_uptrend else ''}",
            candle_timestamps=[c.timestamp],
            price=c.close,
            volume=c.volume,
        )]

    # ──────────────────────────────────────────
    # Two-Candle Patterns
    # ──────────────────────────────────────────

    def _engulfing(self, c: Candle, nxt: Candle, avg_volume: float) -> list[Pattern]:
        """Next body at least 1.5x larger and wrapping this one the other way."""
        body = abs(c.close - c.open)
        next_body = abs(nxt.close - nxt.open)
        if not next_body > body * 1.5:
            return []

        if (c.close < c.open and nxt.close > nxt.open and   # red then green
                nxt.open <= c.close and nxt.close >= c.open):
            kind = PatternKind.BULLISH_ENGULFING
            description = "Bullish Engulfing pattern"
        elif (c.close > c.open and nxt.close < nxt.open and   # green then red
                nxt.open >= c.close and nxt.close <= c.open):
            kind = PatternKind.BEARISH_ENGULFING
            description = "Bearish Engulfing pattern"
        else:
            return []

        return [Pattern(
            kind=kind,
            significance=0.6 + self._volume_bonus(nxt.volume, avg_volume, 0.15),
            description=description,
            candle_timestamps=[c.timestamp, nxt.timestamp],
            price=nxt.close,
            volume=nxt.volume,
        )]

    # ──────────────────────────────────────────
    # Support / Resistance Boosting
    # ──────────────────────────────────────────

    def _nearest_level(self, price: float, levels: Sequence[float]) -> Optional[tuple[float, float]]:
        """Closest level within the proximity threshold, as (level, distance)."""
        best: Optional[tuple[float, float]] = None
        for level in levels:
            distance = abs(1 - level / price)
            if distance < self.config.level_proximity_threshold:
                if best is None or distance < best[1]:
                    best = (level, distance)
        return best

    def _apply_level_boosts(
        self,
        patterns: list[Pattern],
        supports: Sequence[float],
        resistances: Sequence[float],
    ) -> None:
        cfg = self.config
        for pattern in patterns:
            if pattern.price <= 0:
                continue

            support = self._nearest_level(pattern.price, supports)
            resistance = self._nearest_level(pattern.price, resistances)

            if support and pattern.kind in BULLISH_PATTERNS:
                self._boost(pattern, LevelKind.SUPPORT, support, cfg.support_boost)
            elif resistance and pattern.kind in BEARISH_PATTERNS:
                self._boost(pattern, LevelKind.RESISTANCE, resistance, cfg.resistance_boost)
            elif pattern.kind in NEUTRAL_PATTERNS:
                # Doji: the nearer level wins, with a damped boost
                if support and (resistance is None or support[1] < resistance[1]):
                    self._boost(pattern, LevelKind.SUPPORT, support,
                                min(cfg.support_boost * 0.75, 1.3))
                elif resistance:
                    self._boost(pattern, LevelKind.RESISTANCE, resistance,
                                min(cfg.resistance_boost * 0.75, 1.3))

    @staticmethod
    def _boost(pattern: Pattern, kind: LevelKind, level: tuple[float, float], factor: float) -> None:
        price, distance = level
        pattern.significance *= factor
        pattern.near_level = NearLevel(kind=kind, price=price, relative_distance=distance)
        pattern.description += f" at {kind.value} ${price:.2f}"

    # ──────────────────────────────────────────
    # Filtering & Dedup
    # ──────────────────────────────────────────

    def _filter(self, patterns: list[Pattern], candle_count: int, avg_volume: float) -> list[Pattern]:
        max_patterns = min(5, max(1, math.floor(candle_count * 0.05)))

        kept = [
            p for p in patterns
            if p.significance >= self.config.min_significance
            and p.volume >= avg_volume * 0.8
        ]

        # One pattern per price bucket, the most significant (first wins ties)
        buckets: dict[int, Pattern] = {}
        for p in kept:
            key = _bucket_key(p.price)
            best = buckets.get(key)
            if best is None or p.significance > best.significance:
                buckets[key] = p

        top = sorted(buckets.values(), key=lambda p: p.significance, reverse=True)[:max_patterns]
        return sorted(top, key=lambda p: p.candle_timestamps[0])

    @staticmethod
    def _average_volume(candles: Sequence[Candle]) -> float:
        if not candles:
            return 0.0
        return sum(c.volume for c in candles) / len(candles)


def _bucket_key(price: float) -> int:
    """Index of the price bucket, rounding halves up."""
    return math.floor(price / _PRICE_BUCKET + 0.5)
