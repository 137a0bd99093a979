"""
SpotSignals - Candlestick Pattern Test Suite

Filler candles (open 100, close 101, high 101.2, low 99.8) match no
pattern, so each test plants exactly the shapes it checks.
"""

import pytest

from spotsignals.engines.pattern_engine import PatternDetector, _bucket_key
from spotsignals.errors import InvalidInputError
from spotsignals.models import Candle, LevelKind, PatternConfig, PatternKind


# ═══════════════════════════════════════════════
#  HELPERS
# ═══════════════════════════════════════════════

def _filler(ts, scale=1.0, volume=1000.0):
    return Candle(timestamp=ts, open=100 * scale, high=101.2 * scale, low=99.8 * scale,
                  close=101 * scale, volume=volume)


def _doji(ts, price=100.5, spread=1.0, volume=1000.0):
    return Candle(timestamp=ts, open=price, high=price + spread, low=price - spread,
                  close=price, volume=volume)


def _hammer(ts, volume=1000.0):
    return Candle(timestamp=ts, open=100, high=100.55, low=98.5, close=100.5, volume=volume)


def _series(n, planted, scale=1.0):
    """n candles one hour apart, with planted[i] replacing the filler at i."""
    candles = []
    for i in range(n):
        ts = i * 3_600_000
        factory = planted.get(i)
        candles.append(factory(ts) if factory else _filler(ts, scale))
    return candles


# ═══════════════════════════════════════════════
#  SHAPES
# ═══════════════════════════════════════════════

class TestPatternShapes:

    def test_filler_matches_nothing(self):
        assert PatternDetector().detect(_series(20, {})) == []

    def test_doji(self):
        candles = _series(20, {10: _doji})
        patterns = PatternDetector().detect(candles)
        assert len(patterns) == 1
        doji = patterns[0]
        assert doji.kind is PatternKind.DOJI
        assert doji.significance == pytest.approx(0.75)
        assert doji.description == "Doji pattern (body 0.0% of range)"
        assert doji.candle_timestamps == [candles[10].timestamp]
        assert doji.price == 100.5

    def test_first_candle_is_context_only(self):
        assert PatternDetector().detect(_series(20, {0: _doji})) == []

    def test_hammer_in_downtrend(self):
        patterns = PatternDetector().detect(_series(20, {10: _hammer}))
        assert len(patterns) == 1
        assert patterns[0].kind is PatternKind.HAMMER
        assert patterns[0].significance == pytest.approx(0.8)
        assert patterns[0].description == "Hammer pattern in downtrend"

    def test_bullish_engulfing(self):
        red = lambda ts: Candle(timestamp=ts, open=101, high=101.2, low=99.8, close=100, volume=1000)
        green = lambda ts: Candle(timestamp=ts, open=99.9, high=102, low=99.7, close=101.8, volume=1000)
        candles = _series(20, {10: red, 11: green})
        patterns = PatternDetector().detect(candles)
        assert len(patterns) == 1
        engulfing = patterns[0]
        assert engulfing.kind is PatternKind.BULLISH_ENGULFING
        assert engulfing.candle_timestamps == [candles[10].timestamp, candles[11].timestamp]
        assert engulfing.price == 101.8
        assert engulfing.significance == pytest.approx(0.6)

    def test_bearish_engulfing(self):
        green = lambda ts: Candle(timestamp=ts, open=100, high=101.2, low=99.8, close=101, volume=1000)
        red = lambda ts: Candle(timestamp=ts, open=101.1, high=101.3, low=98.9, close=99.1, volume=1000)
        patterns = PatternDetector().detect(_series(20, {10: green, 11: red}))
        assert [p.kind for p in patterns] == [PatternKind.BEARISH_ENGULFING]

    def test_volume_bonus(self):
        candles = _series(20, {10: lambda ts: _doji(ts, volume=5000)})
        patterns = PatternDetector().detect(candles)
        assert patterns[0].significance == pytest.approx(0.85)


# ═══════════════════════════════════════════════
#  SUPPORT / RESISTANCE BOOSTS
# ═══════════════════════════════════════════════

class TestLevelBoosts:

    def test_hammer_at_support(self):
        patterns = PatternDetector().detect(_series(20, {10: _hammer}), supports=[100.0])
        hammer = patterns[0]
        assert hammer.significance == pytest.approx(1.6)
        assert hammer.near_level.kind is LevelKind.SUPPORT
        assert hammer.near_level.price == 100.0
        assert hammer.description == "Hammer pattern in downtrend at support $100.00"

    def test_bullish_pattern_ignores_resistance(self):
        patterns = PatternDetector().detect(_series(20, {10: _hammer}), resistances=[100.0])
        assert patterns[0].significance == pytest.approx(0.8)
        assert patterns[0].near_level is None

    def test_level_outside_proximity(self):
        patterns = PatternDetector().detect(_series(20, {10: _hammer}), supports=[98.0])
        assert patterns[0].near_level is None

    def test_doji_damped_boost(self):
        patterns = PatternDetector().detect(_series(20, {10: _doji}), supports=[100.0])
        assert patterns[0].significance == pytest.approx(0.75 * 1.3)
        assert patterns[0].near_level.kind is LevelKind.SUPPORT

    def test_doji_nearer_level_wins(self):
        patterns = PatternDetector().detect(
            _series(20, {10: _doji}), supports=[100.0], resistances=[100.8],
        )
        assert patterns[0].near_level.kind is LevelKind.RESISTANCE
        assert patterns[0].description.endswith(" at resistance $100.80")

    def test_custom_boost(self):
        detector = PatternDetector(PatternConfig(support_boost=1.5))
        patterns = detector.detect(_series(20, {10: _hammer}), supports=[100.0])
        assert patterns[0].significance == pytest.approx(1.2)


# ═══════════════════════════════════════════════
#  FILTERING, DEDUP & CAP
# ═══════════════════════════════════════════════

class TestPatternFiltering:

    def test_low_volume_pattern_dropped(self):
        candles = _series(20, {10: lambda ts: _hammer(ts, volume=100)})
        assert PatternDetector().detect(candles) == []

    def test_significance_floor(self):
        detector = PatternDetector(PatternConfig(min_significance=0.9))
        assert detector.detect(_series(20, {10: _hammer})) == []

    def test_price_bucket_dedup(self):
        # 0.9995 and 1.0005 share a 0.002-wide bucket; the louder doji wins
        candles = _series(40, {
            10: lambda ts: _doji(ts, price=0.9995, spread=0.01),
            20: lambda ts: _doji(ts, price=1.0005, spread=0.01, volume=3000),
        }, scale=0.01)
        patterns = PatternDetector().detect(candles)
        assert len(patterns) == 1
        assert patterns[0].price == 1.0005
        assert patterns[0].significance == pytest.approx(0.85)

    def test_bucket_width_is_absolute(self):
        # 42000 and 42042 are 0.1% apart but 21000 buckets apart
        candles = _series(40, {
            10: lambda ts: _doji(ts, price=42000, spread=420),
            20: lambda ts: _doji(ts, price=42042, spread=420),
        }, scale=420)
        patterns = PatternDetector().detect(candles)
        assert [p.price for p in patterns] == [42000, 42042]
        assert _bucket_key(42042) - _bucket_key(42000) == 21000

    def test_bucket_key(self):
        assert _bucket_key(0.9995) == _bucket_key(1.0005) == 500
        assert _bucket_key(1.003) != _bucket_key(1.0)

    def test_cap_small_series(self):
        candles = _series(20, {
            5: lambda ts: _doji(ts, price=90.5),
            12: lambda ts: _doji(ts, price=120.5),
        })
        assert len(PatternDetector().detect(candles)) == 1

    def test_cap_and_chronological_order(self):
        planted = {
            10 + 10 * k: (lambda p: lambda ts: _doji(ts, price=p))(60.5 + 10 * k)
            for k in range(7)
        }
        patterns = PatternDetector().detect(_series(100, planted))
        assert len(patterns) == 5
        stamps = [p.candle_timestamps[0] for p in patterns]
        assert stamps == sorted(stamps)

    def test_empty_and_single(self):
        assert PatternDetector().detect([]) == []
        assert PatternDetector().detect(_series(1, {})) == []


# ═══════════════════════════════════════════════
#  INPUT VALIDATION
# ═══════════════════════════════════════════════

class TestPatternValidation:

    def test_unordered_candles_rejected(self):
        candles = _series(5, {})
        candles[2], candles[3] = candles[3], candles[2]
        with pytest.raises(InvalidInputError):
            PatternDetector().detect(candles)

    def test_non_finite_level_rejected(self):
        with pytest.raises(InvalidInputError):
            PatternDetector().detect(_series(5, {}), supports=[float("nan")])
