"""
SpotSignals - Extrema Test Suite
"""

from spotsignals.engines.extrema import (
    candle_series,
    find_extrema,
    find_highs,
    find_lows,
    find_peaks,
    find_valleys,
)
from spotsignals.models import ExtremumKind, SeriesPoint


def _series(values):
    return [SeriesPoint(timestamp=1000 * i, value=v) for i, v in enumerate(values)]


# ═══════════════════════════════════════════════
#  FIND EXTREMA
# ═══════════════════════════════════════════════

class TestFindExtrema:

    def test_alternating_series(self):
        extrema = find_extrema(_series([1, 3, 2, 5, 4, 6, 1]), window=1)
        assert [p.index for p in extrema] == [1, 2, 3, 4, 5]
        assert [p.kind for p in extrema] == [
            ExtremumKind.HIGH, ExtremumKind.LOW, ExtremumKind.HIGH,
            ExtremumKind.LOW, ExtremumKind.HIGH,
        ]
        assert extrema[0].timestamp == 1000
        assert extrema[0].value == 3

    def test_monotonic_series_has_no_extrema(self):
        assert find_extrema(_series(range(20)), window=2) == []
        assert find_extrema(_series(range(20, 0, -1)), window=2) == []

    def test_plateau_is_not_an_extremum(self):
        assert find_extrema(_series([1, 2, 5, 5, 2, 1]), window=1) == []

    def test_tie_inside_window_disqualifies(self):
        # 5 at index 2 ties with index 4 within a window of 2
        assert find_highs(_series([1, 2, 5, 3, 5, 2, 1]), window=2) == []

    def test_short_series_returns_empty(self):
        assert find_extrema(_series([1, 5, 1, 0]), window=2) == []

    def test_non_positive_window_returns_empty(self):
        assert find_extrema(_series([1, 5, 1]), window=0) == []

    def test_edges_never_qualify(self):
        extrema = find_extrema(_series([9, 1, 2, 3, 0]), window=1)
        assert [p.index for p in extrema] == [1, 3]

    def test_deterministic(self):
        series = _series([3, 1, 4, 1, 5, 9, 2, 6, 5, 3, 5, 8, 9, 7, 9])
        assert find_extrema(series, 2) == find_extrema(series, 2)

    def test_highs_and_lows_split(self):
        series = _series([1, 3, 2, 5, 4, 6, 1])
        assert all(p.kind is ExtremumKind.HIGH for p in find_highs(series, 1))
        assert [p.index for p in find_lows(series, 1)] == [2, 4]


# ═══════════════════════════════════════════════
#  CANDLE HELPERS
# ═══════════════════════════════════════════════

class TestCandleExtrema:

    def test_candle_series_projects_field(self, flat_candles):
        series = candle_series(flat_candles, "high")
        assert len(series) == len(flat_candles)
        assert series[0].value == 101
        assert series[3].timestamp == flat_candles[3].timestamp

    def test_peaks_and_valleys(self, higher_high_candles):
        peaks = find_peaks(higher_high_candles, window=5)
        assert [p.price for p in peaks] == [110, 115]
        assert peaks[1].timestamp == higher_high_candles[35].timestamp

        valleys = find_valleys(higher_high_candles, window=5)
        assert len(valleys) == 1
        assert valleys[0].timestamp == higher_high_candles[24].timestamp

    def test_flat_candles_have_no_swing_points(self, flat_candles):
        assert find_peaks(flat_candles) == []
        assert find_valleys(flat_candles) == []
