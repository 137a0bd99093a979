"""
SpotSignals - Tool Dispatch Test Suite
"""

import asyncio

import numpy as np
import pytest

from spotsignals.errors import InvalidInputError, MarketDataError
from spotsignals.models import Candle
from spotsignals.tools import SignalToolbox, ToolKind


def _run(toolbox, kind, arguments=None):
    return asyncio.run(toolbox.run(kind, arguments))


def _dump(candles):
    return [c.model_dump() for c in candles]


@pytest.fixture
def toolbox(settings):
    return SignalToolbox(settings, market=None, rng=np.random.default_rng(5), clock=lambda: 0)


# ═══════════════════════════════════════════════
#  DISPATCH
# ═══════════════════════════════════════════════

class TestDispatch:

    def test_every_kind_has_a_handler(self, toolbox, higher_high_candles, lower_high_rsi):
        args = {
            "candles": _dump(higher_high_candles),
            "indicator_values": [p.model_dump() for p in lower_high_rsi],
        }
        for kind in ToolKind:
            if kind is ToolKind.DETECT_TREND_LINE:
                continue
            assert isinstance(_run(toolbox, kind, args), dict)

    def test_unknown_tool(self, toolbox):
        with pytest.raises(InvalidInputError, match="Unsupported tool"):
            _run(toolbox, "detect_head_and_shoulders", {})

    def test_tool_name_is_case_insensitive(self, toolbox, flat_candles):
        result = _run(toolbox, "DETECT_PATTERNS", {"candles": _dump(flat_candles)})
        assert result == {"patterns": [], "candle_count": 30}

    def test_no_candles_and_no_market(self, toolbox):
        with pytest.raises(InvalidInputError, match="no market data client"):
            _run(toolbox, ToolKind.DETECT_PATTERNS, {"symbol": "BTC-USD", "start": 0, "end": 1})

    def test_malformed_candle(self, toolbox):
        with pytest.raises(InvalidInputError, match="Malformed candle"):
            _run(toolbox, ToolKind.DETECT_PATTERNS, {"candles": [{"timestamp": 0, "open": 1}]})


# ═══════════════════════════════════════════════
#  DIVERGENCE TOOLS
# ═══════════════════════════════════════════════

class TestDivergenceTools:

    def test_indicator_values_supplied(self, toolbox, higher_high_candles, lower_high_rsi):
        result = _run(toolbox, ToolKind.DETECT_DIVERGENCE, {
            "candles": _dump(higher_high_candles),
            "indicator": "Rsi",
            "indicator_values": [p.model_dump() for p in lower_high_rsi],
        })
        [divergence] = result["divergences"]
        assert divergence["kind"] == "bearish"
        assert divergence["indicator_name"] == "Rsi"

    def test_divergence_types_parsed(self, toolbox, higher_high_candles, lower_high_rsi):
        result = _run(toolbox, ToolKind.DETECT_DIVERGENCE, {
            "candles": _dump(higher_high_candles),
            "indicator_values": [p.model_dump() for p in lower_high_rsi],
            "divergence_types": ["Hidden"],
        })
        assert result["divergences"] == []

    def test_bad_divergence_type(self, toolbox, higher_high_candles, lower_high_rsi):
        with pytest.raises(InvalidInputError, match="divergence type"):
            _run(toolbox, ToolKind.DETECT_DIVERGENCE, {
                "candles": _dump(higher_high_candles),
                "indicator_values": [p.model_dump() for p in lower_high_rsi],
                "divergence_types": ["sideways"],
            })

    def test_unknown_indicator_without_values(self, toolbox, higher_high_candles):
        with pytest.raises(InvalidInputError, match="No values for indicator"):
            _run(toolbox, ToolKind.DETECT_DIVERGENCE, {
                "candles": _dump(higher_high_candles), "indicator": "cci",
            })

    def test_rsi_computed_when_not_supplied(self, toolbox, higher_high_candles):
        result = _run(toolbox, ToolKind.DETECT_DIVERGENCE, {"candles": _dump(higher_high_candles)})
        assert "divergences" in result

    def test_volume_indicator_routes_to_volume_scan(self, toolbox, candles_from_highs):
        highs = [110 - abs(i - 15) if i < 25 else 115 - abs(i - 35) for i in range(50)]
        volumes = [1000.0] * 50
        volumes[35] = 400.0
        args = {"candles": _dump(candles_from_highs(highs, volumes)), "indicator": "volume"}

        routed = _run(toolbox, ToolKind.DETECT_DIVERGENCE, args)
        direct = _run(toolbox, ToolKind.DETECT_VOLUME_DIVERGENCE, args)
        assert routed == direct
        assert routed["divergences"][0]["indicator_name"] == "volume"


# ═══════════════════════════════════════════════
#  MACD, PATTERN & TREND LINE TOOLS
# ═══════════════════════════════════════════════

class TestOtherTools:

    def test_macd_from_candle_evaluations(self, toolbox, flat_candles):
        candles = _dump(flat_candles[:3])
        for i, (macd, signal) in enumerate([(-0.5, 0.0), (0.5, 0.0), (0.6, 0.1)]):
            candles[i]["evaluations"] = [{
                "name": "macd",
                "values": [
                    {"name": "macd", "timestamp": candles[i]["timestamp"], "value": macd},
                    {"name": "signal", "timestamp": candles[i]["timestamp"], "value": signal},
                ],
            }]
        result = _run(toolbox, ToolKind.DETECT_MACD_CROSSOVERS, {
            "candles": candles, "crossover_types": ["bullish"],
        })
        assert result["total_found"] == 1
        assert result["crossovers"][0]["kind"] == "bullish"

    def test_patterns_with_levels(self, toolbox, flat_candles):
        result = _run(toolbox, ToolKind.DETECT_PATTERNS, {
            "candles": _dump(flat_candles), "supports": [99.0], "resistances": [101.0],
        })
        assert result["candle_count"] == 30

    def test_trend_line_from_candles(self, toolbox, higher_high_candles):
        result = _run(toolbox, ToolKind.DETECT_TREND_LINE, {
            "candles": _dump(higher_high_candles), "line_type": "resistance", "min_points": 2,
        })
        assert result["line_type"] == "resistance"
        assert result["confidence"] == 1.0
        assert len(result["points"]) == 2
        assert result["rendered_endpoints"]["start_time"] == higher_high_candles[0].timestamp

    def test_bad_line_type(self, toolbox, higher_high_candles):
        with pytest.raises(InvalidInputError, match="trend line type"):
            _run(toolbox, ToolKind.DETECT_TREND_LINE, {
                "candles": _dump(higher_high_candles), "line_type": "diagonal",
            })


# ═══════════════════════════════════════════════
#  SUPPORT / RESISTANCE LEVELS
# ═══════════════════════════════════════════════

def _hammer_series():
    candles = [
        Candle(timestamp=i * 3_600_000, open=100, high=101.2, low=99.8, close=101, volume=1000)
        for i in range(20)
    ]
    candles[10] = Candle(timestamp=10 * 3_600_000, open=100, high=100.55, low=98.5,
                         close=100.5, volume=1000)
    return candles


class _LevelsMarket:
    """Serves fixed candles and either levels or a levels failure."""

    def __init__(self, levels=None, error=None):
        self.levels = levels
        self.error = error
        self.level_calls = []

    async def fetch_candles(self, symbol, interval, start, end, evaluators=None):
        return _hammer_series()

    async def fetch_support_resistance(self, symbol):
        self.level_calls.append(symbol)
        if self.error:
            raise self.error
        return self.levels


def _market_toolbox(settings, market):
    return SignalToolbox(settings, market=market, rng=np.random.default_rng(5), clock=lambda: 0)


class TestPatternLevels:

    def test_levels_fetched_when_not_supplied(self, settings):
        market = _LevelsMarket(levels=([100.0], []))
        result = _run(_market_toolbox(settings, market), ToolKind.DETECT_PATTERNS, {
            "symbol": "BTC-USD", "start": 0, "end": 19 * 3_600_000,
        })
        assert market.level_calls == ["BTC-USD"]
        [hammer] = result["patterns"]
        assert hammer["significance"] == pytest.approx(1.6)
        assert hammer["near_level"]["kind"] == "support"

    def test_level_failure_falls_back_to_none(self, settings):
        market = _LevelsMarket(error=MarketDataError("status 503"))
        result = _run(_market_toolbox(settings, market), ToolKind.DETECT_PATTERNS, {
            "symbol": "BTC-USD", "start": 0, "end": 19 * 3_600_000,
        })
        [hammer] = result["patterns"]
        assert hammer["significance"] == pytest.approx(0.8)
        assert hammer["near_level"] is None

    def test_supplied_levels_skip_the_fetch(self, settings):
        market = _LevelsMarket(levels=([100.0], []))
        result = _run(_market_toolbox(settings, market), ToolKind.DETECT_PATTERNS, {
            "symbol": "BTC-USD", "start": 0, "end": 19 * 3_600_000, "supports": [],
        })
        assert market.level_calls == []
        assert result["patterns"][0]["near_level"] is None
