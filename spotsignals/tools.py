"""
SpotSignals - Detection Tools

Entry points the chat/tool layer calls. Each tool is a member of the
closed ToolKind enum; ``SignalToolbox.run`` dispatches on it and returns
JSON-ready dicts. Tools accept either explicit candles or a
symbol/interval/time range to fetch them through the market client.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Optional

import numpy as np
import structlog
from pydantic import ValidationError

from spotsignals.config import Settings, get_settings
from spotsignals.data.market_client import MarketDataClient
from spotsignals.engines.divergence_engine import DivergenceDetector
from spotsignals.engines.indicators import (
    compute_macd_series,
    compute_rsi_series,
    extract_macd_series,
    indicator_series_from_candles,
)
from spotsignals.engines.macd_engine import MACDCrossoverDetector
from spotsignals.engines.pattern_engine import PatternDetector
from spotsignals.engines.trendline_engine import TrendLineEngine, system_clock_ms
from spotsignals.errors import InvalidInputError, MarketDataError
from spotsignals.models import (
    Candle,
    CrossoverType,
    DivergenceOptions,
    DivergenceType,
    MACDCrossoverOptions,
    PatternConfig,
    SeriesPoint,
    TimeRange,
    TrendLineRequest,
)
from spotsignals.utils.validators import parse_enum, parse_enum_list, parse_level_kind

log = structlog.get_logger(__name__)


class ToolKind(str, Enum):
    """Every operation the toolbox can run."""
    DETECT_TREND_LINE = "detect_trend_line"
    DETECT_PATTERNS = "detect_patterns"
    DETECT_DIVERGENCE = "detect_divergence"
    DETECT_VOLUME_DIVERGENCE = "detect_volume_divergence"
    DETECT_MACD_CROSSOVERS = "detect_macd_crossovers"


class SignalToolbox:
    """Dispatches tool calls to the detection engines.

    Usage:
        toolbox = SignalToolbox(get_settings(), MarketDataClient())
        result = await toolbox.run("detect_patterns", {"candles": [...]})
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        market: Optional[MarketDataClient] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], int] = system_clock_ms,
    ):
        self.settings = settings or get_settings()
        self.market = market
        self.trendlines = TrendLineEngine(
            market,
            rng=rng,
            clock=clock,
            extrema_window=self.settings.trendline_extrema_window,
        )
        self.patterns = PatternDetector(PatternConfig.from_settings(self.settings))
        self.divergences = DivergenceDetector(self.settings.divergence_min_indicator_points)
        self.macd = MACDCrossoverDetector()

    async def run(self, kind: str | ToolKind, arguments: Optional[dict[str, Any]] = None) -> dict:
        """Run one tool and return its JSON-serializable result."""
        tool = parse_enum(kind, ToolKind, "tool")
        args = dict(arguments or {})
        log.info("tool_call", tool=tool.value, arguments=sorted(args))

        match tool:
            case ToolKind.DETECT_TREND_LINE:
                return await self._trend_line(args)
            case ToolKind.DETECT_PATTERNS:
                return await self._patterns(args)
            case ToolKind.DETECT_DIVERGENCE:
                return await self._divergence(args)
            case ToolKind.DETECT_VOLUME_DIVERGENCE:
                return await self._volume_divergence(args)
            case ToolKind.DETECT_MACD_CROSSOVERS:
                return await self._macd_crossovers(args)

    # ──────────────────────────────────────────
    # Tools
    # ──────────────────────────────────────────

    async def _trend_line(self, args: dict) -> dict:
        s = self.settings
        line_type = parse_level_kind(args.get("line_type", "resistance"))
        params = {
            "min_points": args.get("min_points", s.trendline_min_points),
            "threshold": args.get("threshold", s.trendline_threshold),
            "max_iterations": args.get("max_iterations", s.trendline_max_iterations),
        }

        if "candles" in args:
            candles = _candles(args["candles"])
            time_range = _time_range(args) if "start" in args else TimeRange(
                start=candles[0].timestamp if candles else 0,
                end=candles[-1].timestamp if candles else 1,
            )
            result = self.trendlines.detect(candles, line_type, time_range, **params)
        else:
            request = TrendLineRequest(
                symbol=args.get("symbol", ""),
                interval=args.get("interval", "ONE_HOUR"),
                time_range=_time_range(args),
                line_type=line_type,
                **params,
            )
            result = await self.trendlines.run(request)
        return result.model_dump(mode="json")

    async def _patterns(self, args: dict) -> dict:
        candles = await self._load_candles(args)
        supports, resistances = await self._levels(args)
        patterns = self.patterns.detect(candles, supports=supports, resistances=resistances)
        return {
            "patterns": [p.model_dump(mode="json") for p in patterns],
            "candle_count": len(candles),
        }

    async def _divergence(self, args: dict) -> dict:
        name = str(args.get("indicator", "rsi"))
        if name.lower() == "volume":
            return await self._volume_divergence(args)

        candles = await self._load_candles(args, evaluators=[name.lower()])
        series = self._indicator_series(candles, name, args)
        options = DivergenceOptions.from_settings(
            self.settings,
            **_divergence_overrides(args),
        )
        divergences = self.divergences.detect(candles, series, name, options)
        divergences.sort(key=lambda d: d.confidence, reverse=True)
        return {"divergences": [d.model_dump(mode="json") for d in divergences]}

    async def _volume_divergence(self, args: dict) -> dict:
        candles = await self._load_candles(args)
        options = DivergenceOptions.from_settings(self.settings, **_divergence_overrides(args))
        divergences = self.divergences.detect_volume(candles, options)
        divergences.sort(key=lambda d: d.confidence, reverse=True)
        return {"divergences": [d.model_dump(mode="json") for d in divergences]}

    async def _macd_crossovers(self, args: dict) -> dict:
        candles = await self._load_candles(args, evaluators=["macd"])
        series = extract_macd_series(candles) or compute_macd_series(candles)

        overrides: dict[str, Any] = {}
        if "crossover_types" in args:
            overrides["kinds"] = parse_enum_list(args["crossover_types"], CrossoverType, "crossover type")
        if "min_strength" in args:
            overrides["min_strength"] = args["min_strength"]
        if "include_histogram" in args:
            overrides["include_histogram"] = bool(args["include_histogram"])
        options = MACDCrossoverOptions.from_settings(self.settings, **overrides)

        return self.macd.detect(series, options).model_dump(mode="json")

    # ──────────────────────────────────────────
    # Helpers
    # ──────────────────────────────────────────

    async def _load_candles(self, args: dict, evaluators: Optional[list[str]] = None) -> list[Candle]:
        if "candles" in args:
            return _candles(args["candles"])
        if self.market is None:
            raise InvalidInputError("No candles supplied and no market data client configured")
        time_range = _time_range(args)
        return await self.market.fetch_candles(
            args.get("symbol", ""),
            args.get("interval", "ONE_HOUR"),
            time_range.start,
            time_range.end,
            evaluators=evaluators,
        )

    async def _levels(self, args: dict) -> tuple[list[float], list[float]]:
        """Caller-supplied levels, else the market API's, else none."""
        if "supports" in args or "resistances" in args:
            return args.get("supports", []), args.get("resistances", [])
        if self.market is None or not args.get("symbol"):
            return [], []
        try:
            return await self.market.fetch_support_resistance(args["symbol"])
        except MarketDataError as exc:
            log.warning("levels_unavailable", symbol=args["symbol"], error=str(exc))
            return [], []

    @staticmethod
    def _indicator_series(candles: list[Candle], name: str, args: dict) -> list[SeriesPoint]:
        """Explicit values, then candle evaluations, then local computation."""
        if "indicator_values" in args:
            try:
                return [SeriesPoint.model_validate(v) for v in args["indicator_values"]]
            except ValidationError as exc:
                raise InvalidInputError(f"Malformed indicator value: {exc}") from exc

        series = indicator_series_from_candles(candles, name)
        if series:
            return series

        match name.lower():
            case "rsi":
                return compute_rsi_series(candles)
            case "macd":
                return [
                    SeriesPoint(timestamp=p.timestamp, value=p.macd)
                    for p in compute_macd_series(candles)
                ]
        raise InvalidInputError(
            f"No values for indicator '{name}': supply indicator_values or annotated candles"
        )


def _candles(raw: list) -> list[Candle]:
    try:
        return [c if isinstance(c, Candle) else Candle.model_validate(c) for c in raw]
    except ValidationError as exc:
        raise InvalidInputError(f"Malformed candle: {exc}") from exc


def _time_range(args: dict) -> TimeRange:
    if "start" not in args or "end" not in args:
        raise InvalidInputError("Both start and end timestamps are required")
    return TimeRange(start=int(args["start"]), end=int(args["end"]))


def _divergence_overrides(args: dict) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if "lookback" in args:
        overrides["lookback"] = int(args["lookback"])
    if "min_strength" in args:
        overrides["min_strength"] = float(args["min_strength"])
    if "divergence_types" in args:
        overrides["kinds"] = parse_enum_list(args["divergence_types"], DivergenceType, "divergence type")
    return overrides
