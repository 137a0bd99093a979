"""
SpotSignals - Input Validators

Boundary checks run before any detector computes anything. Every helper
raises InvalidInputError (a ValueError) so callers can map it to a 400.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Iterable, Sequence, Type, TypeVar

from spotsignals.errors import InvalidInputError
from spotsignals.models import Candle, LevelKind, SeriesPoint, TimeRange, TrendPoint

E = TypeVar("E", bound=Enum)


def validate_candles(candles: Sequence[Candle]) -> Sequence[Candle]:
    """Check candles are finite and strictly increasing in time.

    Gaps between timestamps are allowed; duplicates and reordering are not.
    Returns the input unchanged.
    """
    prev_ts: int | None = None
    for i, c in enumerate(candles):
        for field in ("open", "high", "low", "close", "volume"):
            value = getattr(c, field)
            if not math.isfinite(value):
                raise InvalidInputError(f"Candle {i} has non-finite {field}: {value}")
        if prev_ts is not None and c.timestamp <= prev_ts:
            raise InvalidInputError(
                f"Candle timestamps must be strictly increasing "
                f"(index {i}: {c.timestamp} after {prev_ts})"
            )
        prev_ts = c.timestamp
    return candles


def validate_series(series: Sequence[SeriesPoint], name: str = "series") -> Sequence[SeriesPoint]:
    """Same ordering and finiteness rules as candles, for a scalar series."""
    prev_ts: int | None = None
    for i, p in enumerate(series):
        if not math.isfinite(p.value):
            raise InvalidInputError(f"{name} point {i} is not finite: {p.value}")
        if prev_ts is not None and p.timestamp <= prev_ts:
            raise InvalidInputError(
                f"{name} timestamps must be strictly increasing "
                f"(index {i}: {p.timestamp} after {prev_ts})"
            )
        prev_ts = p.timestamp
    return series


def validate_trend_points(points: Sequence[TrendPoint]) -> Sequence[TrendPoint]:
    for i, p in enumerate(points):
        if not math.isfinite(p.price):
            raise InvalidInputError(f"Trend point {i} has a non-finite price: {p.price}")
    return points


def validate_levels(levels: Iterable[float], name: str = "levels") -> list[float]:
    """Support/resistance prices must be finite."""
    out = []
    for level in levels:
        value = float(level)
        if not math.isfinite(value):
            raise InvalidInputError(f"{name} contains a non-finite price: {level}")
        out.append(value)
    return out


def validate_time_range(time_range: TimeRange) -> TimeRange:
    """Reject empty or inverted ranges."""
    if time_range.start >= time_range.end:
        raise InvalidInputError(
            f"Invalid time range: start ({time_range.start}) must be before end ({time_range.end})"
        )
    return time_range


def validate_window(window: int, name: str = "window") -> int:
    if window < 1:
        raise InvalidInputError(f"{name} must be at least 1, got {window}")
    return window


def validate_positive(value: float, name: str) -> float:
    if not math.isfinite(value) or value <= 0:
        raise InvalidInputError(f"{name} must be a positive finite number, got {value}")
    return value


def parse_enum_list(raw: Iterable[str | E], enum_cls: Type[E], what: str) -> list[E]:
    """Convert user-supplied kind strings into enum members.

    >>> from spotsignals.models import DivergenceType
    >>> parse_enum_list(["Regular", "hidden"], DivergenceType, "divergence type")
    [<DivergenceType.REGULAR: 'regular'>, <DivergenceType.HIDDEN: 'hidden'>]
    """
    out: list[E] = []
    for item in raw:
        out.append(parse_enum(item, enum_cls, what))
    return out


def parse_enum(raw: str | E, enum_cls: Type[E], what: str) -> E:
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidInputError(f"Unsupported {what} '{raw}'. Expected one of: {allowed}") from None


def parse_level_kind(raw: str | LevelKind) -> LevelKind:
    return parse_enum(raw, LevelKind, "trend line type")
