"""
SpotSignals - RANSAC Trend Line Fitting

Robust line fitting through noisy (timestamp, price) key points:

  1. sample two distinct points with the injected generator
  2. draw the line through them
  3. count inliers, |price - predicted| / price <= threshold
  4. on a new best that reaches min_points, refit by least squares over the
     inliers and keep it if the refitted line still improves the count

Confidence is the share of points that ended up as inliers. When no sample
ever reaches ``min_points`` inliers the result is a zero line with
confidence 0.0, never an exception.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import structlog

from spotsignals.models import (
    LineEquation,
    RenderedTrendLine,
    TimeRange,
    TrendLineResult,
    TrendPoint,
)
from spotsignals.utils.validators import validate_positive, validate_trend_points, validate_window

log = structlog.get_logger(__name__)


def fit_least_squares(timestamps: np.ndarray, prices: np.ndarray) -> Optional[LineEquation]:
    """Simple linear regression of price on timestamp.

    Timestamps are centred on their mean before summing. The slope equals
    (nΣxy − ΣxΣy) / (nΣx² − (Σx)²) but the sums stay small enough that
    millisecond epochs do not cancel each other out.
    """
    x = np.asarray(timestamps, dtype=np.float64)
    y = np.asarray(prices, dtype=np.float64)
    if len(x) < 2:
        return None

    x_mean = x.mean()
    y_mean = y.mean()
    dx = x - x_mean
    denom = float(np.sum(dx * dx))
    if denom == 0:
        return None

    slope = float(np.sum(dx * (y - y_mean)) / denom)
    intercept = float(y_mean - slope * x_mean)
    return LineEquation(slope=slope, intercept=intercept)


def fit_two_points(x1: float, y1: float, x2: float, y2: float) -> Optional[LineEquation]:
    """Line through two points; None when they share a timestamp."""
    if x1 == x2:
        return None
    slope = (y2 - y1) / (x2 - x1)
    return LineEquation(slope=slope, intercept=y1 - slope * x1)


def render_line(equation: LineEquation, time_range: TimeRange) -> RenderedTrendLine:
    """Evaluate a line at both ends of a time range for drawing."""
    return RenderedTrendLine(
        start_time=time_range.start,
        end_time=time_range.end,
        start_price=equation.predict(time_range.start),
        end_price=equation.predict(time_range.end),
    )


class RobustLineFitter:
    """RANSAC line fitter over trend points.

    Usage:
        fitter = RobustLineFitter()
        result = fitter.fit(points, min_points=3, threshold=0.02,
                            rng=np.random.default_rng(7))
    """

    def fit(
        self,
        points: Sequence[TrendPoint],
        min_points: int = 3,
        threshold: float = 0.02,
        max_iterations: int = 1000,
        rng: Optional[np.random.Generator] = None,
        time_range: Optional[TimeRange] = None,
    ) -> Optional[TrendLineResult]:
        """Fit a trend line.

        Args:
            points: Candidate key points (distinct timestamps).
            min_points: Inliers a line needs before it is considered.
            threshold: Max relative distance |price - line| / price.
            max_iterations: Number of random two-point samples.
            rng: Random generator; a fresh one is created when omitted.
            time_range: If given, the line is rendered at its endpoints.

        Raises:
            InvalidInputError: a non-finite price, threshold <= 0 or
                max_iterations < 1.

        Returns:
            None when fewer than ``min_points`` points are supplied,
            otherwise a TrendLineResult (confidence 0.0 if nothing fit).
        """
        validate_positive(threshold, "threshold")
        validate_window(max_iterations, "max_iterations")
        validate_trend_points(points)

        n = len(points)
        if n < min_points or n < 2:
            return None

        rng = rng if rng is not None else np.random.default_rng()
        required = max(min_points, 2)

        ts = np.array([p.timestamp for p in points], dtype=np.float64)
        prices = np.array([p.price for p in points], dtype=np.float64)

        best_line = LineEquation()
        best_mask = np.zeros(n, dtype=bool)
        best_count = 0

        for _ in range(max_iterations):
            i, j = rng.choice(n, size=2, replace=False)
            line = fit_two_points(ts[i], prices[i], ts[j], prices[j])
            if line is None:
                continue

            mask = self._inlier_mask(ts, prices, line, threshold)
            count = int(mask.sum())
            if count < required or count <= best_count:
                continue

            refitted = fit_least_squares(ts[mask], prices[mask])
            if refitted is None:
                continue

            final_mask = self._inlier_mask(ts, prices, refitted, threshold)
            final_count = int(final_mask.sum())
            if final_count >= required and final_count > best_count:
                best_line = refitted
                best_mask = final_mask
                best_count = final_count

        confidence = best_count / n
        log.debug(
            "ransac_complete",
            points=n,
            inliers=best_count,
            confidence=round(confidence, 4),
            iterations=max_iterations,
        )

        return TrendLineResult(
            points=[p for p, keep in zip(points, best_mask) if keep],
            equation=best_line,
            confidence=confidence,
            rendered_endpoints=render_line(best_line, time_range) if time_range else None,
        )

    @staticmethod
    def _inlier_mask(
        ts: np.ndarray, prices: np.ndarray, line: LineEquation, threshold: float
    ) -> np.ndarray:
        # distance is relative to each point's own price
        predicted = line.slope * ts + line.intercept
        with np.errstate(divide="ignore", invalid="ignore"):
            relative = np.abs(prices - predicted) / prices
        return relative <= threshold
