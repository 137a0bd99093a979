"""
SpotSignals - Exceptions

Two recoverable error kinds for the detection core plus one for the
market-data collaborator. "Nothing found" is never an exception: detectors
return empty lists or a zero-confidence line for that.
"""

from __future__ import annotations


class SignalEngineError(Exception):
    """Base class for every error raised by spotsignals."""


class InsufficientDataError(SignalEngineError):
    """Fewer points or candles than an operation requires."""

    def __init__(self, what: str, found: int, required: int, message: str | None = None):
        self.what = what
        self.found = found
        self.required = required
        super().__init__(
            message or f"Insufficient {what}: found {found}, need at least {required}"
        )


class InvalidInputError(SignalEngineError, ValueError):
    """Malformed input rejected before any computation starts."""


class MarketDataError(SignalEngineError):
    """The candle source returned an error status or an unusable payload."""
