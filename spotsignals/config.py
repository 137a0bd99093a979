"""
SpotSignals - Configuration Management

Pydantic Settings: loads from .env, validates all configuration at startup.
The detectors never read this directly; callers build option objects from it.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Market Data API ──
    market_api_base_url: str = "https://market.spotcanvas.com"
    market_api_timeout: float = 15.0
    market_max_candles_per_request: int = 200
    market_retry_attempts: int = 3
    market_api_key: str = ""  # bearer token for the analysis endpoints

    # ── Trend Lines (RANSAC) ──
    trendline_min_points: int = 3
    trendline_threshold: float = 0.02  # relative distance to the line
    trendline_max_iterations: int = 1000
    trendline_extrema_window: int = 5  # candles on each side of a key point

    # ── Candlestick Patterns ──
    pattern_min_volume_ratio: float = 1.2
    pattern_min_significance: float = 0.5
    pattern_level_proximity: float = 0.01
    pattern_support_boost: float = 2.0
    pattern_resistance_boost: float = 2.0

    # ── Divergences ──
    divergence_lookback: int = 5
    divergence_min_strength: float = 30.0
    divergence_min_indicator_points: int = 10

    # ── MACD Crossovers ──
    macd_min_strength: float = 30.0
    macd_max_results: int = 10


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance, created once and reused."""
    return Settings()
