"""Configuration management for the VectorNode matching engine."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    APP_NAME: str = "VectorNode Matching Engine"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ==========================================================================
    # Database
    # ==========================================================================
    DATABASE_URL: str = "sqlite:///data/vectornode.db"

    # ==========================================================================
    # Marketplace
    # ==========================================================================
    DEFAULT_CURRENCY: str = "EUR"
    DEFAULT_BID_TTL_HOURS: int = Field(default=72, ge=1, description="Hours before a pending bid expires")

    # ==========================================================================
    # Scoring weights (must sum to 1.0)
    # ==========================================================================
    WEIGHT_PRICE: float = 0.15
    WEIGHT_RATING: float = 0.25
    WEIGHT_RELIABILITY: float = 0.25
    WEIGHT_VERIFICATION: float = 0.10
    WEIGHT_RESPONSIVENESS: float = 0.10
    WEIGHT_SERVICE_FIT: float = 0.10
    WEIGHT_FLEET_TIER: float = 0.05

    VERIFICATION_CAPACITY: int = Field(default=5, ge=1)
    COMPETITIVE_PRICE_MARGIN: float = 0.05  # Within 5% of the lowest bid

    # ==========================================================================
    # Tiers & confidence
    # ==========================================================================
    TOP_MATCH_MIN_SCORE: float = 80.0
    GOOD_MATCH_MIN_SCORE: float = 65.0

    HIGH_CONFIDENCE_MIN_BIDS: int = 5
    MEDIUM_CONFIDENCE_MIN_BIDS: int = 2


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience alias
settings = get_settings()
