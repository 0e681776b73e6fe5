"""Carrier profile model: the reputation signals used for scoring."""

from datetime import datetime
from typing import Any, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import SubscriptionTier, VerificationType


class Rate(BaseModel):
    """
    Success / on-time rate stored as a canonical fraction in [0, 1].

    Source data arrives either as a fraction (0.95) or a percentage (95).
    Normalization happens here, once, at ingestion.
    """

    model_config = ConfigDict(frozen=True)

    fraction: float = Field(..., ge=0.0, le=1.0)

    @classmethod
    def from_raw(cls, value: Any) -> Optional["Rate"]:
        """Build a Rate from a raw fraction or percentage."""
        if value is None or value == "":
            return None
        if isinstance(value, Rate):
            return value
        if isinstance(value, dict):
            return cls.model_validate(value)
        number = float(value)
        if number > 1:
            number = number / 100
        return cls(fraction=min(1.0, max(0.0, number)))

    @property
    def percent(self) -> int:
        return round(self.fraction * 100)


class CarrierProfile(BaseModel):
    """
    Aggregate reputation signals for a carrier.

    Read-only input to scoring; any numeric signal may be missing.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    company_name: str = Field(..., min_length=1)

    # Reputation
    rating: Optional[float] = None  # 0-5 stars, one decimal
    success_rate: Optional[Rate] = None
    on_time_rate: Optional[Rate] = None
    total_deliveries: Optional[int] = None
    verification_count: Optional[int] = None
    verifications: list[VerificationType] = Field(default_factory=list)  # Approved only

    # Operations
    fleet_size: Optional[int] = None
    avg_response_minutes: Optional[float] = None
    subscription_tier: Optional[SubscriptionTier] = None

    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("success_rate", "on_time_rate", mode="before")
    @classmethod
    def normalize_rate(cls, v: Any) -> Optional[Rate]:
        return Rate.from_raw(v)

    @field_validator("rating", mode="before")
    @classmethod
    def round_rating(cls, v: Any) -> Optional[float]:
        if v is None or v == "":
            return None
        return round(float(v), 1)

    @model_validator(mode="after")
    def count_verifications(self) -> "CarrierProfile":
        if self.verification_count is None and self.verifications:
            self.verification_count = len(self.verifications)
        return self

    @property
    def reliability(self) -> Optional[Rate]:
        """Success rate, falling back to on-time delivery rate."""
        if self.success_rate is not None:
            return self.success_rate
        return self.on_time_rate
