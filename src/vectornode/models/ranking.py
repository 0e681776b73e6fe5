"""Derived views produced by the ranking pipeline. Never persisted."""

from typing import Optional

from pydantic import BaseModel, Field, computed_field

from .bid import Bid
from .enums import Confidence, RankTier, VerificationType
from .shipment import Shipment


class ScoredBid(BaseModel):
    """A bid joined with its match score, tier and insights."""

    bid: Bid
    match_score: float = Field(..., ge=0.0, le=100.0)
    rank: RankTier = RankTier.STANDARD
    insights: list[str] = Field(default_factory=list)

    # Carrier display fields
    carrier_name: Optional[str] = None
    carrier_rating: Optional[float] = None
    carrier_success_rate: Optional[float] = None  # Fraction
    carrier_verification_count: Optional[int] = None
    carrier_verifications: list[VerificationType] = Field(default_factory=list)

    @property
    def bid_id(self) -> str:
        return self.bid.id

    @property
    def total_price(self) -> float:
        return self.bid.total_price


class PriceRange(BaseModel):
    """Min/max total price across eligible bids."""

    min: float
    max: float

    @computed_field
    @property
    def spread(self) -> float:
        return self.max - self.min


class MatchingStats(BaseModel):
    """Per-shipment aggregate over eligible bids."""

    total_bids: int = 0
    top_matches: int = 0
    good_matches: int = 0
    standard_matches: int = 0
    average_score: float = 0.0  # Full precision
    price_range: Optional[PriceRange] = None
    confidence: Confidence = Confidence.LOW

    @computed_field
    @property
    def average_score_display(self) -> int:
        """Average score rounded for display."""
        return round(self.average_score)


class RankedShipment(BaseModel):
    """Response of a ranking request."""

    shipment: Shipment
    bids: list[ScoredBid] = Field(default_factory=list)
    matching_stats: MatchingStats = Field(default_factory=MatchingStats)

    @property
    def top_matches(self) -> list[ScoredBid]:
        return [b for b in self.bids if b.rank == RankTier.TOP_MATCH]
