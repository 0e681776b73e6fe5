"""Data models for the VectorNode matching engine."""

from .enums import (
    ShipmentStatus,
    BidStatus,
    RankTier,
    Confidence,
    SubscriptionTier,
    VehicleType,
    VerificationType,
)
from .shipment import Shipment, Location, TimeWindow, Cargo
from .bid import Bid
from .carrier import CarrierProfile, Rate
from .ranking import ScoredBid, PriceRange, MatchingStats, RankedShipment

__all__ = [
    # Enums
    "ShipmentStatus",
    "BidStatus",
    "RankTier",
    "Confidence",
    "SubscriptionTier",
    "VehicleType",
    "VerificationType",
    # Shipment
    "Shipment",
    "Location",
    "TimeWindow",
    "Cargo",
    # Bid
    "Bid",
    # Carrier
    "CarrierProfile",
    "Rate",
    # Ranking views
    "ScoredBid",
    "PriceRange",
    "MatchingStats",
    "RankedShipment",
]
