"""Enumerations for the VectorNode matching engine."""

from enum import Enum


class ShipmentStatus(str, Enum):
    """Lifecycle of a posted shipment."""

    OPEN = "OPEN"
    ASSIGNED = "ASSIGNED"
    CANCELLED = "CANCELLED"


class BidStatus(str, Enum):
    """Lifecycle of a carrier bid."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"
    EXPIRED = "EXPIRED"

    @property
    def is_eligible(self) -> bool:
        """Counted in ranking and aggregates."""
        return self not in (BidStatus.WITHDRAWN, BidStatus.EXPIRED)


class RankTier(str, Enum):
    """Coarse bucket derived from match score and relative standing."""

    TOP_MATCH = "TOP_MATCH"
    GOOD_MATCH = "GOOD_MATCH"
    STANDARD = "STANDARD"


class Confidence(str, Enum):
    """How reliable the aggregate price/score estimates are."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class SubscriptionTier(str, Enum):
    """Carrier subscription plans."""

    FREE_TRIAL = "FREE_TRIAL"
    FLEX = "FLEX"  # Pay-per-win
    SMALL_FLEET = "SMALL_FLEET"
    MEDIUM_FLEET = "MEDIUM_FLEET"
    LARGE_FLEET = "LARGE_FLEET"


class VehicleType(str, Enum):
    """Vehicle types a shipment may request."""

    VAN = "VAN"  # up to 1.5t
    TRUCK_SMALL = "TRUCK_SMALL"  # < 3.5t
    TRUCK_MEDIUM = "TRUCK_MEDIUM"  # 3.5-12t
    TRUCK_LARGE = "TRUCK_LARGE"  # 12-24t
    TRUCK_HEAVY = "TRUCK_HEAVY"  # 24t+


class VerificationType(str, Enum):
    """Approved carrier verification documents."""

    EMAIL_PHONE = "EMAIL_PHONE"
    COMPANY_REG = "COMPANY_REG"
    VAT_NIPT = "VAT_NIPT"  # Tax number
    TRANSPORT_LICENSE = "TRANSPORT_LICENSE"
    INSURANCE = "INSURANCE"
    BANK_ACCOUNT = "BANK_ACCOUNT"
