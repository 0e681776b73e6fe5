"""
Bid Scoring Algorithm

Scores a carrier's bid for a shipment on a 0-100 scale from independently
normalized factors, and explains the score with short factual insights.
"""

from dataclasses import dataclass, field
import logging
from typing import Optional

from ..config import settings
from ..exceptions import ValidationError
from ..models.bid import Bid
from ..models.carrier import CarrierProfile
from ..models.enums import SubscriptionTier
from ..models.shipment import Shipment

logger = logging.getLogger(__name__)

PRICE_EPSILON = 1e-9

# (max average response minutes, sub-score), checked in order
RESPONSE_BUCKETS = [
    (15, 1.0),
    (60, 0.75),
    (240, 0.50),
    (1440, 0.25),
]

TIER_BONUS = {
    SubscriptionTier.FREE_TRIAL: 0.0,
    SubscriptionTier.FLEX: 0.25,
    SubscriptionTier.SMALL_FLEET: 0.50,
    SubscriptionTier.MEDIUM_FLEET: 0.75,
    SubscriptionTier.LARGE_FLEET: 1.0,
}

# Notable thresholds for insights
NOTABLE_RATING = 4.5
NOTABLE_RELIABILITY = 0.9
NOTABLE_VERIFICATIONS = 3
NOTABLE_RESPONSIVENESS = 0.75
NOTABLE_FLEET_TIER = 0.75


@dataclass
class ScoringWeights:
    """
    Configurable weights for bid scoring.

    All weights must sum to 1.0.
    """

    price: float = 0.15           # Cheapest bid scores highest
    rating: float = 0.25          # Star rating, 0-5
    reliability: float = 0.25     # Success / on-time rate
    verification: float = 0.10    # Verified credentials, capped
    responsiveness: float = 0.10  # Average response time bucket
    service_fit: float = 0.10     # Vehicle and schedule match
    fleet_tier: float = 0.05      # Subscription tier and fleet size

    def __post_init__(self):
        """Validate weights sum to 1.0."""
        total = sum(self.as_dict().values())
        if abs(total - 1.0) > 0.001:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total}")

    def as_dict(self) -> dict[str, float]:
        return {
            "price": self.price,
            "rating": self.rating,
            "reliability": self.reliability,
            "verification": self.verification,
            "responsiveness": self.responsiveness,
            "service_fit": self.service_fit,
            "fleet_tier": self.fleet_tier,
        }

    @classmethod
    def from_settings(cls) -> "ScoringWeights":
        """Weights configured for this deployment."""
        return cls(
            price=settings.WEIGHT_PRICE,
            rating=settings.WEIGHT_RATING,
            reliability=settings.WEIGHT_RELIABILITY,
            verification=settings.WEIGHT_VERIFICATION,
            responsiveness=settings.WEIGHT_RESPONSIVENESS,
            service_fit=settings.WEIGHT_SERVICE_FIT,
            fleet_tier=settings.WEIGHT_FLEET_TIER,
        )


@dataclass(frozen=True)
class PriceBand:
    """Lowest and highest total price among a shipment's eligible bids."""

    min: float
    max: float

    @property
    def spread(self) -> float:
        return self.max - self.min

    @classmethod
    def from_bids(cls, bids: list[Bid]) -> Optional["PriceBand"]:
        prices = [max(0.0, b.total_price) for b in bids if b.is_eligible]
        if not prices:
            return None
        return cls(min=min(prices), max=max(prices))


@dataclass
class ScoreBreakdown:
    """Sub-scores in [0, 1], one per factor."""

    price: float = 0.0
    rating: float = 0.0
    reliability: float = 0.0
    verification: float = 0.0
    responsiveness: float = 0.0
    service_fit: float = 0.0
    fleet_tier: float = 0.0

    # Inputs clamped before scoring
    clamped_fields: list[str] = field(default_factory=list)


@dataclass
class ScoreResult:
    """Score, ordered insights and the breakdown behind them."""

    score: float
    insights: list[str]
    breakdown: ScoreBreakdown


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


class BidScorer:
    """
    Scores bids by fit for a shipment.

    Score range: 0.0 (worst) to 100.0 (best). Pure and deterministic:
    no wall-clock reads, identical inputs give identical output.
    """

    def __init__(
        self,
        weights: Optional[ScoringWeights] = None,
        verification_capacity: Optional[int] = None,
        competitive_margin: Optional[float] = None,
    ):
        self.weights = weights or ScoringWeights.from_settings()
        self.verification_capacity = verification_capacity or settings.VERIFICATION_CAPACITY
        self.competitive_margin = (
            competitive_margin if competitive_margin is not None else settings.COMPETITIVE_PRICE_MARGIN
        )

    # =========================================================================
    # Factor scores
    # =========================================================================

    def score_price(self, price: float, band: Optional[PriceBand]) -> float:
        """Cheapest bid scores 1.0, most expensive 0.0."""
        if band is None or band.spread <= 0:
            return 1.0
        return _clamp(1 - (price - band.min) / max(band.spread, PRICE_EPSILON), 0.0, 1.0)

    def score_rating(self, rating: Optional[float]) -> float:
        if rating is None:
            return 0.0
        return _clamp(rating, 0.0, 5.0) / 5.0

    def score_reliability(self, profile: CarrierProfile) -> float:
        rate = profile.reliability
        return rate.fraction if rate is not None else 0.0

    def score_verification(self, count: Optional[int]) -> float:
        """Diminishing returns beyond the capacity."""
        if not count or count < 0:
            return 0.0
        return min(count, self.verification_capacity) / self.verification_capacity

    def score_responsiveness(self, minutes: Optional[float]) -> float:
        """Bucketed by average response time in minutes."""
        if minutes is None or minutes < 0:
            return 0.0
        for limit, value in RESPONSE_BUCKETS:
            if minutes <= limit:
                return value
        return 0.0

    def score_service_fit(self, shipment: Shipment, bid: Bid) -> float:
        """
        Share of the shipment's stated constraints the bid meets.

        Constraints the shipment leaves open count as met.
        """
        checks = []

        if shipment.vehicle_type is not None:
            checks.append(bid.vehicle_type == shipment.vehicle_type)

        if shipment.pickup_window is not None:
            checks.append(
                bid.estimated_pickup_date is not None
                and shipment.pickup_window.fits_datetime(bid.estimated_pickup_date)
            )

        if shipment.delivery_window is not None:
            checks.append(
                bid.estimated_delivery_date is not None
                and bid.estimated_delivery_date <= shipment.delivery_window.latest
            )

        if not checks:
            return 1.0
        return sum(1 for ok in checks if ok) / len(checks)

    def score_fleet_tier(self, profile: CarrierProfile) -> float:
        tier = TIER_BONUS.get(profile.subscription_tier, 0.0) if profile.subscription_tier else 0.0

        fleet = profile.fleet_size or 0
        if fleet >= 20:
            fleet_score = 1.0
        elif fleet >= 5:
            fleet_score = 0.6
        elif fleet >= 1:
            fleet_score = 0.3
        else:
            fleet_score = 0.0

        return 0.5 * tier + 0.5 * fleet_score

    # =========================================================================
    # Insights
    # =========================================================================

    def _insights(
        self,
        shipment: Shipment,
        bid: Bid,
        profile: CarrierProfile,
        band: Optional[PriceBand],
        breakdown: ScoreBreakdown,
        price: float,
    ) -> list[str]:
        """Factual phrases for notable factors, largest contribution first."""
        weights = self.weights.as_dict()
        candidates: list[tuple[float, str]] = []

        def add(factor: str, text: str) -> None:
            candidates.append((weights[factor] * getattr(breakdown, factor), text))

        if band is not None and price <= band.min * (1 + self.competitive_margin):
            if band.spread > 0 and price <= band.min:
                add("price", "Lowest price among bids")
            elif band.spread > 0:
                add("price", f"Competitive price (within {self.competitive_margin:.0%} of lowest bid)")

        if profile.rating is not None and profile.rating >= NOTABLE_RATING:
            add("rating", f"Top-rated carrier ({profile.rating:.1f}/5)")

        rate = profile.reliability
        if rate is not None and rate.fraction >= NOTABLE_RELIABILITY:
            add("reliability", f"{rate.percent}% on-time success rate")

        if profile.verification_count and profile.verification_count >= NOTABLE_VERIFICATIONS:
            add("verification", f"Verified carrier ({profile.verification_count} credentials)")

        if breakdown.responsiveness >= NOTABLE_RESPONSIVENESS:
            add("responsiveness", f"Fast response (avg {profile.avg_response_minutes:.0f} min)")

        has_constraints = any(
            c is not None
            for c in (shipment.vehicle_type, shipment.pickup_window, shipment.delivery_window)
        )
        if has_constraints and breakdown.service_fit >= 1.0:
            add("service_fit", "Matches requested vehicle and schedule")

        if breakdown.fleet_tier >= NOTABLE_FLEET_TIER:
            add("fleet_tier", f"Established fleet ({profile.fleet_size} vehicles)")

        # sorted() is stable, so equal contributions keep factor order
        ranked = sorted(candidates, key=lambda c: c[0], reverse=True)
        return [text for _, text in ranked]

    # =========================================================================
    # Score
    # =========================================================================

    def _sanitize_price(self, bid: Bid, breakdown: ScoreBreakdown) -> float:
        price = bid.total_price
        if price < 0:
            logger.warning("Bid %s has negative price %.2f, clamping to 0", bid.id, price)
            breakdown.clamped_fields.append("total_price")
            return 0.0
        return price

    def _sanitize_profile(self, profile: CarrierProfile, breakdown: ScoreBreakdown) -> CarrierProfile:
        updates = {}
        if profile.rating is not None and not 0 <= profile.rating <= 5:
            updates["rating"] = _clamp(profile.rating, 0.0, 5.0)
        for name in ("verification_count", "fleet_size", "avg_response_minutes"):
            value = getattr(profile, name)
            if value is not None and value < 0:
                updates[name] = None
        if updates:
            logger.warning("Carrier %s has out-of-range fields %s, clamping", profile.id, sorted(updates))
            breakdown.clamped_fields.extend(sorted(updates))
            return profile.model_copy(update=updates)
        return profile

    def score(
        self,
        shipment: Shipment,
        bid: Bid,
        profile: Optional[CarrierProfile],
        band: Optional[PriceBand] = None,
    ) -> ScoreResult:
        """
        Calculate match score, insights and breakdown for one bid.

        Args:
            shipment: The shipment being bid on
            bid: The bid to score
            profile: Carrier reputation signals (None scores as empty)
            band: Price band of the shipment's eligible bids

        Returns:
            ScoreResult with score in [0, 100]
        """
        if bid.shipment_id != shipment.id:
            raise ValidationError(
                f"Bid {bid.id} belongs to shipment {bid.shipment_id}, not {shipment.id}",
                field="shipment_id",
            )

        breakdown = ScoreBreakdown()
        if profile is None:
            profile = CarrierProfile(id=bid.carrier_id, company_name="Unknown carrier")
        profile = self._sanitize_profile(profile, breakdown)
        price = self._sanitize_price(bid, breakdown)

        breakdown.price = self.score_price(price, band)
        breakdown.rating = self.score_rating(profile.rating)
        breakdown.reliability = self.score_reliability(profile)
        breakdown.verification = self.score_verification(profile.verification_count)
        breakdown.responsiveness = self.score_responsiveness(profile.avg_response_minutes)
        breakdown.service_fit = self.score_service_fit(shipment, bid)
        breakdown.fleet_tier = self.score_fleet_tier(profile)

        weights = self.weights.as_dict()
        total = sum(getattr(breakdown, factor) * weight for factor, weight in weights.items())
        score = round(_clamp(total * 100, 0.0, 100.0), 2)

        insights = self._insights(shipment, bid, profile, band, breakdown, price)
        return ScoreResult(score=score, insights=insights, breakdown=breakdown)


# =============================================================================
# Convenience Functions
# =============================================================================

def score_bid(
    shipment: Shipment,
    bid: Bid,
    profile: Optional[CarrierProfile],
    band: Optional[PriceBand] = None,
) -> tuple[float, list[str]]:
    """
    Quick score a bid with the configured weights.

    Returns:
        Tuple of (score, insights)
    """
    result = BidScorer().score(shipment, bid, profile, band)
    return (result.score, result.insights)
