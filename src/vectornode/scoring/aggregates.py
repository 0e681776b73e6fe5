"""Aggregate statistics over a shipment's classified bids."""

from typing import Optional

from ..config import settings
from ..models.enums import Confidence, RankTier
from ..models.ranking import MatchingStats, PriceRange, ScoredBid


def confidence_for(
    total_bids: int,
    high_min: Optional[int] = None,
    medium_min: Optional[int] = None,
) -> Confidence:
    """Few samples make price and score estimates statistically weak."""
    high_min = settings.HIGH_CONFIDENCE_MIN_BIDS if high_min is None else high_min
    medium_min = settings.MEDIUM_CONFIDENCE_MIN_BIDS if medium_min is None else medium_min

    if total_bids >= high_min:
        return Confidence.HIGH
    if total_bids >= medium_min:
        return Confidence.MEDIUM
    return Confidence.LOW


def aggregate(scored_bids: list[ScoredBid]) -> MatchingStats:
    """
    Build matching statistics for one shipment.

    Only eligible bids (not withdrawn, not expired) are counted.

    Args:
        scored_bids: Classified bids of one shipment

    Returns:
        MatchingStats
    """
    eligible = [sb for sb in scored_bids if sb.bid.is_eligible]
    total = len(eligible)

    if total == 0:
        return MatchingStats(confidence=confidence_for(0))

    tiers = [sb.rank for sb in eligible]
    prices = [sb.total_price for sb in eligible]

    return MatchingStats(
        total_bids=total,
        top_matches=tiers.count(RankTier.TOP_MATCH),
        good_matches=tiers.count(RankTier.GOOD_MATCH),
        standard_matches=tiers.count(RankTier.STANDARD),
        average_score=sum(sb.match_score for sb in eligible) / total,
        price_range=PriceRange(min=min(prices), max=max(prices)),
        confidence=confidence_for(total),
    )
