"""Rank tier classification over a shipment's scored bids."""

from typing import Optional

from ..config import settings
from ..models.enums import RankTier
from ..models.ranking import ScoredBid


def classify(
    scored_bids: list[ScoredBid],
    top_threshold: Optional[float] = None,
    good_threshold: Optional[float] = None,
) -> list[ScoredBid]:
    """
    Assign rank tiers using the whole bid set for relative context.

    Withdrawn and expired bids are dropped. Every eligible bid tied at the
    maximum score is TOP_MATCH when that maximum clears the top threshold;
    there is no single-winner tie-break.

    Args:
        scored_bids: Scored bids of one shipment
        top_threshold: Minimum score for TOP_MATCH (default 80)
        good_threshold: Minimum score for GOOD_MATCH (default 65)

    Returns:
        Eligible bids with rank set, in input order
    """
    top_threshold = settings.TOP_MATCH_MIN_SCORE if top_threshold is None else top_threshold
    good_threshold = settings.GOOD_MATCH_MIN_SCORE if good_threshold is None else good_threshold

    eligible = [sb for sb in scored_bids if sb.bid.is_eligible]
    if not eligible:
        return []

    best = max(sb.match_score for sb in eligible)

    for sb in eligible:
        if sb.match_score >= top_threshold and sb.match_score == best:
            sb.rank = RankTier.TOP_MATCH
        elif sb.match_score >= good_threshold:
            sb.rank = RankTier.GOOD_MATCH
        else:
            sb.rank = RankTier.STANDARD

    return eligible
