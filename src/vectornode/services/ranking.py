"""
Bid Ranking Service - score, classify and summarize a shipment's bids.

Produces the response behind the shipper's carrier-selection screen.
"""

import logging
from typing import Optional

from ..db import Repository
from ..exceptions import NotFoundError, ValidationError
from ..models.bid import Bid
from ..models.carrier import CarrierProfile
from ..models.ranking import RankedShipment, ScoredBid
from ..models.shipment import Shipment
from ..scoring import BidScorer, PriceBand, aggregate, classify
from .locks import ShipmentLockRegistry, get_lock_registry

logger = logging.getLogger(__name__)


def sort_key(scored: ScoredBid) -> tuple:
    """Score descending, then first-come, then id for a total order."""
    return (-scored.match_score, scored.bid.created_at, scored.bid.id)


class BidRankingService:
    """Orchestrates scoring, classification and aggregation for one shipment."""

    def __init__(
        self,
        repository: Repository,
        scorer: Optional[BidScorer] = None,
        locks: Optional[ShipmentLockRegistry] = None,
    ):
        self.repository = repository
        self.scorer = scorer or BidScorer()
        self.locks = locks or get_lock_registry()

    def _score_one(
        self,
        shipment: Shipment,
        bid: Bid,
        profile: Optional[CarrierProfile],
        band: Optional[PriceBand],
    ) -> ScoredBid:
        try:
            result = self.scorer.score(shipment, bid, profile, band)
            score, insights = result.score, result.insights
        except ValidationError as e:
            logger.warning("Could not score bid %s: %s", bid.id, e)
            score, insights = 0.0, []

        return ScoredBid(
            bid=bid,
            match_score=score,
            insights=insights,
            carrier_name=profile.company_name if profile else None,
            carrier_rating=profile.rating if profile else None,
            carrier_success_rate=(
                profile.reliability.fraction if profile and profile.reliability else None
            ),
            carrier_verification_count=profile.verification_count if profile else None,
            carrier_verifications=list(profile.verifications) if profile else [],
        )

    def rank(
        self,
        shipment: Shipment,
        bids: list[Bid],
        profiles: dict[str, CarrierProfile],
    ) -> RankedShipment:
        """
        Rank an already loaded bid set.

        Args:
            shipment: The shipment
            bids: All bids on the shipment, any status
            profiles: Carrier profiles keyed by carrier id

        Returns:
            RankedShipment with eligible bids sorted best first
        """
        eligible = [b for b in bids if b.is_eligible]
        band = PriceBand.from_bids(eligible)

        scored = [
            self._score_one(shipment, bid, profiles.get(bid.carrier_id), band)
            for bid in eligible
        ]
        classified = sorted(classify(scored), key=sort_key)

        return RankedShipment(
            shipment=shipment,
            bids=classified,
            matching_stats=aggregate(classified),
        )

    def rank_bids(self, shipment_id: str, shipper_id: Optional[str] = None) -> RankedShipment:
        """
        Rank the bids of a stored shipment.

        Args:
            shipment_id: Shipment to rank
            shipper_id: Requesting shipper; when given it must own the shipment

        Returns:
            RankedShipment (empty bids list when none are eligible)

        Raises:
            NotFoundError: Shipment missing or not visible to the shipper
        """
        with self.locks.hold(shipment_id):
            snapshot = self.repository.load_snapshot(shipment_id)

        if snapshot is None:
            raise NotFoundError("Shipment", shipment_id)
        if shipper_id is not None and snapshot.shipment.shipper_id != shipper_id:
            raise NotFoundError("Shipment", shipment_id)

        ranked = self.rank(snapshot.shipment, snapshot.bids, snapshot.profiles)
        logger.debug(
            "Ranked %d bids for shipment %s (%d top matches)",
            ranked.matching_stats.total_bids,
            shipment_id,
            ranked.matching_stats.top_matches,
        )
        return ranked
