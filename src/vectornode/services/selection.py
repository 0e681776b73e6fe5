"""
Selection State Machine

Moves a shipment from OPEN to ASSIGNED by accepting one bid, and handles the
carrier- and time-driven bid transitions (withdraw, expire).

Every mutating transition holds the shipment's lock and is written with a
conditional update, so concurrent callers see exactly one success.
"""

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import Optional

from ..db import Repository
from ..exceptions import InvalidStateError, NotFoundError
from ..models.bid import Bid
from ..models.enums import BidStatus
from ..models.shipment import Shipment
from ..models.timeutil import to_naive_utc
from .locks import ShipmentLockRegistry, get_lock_registry

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    """Outcome of a successful bid selection."""

    shipment: Shipment
    accepted_bid: Bid
    rejected_bids: list[Bid] = field(default_factory=list)


@dataclass
class CancellationResult:
    """Outcome of a shipment cancellation."""

    shipment: Shipment
    rejected_bids: list[Bid] = field(default_factory=list)


def _state(value) -> str:
    return value.value if hasattr(value, "value") else str(value)


class SelectionStateMachine:
    """
    Shipment: OPEN -> ASSIGNED | CANCELLED (one way).
    Bid: PENDING -> ACCEPTED | REJECTED | WITHDRAWN | EXPIRED (one way).
    """

    def __init__(self, repository: Repository, locks: Optional[ShipmentLockRegistry] = None):
        self.repository = repository
        self.locks = locks or get_lock_registry()

    # =========================================================================
    # Lookups
    # =========================================================================

    def _get_shipment(self, shipment_id: str) -> Shipment:
        shipment = self.repository.get_shipment(shipment_id)
        if shipment is None:
            raise NotFoundError("Shipment", shipment_id)
        return shipment

    def _get_bid(self, bid_id: str) -> Bid:
        bid = self.repository.get_bid(bid_id)
        if bid is None:
            raise NotFoundError("Bid", bid_id)
        return bid

    @staticmethod
    def _require_open(shipment: Shipment) -> None:
        if not shipment.is_open:
            raise InvalidStateError(
                f"Shipment {shipment.id} is not open for selection",
                current_state=_state(shipment.status),
            )

    @staticmethod
    def _require_pending(bid: Bid) -> None:
        if not bid.is_pending:
            raise InvalidStateError(
                f"Bid {bid.id} is not pending",
                current_state=_state(bid.status),
            )

    # =========================================================================
    # Transitions
    # =========================================================================

    def select_bid(self, shipment_id: str, bid_id: str, shipper_id: Optional[str] = None) -> SelectionResult:
        """
        Accept a bid: bid ACCEPTED, other pending bids REJECTED, shipment ASSIGNED.

        All or nothing. There is no unassign.

        Raises:
            NotFoundError: Shipment or bid missing (or shipment not owned by shipper)
            InvalidStateError: Shipment not OPEN, bid not PENDING or on another shipment
        """
        with self.locks.hold(shipment_id):
            shipment = self._get_shipment(shipment_id)
            if shipper_id is not None and shipment.shipper_id != shipper_id:
                raise NotFoundError("Shipment", shipment_id)
            bid = self._get_bid(bid_id)

            self._require_open(shipment)
            if bid.shipment_id != shipment.id:
                raise InvalidStateError(
                    f"Bid {bid.id} does not belong to shipment {shipment.id}",
                    current_state=_state(bid.status),
                )
            self._require_pending(bid)

            accepted = bid.model_copy(deep=True)
            accepted.transition(BidStatus.ACCEPTED)
            assigned = shipment.model_copy(deep=True)
            assigned.assign(bid_id=accepted.id, carrier_id=accepted.carrier_id)

            rejected = self.repository.apply_selection(assigned, accepted)
            if rejected is None:
                current = self.repository.get_shipment(shipment_id)
                logger.info("Selection of bid %s lost a race on shipment %s", bid_id, shipment_id)
                raise InvalidStateError(
                    f"Shipment {shipment_id} was modified concurrently",
                    current_state=_state(current.status) if current else None,
                )

        logger.info(
            "Shipment %s assigned to carrier %s via bid %s (%d bids rejected)",
            shipment_id,
            accepted.carrier_id,
            accepted.id,
            len(rejected),
        )
        return SelectionResult(shipment=assigned, accepted_bid=accepted, rejected_bids=rejected)

    def withdraw_bid(self, bid_id: str, carrier_id: Optional[str] = None) -> Bid:
        """
        Carrier withdraws a pending bid on an open shipment. No cascade.

        Raises:
            NotFoundError: Bid missing (or not owned by the carrier)
            InvalidStateError: Bid not PENDING or shipment not OPEN
        """
        bid = self._get_bid(bid_id)
        if carrier_id is not None and bid.carrier_id != carrier_id:
            raise NotFoundError("Bid", bid_id)

        with self.locks.hold(bid.shipment_id):
            bid = self._get_bid(bid_id)
            shipment = self._get_shipment(bid.shipment_id)
            self._require_pending(bid)
            self._require_open(shipment)

            withdrawn = bid.model_copy(deep=True)
            withdrawn.transition(BidStatus.WITHDRAWN)
            if not self.repository.apply_bid_transition(
                withdrawn, expected_status=BidStatus.PENDING, require_open_shipment=True
            ):
                current = self.repository.get_bid(bid_id)
                raise InvalidStateError(
                    f"Bid {bid_id} was modified concurrently",
                    current_state=_state(current.status) if current else None,
                )

        logger.info("Bid %s withdrawn by carrier %s", bid_id, withdrawn.carrier_id)
        return withdrawn

    def expire_bid(self, bid_id: str) -> Bid:
        """
        Expire a pending bid. Expiring an already EXPIRED bid is a no-op.

        Raises:
            NotFoundError: Bid missing
            InvalidStateError: Bid in any other terminal state
        """
        bid = self._get_bid(bid_id)

        with self.locks.hold(bid.shipment_id):
            bid = self._get_bid(bid_id)
            if bid.status == BidStatus.EXPIRED:
                return bid
            self._require_pending(bid)

            expired = bid.model_copy(deep=True)
            expired.transition(BidStatus.EXPIRED)
            if not self.repository.apply_bid_transition(expired, expected_status=BidStatus.PENDING):
                current = self.repository.get_bid(bid_id)
                if current is not None and current.status == BidStatus.EXPIRED:
                    return current
                raise InvalidStateError(
                    f"Bid {bid_id} was modified concurrently",
                    current_state=_state(current.status) if current else None,
                )

        logger.info("Bid %s expired", bid_id)
        return expired

    def expire_overdue_bids(self, now: Optional[datetime] = None) -> list[Bid]:
        """
        Expire every pending bid whose deadline has passed.

        Bids that change state between the scan and the transition are skipped.
        """
        now = to_naive_utc(now) if now else datetime.utcnow()
        expired = []
        for bid in self.repository.list_pending_bids_due(now):
            try:
                expired.append(self.expire_bid(bid.id))
            except InvalidStateError as e:
                logger.info("Skipping overdue bid %s: %s", bid.id, e)
        return expired

    def cancel_shipment(self, shipment_id: str, shipper_id: Optional[str] = None) -> CancellationResult:
        """
        Cancel an open shipment and reject its pending bids, atomically.

        Raises:
            NotFoundError: Shipment missing (or not owned by the shipper)
            InvalidStateError: Shipment not OPEN
        """
        with self.locks.hold(shipment_id):
            shipment = self._get_shipment(shipment_id)
            if shipper_id is not None and shipment.shipper_id != shipper_id:
                raise NotFoundError("Shipment", shipment_id)
            self._require_open(shipment)

            cancelled = shipment.model_copy(deep=True)
            cancelled.cancel()
            rejected = self.repository.apply_cancellation(cancelled)
            if rejected is None:
                current = self.repository.get_shipment(shipment_id)
                raise InvalidStateError(
                    f"Shipment {shipment_id} was modified concurrently",
                    current_state=_state(current.status) if current else None,
                )

        logger.info("Shipment %s cancelled (%d bids rejected)", shipment_id, len(rejected))
        return CancellationResult(shipment=cancelled, rejected_bids=rejected)
