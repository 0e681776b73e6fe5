"""Marketplace operations around the matching core: post, bid, register."""

from datetime import datetime, timedelta
import logging
import math
from typing import Optional

from ..config import settings
from ..db import Repository
from ..exceptions import InvalidStateError, NotFoundError, ValidationError
from ..models.bid import Bid
from ..models.carrier import CarrierProfile
from ..models.enums import BidStatus, ShipmentStatus
from ..models.shipment import Shipment
from .locks import ShipmentLockRegistry, get_lock_registry

logger = logging.getLogger(__name__)


class MarketplaceService:
    """Creates the records the ranking and selection services work on."""

    def __init__(self, repository: Repository, locks: Optional[ShipmentLockRegistry] = None):
        self.repository = repository
        self.locks = locks or get_lock_registry()

    def post_shipment(self, shipment: Shipment) -> Shipment:
        """Post a new shipment, open for bids."""
        if shipment.status != ShipmentStatus.OPEN:
            raise ValidationError("New shipments must be OPEN", field="status")
        if (
            shipment.pickup_window
            and shipment.delivery_window
            and shipment.delivery_window.latest < shipment.pickup_window.earliest
        ):
            raise ValidationError("Delivery window ends before pickup window starts", field="delivery_window")

        self.repository.save_shipment(shipment)
        logger.info("Shipment %s posted by shipper %s (%s)", shipment.id, shipment.shipper_id, shipment.route)
        return shipment

    def register_carrier(self, profile: CarrierProfile) -> CarrierProfile:
        """Create or refresh a carrier's reputation profile."""
        profile.updated_at = datetime.utcnow()
        return self.repository.save_carrier_profile(profile)

    def submit_bid(self, bid: Bid) -> Bid:
        """
        Submit a carrier's bid against an open shipment.

        A carrier holds at most one pending bid per shipment. Bids without a
        deadline get the default time-to-live.

        Raises:
            ValidationError: Non-positive or non-finite price, or non-pending bid
            NotFoundError: Shipment missing
            InvalidStateError: Shipment not OPEN or carrier already bidding
        """
        if not math.isfinite(bid.total_price) or bid.total_price <= 0:
            raise ValidationError(f"Bid price must be a positive finite number, got {bid.total_price}", field="total_price")
        if bid.status != BidStatus.PENDING:
            raise ValidationError("New bids must be PENDING", field="status")
        if (
            bid.estimated_pickup_date
            and bid.estimated_delivery_date
            and bid.estimated_delivery_date < bid.estimated_pickup_date
        ):
            raise ValidationError("Estimated delivery is before estimated pickup", field="estimated_delivery_date")

        with self.locks.hold(bid.shipment_id):
            shipment = self.repository.get_shipment(bid.shipment_id)
            if shipment is None:
                raise NotFoundError("Shipment", bid.shipment_id)
            if not shipment.is_open:
                raise InvalidStateError(
                    f"Shipment {shipment.id} is not accepting bids",
                    current_state=shipment.status.value,
                )

            existing = self.repository.find_pending_bid(bid.shipment_id, bid.carrier_id)
            if existing is not None:
                raise InvalidStateError(
                    f"Carrier {bid.carrier_id} already has pending bid {existing.id} on this shipment",
                    current_state=existing.status.value,
                )

            if bid.expires_at is None:
                bid.expires_at = bid.created_at + timedelta(hours=settings.DEFAULT_BID_TTL_HOURS)
            self.repository.save_bid(bid)

        logger.info(
            "Bid %s submitted by carrier %s on shipment %s: %.2f %s",
            bid.id,
            bid.carrier_id,
            bid.shipment_id,
            bid.total_price,
            bid.currency,
        )
        return bid

    def list_carrier_bids(self, carrier_id: str, status: Optional[BidStatus] = None) -> list[Bid]:
        """A carrier's own bids, optionally filtered by status."""
        return self.repository.list_bids_for_carrier(carrier_id, status=status)
