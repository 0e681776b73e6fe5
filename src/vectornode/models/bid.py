"""Bid model for carrier offers against a shipment."""

from datetime import datetime
from typing import Optional
import uuid

from pydantic import BaseModel, Field, field_validator

from .enums import BidStatus, VehicleType
from .timeutil import to_naive_utc


class Bid(BaseModel):
    """A carrier's priced offer to fulfil a specific shipment."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    shipment_id: str
    carrier_id: str

    # Offer
    total_price: float = Field(..., allow_inf_nan=False)
    currency: str = "EUR"
    vehicle_type: Optional[VehicleType] = None
    estimated_pickup_date: Optional[datetime] = None
    estimated_delivery_date: Optional[datetime] = None
    notes: Optional[str] = None

    # Lifecycle
    status: BidStatus = BidStatus.PENDING
    expires_at: Optional[datetime] = None

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator(
        "estimated_pickup_date",
        "estimated_delivery_date",
        "expires_at",
        "created_at",
        "updated_at",
    )
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @property
    def is_eligible(self) -> bool:
        """Not withdrawn and not expired."""
        return BidStatus(self.status).is_eligible

    @property
    def is_pending(self) -> bool:
        return self.status == BidStatus.PENDING

    def transition(self, status: BidStatus) -> None:
        """Move the bid to a new lifecycle state."""
        self.status = status
        self.updated_at = datetime.utcnow()
