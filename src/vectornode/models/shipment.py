"""Shipment model for freight posted by shippers."""

from datetime import datetime
from typing import Optional
import uuid

from pydantic import BaseModel, Field, computed_field, field_validator

from .enums import ShipmentStatus, VehicleType
from .timeutil import to_naive_utc


class Location(BaseModel):
    """Geographic location for pickup/delivery."""

    address: Optional[str] = None
    city: str
    country: str  # ISO 3166 alpha-2, e.g. "DE"
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)

    def __str__(self) -> str:
        return f"{self.city}, {self.country}"


class TimeWindow(BaseModel):
    """Requested pickup or delivery window."""

    earliest: datetime
    latest: datetime

    @field_validator("earliest", "latest")
    @classmethod
    def normalize_bounds(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @computed_field
    @property
    def window_hours(self) -> float:
        """Hours between earliest and latest."""
        delta = self.latest - self.earliest
        return delta.total_seconds() / 3600

    def fits_datetime(self, dt: datetime) -> bool:
        """Check if datetime fits within window."""
        return self.earliest <= to_naive_utc(dt) <= self.latest


class Cargo(BaseModel):
    """What is being shipped."""

    cargo_type: str = Field(default="general", min_length=1)
    weight_kg: float = Field(default=0, ge=0)
    volume_m3: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None


class Shipment(BaseModel):
    """
    A shipment posted by a shipper, open for carrier bids.

    Only the selection state machine moves it out of OPEN.
    """

    # Identifiers
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    shipper_id: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None

    # Route
    origin: Location
    destination: Location

    # Cargo
    cargo: Cargo = Field(default_factory=Cargo)
    vehicle_type: Optional[VehicleType] = None

    # Pricing
    budget: Optional[float] = Field(default=None, ge=0)
    currency: str = "EUR"

    # Timing
    pickup_window: Optional[TimeWindow] = None
    delivery_window: Optional[TimeWindow] = None

    # Assignment
    status: ShipmentStatus = ShipmentStatus.OPEN
    assigned_bid_id: Optional[str] = None
    assigned_carrier_id: Optional[str] = None

    # Timestamps
    assigned_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("assigned_at", "cancelled_at", "created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)

    @computed_field
    @property
    def route(self) -> str:
        """Route string (e.g., 'Berlin, DE -> Lyon, FR')."""
        return f"{self.origin} -> {self.destination}"

    @property
    def is_open(self) -> bool:
        return self.status == ShipmentStatus.OPEN

    def assign(self, bid_id: str, carrier_id: str) -> None:
        """Lock the shipment to the accepted bid."""
        self.status = ShipmentStatus.ASSIGNED
        self.assigned_bid_id = bid_id
        self.assigned_carrier_id = carrier_id
        self.assigned_at = datetime.utcnow()
        self.updated_at = datetime.utcnow()

    def cancel(self) -> None:
        """Cancel the shipment."""
        self.status = ShipmentStatus.CANCELLED
        self.cancelled_at = datetime.utcnow()
        self.updated_at = datetime.utcnow()
