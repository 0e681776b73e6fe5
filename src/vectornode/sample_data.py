"""Sample marketplace data for demos and local testing."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .db import Repository
from .models import (
    Bid,
    Cargo,
    CarrierProfile,
    Location,
    Shipment,
    SubscriptionTier,
    TimeWindow,
    VehicleType,
    VerificationType,
)
from .services import MarketplaceService


@dataclass
class DemoMarketplace:
    """Seeded shipment, bids and carriers."""

    shipment: Shipment
    bids: list[Bid]
    carriers: list[CarrierProfile]


ALL_VERIFICATIONS = list(VerificationType)


def sample_carriers() -> list[CarrierProfile]:
    """Two top-rated carriers with identical signals and one budget carrier."""
    return [
        CarrierProfile(
            company_name="Rhein Logistik GmbH",
            rating=4.8,
            success_rate=0.95,
            verifications=ALL_VERIFICATIONS[:5],
            fleet_size=24,
            avg_response_minutes=12,
            subscription_tier=SubscriptionTier.LARGE_FLEET,
            total_deliveries=1840,
        ),
        CarrierProfile(
            company_name="Budget Freight SRL",
            rating=3.0,
            success_rate=70,  # percentage on purpose
            verifications=[VerificationType.EMAIL_PHONE],
            fleet_size=2,
            avg_response_minutes=300,
            subscription_tier=SubscriptionTier.FREE_TRIAL,
            total_deliveries=35,
        ),
        CarrierProfile(
            company_name="Alpen Transport AG",
            rating=4.8,
            success_rate=95,
            verifications=ALL_VERIFICATIONS[:5],
            fleet_size=24,
            avg_response_minutes=12,
            subscription_tier=SubscriptionTier.LARGE_FLEET,
            total_deliveries=1210,
        ),
    ]


def sample_shipment(shipper_id: str = "shipper-demo", now: Optional[datetime] = None) -> Shipment:
    now = now or datetime.utcnow()
    return Shipment(
        shipper_id=shipper_id,
        title="Pallets of machine parts",
        origin=Location(city="Berlin", country="DE"),
        destination=Location(city="Lyon", country="FR"),
        cargo=Cargo(cargo_type="machinery", weight_kg=8200),
        vehicle_type=VehicleType.TRUCK_MEDIUM,
        budget=1100,
        pickup_window=TimeWindow(earliest=now + timedelta(days=2), latest=now + timedelta(days=3)),
        delivery_window=TimeWindow(earliest=now + timedelta(days=4), latest=now + timedelta(days=5)),
    )


def seed_demo_marketplace(repository: Repository, now: Optional[datetime] = None) -> DemoMarketplace:
    """
    Seed one shipment with three pending bids:
    A = 1000 EUR / 4.8 stars / 95%, B = 900 EUR / 3.0 stars / 70%,
    C = a second carrier with A's price and signals.
    """
    now = now or datetime.utcnow()
    market = MarketplaceService(repository)

    carriers = [market.register_carrier(c) for c in sample_carriers()]
    shipment = market.post_shipment(sample_shipment(now=now))

    pickup = now + timedelta(days=2, hours=6)
    delivery = now + timedelta(days=4, hours=6)
    prices = [1000.0, 900.0, 1000.0]

    bids = []
    for offset, (carrier, price) in enumerate(zip(carriers, prices)):
        bids.append(market.submit_bid(Bid(
            shipment_id=shipment.id,
            carrier_id=carrier.id,
            total_price=price,
            vehicle_type=VehicleType.TRUCK_MEDIUM,
            estimated_pickup_date=pickup,
            estimated_delivery_date=delivery,
            created_at=now + timedelta(minutes=offset),
        )))

    return DemoMarketplace(shipment=shipment, bids=bids, carriers=carriers)
