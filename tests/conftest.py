"""Shared fixtures: a temporary SQLite repository and record factories."""

from datetime import datetime, timedelta

import pytest

from vectornode.db import Repository
from vectornode.models import (
    Bid,
    CarrierProfile,
    Location,
    Shipment,
    SubscriptionTier,
)
from vectornode.services import ShipmentLockRegistry

NOW = datetime(2026, 3, 2, 9, 0, 0)


@pytest.fixture
def repo(tmp_path):
    repository = Repository(f"sqlite:///{tmp_path / 'test.db'}")
    repository.init_db()
    return repository


@pytest.fixture
def locks():
    return ShipmentLockRegistry()


def make_shipment(**overrides) -> Shipment:
    data = dict(
        shipper_id="shipper-1",
        title="Palletized auto parts",
        origin=Location(city="Hamburg", country="DE"),
        destination=Location(city="Milan", country="IT"),
        created_at=NOW,
    )
    data.update(overrides)
    return Shipment(**data)


def make_profile(**overrides) -> CarrierProfile:
    data = dict(
        company_name="Nordic Haulage",
        rating=4.8,
        success_rate=0.95,
        verification_count=5,
        fleet_size=24,
        avg_response_minutes=10,
        subscription_tier=SubscriptionTier.LARGE_FLEET,
    )
    data.update(overrides)
    return CarrierProfile(**data)


def make_bid(shipment: Shipment, carrier: CarrierProfile, price: float, minutes: int = 0, **overrides) -> Bid:
    data = dict(
        shipment_id=shipment.id,
        carrier_id=carrier.id,
        total_price=price,
        created_at=NOW + timedelta(minutes=minutes),
    )
    data.update(overrides)
    return Bid(**data)


@pytest.fixture
def three_bid_market(repo):
    """
    Shipment S with three pending bids:
    A = 1000 / 4.8 / 0.95, B = 900 / 3.0 / 0.70, C = A's signals, other carrier.
    """
    shipment = repo.save_shipment(make_shipment())

    carrier_a = repo.save_carrier_profile(make_profile(company_name="Carrier A"))
    carrier_b = repo.save_carrier_profile(make_profile(
        company_name="Carrier B",
        rating=3.0,
        success_rate=0.70,
        verification_count=1,
        fleet_size=2,
        avg_response_minutes=300,
        subscription_tier=SubscriptionTier.FREE_TRIAL,
    ))
    carrier_c = repo.save_carrier_profile(make_profile(company_name="Carrier C"))

    bid_a = repo.save_bid(make_bid(shipment, carrier_a, 1000, minutes=0))
    bid_b = repo.save_bid(make_bid(shipment, carrier_b, 900, minutes=1))
    bid_c = repo.save_bid(make_bid(shipment, carrier_c, 1000, minutes=2))

    return {
        "shipment": shipment,
        "carriers": {"A": carrier_a, "B": carrier_b, "C": carrier_c},
        "bids": {"A": bid_a, "B": bid_b, "C": bid_c},
    }
