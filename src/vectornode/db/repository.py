"""SQLite repository for persistent storage."""

from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
import logging
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import (
    create_engine,
    Column,
    String,
    Integer,
    Float,
    DateTime,
    Text,
    Index,
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from ..config import settings
from ..models import Shipment, Bid, CarrierProfile
from ..models.enums import ShipmentStatus, BidStatus

logger = logging.getLogger(__name__)

Base = declarative_base()


# =============================================================================
# SQLAlchemy Models (Database Tables)
# =============================================================================

class ShipmentRecord(Base):
    """SQLAlchemy model for shipments table."""

    __tablename__ = "shipments"

    id = Column(String(36), primary_key=True)
    shipper_id = Column(String(36), nullable=False, index=True)
    title = Column(String(255), nullable=False)

    # Route
    origin_city = Column(String(100), nullable=False)
    origin_country = Column(String(2), nullable=False, index=True)
    destination_city = Column(String(100), nullable=False)
    destination_country = Column(String(2), nullable=False, index=True)

    # Cargo
    cargo_type = Column(String(100))
    weight_kg = Column(Float, default=0.0)
    vehicle_type = Column(String(20))

    # Assignment
    status = Column(String(20), default="OPEN", nullable=False, index=True)
    assigned_bid_id = Column(String(36))
    assigned_carrier_id = Column(String(36), index=True)

    # Timestamps
    pickup_date = Column(DateTime)
    delivery_date = Column(DateTime)
    assigned_at = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Full JSON blob for complete model
    full_data = Column(Text)

    __table_args__ = (
        Index("ix_shipments_shipper_status", "shipper_id", "status"),
    )


class BidRecord(Base):
    """SQLAlchemy model for bids table."""

    __tablename__ = "bids"

    id = Column(String(36), primary_key=True)
    shipment_id = Column(String(36), nullable=False, index=True)
    carrier_id = Column(String(36), nullable=False, index=True)

    total_price = Column(Float, nullable=False)
    currency = Column(String(3), default="EUR")
    vehicle_type = Column(String(20))

    status = Column(String(20), default="PENDING", nullable=False, index=True)
    expires_at = Column(DateTime, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Full JSON blob
    full_data = Column(Text)

    __table_args__ = (
        Index("ix_bids_shipment_status", "shipment_id", "status"),
        Index("ix_bids_carrier_status", "carrier_id", "status"),
    )


class CarrierProfileRecord(Base):
    """SQLAlchemy model for carrier_profiles table."""

    __tablename__ = "carrier_profiles"

    id = Column(String(36), primary_key=True)
    company_name = Column(String(255), nullable=False, index=True)
    rating = Column(Float)
    success_rate = Column(Float)
    verification_count = Column(Integer)
    fleet_size = Column(Integer)
    subscription_tier = Column(String(20), index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Full JSON blob
    full_data = Column(Text)


@dataclass
class RankingSnapshot:
    """Shipment, its bids and their carriers, read in one session."""

    shipment: Shipment
    bids: list[Bid] = field(default_factory=list)
    profiles: dict[str, CarrierProfile] = field(default_factory=dict)


def _status(value) -> str:
    return value.value if hasattr(value, "value") else str(value)


# =============================================================================
# Repository Class
# =============================================================================

class Repository:
    """Repository for database operations."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.DATABASE_URL

        # Ensure data directory exists
        if self.database_url.startswith("sqlite:///") and ":memory:" not in self.database_url:
            db_path = Path(self.database_url.replace("sqlite:///", ""))
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            self.database_url,
            echo=settings.DEBUG,
            connect_args={"check_same_thread": False} if "sqlite" in self.database_url else {},
        )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def init_db(self) -> None:
        """Create all tables."""
        Base.metadata.create_all(self.engine)
        logger.debug("Tables ready on %s", self.engine.url)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    # =========================================================================
    # Record mapping
    # =========================================================================

    @staticmethod
    def _fill_shipment(record: ShipmentRecord, shipment: Shipment) -> None:
        record.shipper_id = shipment.shipper_id
        record.title = shipment.title
        record.origin_city = shipment.origin.city
        record.origin_country = shipment.origin.country
        record.destination_city = shipment.destination.city
        record.destination_country = shipment.destination.country
        record.cargo_type = shipment.cargo.cargo_type
        record.weight_kg = shipment.cargo.weight_kg
        record.vehicle_type = _status(shipment.vehicle_type) if shipment.vehicle_type else None
        record.status = _status(shipment.status)
        record.assigned_bid_id = shipment.assigned_bid_id
        record.assigned_carrier_id = shipment.assigned_carrier_id
        record.pickup_date = shipment.pickup_window.earliest if shipment.pickup_window else None
        record.delivery_date = shipment.delivery_window.latest if shipment.delivery_window else None
        record.assigned_at = shipment.assigned_at
        record.created_at = shipment.created_at
        record.updated_at = shipment.updated_at
        record.full_data = shipment.model_dump_json()

    @staticmethod
    def _fill_bid(record: BidRecord, bid: Bid) -> None:
        record.shipment_id = bid.shipment_id
        record.carrier_id = bid.carrier_id
        record.total_price = bid.total_price
        record.currency = bid.currency
        record.vehicle_type = _status(bid.vehicle_type) if bid.vehicle_type else None
        record.status = _status(bid.status)
        record.expires_at = bid.expires_at
        record.created_at = bid.created_at
        record.updated_at = bid.updated_at
        record.full_data = bid.model_dump_json()

    @staticmethod
    def _read_bid(record: BidRecord) -> Optional[Bid]:
        """Parse a stored bid; unreadable records are logged and skipped."""
        if not record.full_data:
            return None
        try:
            return Bid.model_validate_json(record.full_data)
        except PydanticValidationError as e:
            logger.warning("Skipping unreadable bid record %s: %s", record.id, e)
            return None

    @classmethod
    def _bids(cls, records: Iterable[BidRecord]) -> list[Bid]:
        return [bid for bid in map(cls._read_bid, records) if bid is not None]

    # =========================================================================
    # Shipment Operations
    # =========================================================================

    def save_shipment(self, shipment: Shipment) -> Shipment:
        """Save or update a shipment."""
        with self.get_session() as session:
            record = session.query(ShipmentRecord).filter_by(id=shipment.id).first()

            if record is None:
                record = ShipmentRecord(id=shipment.id)
                session.add(record)

            self._fill_shipment(record, shipment)
            session.commit()
            return shipment

    def get_shipment(self, shipment_id: str) -> Optional[Shipment]:
        """Get a shipment by ID."""
        with self.get_session() as session:
            record = session.query(ShipmentRecord).filter_by(id=shipment_id).first()
            if record and record.full_data:
                return Shipment.model_validate_json(record.full_data)
            return None

    def list_shipments(
        self,
        shipper_id: Optional[str] = None,
        status: Optional[ShipmentStatus] = None,
        limit: int = 100,
    ) -> list[Shipment]:
        """List shipments, newest first."""
        with self.get_session() as session:
            query = session.query(ShipmentRecord)

            if shipper_id:
                query = query.filter(ShipmentRecord.shipper_id == shipper_id)
            if status:
                query = query.filter(ShipmentRecord.status == _status(status))

            query = query.order_by(ShipmentRecord.created_at.desc()).limit(limit)
            return [
                Shipment.model_validate_json(r.full_data) for r in query.all() if r.full_data
            ]

    # =========================================================================
    # Bid Operations
    # =========================================================================

    def save_bid(self, bid: Bid) -> Bid:
        """Save or update a bid."""
        with self.get_session() as session:
            record = session.query(BidRecord).filter_by(id=bid.id).first()

            if record is None:
                record = BidRecord(id=bid.id)
                session.add(record)

            self._fill_bid(record, bid)
            session.commit()
            return bid

    def get_bid(self, bid_id: str) -> Optional[Bid]:
        """Get a bid by ID."""
        with self.get_session() as session:
            record = session.query(BidRecord).filter_by(id=bid_id).first()
            return self._read_bid(record) if record else None

    def list_bids_for_shipment(self, shipment_id: str) -> list[Bid]:
        """All bids on a shipment in submission order."""
        with self.get_session() as session:
            query = (
                session.query(BidRecord)
                .filter(BidRecord.shipment_id == shipment_id)
                .order_by(BidRecord.created_at.asc(), BidRecord.id.asc())
            )
            return self._bids(query.all())

    def list_bids_for_carrier(
        self,
        carrier_id: str,
        status: Optional[BidStatus] = None,
        limit: int = 100,
    ) -> list[Bid]:
        """A carrier's bids, newest first."""
        with self.get_session() as session:
            query = session.query(BidRecord).filter(BidRecord.carrier_id == carrier_id)
            if status:
                query = query.filter(BidRecord.status == _status(status))
            query = query.order_by(BidRecord.created_at.desc()).limit(limit)
            return self._bids(query.all())

    def find_pending_bid(self, shipment_id: str, carrier_id: str) -> Optional[Bid]:
        """The carrier's pending bid on a shipment, if any."""
        with self.get_session() as session:
            record = session.query(BidRecord).filter(
                BidRecord.shipment_id == shipment_id,
                BidRecord.carrier_id == carrier_id,
                BidRecord.status == BidStatus.PENDING.value,
            ).first()
            if record and record.full_data:
                return Bid.model_validate_json(record.full_data)
            return None

    def list_pending_bids_due(self, now: datetime, limit: int = 500) -> list[Bid]:
        """Pending bids whose deadline is at or before `now`."""
        with self.get_session() as session:
            query = (
                session.query(BidRecord)
                .filter(
                    BidRecord.status == BidStatus.PENDING.value,
                    BidRecord.expires_at.isnot(None),
                    BidRecord.expires_at <= now,
                )
                .order_by(BidRecord.expires_at.asc())
                .limit(limit)
            )
            return self._bids(query.all())

    # =========================================================================
    # Carrier Profile Operations
    # =========================================================================

    def save_carrier_profile(self, profile: CarrierProfile) -> CarrierProfile:
        """Save or update a carrier profile."""
        with self.get_session() as session:
            record = session.query(CarrierProfileRecord).filter_by(id=profile.id).first()

            if record is None:
                record = CarrierProfileRecord(id=profile.id)
                session.add(record)

            record.company_name = profile.company_name
            record.rating = profile.rating
            record.success_rate = profile.reliability.fraction if profile.reliability else None
            record.verification_count = profile.verification_count
            record.fleet_size = profile.fleet_size
            record.subscription_tier = (
                _status(profile.subscription_tier) if profile.subscription_tier else None
            )
            record.updated_at = profile.updated_at
            record.full_data = profile.model_dump_json()

            session.commit()
            return profile

    def get_carrier_profile(self, carrier_id: str) -> Optional[CarrierProfile]:
        """Get a carrier profile by ID."""
        with self.get_session() as session:
            record = session.query(CarrierProfileRecord).filter_by(id=carrier_id).first()
            if record and record.full_data:
                return CarrierProfile.model_validate_json(record.full_data)
            return None

    # =========================================================================
    # Ranking snapshot
    # =========================================================================

    def load_snapshot(self, shipment_id: str) -> Optional[RankingSnapshot]:
        """
        Read a shipment, all its bids and their carrier profiles in one
        session, so the ranking never mixes pre- and post-transition states.
        """
        with self.get_session() as session, session.begin():
            record = session.query(ShipmentRecord).filter_by(id=shipment_id).first()
            if record is None or not record.full_data:
                return None

            bid_records = (
                session.query(BidRecord)
                .filter(BidRecord.shipment_id == shipment_id)
                .order_by(BidRecord.created_at.asc(), BidRecord.id.asc())
                .all()
            )
            bids = self._bids(bid_records)

            carrier_ids = sorted({b.carrier_id for b in bids})
            profiles = {}
            if carrier_ids:
                for p in session.query(CarrierProfileRecord).filter(
                    CarrierProfileRecord.id.in_(carrier_ids)
                ):
                    if p.full_data:
                        profiles[p.id] = CarrierProfile.model_validate_json(p.full_data)

            return RankingSnapshot(
                shipment=Shipment.model_validate_json(record.full_data),
                bids=bids,
                profiles=profiles,
            )

    # =========================================================================
    # Conditional transitions
    # =========================================================================

    def _claim_open_shipment(self, session: Session, shipment: Shipment) -> bool:
        """Write the shipment only if it is still OPEN in storage."""
        updated = (
            session.query(ShipmentRecord)
            .filter(
                ShipmentRecord.id == shipment.id,
                ShipmentRecord.status == ShipmentStatus.OPEN.value,
            )
            .update(
                {
                    ShipmentRecord.status: _status(shipment.status),
                    ShipmentRecord.assigned_bid_id: shipment.assigned_bid_id,
                    ShipmentRecord.assigned_carrier_id: shipment.assigned_carrier_id,
                    ShipmentRecord.assigned_at: shipment.assigned_at,
                    ShipmentRecord.updated_at: shipment.updated_at,
                    ShipmentRecord.full_data: shipment.model_dump_json(),
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def _reject_pending(self, session: Session, shipment_id: str, keep_bid_id: Optional[str]) -> list[Bid]:
        query = session.query(BidRecord).filter(
            BidRecord.shipment_id == shipment_id,
            BidRecord.status == BidStatus.PENDING.value,
        )
        if keep_bid_id:
            query = query.filter(BidRecord.id != keep_bid_id)

        rejected = []
        for record in query.order_by(BidRecord.created_at.asc(), BidRecord.id.asc()).all():
            bid = self._read_bid(record)
            if bid is None:
                record.status = BidStatus.REJECTED.value
                record.updated_at = datetime.utcnow()
                continue
            bid.transition(BidStatus.REJECTED)
            self._fill_bid(record, bid)
            rejected.append(bid)
        return rejected

    def apply_selection(self, shipment: Shipment, accepted: Bid) -> Optional[list[Bid]]:
        """
        Persist a bid selection in one transaction.

        The shipment must still be OPEN and the bid still PENDING in storage;
        every other pending bid is rejected.

        Returns:
            The rejected bids, or None when a guard failed (nothing written)
        """
        with self.get_session() as session:
            if not self._claim_open_shipment(session, shipment):
                session.rollback()
                return None

            updated = (
                session.query(BidRecord)
                .filter(
                    BidRecord.id == accepted.id,
                    BidRecord.shipment_id == shipment.id,
                    BidRecord.status == BidStatus.PENDING.value,
                )
                .update(
                    {
                        BidRecord.status: _status(accepted.status),
                        BidRecord.updated_at: accepted.updated_at,
                        BidRecord.full_data: accepted.model_dump_json(),
                    },
                    synchronize_session=False,
                )
            )
            if updated != 1:
                session.rollback()
                return None

            rejected = self._reject_pending(session, shipment.id, keep_bid_id=accepted.id)
            session.commit()
            return rejected

    def apply_cancellation(self, shipment: Shipment) -> Optional[list[Bid]]:
        """Persist a cancelled shipment and reject its pending bids atomically."""
        with self.get_session() as session:
            if not self._claim_open_shipment(session, shipment):
                session.rollback()
                return None

            rejected = self._reject_pending(session, shipment.id, keep_bid_id=None)
            session.commit()
            return rejected

    def apply_bid_transition(
        self,
        bid: Bid,
        expected_status: BidStatus,
        require_open_shipment: bool = False,
    ) -> bool:
        """
        Write a single bid transition if the stored bid is still in
        `expected_status` (and, optionally, its shipment still OPEN).
        """
        with self.get_session() as session:
            if require_open_shipment:
                is_open = (
                    session.query(ShipmentRecord)
                    .filter(
                        ShipmentRecord.id == bid.shipment_id,
                        ShipmentRecord.status == ShipmentStatus.OPEN.value,
                    )
                    .count()
                )
                if not is_open:
                    session.rollback()
                    return False

            updated = (
                session.query(BidRecord)
                .filter(
                    BidRecord.id == bid.id,
                    BidRecord.status == _status(expected_status),
                )
                .update(
                    {
                        BidRecord.status: _status(bid.status),
                        BidRecord.updated_at: bid.updated_at,
                        BidRecord.full_data: bid.model_dump_json(),
                    },
                    synchronize_session=False,
                )
            )
            if updated != 1:
                session.rollback()
                return False

            session.commit()
            return True

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict:
        """Get database statistics."""
        with self.get_session() as session:
            return {
                "shipments": {
                    "total": session.query(ShipmentRecord).count(),
                    "open": session.query(ShipmentRecord).filter_by(status="OPEN").count(),
                    "assigned": session.query(ShipmentRecord).filter_by(status="ASSIGNED").count(),
                    "cancelled": session.query(ShipmentRecord).filter_by(status="CANCELLED").count(),
                },
                "bids": {
                    "total": session.query(BidRecord).count(),
                    "pending": session.query(BidRecord).filter_by(status="PENDING").count(),
                    "accepted": session.query(BidRecord).filter_by(status="ACCEPTED").count(),
                    "rejected": session.query(BidRecord).filter_by(status="REJECTED").count(),
                    "withdrawn": session.query(BidRecord).filter_by(status="WITHDRAWN").count(),
                    "expired": session.query(BidRecord).filter_by(status="EXPIRED").count(),
                },
                "carriers": {
                    "total": session.query(CarrierProfileRecord).count(),
                },
            }


@lru_cache
def get_repository() -> Repository:
    """Get cached repository instance."""
    repo = Repository()
    repo.init_db()
    return repo
