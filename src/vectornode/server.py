"""
VectorNode FastAPI Server

RESTful API exposing the bid matching engine to the marketplace frontend:
ranked bids per shipment, carrier selection, bid submission and withdrawal.

USAGE:
    Local: vectornode serve (runs on http://localhost:8000)
    Docs: http://localhost:8000/docs (Swagger UI)

Caller identity is resolved upstream; the optional X-Shipper-Id and
X-Carrier-Id headers are trusted as pre-validated.
"""

from datetime import datetime
import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import settings
from .db import Repository, get_repository
from .exceptions import InvalidStateError, NotFoundError, ValidationError
from .models import (
    Bid,
    BidStatus,
    Cargo,
    CarrierProfile,
    Confidence,
    Location,
    RankTier,
    ScoredBid,
    Shipment,
    ShipmentStatus,
    SubscriptionTier,
    TimeWindow,
    VehicleType,
    VerificationType,
)
from .services import BidRankingService, MarketplaceService, SelectionStateMachine

logger = logging.getLogger(__name__)


# =============================================================================
# API Models (Request/Response Schemas)
# =============================================================================

class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ShipmentCreateRequest(ApiModel):
    """Request to post a shipment"""
    shipper_id: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    origin: Location
    destination: Location
    cargo_type: str = "general"
    weight_kg: float = Field(default=0, ge=0)
    volume_m3: Optional[float] = Field(default=None, ge=0)
    vehicle_type: Optional[VehicleType] = None
    budget: Optional[float] = Field(default=None, ge=0)
    currency: str = settings.DEFAULT_CURRENCY
    pickup_window: Optional[TimeWindow] = None
    delivery_window: Optional[TimeWindow] = None


class ShipmentView(ApiModel):
    """Shipment fields as shown to shippers and carriers"""
    id: str
    shipper_id: str
    title: str
    description: Optional[str] = None
    status: ShipmentStatus
    pickup_city: str
    pickup_country: str
    delivery_city: str
    delivery_country: str
    cargo_type: str
    weight_kg: float
    vehicle_type: Optional[VehicleType] = None
    budget: Optional[float] = None
    currency: str
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    assigned_bid_id: Optional[str] = None
    assigned_carrier_id: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_shipment(cls, shipment: Shipment) -> "ShipmentView":
        return cls(
            id=shipment.id,
            shipper_id=shipment.shipper_id,
            title=shipment.title,
            description=shipment.description,
            status=shipment.status,
            pickup_city=shipment.origin.city,
            pickup_country=shipment.origin.country,
            delivery_city=shipment.destination.city,
            delivery_country=shipment.destination.country,
            cargo_type=shipment.cargo.cargo_type,
            weight_kg=shipment.cargo.weight_kg,
            vehicle_type=shipment.vehicle_type,
            budget=shipment.budget,
            currency=shipment.currency,
            pickup_date=shipment.pickup_window.earliest if shipment.pickup_window else None,
            delivery_date=shipment.delivery_window.latest if shipment.delivery_window else None,
            assigned_bid_id=shipment.assigned_bid_id,
            assigned_carrier_id=shipment.assigned_carrier_id,
            created_at=shipment.created_at,
        )


class BidCreateRequest(ApiModel):
    """Request to submit a bid"""
    shipment_id: str
    carrier_id: str
    total_price: float = Field(..., allow_inf_nan=False)
    currency: str = settings.DEFAULT_CURRENCY
    vehicle_type: Optional[VehicleType] = None
    estimated_pickup_date: Optional[datetime] = None
    estimated_delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None


class BidView(ApiModel):
    """Bid fields"""
    id: str
    shipment_id: str
    carrier_id: str
    total_price: float
    currency: str
    vehicle_type: Optional[VehicleType] = None
    estimated_pickup_date: Optional[datetime] = None
    estimated_delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    status: BidStatus
    expires_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_bid(cls, bid: Bid) -> "BidView":
        return cls(**bid.model_dump(exclude={"updated_at"}))


class VerificationView(ApiModel):
    """An approved verification document"""
    type: VerificationType
    status: str = "APPROVED"


class CarrierSummary(ApiModel):
    """Carrier display fields attached to a ranked bid"""
    id: str
    company_name: Optional[str] = None
    rating: Optional[float] = None
    success_rate: Optional[float] = None
    verification_count: Optional[int] = None
    verifications: List[VerificationView] = []


class RankedBidView(BidView):
    """Bid with match score, tier and insights"""
    match_score: float
    rank: RankTier
    insights: List[str]
    carrier: CarrierSummary

    @classmethod
    def from_scored(cls, scored: ScoredBid) -> "RankedBidView":
        return cls(
            **scored.bid.model_dump(exclude={"updated_at"}),
            match_score=scored.match_score,
            rank=scored.rank,
            insights=scored.insights,
            carrier=CarrierSummary(
                id=scored.bid.carrier_id,
                company_name=scored.carrier_name,
                rating=scored.carrier_rating,
                success_rate=scored.carrier_success_rate,
                verification_count=scored.carrier_verification_count,
                verifications=[VerificationView(type=v) for v in scored.carrier_verifications],
            ),
        )


class PriceRangeView(ApiModel):
    min: float
    max: float


class MatchingStatsView(ApiModel):
    """Aggregate statistics for the ranked bids"""
    total_bids: int
    top_matches: int
    good_matches: int
    standard_matches: int
    average_score: int
    price_range: Optional[PriceRangeView] = None
    confidence: Confidence


class RankedBidsResponse(ShipmentView):
    """Response for the carrier-selection screen"""
    bids: List[RankedBidView]
    matching_stats: MatchingStatsView


class SelectBidRequest(ApiModel):
    """Request to select the winning bid"""
    bid_id: str


class SelectBidResponse(ApiModel):
    """Response from a successful selection"""
    success: bool
    shipment: ShipmentView
    accepted_bid: BidView
    rejected_bid_ids: List[str]
    message: str


class CancelShipmentResponse(ApiModel):
    success: bool
    shipment: ShipmentView
    rejected_bid_ids: List[str]


class CarrierUpsertRequest(ApiModel):
    """Carrier reputation signals; rates accept fractions or percentages"""
    company_name: str = Field(..., min_length=1)
    rating: Optional[float] = None
    success_rate: Optional[float] = None
    on_time_rate: Optional[float] = None
    total_deliveries: Optional[int] = None
    verification_count: Optional[int] = None
    verifications: List[VerificationType] = []
    fleet_size: Optional[int] = None
    avg_response_minutes: Optional[float] = None
    subscription_tier: Optional[SubscriptionTier] = None


class CarrierView(ApiModel):
    id: str
    company_name: str
    rating: Optional[float] = None
    success_rate: Optional[float] = None
    verification_count: Optional[int] = None
    verifications: List[VerificationType] = []
    fleet_size: Optional[int] = None
    subscription_tier: Optional[SubscriptionTier] = None


class HealthResponse(ApiModel):
    """Health check response"""
    status: str
    version: str
    timestamp: str
    database_connected: bool


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="VectorNode API",
    description=(
        "Freight marketplace bid matching engine\n\n"
        "- Rank carrier bids per shipment with match scores and insights\n"
        "- Select the winning carrier (locks the shipment)\n"
        "- Submit, withdraw and expire bids"
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# =============================================================================
# Error Mapping
# =============================================================================

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError):
    return JSONResponse(
        status_code=409,
        content={"error": str(exc), "currentState": exc.current_state},
    )


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"error": str(exc), "field": exc.field})


# =============================================================================
# Health & Status Endpoints
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(repo: Repository = Depends(get_repository)):
    """Health check endpoint for monitoring and load balancers."""
    try:
        repo.get_stats()
        db_connected = True
    except Exception:
        logger.exception("Health check could not reach the database")
        db_connected = False

    return HealthResponse(
        status="healthy" if db_connected else "degraded",
        version=settings.APP_VERSION,
        timestamp=datetime.utcnow().isoformat(),
        database_connected=db_connected,
    )


@app.get("/", tags=["System"])
async def root():
    """Root endpoint with API information"""
    return {
        "name": "VectorNode API",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "endpoints": {
            "ranked_bids": "GET /v1/shipments/{id}/ranked-bids",
            "select_bid": "POST /v1/shipments/{id}/select-bid",
            "submit_bid": "POST /v1/bids",
            "withdraw_bid": "DELETE /v1/bids/{id}",
        },
    }


# =============================================================================
# Shipment Endpoints
# =============================================================================

@app.post("/v1/shipments", response_model=ShipmentView, status_code=201, tags=["Shipments"])
def create_shipment(request: ShipmentCreateRequest, repo: Repository = Depends(get_repository)):
    """Post a new shipment, open for bids."""
    shipment = Shipment(
        shipper_id=request.shipper_id,
        title=request.title,
        description=request.description,
        origin=request.origin,
        destination=request.destination,
        cargo=Cargo(
            cargo_type=request.cargo_type,
            weight_kg=request.weight_kg,
            volume_m3=request.volume_m3,
        ),
        vehicle_type=request.vehicle_type,
        budget=request.budget,
        currency=request.currency,
        pickup_window=request.pickup_window,
        delivery_window=request.delivery_window,
    )
    MarketplaceService(repo).post_shipment(shipment)
    return ShipmentView.from_shipment(shipment)


@app.get("/v1/shipments/{shipment_id}", response_model=ShipmentView, tags=["Shipments"])
def get_shipment(
    shipment_id: str,
    x_shipper_id: Optional[str] = Header(default=None),
    repo: Repository = Depends(get_repository),
):
    """Get a shipment."""
    shipment = repo.get_shipment(shipment_id)
    if shipment is None or (x_shipper_id is not None and shipment.shipper_id != x_shipper_id):
        raise NotFoundError("Shipment", shipment_id)
    return ShipmentView.from_shipment(shipment)


@app.get("/v1/shipments/{shipment_id}/ranked-bids", response_model=RankedBidsResponse, tags=["Matching"])
def get_ranked_bids(
    shipment_id: str,
    x_shipper_id: Optional[str] = Header(default=None),
    repo: Repository = Depends(get_repository),
):
    """
    Rank a shipment's bids.

    Returns the shipment fields, bids sorted best first with match score,
    tier and insights, and the matching statistics. A shipment without
    bids returns an empty list, not an error.
    """
    ranked = BidRankingService(repo).rank_bids(shipment_id, shipper_id=x_shipper_id)
    stats = ranked.matching_stats

    return RankedBidsResponse(
        **ShipmentView.from_shipment(ranked.shipment).model_dump(),
        bids=[RankedBidView.from_scored(sb) for sb in ranked.bids],
        matching_stats=MatchingStatsView(
            total_bids=stats.total_bids,
            top_matches=stats.top_matches,
            good_matches=stats.good_matches,
            standard_matches=stats.standard_matches,
            average_score=stats.average_score_display,
            price_range=(
                PriceRangeView(min=stats.price_range.min, max=stats.price_range.max)
                if stats.price_range
                else None
            ),
            confidence=stats.confidence,
        ),
    )


@app.post("/v1/shipments/{shipment_id}/select-bid", response_model=SelectBidResponse, tags=["Matching"])
def select_bid(
    shipment_id: str,
    request: SelectBidRequest,
    x_shipper_id: Optional[str] = Header(default=None),
    repo: Repository = Depends(get_repository),
):
    """
    Select the winning bid. This cannot be undone.

    The bid is accepted, every other pending bid rejected and the shipment
    assigned, all at once.
    """
    result = SelectionStateMachine(repo).select_bid(shipment_id, request.bid_id, shipper_id=x_shipper_id)
    return SelectBidResponse(
        success=True,
        shipment=ShipmentView.from_shipment(result.shipment),
        accepted_bid=BidView.from_bid(result.accepted_bid),
        rejected_bid_ids=[b.id for b in result.rejected_bids],
        message="Carrier selected successfully",
    )


@app.post("/v1/shipments/{shipment_id}/cancel", response_model=CancelShipmentResponse, tags=["Shipments"])
def cancel_shipment(
    shipment_id: str,
    x_shipper_id: Optional[str] = Header(default=None),
    repo: Repository = Depends(get_repository),
):
    """Cancel an open shipment; its pending bids are rejected."""
    result = SelectionStateMachine(repo).cancel_shipment(shipment_id, shipper_id=x_shipper_id)
    return CancelShipmentResponse(
        success=True,
        shipment=ShipmentView.from_shipment(result.shipment),
        rejected_bid_ids=[b.id for b in result.rejected_bids],
    )


# =============================================================================
# Bid Endpoints
# =============================================================================

@app.post("/v1/bids", response_model=BidView, status_code=201, tags=["Bids"])
def create_bid(request: BidCreateRequest, repo: Repository = Depends(get_repository)):
    """Submit a bid on an open shipment."""
    bid = Bid(**request.model_dump())
    MarketplaceService(repo).submit_bid(bid)
    return BidView.from_bid(bid)


@app.get("/v1/bids/my-bids", response_model=List[BidView], tags=["Bids"])
def my_bids(
    carrier_id: str = Query(..., alias="carrierId"),
    status: Optional[BidStatus] = Query(default=None),
    repo: Repository = Depends(get_repository),
):
    """List a carrier's bids, optionally filtered by status."""
    bids = MarketplaceService(repo).list_carrier_bids(carrier_id, status=status)
    return [BidView.from_bid(b) for b in bids]


@app.delete("/v1/bids/{bid_id}", response_model=BidView, tags=["Bids"])
def withdraw_bid(
    bid_id: str,
    x_carrier_id: Optional[str] = Header(default=None),
    repo: Repository = Depends(get_repository),
):
    """Withdraw a pending bid."""
    bid = SelectionStateMachine(repo).withdraw_bid(bid_id, carrier_id=x_carrier_id)
    return BidView.from_bid(bid)


@app.post("/v1/bids/{bid_id}/expire", response_model=BidView, tags=["Bids"])
def expire_bid(bid_id: str, repo: Repository = Depends(get_repository)):
    """Expire a pending bid (scheduler hook). Idempotent."""
    bid = SelectionStateMachine(repo).expire_bid(bid_id)
    return BidView.from_bid(bid)


# =============================================================================
# Carrier Endpoints
# =============================================================================

@app.put("/v1/carriers/{carrier_id}", response_model=CarrierView, tags=["Carriers"])
def upsert_carrier(carrier_id: str, request: CarrierUpsertRequest, repo: Repository = Depends(get_repository)):
    """Create or refresh a carrier's reputation profile."""
    profile = CarrierProfile(id=carrier_id, **request.model_dump())
    MarketplaceService(repo).register_carrier(profile)
    return CarrierView(
        id=profile.id,
        company_name=profile.company_name,
        rating=profile.rating,
        success_rate=profile.reliability.fraction if profile.reliability else None,
        verification_count=profile.verification_count,
        verifications=profile.verifications,
        fleet_size=profile.fleet_size,
        subscription_tier=profile.subscription_tier,
    )


# =============================================================================
# Statistics Endpoints
# =============================================================================

@app.get("/v1/stats", tags=["Data"])
def get_stats(repo: Repository = Depends(get_repository)):
    """Shipment, bid and carrier counts."""
    return {"success": True, **repo.get_stats()}


# =============================================================================
# Server Lifecycle
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Log startup banner"""
    logger.info("%s %s starting (docs at /docs)", settings.APP_NAME, settings.APP_VERSION)


# =============================================================================
# Main Entry Point (for direct execution)
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "vectornode.server:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
