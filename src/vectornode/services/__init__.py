"""Services for the VectorNode matching engine."""

from .locks import ShipmentLockRegistry, get_lock_registry
from .ranking import BidRankingService
from .selection import SelectionStateMachine, SelectionResult, CancellationResult
from .marketplace import MarketplaceService

__all__ = [
    "ShipmentLockRegistry",
    "get_lock_registry",
    "BidRankingService",
    "SelectionStateMachine",
    "SelectionResult",
    "CancellationResult",
    "MarketplaceService",
]
