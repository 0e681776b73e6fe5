"""Scoring algorithms for the VectorNode matching engine."""

from .bid_scorer import BidScorer, ScoringWeights, PriceBand, ScoreResult, score_bid
from .classifier import classify
from .aggregates import aggregate, confidence_for

__all__ = [
    "BidScorer",
    "ScoringWeights",
    "PriceBand",
    "ScoreResult",
    "score_bid",
    "classify",
    "aggregate",
    "confidence_for",
]
