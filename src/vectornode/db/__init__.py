"""Database layer for the VectorNode matching engine."""

from .repository import Repository, RankingSnapshot, get_repository

__all__ = [
    "Repository",
    "RankingSnapshot",
    "get_repository",
]
