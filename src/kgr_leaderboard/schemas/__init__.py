"""Pydantic schemas for the leaderboard API."""

from .score import (
    LeaderboardEntry,
    LeaderboardResponse,
    RateLimitedResponse,
    SubmitScoreResponse,
)

__all__ = [
    "LeaderboardEntry",
    "LeaderboardResponse",
    "RateLimitedResponse",
    "SubmitScoreResponse",
]
