# src/kgr_leaderboard/models/__init__.py
"""SQLAlchemy models for the leaderboard service."""

from .score import ScoreEntry

__all__ = ["ScoreEntry"]
