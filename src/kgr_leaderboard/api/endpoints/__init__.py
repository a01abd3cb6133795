# src/kgr_leaderboard/api/endpoints/__init__.py
"""API endpoint modules."""

from .scores import router as scores_router
from .system import router as system_router

__all__ = ["scores_router", "system_router"]
