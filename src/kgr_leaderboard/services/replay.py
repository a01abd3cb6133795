"""Replay protection for ledger transaction references."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kgr_leaderboard.models import ScoreEntry


class ReplayGuard:
    """Fast-path check that a transaction reference has not been credited yet.

    This is only an early exit that saves a ledger round trip. The unique
    constraint on ``scores.tx_hash`` is what actually guarantees that a
    transaction is credited at most once; see ``LeaderboardStore.insert``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def is_consumed(self, tx_ref: str) -> bool:
        """Return True if a score row already references ``tx_ref``."""
        result = await self.session.execute(
            select(ScoreEntry.id).where(ScoreEntry.tx_hash == tx_ref).limit(1)
        )
        return result.first() is not None
