"""Ranked, capacity-bounded leaderboard storage."""

from __future__ import annotations

import logging
import math
from typing import Any, Final

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from kgr_leaderboard.core.errors import DuplicateTransactionError, StorageFailureError
from kgr_leaderboard.models import ScoreEntry

logger = logging.getLogger(__name__)

DEFAULT_LIMIT: Final[int] = 50
MAX_LIMIT: Final[int] = 100


def ranking_order(entity: Any = ScoreEntry) -> tuple[Any, ...]:
    """Return the ranking key for ``entity`` (the model or an alias of it).

    The key is a total order: no two rows ever compare equal, so pruning at a
    score tie is deterministic.
    """
    return (entity.score.desc(), entity.created_at.asc(), entity.id.asc())


def clamp_limit(raw: object, *, default: int = DEFAULT_LIMIT, maximum: int = MAX_LIMIT) -> int:
    """Clamp a caller-supplied limit into ``[1, maximum]``.

    Missing, non-numeric, NaN and zero values fall back to ``default``. Other
    numbers are clamped first and truncated after, so ``0.5`` gives 1 and
    ``Infinity`` gives ``maximum``.
    """
    try:
        value = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        value = math.nan
    if math.isnan(value) or value == 0:
        value = default
    return int(max(1, min(value, maximum)))


class LeaderboardStore:
    """Persistence for score entries, ordered by ``score DESC, created_at ASC, id ASC``."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, entry: ScoreEntry) -> ScoreEntry:
        """Persist a new entry and commit it.

        Raises:
            DuplicateTransactionError: If another row already holds ``entry.tx_hash``.
            StorageFailureError: On any other database error.
        """
        self.session.add(entry)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateTransactionError(entry.tx_hash) from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.exception("Failed to store score for tx %s", entry.tx_hash)
            raise StorageFailureError(str(exc)) from exc
        return entry

    async def prune(self, capacity: int) -> int:
        """Delete every entry outside the top ``capacity``; returns the number removed."""
        ranked = aliased(ScoreEntry)
        keep = select(ranked.id).order_by(*ranking_order(ranked)).limit(max(0, capacity))
        try:
            result = await self.session.execute(
                delete(ScoreEntry)
                .where(ScoreEntry.id.not_in(keep.scalar_subquery()))
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.exception("Failed to prune leaderboard to %d entries", capacity)
            raise StorageFailureError(str(exc)) from exc

        removed = result.rowcount or 0
        if removed:
            logger.info("Pruned %d entries below rank %d", removed, capacity)
        return removed

    async def top_n(self, n: int) -> list[ScoreEntry]:
        """Return the first ``n`` entries by ranking order."""
        result = await self.session.execute(
            select(ScoreEntry).order_by(*ranking_order()).limit(max(0, n))
        )
        return list(result.scalars().all())

    async def count(self) -> int:
        """Return the number of stored entries."""
        result = await self.session.execute(select(func.count()).select_from(ScoreEntry))
        return int(result.scalar_one())
