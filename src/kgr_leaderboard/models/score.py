# src/kgr_leaderboard/models/score.py
"""SQLAlchemy model for accepted leaderboard entries."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from kgr_leaderboard.db.session import Base
from kgr_leaderboard.db.time import utcnow


class ScoreEntry(Base):
    """One accepted, payment-backed score submission.

    Rows are written once and never updated; pruning is the only delete path.
    """

    __tablename__ = "scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    score: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Replay guard: one leaderboard credit per ledger transaction.
    tx_hash: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    # Ledger-recorded creation time of the paying transaction.
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    # Best-effort provenance; never consulted by verification.
    ip: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)


Index("scores_score_desc_idx", ScoreEntry.score.desc())
