"""Process-wide resources, built once at startup and closed at shutdown."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from kgr_leaderboard.core.settings import Settings
from kgr_leaderboard.db.session import build_engine, build_sessionmaker
from kgr_leaderboard.services.ledger import LedgerClient, load_ledger_config
from kgr_leaderboard.services.rate_limit import SubmissionRateLimiter, build_rate_limiter
from kgr_leaderboard.services.submission import SubmissionPipeline
from kgr_leaderboard.services.verification import PaymentPolicy, PaymentVerifier

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything a request handler needs, passed in rather than imported as globals."""

    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    ledger: LedgerClient
    rate_limiter: SubmissionRateLimiter
    pipeline: SubmissionPipeline

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        engine: AsyncEngine | None = None,
        ledger_transport: httpx.AsyncBaseTransport | None = None,
        rate_limiter: SubmissionRateLimiter | None = None,
    ) -> AppContext:
        engine = engine or build_engine(settings)
        session_factory = build_sessionmaker(engine)
        ledger = LedgerClient(load_ledger_config(settings), transport=ledger_transport)
        verifier = PaymentVerifier(ledger, PaymentPolicy.from_settings(settings))
        pipeline = SubmissionPipeline(
            session_factory,
            verifier,
            capacity=settings.leaderboard_capacity,
            snapshot_size=settings.snapshot_size,
        )
        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            ledger=ledger,
            rate_limiter=rate_limiter or build_rate_limiter(settings),
            pipeline=pipeline,
        )

    async def close(self) -> None:
        """Release the HTTP client, the rate-limit backend and the connection pool."""
        await self.ledger.close()
        await self.rate_limiter.close()
        await self.engine.dispose()
        logger.info("Application context closed")
