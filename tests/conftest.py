# tests/conftest.py
from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from kgr_leaderboard.core.context import AppContext
from kgr_leaderboard.core.settings import Settings
from kgr_leaderboard.db.session import build_engine, build_sessionmaker, create_tables
from kgr_leaderboard.db.time import utcnow
from kgr_leaderboard.main import create_app
from kgr_leaderboard.services.rate_limit import MemoryRateLimitBackend, SubmissionRateLimiter

HORIZON_URL = "https://horizon.test"
TREASURY = "GDIH6XE3UZ5CW37X3OKVS3SYKHG32PRPXPT3722NJ2AY3MOLCQNMUUTT"
KALE_ISSUER = "GBDVX4VELCDSQ54KQJYTNHXAHFLBCA77ZY2USQBM4CSHTTV7DME7KALE"


def make_address(fill: str = "A") -> str:
    """Return a syntactically valid account ID made of one repeated character."""
    return "G" + fill * 55


PAYER = make_address("B")
OTHER_PAYER = make_address("C")


def horizon_time(moment: datetime) -> str:
    """Format a timestamp the way Horizon does (``2024-05-01T12:00:00Z``)."""
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def payment_op(
    source: str,
    *,
    destination: str = TREASURY,
    amount: str = "1.0000000",
    asset_code: str = "KALE",
    asset_issuer: str = KALE_ISSUER,
    asset_type: str = "credit_alphanum4",
    op_type: str = "payment",
) -> dict[str, Any]:
    return {
        "type": op_type,
        "from": source,
        "to": destination,
        "asset_type": asset_type,
        "asset_code": asset_code,
        "asset_issuer": asset_issuer,
        "amount": amount,
    }


class FakeHorizon:
    """In-memory stand-in for the Horizon REST API, served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.transactions: dict[str, dict[str, Any]] = {}
        self.operations: dict[str, list[dict[str, Any]]] = {}
        self.failures: dict[str, int] = {}
        self.requests: list[httpx.Request] = []

    def add_transaction(
        self,
        tx_hash: str,
        *,
        ops: Iterable[dict[str, Any]] = (),
        successful: Any = True,
        memo_type: str | None = "none",
        age: timedelta = timedelta(minutes=2),
        created_at: str | None = None,
    ) -> None:
        record: dict[str, Any] = {
            "id": tx_hash,
            "hash": tx_hash,
            "successful": successful,
            "created_at": created_at or horizon_time(utcnow() - age),
        }
        if memo_type is not None:
            record["memo_type"] = memo_type
        self.transactions[tx_hash] = record
        self.operations[tx_hash] = list(ops)

    def add_payment(self, tx_hash: str, payer: str = PAYER, **kwargs: Any) -> None:
        """Register a transaction carrying exactly one qualifying payment from ``payer``."""
        self.add_transaction(tx_hash, ops=[payment_op(payer)], **kwargs)

    def fail_with(self, tx_hash: str, status_code: int) -> None:
        self.failures[tx_hash] = status_code

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.strip("/").split("/")
        if len(parts) < 2 or parts[0] != "transactions":
            return httpx.Response(404, json={"status": 404})

        tx_hash = parts[1]
        if tx_hash in self.failures:
            return httpx.Response(self.failures[tx_hash], json={"status": self.failures[tx_hash]})
        if tx_hash not in self.transactions:
            return httpx.Response(404, json={"status": 404, "title": "Resource Missing"})

        if len(parts) == 3 and parts[2] == "operations":
            return httpx.Response(
                200,
                json={"_embedded": {"records": self.operations[tx_hash]}},
            )
        return httpx.Response(200, json=self.transactions[tx_hash])


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway SQLite file and the fake Horizon."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'leaderboard.db'}",
        horizon_url=HORIZON_URL,
        ledger_timeout_seconds=2.0,
        treasury_address=TREASURY,
        asset_issuer=KALE_ISSUER,
        redis_url=None,
    )


@pytest.fixture()
def horizon() -> FakeHorizon:
    return FakeHorizon()


@pytest_asyncio.fixture()
async def engine(test_settings: Settings) -> AsyncIterator[AsyncEngine]:
    # One connection per session so concurrent submissions really contend.
    engine = build_engine(test_settings, poolclass=NullPool)
    await create_tables(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(engine)


@pytest_asyncio.fixture()
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def context(
    test_settings: Settings,
    engine: AsyncEngine,
    horizon: FakeHorizon,
) -> AsyncIterator[AppContext]:
    limiter = SubmissionRateLimiter(
        MemoryRateLimitBackend(),
        limit=test_settings.rate_limit_max,
        window_seconds=test_settings.rate_limit_window_seconds,
    )
    ctx = AppContext.build(
        test_settings,
        engine=engine,
        ledger_transport=httpx.MockTransport(horizon.handler),
        rate_limiter=limiter,
    )
    try:
        yield ctx
    finally:
        await ctx.close()


@pytest.fixture()
def app(test_settings: Settings, context: AppContext) -> FastAPI:
    application = create_app(test_settings)
    application.state.context = context
    return application


@pytest_asyncio.fixture()
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client
