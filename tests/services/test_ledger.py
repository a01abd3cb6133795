"""Tests for the Horizon ledger client."""

from __future__ import annotations

import httpx
import pytest

from kgr_leaderboard.core.errors import LedgerUnavailableError
from kgr_leaderboard.services.ledger import LedgerClient, LedgerConfig
from tests.conftest import HORIZON_URL, PAYER, TREASURY, FakeHorizon


def _client(handler) -> LedgerClient:
    return LedgerClient(
        LedgerConfig(base_url=HORIZON_URL, timeout_seconds=1.0),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_fetch_transaction_maps_fields(horizon: FakeHorizon) -> None:
    horizon.add_payment("abc123", memo_type="text")
    client = _client(horizon.handler)
    try:
        tx = await client.fetch_transaction("abc123")
    finally:
        await client.close()

    assert tx.hash == "abc123"
    assert tx.successful is True
    assert tx.memo_type == "text"
    assert tx.created_at == horizon.transactions["abc123"]["created_at"]
    request = horizon.requests[0]
    assert request.url.path == "/transactions/abc123"
    assert request.headers["accept"] == "application/json"


@pytest.mark.asyncio
async def test_fetch_operations_uses_page_limit_and_order(horizon: FakeHorizon) -> None:
    horizon.add_payment("abc123")
    client = _client(horizon.handler)
    try:
        ops = await client.fetch_operations("abc123")
    finally:
        await client.close()

    assert len(ops) == 1
    op = ops[0]
    assert op.type == "payment"
    assert op.source == PAYER
    assert op.destination == TREASURY
    assert op.amount == "1.0000000"
    request = horizon.requests[0]
    assert request.url.path == "/transactions/abc123/operations"
    assert request.url.params["limit"] == "200"
    assert request.url.params["order"] == "asc"


@pytest.mark.asyncio
async def test_missing_embedded_records_is_empty() -> None:
    client = _client(lambda request: httpx.Response(200, json={"_links": {}}))
    try:
        assert await client.fetch_operations("abc123") == []
    finally:
        await client.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [404, 429, 500, 503])
async def test_non_success_status_raises_with_code(horizon: FakeHorizon, status_code: int) -> None:
    horizon.add_payment("abc123")
    horizon.fail_with("abc123", status_code)
    client = _client(horizon.handler)
    try:
        with pytest.raises(LedgerUnavailableError) as excinfo:
            await client.fetch_transaction("abc123")
    finally:
        await client.close()

    assert excinfo.value.status == status_code
    assert excinfo.value.message == f"Horizon error {status_code}"
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_timeout_is_ledger_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(handler)
    try:
        with pytest.raises(LedgerUnavailableError) as excinfo:
            await client.fetch_transaction("abc123")
    finally:
        await client.close()

    assert excinfo.value.status is None
    assert "timed out" in excinfo.value.message


@pytest.mark.asyncio
async def test_transport_error_is_ledger_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    try:
        with pytest.raises(LedgerUnavailableError):
            await client.fetch_operations("abc123")
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_non_json_body_is_ledger_unavailable() -> None:
    client = _client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))
    try:
        with pytest.raises(LedgerUnavailableError):
            await client.fetch_transaction("abc123")
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_transaction_reference_is_a_single_path_segment(horizon: FakeHorizon) -> None:
    client = _client(horizon.handler)
    try:
        with pytest.raises(LedgerUnavailableError):
            await client.fetch_transaction("../accounts/x")
    finally:
        await client.close()

    assert horizon.requests[0].url.raw_path.startswith(b"/transactions/..%2Faccounts%2Fx")
