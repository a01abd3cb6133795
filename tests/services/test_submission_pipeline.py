"""Tests for the submission pipeline."""

from __future__ import annotations

import asyncio

import pytest

from kgr_leaderboard.core.context import AppContext
from kgr_leaderboard.core.errors import (
    LedgerUnavailableError,
    MalformedRequestError,
    ReplayDetectedError,
    VerificationRejectedError,
)
from kgr_leaderboard.services.leaderboard import LeaderboardStore
from kgr_leaderboard.services.replay import ReplayGuard
from kgr_leaderboard.services.submission import ScoreSubmission, SubmissionPipeline, SubmissionResult
from tests.conftest import OTHER_PAYER, PAYER, FakeHorizon, make_address, payment_op


def _body(tx_hash: str = "T1", address: str = PAYER, score: object = 42.9) -> dict:
    return {"txHash": tx_hash, "address": address, "score": score}


async def _stored_count(context: AppContext) -> int:
    async with context.session_factory() as session:
        return await LeaderboardStore(session).count()


@pytest.mark.parametrize(
    "body",
    [
        None,
        [],
        {},
        {"address": PAYER, "score": 1},
        {"txHash": "", "address": PAYER, "score": 1},
        {"txHash": "T1", "score": 1},
        {"txHash": "T1", "address": "", "score": 1},
        {"txHash": "T1", "address": PAYER},
        {"txHash": "T1", "address": PAYER, "score": "10"},
        {"txHash": "T1", "address": PAYER, "score": True},
        {"txHash": "T1", "address": PAYER, "score": None},
        {"txHash": 123, "address": PAYER, "score": 1},
    ],
)
def test_parse_rejects_bad_shapes(body: object) -> None:
    with pytest.raises(MalformedRequestError) as excinfo:
        ScoreSubmission.parse(body)
    assert excinfo.value.reason == "missing_fields"
    assert excinfo.value.status_code == 400


def test_parse_keeps_provenance() -> None:
    submission = ScoreSubmission.parse(_body(), ip="1.2.3.4", user_agent="game/1.0")

    assert submission.tx_ref == "T1"
    assert submission.ip == "1.2.3.4"
    assert submission.user_agent == "game/1.0"


@pytest.mark.asyncio
async def test_accepted_submission_stores_normalized_score(
    context: AppContext, horizon: FakeHorizon
) -> None:
    horizon.add_payment("T1", PAYER)

    result = await context.pipeline.run(
        _body(address=PAYER.lower()), ip="1.2.3.4", user_agent="game/1.0"
    )

    assert isinstance(result, SubmissionResult)
    assert result.entry.score == 42
    assert result.entry.address == PAYER
    assert result.entry.ip == "1.2.3.4"
    assert result.entry.user_agent == "game/1.0"
    assert [row.tx_hash for row in result.top] == ["T1"]
    async with context.session_factory() as session:
        assert await ReplayGuard(session).is_consumed("T1")


@pytest.mark.asyncio
async def test_paid_at_comes_from_ledger(context: AppContext, horizon: FakeHorizon) -> None:
    horizon.add_payment("T1", PAYER, created_at="2099-01-01T00:00:00Z")
    # Far-future timestamps are within the window; paid_at mirrors the ledger.
    result = await context.pipeline.run(_body())

    assert result.entry.paid_at.year == 2099


@pytest.mark.asyncio
async def test_out_of_range_score_is_clamped(context: AppContext, horizon: FakeHorizon) -> None:
    horizon.add_payment("T1", PAYER)
    horizon.add_payment("T2", PAYER)

    high = await context.pipeline.run(_body("T1", score=5e12))
    low = await context.pipeline.run(_body("T2", score=-20))

    assert high.entry.score == 1_000_000_000
    assert low.entry.score == 0


@pytest.mark.asyncio
async def test_bad_address_makes_no_network_call(
    context: AppContext, horizon: FakeHorizon
) -> None:
    with pytest.raises(MalformedRequestError) as excinfo:
        await context.pipeline.run(_body(address="GNOTVALID"))

    assert excinfo.value.reason == "bad_address"
    assert excinfo.value.message == "bad address"
    assert horizon.requests == []


@pytest.mark.asyncio
async def test_sequential_replay_is_rejected(context: AppContext, horizon: FakeHorizon) -> None:
    horizon.add_payment("T1", PAYER)
    await context.pipeline.run(_body())
    requests_before = len(horizon.requests)

    with pytest.raises(ReplayDetectedError) as excinfo:
        await context.pipeline.run(_body(address=OTHER_PAYER, score=7))

    assert excinfo.value.status_code == 409
    assert excinfo.value.message == "tx already used"
    # The pre-check answers before any ledger round trip.
    assert len(horizon.requests) == requests_before
    assert await _stored_count(context) == 1


@pytest.mark.asyncio
async def test_constraint_catches_replay_that_slips_past_precheck(
    context: AppContext, horizon: FakeHorizon, mocker
) -> None:
    horizon.add_payment("T1", PAYER)
    await context.pipeline.run(_body())
    mocker.patch.object(ReplayGuard, "is_consumed", return_value=False)

    with pytest.raises(ReplayDetectedError):
        await context.pipeline.run(_body(score=99))

    assert await _stored_count(context) == 1


@pytest.mark.asyncio
async def test_concurrent_duplicates_yield_one_success(
    context: AppContext, horizon: FakeHorizon
) -> None:
    horizon.add_payment("T1", PAYER)

    outcomes = await asyncio.gather(
        context.pipeline.run(_body(score=10)),
        context.pipeline.run(_body(score=20)),
        return_exceptions=True,
    )

    successes = [o for o in outcomes if isinstance(o, SubmissionResult)]
    replays = [o for o in outcomes if isinstance(o, ReplayDetectedError)]
    assert len(successes) == 1
    assert len(replays) == 1
    assert await _stored_count(context) == 1


@pytest.mark.asyncio
async def test_memo_rejection_writes_nothing(context: AppContext, horizon: FakeHorizon) -> None:
    horizon.add_payment("T1", PAYER, memo_type="text")

    with pytest.raises(VerificationRejectedError) as excinfo:
        await context.pipeline.run(_body())

    assert excinfo.value.reason == "memo_not_allowed"
    assert excinfo.value.message == "memos not allowed"
    assert await _stored_count(context) == 0


@pytest.mark.asyncio
async def test_multiple_qualifying_payments_rejected(
    context: AppContext, horizon: FakeHorizon
) -> None:
    horizon.add_transaction("T1", ops=[payment_op(PAYER), payment_op(PAYER)])

    with pytest.raises(VerificationRejectedError) as excinfo:
        await context.pipeline.run(_body())

    assert excinfo.value.reason == "no_valid_payment"
    assert await _stored_count(context) == 0


@pytest.mark.asyncio
async def test_ledger_failure_is_distinct_from_rejection(
    context: AppContext, horizon: FakeHorizon
) -> None:
    horizon.fail_with("T1", 502)

    with pytest.raises(LedgerUnavailableError) as excinfo:
        await context.pipeline.run(_body())

    assert excinfo.value.status_code == 500
    assert excinfo.value.reason == "ledger_unavailable"
    assert await _stored_count(context) == 0


@pytest.mark.asyncio
async def test_capacity_is_enforced_after_every_submission(
    context: AppContext, horizon: FakeHorizon
) -> None:
    pipeline = SubmissionPipeline(
        context.session_factory,
        context.pipeline.verifier,
        capacity=5,
        snapshot_size=3,
    )
    for i in range(8):
        payer = make_address("ABCDEFGH"[i])
        horizon.add_payment(f"T{i}", payer)
        result = await pipeline.run(_body(f"T{i}", payer, score=i * 10))
        assert await _stored_count(context) <= 5
        assert len(result.top) == min(i + 1, 3)

    async with context.session_factory() as session:
        survivors = await LeaderboardStore(session).top_n(100)
    assert [row.score for row in survivors] == [70, 60, 50, 40, 30]
    assert "T0" not in {row.tx_hash for row in survivors}


@pytest.mark.asyncio
@pytest.mark.parametrize("padded", [" " + PAYER + "\n", PAYER + " "])
async def test_padded_address_is_bad_address(
    context: AppContext, horizon: FakeHorizon, padded: str
) -> None:
    horizon.add_payment("T1", PAYER)

    with pytest.raises(MalformedRequestError) as excinfo:
        await context.pipeline.run(_body(address=padded))

    assert excinfo.value.reason == "bad_address"
    assert horizon.requests == []
    assert await _stored_count(context) == 0
