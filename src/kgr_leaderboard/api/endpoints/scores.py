# src/kgr_leaderboard/api/endpoints/scores.py
"""Score submission and leaderboard endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import PlainTextResponse

from kgr_leaderboard.api.dependencies import (
    ClientIpDep,
    ContextDep,
    JsonBodyDep,
    SessionDep,
    enforce_submit_rate_limit,
)
from kgr_leaderboard.core.errors import SubmissionError
from kgr_leaderboard.schemas import (
    LeaderboardEntry,
    LeaderboardResponse,
    RateLimitedResponse,
    SubmitScoreResponse,
)
from kgr_leaderboard.services.leaderboard import LeaderboardStore, clamp_limit

logger = logging.getLogger(__name__)

router = APIRouter(tags=["leaderboard"])


@router.post(
    "/submitScore",
    response_model=SubmitScoreResponse,
    dependencies=[Depends(enforce_submit_rate_limit)],
    responses={
        status.HTTP_400_BAD_REQUEST: {"description": "Validation or verification failure"},
        status.HTTP_409_CONFLICT: {"description": "Transaction already used"},
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": RateLimitedResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"description": "Ledger or server failure"},
    },
)
async def submit_score(
    request: Request,
    context: ContextDep,
    body: JsonBodyDep,
    ip: ClientIpDep,
) -> SubmitScoreResponse | PlainTextResponse:
    """Verify a paid submission on the ledger and record its score.

    Args:
        request: Incoming request, used for the user agent
        context: Application context with the submission pipeline
        body: ``{"txHash": str, "address": str, "score": number}``
        ip: Resolved client IP, stored as provenance

    Returns:
        The top-10 snapshot after the new entry was stored and the board pruned
    """
    try:
        result = await context.pipeline.run(
            body,
            ip=ip,
            user_agent=request.headers.get("user-agent"),
        )
    except SubmissionError:
        raise
    except Exception as exc:
        logger.exception("Unexpected failure while handling a score submission")
        return PlainTextResponse(
            str(exc) or "server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return SubmitScoreResponse(
        ok=True,
        top10=[LeaderboardEntry.model_validate(row) for row in result.top],
    )


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    db: SessionDep,
    limit: str | None = Query(default=None),
) -> LeaderboardResponse:
    """Return the top of the leaderboard.

    ``limit`` is clamped to ``[1, 100]`` and defaults to 50.
    """
    rows = await LeaderboardStore(db).top_n(clamp_limit(limit))
    return LeaderboardResponse(top=[LeaderboardEntry.model_validate(row) for row in rows])
