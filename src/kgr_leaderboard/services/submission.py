"""Score submission pipeline.

A submission moves through these stages, leaving early on any rejection::

    RECEIVED -> ADDRESS_VALIDATED -> REPLAY_CHECKED -> LEDGER_VERIFIED
             -> STORED -> PRUNED -> RESPONDED

Nothing is written before LEDGER_VERIFIED succeeds. The replay pre-check is a
fast path; the unique constraint checked during STORED is what guarantees a
transaction is credited once, even when two submissions race.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kgr_leaderboard.core.errors import (
    DuplicateTransactionError,
    MalformedRequestError,
    ReplayDetectedError,
    VerificationRejectedError,
)
from kgr_leaderboard.models import ScoreEntry
from kgr_leaderboard.services.leaderboard import LeaderboardStore
from kgr_leaderboard.services.replay import ReplayGuard
from kgr_leaderboard.services.scoring import normalize_score
from kgr_leaderboard.services.verification import (
    PaymentRejected,
    PaymentVerifier,
    RejectionReason,
    is_valid_address,
    normalize_address,
)

logger = logging.getLogger(__name__)


class SubmissionStage(str, Enum):
    RECEIVED = "received"
    ADDRESS_VALIDATED = "address_validated"
    REPLAY_CHECKED = "replay_checked"
    LEDGER_VERIFIED = "ledger_verified"
    STORED = "stored"
    PRUNED = "pruned"
    RESPONDED = "responded"


@dataclass(frozen=True)
class ScoreSubmission:
    """A shape-checked submission."""

    tx_ref: str
    address: str
    score: float | int
    ip: str | None = None
    user_agent: str | None = None

    @classmethod
    def parse(
        cls,
        body: object,
        *,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> ScoreSubmission:
        """Validate the request body shape.

        Raises:
            MalformedRequestError: If ``txHash`` or ``address`` is missing or
                empty, or ``score`` is not a JSON number.
        """
        if not isinstance(body, Mapping):
            raise MalformedRequestError()
        tx_ref = body.get("txHash")
        address = body.get("address")
        score = body.get("score")
        if not isinstance(tx_ref, str) or not tx_ref:
            raise MalformedRequestError()
        if not isinstance(address, str) or not address:
            raise MalformedRequestError()
        # bool is an int subclass, but JSON true is not a score
        if isinstance(score, bool) or not isinstance(score, int | float):
            raise MalformedRequestError()
        return cls(tx_ref=tx_ref, address=address, score=score, ip=ip, user_agent=user_agent)


@dataclass(frozen=True)
class SubmissionResult:
    """An accepted submission and the ranking snapshot taken after pruning."""

    entry: ScoreEntry
    top: list[ScoreEntry]
    pruned: int


class SubmissionPipeline:
    """Turns an untrusted submission into a leaderboard entry, or rejects it."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        verifier: PaymentVerifier,
        *,
        capacity: int = 100,
        snapshot_size: int = 10,
    ) -> None:
        self.session_factory = session_factory
        self.verifier = verifier
        self.capacity = capacity
        self.snapshot_size = snapshot_size

    def _advance(self, stage: SubmissionStage, tx_ref: str) -> None:
        logger.debug("Submission %s reached %s", tx_ref, stage.value)

    async def run(self, body: Mapping[str, Any] | Any, **provenance: Any) -> SubmissionResult:
        """Run a raw request body through every stage.

        Raises:
            SubmissionError: The specific rejection for the first failing stage.
        """
        return await self.submit(ScoreSubmission.parse(body, **provenance))

    async def submit(self, submission: ScoreSubmission) -> SubmissionResult:
        tx_ref = submission.tx_ref
        self._advance(SubmissionStage.RECEIVED, tx_ref)

        address = normalize_address(submission.address)
        if not is_valid_address(address):
            logger.info("Rejected %s: %s", tx_ref, RejectionReason.BAD_ADDRESS.value)
            raise MalformedRequestError(
                RejectionReason.BAD_ADDRESS.message,
                reason=RejectionReason.BAD_ADDRESS.value,
            )
        self._advance(SubmissionStage.ADDRESS_VALIDATED, tx_ref)

        async with self.session_factory() as session:
            consumed = await ReplayGuard(session).is_consumed(tx_ref)
        if consumed:
            logger.info("Rejected %s: already used", tx_ref)
            raise ReplayDetectedError()
        self._advance(SubmissionStage.REPLAY_CHECKED, tx_ref)

        verdict = await self.verifier.verify(tx_ref, address)
        if isinstance(verdict, PaymentRejected):
            logger.info("Rejected %s from %s: %s", tx_ref, address, verdict.reason.value)
            raise VerificationRejectedError(
                verdict.reason.message,
                reason=verdict.reason.value,
            )
        self._advance(SubmissionStage.LEDGER_VERIFIED, tx_ref)

        entry = ScoreEntry(
            address=address,
            score=normalize_score(submission.score),
            tx_hash=tx_ref,
            paid_at=verdict.paid_at,
            ip=submission.ip,
            user_agent=submission.user_agent,
        )
        async with self.session_factory() as session:
            store = LeaderboardStore(session)
            try:
                await store.insert(entry)
            except DuplicateTransactionError as exc:
                logger.info("Rejected %s: lost insert race to a duplicate", tx_ref)
                raise ReplayDetectedError() from exc
            self._advance(SubmissionStage.STORED, tx_ref)

            pruned = await store.prune(self.capacity)
            self._advance(SubmissionStage.PRUNED, tx_ref)

            top = await store.top_n(self.snapshot_size)

        logger.info("Accepted %s from %s with score %d", tx_ref, address, entry.score)
        self._advance(SubmissionStage.RESPONDED, tx_ref)
        return SubmissionResult(entry=entry, top=top, pruned=pruned)
