# src/kgr_leaderboard/services/__init__.py
"""Business logic services for the leaderboard application."""

from .leaderboard import LeaderboardStore, clamp_limit
from .ledger import LedgerClient, OperationRecord, TransactionRecord
from .rate_limit import SubmissionRateLimiter
from .replay import ReplayGuard
from .scoring import normalize_score
from .submission import SubmissionPipeline, SubmissionResult
from .verification import (
    PaymentAccepted,
    PaymentPolicy,
    PaymentRejected,
    PaymentVerdict,
    PaymentVerifier,
    RejectionReason,
)

__all__ = [
    "LeaderboardStore",
    "clamp_limit",
    "LedgerClient",
    "OperationRecord",
    "TransactionRecord",
    "SubmissionRateLimiter",
    "ReplayGuard",
    "normalize_score",
    "SubmissionPipeline",
    "SubmissionResult",
    "PaymentPolicy",
    "PaymentAccepted",
    "PaymentRejected",
    "PaymentVerdict",
    "PaymentVerifier",
    "RejectionReason",
]
