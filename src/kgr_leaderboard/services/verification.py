"""Payment verification against the ledger.

The verifier decides whether a transaction reference backs a submission:
a successful, memo-free, recent transaction carrying exactly one payment of
the configured asset and amount from the claimed address to the treasury.
It performs reads only.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import ClassVar, Final

from kgr_leaderboard.core.settings import Settings
from kgr_leaderboard.db.time import parse_ledger_timestamp, utcnow
from kgr_leaderboard.services.ledger import LedgerClient, OperationRecord, TransactionRecord

logger = logging.getLogger(__name__)

ADDRESS_PATTERN: Final[re.Pattern[str]] = re.compile(r"^G[A-Z2-7]{55}$")
CREDIT_ASSET_TYPES: Final[frozenset[str]] = frozenset({"credit_alphanum4", "credit_alphanum12"})
NO_MEMO: Final[str] = "none"


class RejectionReason(str, Enum):
    """Why a claimed payment was not accepted."""

    BAD_ADDRESS = "bad_address"
    TX_NOT_SUCCESSFUL = "tx_not_successful"
    MEMO_NOT_ALLOWED = "memo_not_allowed"
    TX_TOO_OLD = "tx_too_old"
    NO_VALID_PAYMENT = "no_valid_payment"

    @property
    def message(self) -> str:
        return _REJECTION_MESSAGES[self]


_REJECTION_MESSAGES: Final[dict[RejectionReason, str]] = {
    RejectionReason.BAD_ADDRESS: "bad address",
    RejectionReason.TX_NOT_SUCCESSFUL: "tx not successful",
    RejectionReason.MEMO_NOT_ALLOWED: "memos not allowed",
    RejectionReason.TX_TOO_OLD: "tx too old",
    RejectionReason.NO_VALID_PAYMENT: "no valid KALE payment op to treasury from address",
}


@dataclass(frozen=True)
class PaymentPolicy:
    """What a qualifying payment looks like."""

    treasury_address: str
    asset_code: str
    asset_issuer: str
    amount: Decimal
    recency_window: timedelta

    @classmethod
    def from_settings(cls, settings: Settings) -> PaymentPolicy:
        return cls(
            treasury_address=settings.treasury_address,
            asset_code=settings.asset_code,
            asset_issuer=settings.asset_issuer,
            amount=Decimal(settings.payment_amount),
            recency_window=timedelta(minutes=settings.recency_window_minutes),
        )


@dataclass(frozen=True)
class PaymentAccepted:
    """The ledger backs the claim; ``paid_at`` is the transaction's ledger time."""

    paid_at: datetime
    accepted: ClassVar[bool] = True
    reason: ClassVar[None] = None


@dataclass(frozen=True)
class PaymentRejected:
    """The first check that failed."""

    reason: RejectionReason
    accepted: ClassVar[bool] = False
    paid_at: ClassVar[None] = None


PaymentVerdict = PaymentAccepted | PaymentRejected


def normalize_address(raw: str) -> str:
    """Upper-case a claimed address. Surrounding whitespace is kept and fails validation."""
    return raw.upper()


def is_valid_address(address: str) -> bool:
    """Return True if ``address`` looks like a Stellar public account ID."""
    return ADDRESS_PATTERN.fullmatch(address) is not None


def _amount_matches(raw: str | None, expected: Decimal) -> bool:
    if not isinstance(raw, str):
        return False
    try:
        return Decimal(raw) == expected
    except InvalidOperation:
        return False


class PaymentVerifier:
    """Checks a claimed payment against the ledger."""

    def __init__(
        self,
        ledger: LedgerClient,
        policy: PaymentPolicy,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.ledger = ledger
        self.policy = policy
        self._clock = clock

    def check_transaction(self, tx: TransactionRecord) -> RejectionReason | None:
        """Apply the transaction-level checks: success flag, memo, recency."""
        if tx.successful is not True:
            return RejectionReason.TX_NOT_SUCCESSFUL
        if tx.memo_type and tx.memo_type != NO_MEMO:
            return RejectionReason.MEMO_NOT_ALLOWED

        created_at = parse_ledger_timestamp(tx.created_at)
        if created_at is None or self._clock() - created_at > self.policy.recency_window:
            return RejectionReason.TX_TOO_OLD
        return None

    def is_qualifying_payment(self, op: OperationRecord, payer: str) -> bool:
        """Return True if ``op`` is the fixed-asset, fixed-amount payment from ``payer``."""
        policy = self.policy
        return (
            op.type == "payment"
            and op.destination == policy.treasury_address
            and op.asset_type in CREDIT_ASSET_TYPES
            and op.asset_code == policy.asset_code
            and op.asset_issuer == policy.asset_issuer
            and _amount_matches(op.amount, policy.amount)
            and op.source == payer
        )

    def count_qualifying_payments(self, ops: Sequence[OperationRecord], payer: str) -> int:
        return sum(1 for op in ops if self.is_qualifying_payment(op, payer))

    async def verify(self, tx_ref: str, claimed_address: str) -> PaymentVerdict:
        """Run every check in order; the first failing one decides the verdict.

        Raises:
            LedgerUnavailableError: If Horizon cannot be read.
        """
        address = normalize_address(claimed_address)
        if not is_valid_address(address):
            return PaymentRejected(RejectionReason.BAD_ADDRESS)

        tx = await self.ledger.fetch_transaction(tx_ref)
        reason = self.check_transaction(tx)
        if reason is not None:
            logger.debug("Transaction %s rejected: %s", tx_ref, reason.value)
            return PaymentRejected(reason)

        ops = await self.ledger.fetch_operations(tx_ref)
        matches = self.count_qualifying_payments(ops, address)
        if matches != 1:
            logger.debug("Transaction %s has %d qualifying payments", tx_ref, matches)
            return PaymentRejected(RejectionReason.NO_VALID_PAYMENT)

        paid_at = parse_ledger_timestamp(tx.created_at)
        if paid_at is None:
            return PaymentRejected(RejectionReason.TX_TOO_OLD)
        return PaymentAccepted(paid_at)
