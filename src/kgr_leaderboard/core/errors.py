"""Error taxonomy for score submissions.

Every rejection a submitter can observe is a :class:`SubmissionError`. The
HTTP layer renders ``message`` as the response body and ``status_code`` as
the status; ``reason`` is the stable machine-readable code used in logs and
tests.
"""

from __future__ import annotations

HTTP_BAD_REQUEST = 400
HTTP_CONFLICT = 409
HTTP_TOO_MANY_REQUESTS = 429
HTTP_INTERNAL_SERVER_ERROR = 500


class SubmissionError(Exception):
    """Base class for submission rejections."""

    status_code: int = HTTP_INTERNAL_SERVER_ERROR
    reason: str = "server_error"
    default_message: str = "server error"

    def __init__(self, message: str | None = None, *, reason: str | None = None) -> None:
        self.message = message or self.default_message
        if reason is not None:
            self.reason = reason
        super().__init__(self.message)


class MalformedRequestError(SubmissionError):
    """Missing or mistyped fields, or an address with the wrong syntax."""

    status_code = HTTP_BAD_REQUEST
    reason = "missing_fields"
    default_message = "txHash, address, score required"


class VerificationRejectedError(SubmissionError):
    """The ledger does not back the claimed payment."""

    status_code = HTTP_BAD_REQUEST
    reason = "verification_rejected"
    default_message = "payment verification failed"


class ReplayDetectedError(SubmissionError):
    """The transaction reference has already been credited."""

    status_code = HTTP_CONFLICT
    reason = "tx_already_used"
    default_message = "tx already used"


class LedgerUnavailableError(SubmissionError):
    """The ledger query service failed or answered with a non-success status."""

    reason = "ledger_unavailable"
    default_message = "ledger unavailable"

    def __init__(self, message: str | None = None, *, status: int | None = None) -> None:
        self.status = status
        if message is None and status is not None:
            message = f"Horizon error {status}"
        super().__init__(message)


class StorageFailureError(SubmissionError):
    """Unexpected persistence failure other than the uniqueness constraint."""

    reason = "storage_failure"
    default_message = "storage failure"


class RateLimiterUnavailableError(SubmissionError):
    """The shared rate-limit counter store could not be reached."""

    reason = "rate_limiter_unavailable"
    default_message = "rate limiter unavailable"


class DuplicateTransactionError(Exception):
    """Raised by the store when the ``tx_hash`` unique constraint rejects an insert."""

    def __init__(self, tx_hash: str) -> None:
        self.tx_hash = tx_hash
        super().__init__(f"Transaction {tx_hash} already recorded")


class RateLimitedError(SubmissionError):
    """Too many submissions for one key inside the current window."""

    status_code = HTTP_TOO_MANY_REQUESTS
    reason = "rate_limited"
    default_message = "Too many requests. Try again in a minute."

    def __init__(
        self,
        message: str | None = None,
        *,
        limit: int,
        reset_seconds: int,
        retry_after: int = 60,
    ) -> None:
        self.limit = limit
        self.reset_seconds = reset_seconds
        self.retry_after = retry_after
        super().__init__(message)

    def headers(self) -> dict[str, str]:
        """Return the response headers that advertise the limit."""
        return {
            "Retry-After": str(self.retry_after),
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": "0",
            "RateLimit-Reset": str(self.reset_seconds),
        }
