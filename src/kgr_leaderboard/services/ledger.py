"""Ledger client for the Stellar Horizon query service.

This module provides the LedgerClient class that reads transaction and
operation records from Horizon. It is strictly read-only:

- One ``httpx.AsyncClient`` per process, created lazily and closed at shutdown
- Explicit timeout on every request
- Non-success responses, transport errors and timeouts surface as
  :class:`LedgerUnavailableError`; nothing is retried
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final
from urllib.parse import quote

import httpx

from kgr_leaderboard.core.errors import LedgerUnavailableError
from kgr_leaderboard.core.settings import Settings

# Configure logger for this module
logger = logging.getLogger(__name__)

OPERATIONS_PAGE_LIMIT: Final[int] = 200


@dataclass(frozen=True)
class LedgerConfig:
    """Immutable configuration for ledger reads."""

    base_url: str
    timeout_seconds: float


@dataclass(frozen=True)
class TransactionRecord:
    """The subset of a Horizon transaction the verifier needs."""

    hash: str
    successful: Any
    memo_type: str | None
    created_at: str | None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> TransactionRecord:
        return cls(
            hash=str(payload.get("hash") or payload.get("id") or ""),
            # Kept raw: only a literal ``True`` counts as successful.
            successful=payload.get("successful"),
            memo_type=payload.get("memo_type"),
            created_at=payload.get("created_at"),
        )


@dataclass(frozen=True)
class OperationRecord:
    """The subset of a Horizon operation the verifier needs."""

    type: str | None
    source: str | None
    destination: str | None
    asset_type: str | None
    asset_code: str | None
    asset_issuer: str | None
    amount: str | None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> OperationRecord:
        return cls(
            type=payload.get("type"),
            source=payload.get("from"),
            destination=payload.get("to"),
            asset_type=payload.get("asset_type"),
            asset_code=payload.get("asset_code"),
            asset_issuer=payload.get("asset_issuer"),
            amount=payload.get("amount"),
        )


def load_ledger_config(settings: Settings) -> LedgerConfig:
    """Build configuration object from settings."""

    return LedgerConfig(
        base_url=settings.horizon_url.rstrip("/"),
        timeout_seconds=float(settings.ledger_timeout_seconds),
    )


class LedgerClient:
    """HTTP client wrapper for Horizon reads."""

    def __init__(
        self,
        config: LedgerConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.base_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    headers={"Accept": "application/json"},
                    transport=self._transport,
                )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def _get_json(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        client = await self._ensure_client()
        try:
            response = await client.get(path, params=params)
        except httpx.TimeoutException as exc:
            logger.warning("Horizon request timed out: GET %s", path)
            raise LedgerUnavailableError(f"Horizon request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Horizon request failed: GET %s: %s", path, exc)
            raise LedgerUnavailableError(f"Horizon request failed: {exc}") from exc

        if not response.is_success:
            logger.info("Horizon responded with %s for GET %s", response.status_code, path)
            raise LedgerUnavailableError(status=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise LedgerUnavailableError("Horizon returned a non-JSON body") from exc

    async def fetch_transaction(self, tx_ref: str) -> TransactionRecord:
        """Fetch a single transaction record."""
        payload = await self._get_json(f"/transactions/{quote(tx_ref, safe='')}")
        if not isinstance(payload, Mapping):
            raise LedgerUnavailableError("Unexpected Horizon transaction payload")
        return TransactionRecord.from_payload(payload)

    async def fetch_operations(self, tx_ref: str) -> list[OperationRecord]:
        """Fetch the operations of a transaction, first page only, oldest first."""
        payload = await self._get_json(
            f"/transactions/{quote(tx_ref, safe='')}/operations",
            params={"limit": OPERATIONS_PAGE_LIMIT, "order": "asc"},
        )
        embedded = payload.get("_embedded") if isinstance(payload, Mapping) else None
        records = embedded.get("records") if isinstance(embedded, Mapping) else None
        if not isinstance(records, list):
            return []
        return [
            OperationRecord.from_payload(record)
            for record in records
            if isinstance(record, Mapping)
        ]
