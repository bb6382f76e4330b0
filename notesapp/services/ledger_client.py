"""Ledger indexer client.

The verification subsystem only needs one call from the indexer: the list of
metadata entries attached to a transaction. The response shape is the
Blockfrost ``/txs/{hash}/metadata`` contract::

    [{"label": "674", "json_metadata": {...}}, ...]

Requires: LEDGER_PROJECT_ID (and optionally LEDGER_API_URL) env vars.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from notesapp.config import LEDGER_PLACEHOLDER_PROJECT_ID
from notesapp.core.exceptions import (
    LedgerNotFoundError,
    LedgerUnconfiguredError,
    LedgerUpstreamError,
)

logger = logging.getLogger(__name__)


class LedgerClient(Protocol):
    async def fetch_metadata(self, tx_hash: str) -> list[dict[str, Any]]:
        ...


class BlockfrostLedgerClient:
    """Thin adapter over the Blockfrost-compatible indexer HTTP API."""

    def __init__(
        self,
        api_url: str,
        project_id: str = "",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.project_id = project_id
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        if not self.configured:
            logger.warning(
                "Ledger project id is not configured. Set the LEDGER_PROJECT_ID environment variable."
            )

    @property
    def configured(self) -> bool:
        return bool(self.project_id) and self.project_id != LEDGER_PLACEHOLDER_PROJECT_ID

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def fetch_metadata(self, tx_hash: str) -> list[dict[str, Any]]:
        """Return the metadata entries attached to ``tx_hash``."""
        if not self.configured:
            raise LedgerUnconfiguredError()

        url = f"{self.api_url}/txs/{tx_hash}/metadata"
        try:
            logger.info("Fetching transaction metadata for hash: %s", tx_hash)
            resp = await self._get_client().get(url, headers={"project_id": self.project_id})
        except httpx.TimeoutException as e:
            raise LedgerUpstreamError(f"Ledger request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise LedgerUpstreamError(f"Failed to fetch transaction metadata: {e}") from e

        if resp.status_code == 404:
            logger.warning("Transaction not found: %s", tx_hash)
            raise LedgerNotFoundError(tx_hash)
        if resp.status_code >= 400:
            logger.error("Ledger API error for hash %s: %s", tx_hash, resp.status_code)
            raise LedgerUpstreamError(
                f"Ledger API error: {resp.status_code} - {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise LedgerUpstreamError(f"Ledger returned invalid JSON: {e}") from e
        if body is None:
            return []
        if not isinstance(body, list):
            raise LedgerUpstreamError(
                f"Unexpected metadata payload type: {type(body).__name__}"
            )
        return body

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


_ledger_client: BlockfrostLedgerClient | None = None


def get_ledger_client() -> BlockfrostLedgerClient:
    """Return the process-wide ledger client built from settings."""
    global _ledger_client
    if _ledger_client is None:
        from notesapp.config import settings

        _ledger_client = BlockfrostLedgerClient(
            api_url=settings.ledger_api_url,
            project_id=settings.ledger_project_id,
            timeout_seconds=settings.ledger_timeout_seconds,
        )
    return _ledger_client


async def close_ledger_client() -> None:
    global _ledger_client
    if _ledger_client is not None:
        await _ledger_client.aclose()
        _ledger_client = None
