import logging

from fastapi import APIRouter, Depends, HTTPException

from notesapp.api.verifications import get_ledger
from notesapp.core.exceptions import (
    LedgerNotConfiguredHTTPError,
    LedgerNotFoundError,
    LedgerUnconfiguredError,
    LedgerUpstreamError,
)
from notesapp.services.ledger_client import LedgerClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ledger", tags=["ledger"])


@router.get("/txs/{tx_hash}/metadata")
async def get_transaction_metadata(tx_hash: str, ledger: LedgerClient = Depends(get_ledger)):
    """Pass-through to the indexer so the frontend can inspect a note's transaction."""
    logger.info("Received request for transaction metadata: %s", tx_hash)
    try:
        return await ledger.fetch_metadata(tx_hash)
    except LedgerUnconfiguredError as e:
        logger.error("Ledger configuration error: %s", e)
        raise LedgerNotConfiguredHTTPError(str(e)) from e
    except LedgerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except LedgerUpstreamError as e:
        logger.error("Error fetching transaction metadata: %s", e)
        raise HTTPException(status_code=502, detail=str(e)) from e
