import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from notesapp.core.exceptions import (
    LedgerNotConfiguredHTTPError,
    LedgerUnconfiguredError,
    VerificationNotFoundError,
)
from notesapp.database import get_db
from notesapp.schemas.common import ErrorResponse
from notesapp.schemas.verification import (
    VerificationQueueRequest,
    VerificationResponse,
    VerificationStatsResponse,
    WorkerStatusResponse,
)
from notesapp.services import verification_service
from notesapp.services.ledger_client import LedgerClient, get_ledger_client
from notesapp.services.verification_worker import VerificationWorker, get_verification_worker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/verifications", tags=["verifications"])


def get_ledger() -> LedgerClient:
    return get_ledger_client()


def get_worker() -> VerificationWorker:
    return get_verification_worker()


@router.post("", response_model=VerificationResponse, status_code=201)
async def queue_verification(
    req: VerificationQueueRequest,
    db: AsyncSession = Depends(get_db),
):
    logger.info("Received verification request for noteId: %s, txHash: %s", req.note_id, req.tx_hash)
    record = await verification_service.enqueue(
        db, req.note_id, req.tx_hash, req.content_hash, req.owner_wallet
    )
    return VerificationResponse.model_validate(record)


@router.get("", response_model=list[VerificationResponse])
async def list_verifications(db: AsyncSession = Depends(get_db)):
    records = await verification_service.list_all(db)
    return [VerificationResponse.model_validate(r) for r in records]


@router.get("/pending", response_model=list[VerificationResponse])
async def list_pending_verifications(db: AsyncSession = Depends(get_db)):
    records = await verification_service.list_eligible_for_retry(db)
    return [VerificationResponse.model_validate(r) for r in records]


@router.get("/recent", response_model=list[VerificationResponse])
async def list_recent_verifications(
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    records = await verification_service.list_recent(db, limit)
    return [VerificationResponse.model_validate(r) for r in records]


@router.get("/stats", response_model=VerificationStatsResponse)
async def verification_statistics(db: AsyncSession = Depends(get_db)):
    return VerificationStatsResponse(**await verification_service.get_statistics(db))


@router.get("/worker/status", response_model=WorkerStatusResponse)
async def worker_status(worker: VerificationWorker = Depends(get_worker)):
    return WorkerStatusResponse(**worker.status())


@router.get("/tx/{tx_hash}", response_model=VerificationResponse, responses={404: {"model": ErrorResponse}})
async def get_verification_by_tx_hash(tx_hash: str, db: AsyncSession = Depends(get_db)):
    record = await verification_service.find_by_tx_hash(db, tx_hash)
    if record is None:
        raise VerificationNotFoundError(f"for transaction {tx_hash}")
    return VerificationResponse.model_validate(record)


@router.get("/note/{note_id}", response_model=list[VerificationResponse])
async def list_note_verifications(note_id: int, db: AsyncSession = Depends(get_db)):
    records = await verification_service.list_for_note(db, note_id)
    return [VerificationResponse.model_validate(r) for r in records]


@router.get(
    "/note/{note_id}/latest",
    response_model=VerificationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_latest_note_verification(note_id: int, db: AsyncSession = Depends(get_db)):
    record = await verification_service.get_latest_for_note(db, note_id)
    if record is None:
        raise VerificationNotFoundError(f"for note {note_id}")
    return VerificationResponse.model_validate(record)


@router.get("/wallet/{owner_wallet}", response_model=list[VerificationResponse])
async def list_wallet_verifications(owner_wallet: str, db: AsyncSession = Depends(get_db)):
    records = await verification_service.list_by_owner_wallet(db, owner_wallet)
    return [VerificationResponse.model_validate(r) for r in records]


@router.get(
    "/{verification_id}",
    response_model=VerificationResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_verification(verification_id: str, db: AsyncSession = Depends(get_db)):
    record = await verification_service.get_verification(db, verification_id)
    return VerificationResponse.model_validate(record)


@router.post(
    "/{verification_id}/retry",
    response_model=VerificationResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def retry_verification(
    verification_id: str,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
):
    try:
        record = await verification_service.retry_manually(db, verification_id, ledger)
    except LedgerUnconfiguredError as e:
        raise LedgerNotConfiguredHTTPError(str(e)) from e
    return VerificationResponse.model_validate(record)
