"""Transaction verification service.

Queues note transactions for on-chain verification, runs single
reconciliation attempts against the ledger indexer, and answers the
read-side queries used by the API and the background worker.

Every status change goes through ``_transition``: a conditional UPDATE keyed
on ``(id, version)``. A manual retry racing the scheduled worker therefore
cannot silently overwrite the other side's result; the loser sees no row
updated and backs off.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from notesapp.config import settings
from notesapp.core.exceptions import (
    InvalidVerificationRequestError,
    InvalidVerificationStateError,
    LedgerUnconfiguredError,
    VerificationNotFoundError,
)
from notesapp.models.transaction_verification import (
    RETRYABLE_STATUSES,
    TransactionVerification,
    VerificationStatus,
    as_utc,
    new_record,
    utcnow,
)
from notesapp.services import reconciler
from notesapp.services.ledger_client import LedgerClient, get_ledger_client
from notesapp.services.note_service import notify_verification_outcome

logger = logging.getLogger(__name__)

_MAX_FIELD_LENGTH = 128
_RETRYABLE_VALUES = [s.value for s in RETRYABLE_STATUSES]


# ---------------------------------------------------------------------------
# Enqueue
# ---------------------------------------------------------------------------

def _validate_enqueue(
    note_id: Any, tx_hash: Any, content_hash: Any, owner_wallet: Any
) -> str:
    if isinstance(note_id, bool) or not isinstance(note_id, int) or note_id <= 0:
        raise InvalidVerificationRequestError("note_id must be a positive integer")
    if not isinstance(tx_hash, str) or not tx_hash.strip():
        raise InvalidVerificationRequestError("tx_hash is required")
    tx_hash = tx_hash.strip()
    if len(tx_hash) > _MAX_FIELD_LENGTH:
        raise InvalidVerificationRequestError(f"tx_hash exceeds {_MAX_FIELD_LENGTH} characters")
    for name, value in (("content_hash", content_hash), ("owner_wallet", owner_wallet)):
        if value is None:
            continue
        if not isinstance(value, str):
            raise InvalidVerificationRequestError(f"{name} must be a string")
        if len(value) > _MAX_FIELD_LENGTH:
            raise InvalidVerificationRequestError(f"{name} exceeds {_MAX_FIELD_LENGTH} characters")
    return tx_hash


async def enqueue(
    db: AsyncSession,
    note_id: int,
    tx_hash: str,
    content_hash: str | None,
    owner_wallet: str | None = None,
    max_retries: int | None = None,
) -> TransactionVerification:
    """Queue a transaction for verification.

    Idempotent on ``tx_hash``: an existing record is returned unchanged.
    """
    tx_hash = _validate_enqueue(note_id, tx_hash, content_hash, owner_wallet)
    if max_retries is None:
        max_retries = settings.verification_max_retries
    elif isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 1:
        raise InvalidVerificationRequestError("max_retries must be a positive integer")
    logger.info("Queueing transaction for verification - noteId: %s, txHash: %s", note_id, tx_hash)

    existing = await find_by_tx_hash(db, tx_hash)
    if existing is not None:
        logger.warning("Verification already exists for txHash: %s", tx_hash)
        return existing

    record = new_record(
        note_id=note_id,
        tx_hash=tx_hash,
        content_hash=content_hash,
        owner_wallet=owner_wallet,
        max_retries=max_retries,
    )
    db.add(record)
    try:
        await db.commit()
    except IntegrityError:
        # Lost an insert race on the unique tx_hash index; the winner's row stands.
        await db.rollback()
        existing = await find_by_tx_hash(db, tx_hash)
        if existing is None:
            raise
        return existing

    await db.refresh(record)
    logger.info("Created verification record with ID: %s for txHash: %s", record.id, tx_hash)
    return record


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------

async def _transition(
    db: AsyncSession,
    record: TransactionVerification,
    values: dict[str, Any],
    now: datetime | None = None,
) -> bool:
    """Apply ``values`` only if nobody else moved the record since we read it."""
    stmt = (
        update(TransactionVerification)
        .where(
            TransactionVerification.id == record.id,
            TransactionVerification.version == record.version,
        )
        .values(
            **values,
            version=TransactionVerification.version + 1,
            updated_at=now or utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    await db.refresh(record)
    return result.rowcount == 1


def _stale_cutoff(now: datetime) -> datetime:
    return now - timedelta(seconds=settings.verification_processing_grace_seconds)


def _processing_is_stale(record: TransactionVerification, now: datetime | None = None) -> bool:
    updated = as_utc(record.updated_at)
    return updated is None or updated < _stale_cutoff(now or utcnow())


async def reconcile_one(
    db: AsyncSession,
    record: TransactionVerification,
    ledger: LedgerClient | None = None,
) -> bool:
    """Run exactly one verification attempt. Returns True only on VERIFIED.

    Ledger failures consume a retry and never raise, except an unconfigured
    ledger client: that leaves the retry budget untouched and propagates.
    """
    if record.is_terminal:
        return record.status == VerificationStatus.VERIFIED
    if record.status == VerificationStatus.PROCESSING and not _processing_is_stale(record):
        logger.debug("Verification %s already in flight, skipping", record.id)
        return False

    ledger = ledger or get_ledger_client()
    prior_status = record.status
    logger.info("Starting verification for txHash: %s", record.tx_hash)

    if not await _transition(db, record, {"status": VerificationStatus.PROCESSING.value}):
        logger.info("Verification %s changed concurrently, skipping attempt", record.id)
        return False

    timeout = settings.ledger_timeout_seconds
    try:
        entries = await asyncio.wait_for(ledger.fetch_metadata(record.tx_hash), timeout=timeout)
    except LedgerUnconfiguredError as e:
        # Not the record's fault: put it back without spending a retry.
        restore = prior_status if prior_status in RETRYABLE_STATUSES else VerificationStatus.PENDING.value
        await _transition(db, record, {"status": restore, "last_error": str(e)})
        raise
    except asyncio.TimeoutError:
        logger.error("Ledger call timed out after %ss for txHash: %s", timeout, record.tx_hash)
        decision = reconciler.decide_failure(record, f"Ledger request timed out after {timeout}s")
    except Exception as e:
        logger.error("Error verifying transaction %s: %s", record.tx_hash, e)
        decision = reconciler.decide_failure(record, str(e) or type(e).__name__)
    else:
        decision = reconciler.decide(record, entries)

    if not await _transition(db, record, decision.to_values()):
        logger.warning(
            "Verification %s was modified during the attempt; discarding result %s",
            record.id, decision.status.value,
        )
        return False

    if decision.verified:
        logger.info("Transaction verified successfully - txHash: %s, hashMatch: true", record.tx_hash)
    elif decision.status == VerificationStatus.EXPIRED:
        logger.warning(
            "Verification expired for txHash: %s after %d retries",
            record.tx_hash, record.retry_count,
        )
    else:
        logger.warning(
            "Verification failed for txHash: %s (retry %d/%d): %s",
            record.tx_hash, record.retry_count, record.max_retries, decision.last_error,
        )

    await notify_verification_outcome(db, record.note_id, decision.verified)
    return decision.verified


async def sweep_expired(db: AsyncSession, now: datetime | None = None) -> int:
    """Move records with an exhausted budget to EXPIRED.

    Covers PENDING/FAILED rows and stale PROCESSING rows: an attempt that
    died on an already exhausted record is never picked up for retry.
    """
    now = now or utcnow()
    stale_cutoff = _stale_cutoff(now)
    stmt = (
        update(TransactionVerification)
        .where(
            TransactionVerification.retry_count >= TransactionVerification.max_retries,
            or_(
                TransactionVerification.status.in_(_RETRYABLE_VALUES),
                and_(
                    TransactionVerification.status == VerificationStatus.PROCESSING.value,
                    TransactionVerification.updated_at < stale_cutoff,
                ),
            ),
        )
        .values(
            status=VerificationStatus.EXPIRED.value,
            version=TransactionVerification.version + 1,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    count = result.rowcount or 0
    if count > 0:
        logger.info("Marked %d verifications as expired", count)
    return count


async def retry_manually(
    db: AsyncSession,
    verification_id: str,
    ledger: LedgerClient | None = None,
) -> TransactionVerification:
    """Force a record back to PENDING and attempt it once, right now.

    The retry count is kept. VERIFIED records are rejected.
    """
    record = await get_verification(db, verification_id)
    if record.status == VerificationStatus.VERIFIED:
        raise InvalidVerificationStateError(record.status, "not VERIFIED")

    logger.info("Manual retry requested for verification ID: %s", verification_id)
    await _transition(db, record, {"status": VerificationStatus.PENDING.value})
    await reconcile_one(db, record, ledger)
    await db.refresh(record)
    return record


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def list_eligible_for_retry(
    db: AsyncSession,
    now: datetime | None = None,
) -> list[TransactionVerification]:
    """Records the worker should attempt, fewest retries first, then oldest.

    PROCESSING records whose last update is older than the grace period are
    included: their worker died mid-attempt.
    """
    now = now or utcnow()
    stale_cutoff = _stale_cutoff(now)
    result = await db.execute(
        select(TransactionVerification)
        .where(
            TransactionVerification.retry_count < TransactionVerification.max_retries,
            or_(
                TransactionVerification.status.in_(_RETRYABLE_VALUES),
                and_(
                    TransactionVerification.status == VerificationStatus.PROCESSING.value,
                    TransactionVerification.updated_at < stale_cutoff,
                ),
            ),
        )
        .order_by(
            TransactionVerification.retry_count.asc(),
            TransactionVerification.created_at.asc(),
        )
    )
    return list(result.scalars().all())


async def get_verification(db: AsyncSession, verification_id: str) -> TransactionVerification:
    result = await db.execute(
        select(TransactionVerification).where(TransactionVerification.id == verification_id)
    )
    record = result.scalar_one_or_none()
    if record is None:
        raise VerificationNotFoundError(verification_id)
    return record


async def find_by_tx_hash(db: AsyncSession, tx_hash: str) -> TransactionVerification | None:
    result = await db.execute(
        select(TransactionVerification).where(TransactionVerification.tx_hash == tx_hash)
    )
    return result.scalar_one_or_none()


async def list_for_note(db: AsyncSession, note_id: int) -> list[TransactionVerification]:
    result = await db.execute(
        select(TransactionVerification)
        .where(TransactionVerification.note_id == note_id)
        .order_by(TransactionVerification.created_at.desc())
    )
    return list(result.scalars().all())


async def get_latest_for_note(db: AsyncSession, note_id: int) -> TransactionVerification | None:
    result = await db.execute(
        select(TransactionVerification)
        .where(TransactionVerification.note_id == note_id)
        .order_by(TransactionVerification.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_by_owner_wallet(db: AsyncSession, owner_wallet: str) -> list[TransactionVerification]:
    result = await db.execute(
        select(TransactionVerification)
        .where(TransactionVerification.owner_wallet == owner_wallet)
        .order_by(TransactionVerification.created_at.desc())
    )
    return list(result.scalars().all())


async def list_recent(db: AsyncSession, limit: int = 20) -> list[TransactionVerification]:
    result = await db.execute(
        select(TransactionVerification)
        .order_by(TransactionVerification.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_all(db: AsyncSession) -> list[TransactionVerification]:
    result = await db.execute(
        select(TransactionVerification).order_by(TransactionVerification.created_at.asc())
    )
    return list(result.scalars().all())


async def get_statistics(db: AsyncSession) -> dict[str, int]:
    """Record counts per status plus a total."""
    result = await db.execute(
        select(TransactionVerification.status, func.count(TransactionVerification.id))
        .group_by(TransactionVerification.status)
    )
    counts = {row[0]: row[1] for row in result.all()}
    stats = {status.value.lower(): int(counts.get(status.value, 0)) for status in VerificationStatus}
    stats["total"] = sum(int(c) for c in counts.values())
    return stats
