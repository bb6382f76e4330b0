import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from notesapp.api.verifications import get_ledger, get_worker
from notesapp.config import APP_VERSION
from notesapp.database import get_db
from notesapp.models.note import Note
from notesapp.models.transaction_verification import TransactionVerification
from notesapp.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    ledger=Depends(get_ledger),
    worker=Depends(get_worker),
):
    notes = (await db.execute(select(func.count(Note.id)))).scalar() or 0
    verifications = (await db.execute(select(func.count(TransactionVerification.id)))).scalar() or 0

    return HealthResponse(
        status="healthy",
        version=APP_VERSION,
        notes_count=notes,
        verifications_count=verifications,
        ledger_configured=bool(getattr(ledger, "configured", True)),
        worker=worker.status(),
    )


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """Readiness probe: verifies DB connectivity."""
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "ready", "database": "connected"}
    except Exception:
        logger.exception("Readiness check failed, database unreachable")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "database": "unavailable"},
        )
