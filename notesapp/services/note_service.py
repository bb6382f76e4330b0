import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notesapp.models.note import Note, utcnow

logger = logging.getLogger(__name__)


async def notify_verification_outcome(db: AsyncSession, note_id: int, verified: bool) -> bool:
    """Mirror a verification outcome onto the owning note.

    Best-effort: a missing note or a failed write is logged and reported as
    False, never raised to the reconciliation loop.
    """
    label = "VERIFIED" if verified else "UNVERIFIED"
    try:
        result = await db.execute(select(Note).where(Note.id == note_id))
        note = result.scalar_one_or_none()
        if note is None:
            logger.warning("Note %s not found while recording verification status %s", note_id, label)
            return False

        note.verification_status = label
        note.updated_at = utcnow()
        await db.commit()
    except Exception:
        logger.exception("Failed to update verification status for note %s", note_id)
        await db.rollback()
        return False

    logger.info("Note %s verification status updated to: %s", note_id, label)
    return True
