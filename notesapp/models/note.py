from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from notesapp.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Note(Base):
    """Note row as seen by the verification subsystem.

    Note CRUD lives elsewhere; this subsystem only reads the row and writes
    ``verification_status``.
    """

    __tablename__ = "notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    verification_status = Column(String(20), nullable=False, default="UNVERIFIED")  # UNVERIFIED | VERIFIED
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
