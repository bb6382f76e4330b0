import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text

from notesapp.database import Base


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class VerificationStatus(str, enum.Enum):
    PENDING = "PENDING"  # waiting to be verified
    PROCESSING = "PROCESSING"  # one attempt in flight
    VERIFIED = "VERIFIED"
    FAILED = "FAILED"  # last attempt failed, retries remain
    EXPIRED = "EXPIRED"  # retry budget exhausted


TERMINAL_STATUSES = frozenset({VerificationStatus.VERIFIED, VerificationStatus.EXPIRED})
RETRYABLE_STATUSES = frozenset({VerificationStatus.PENDING, VerificationStatus.FAILED})


class TransactionVerification(Base):
    __tablename__ = "transaction_verifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    note_id = Column(Integer, nullable=False)  # weak reference, notes may be deleted
    tx_hash = Column(String(128), nullable=False, unique=True)
    content_hash = Column(String(128))
    owner_wallet = Column(String(128))

    # State machine: PENDING -> PROCESSING -> VERIFIED | FAILED | EXPIRED
    #                FAILED -> PROCESSING (retry), PENDING | FAILED -> EXPIRED (sweep)
    status = Column(String(20), nullable=False, default=VerificationStatus.PENDING.value)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=10)
    last_error = Column(Text)

    # Raw values from the label 674 payload, stored unbounded
    blockchain_content_hash = Column(Text)
    blockchain_action = Column(Text)
    blockchain_owner = Column(Text)
    hash_match = Column(Boolean, nullable=True)

    verified_at = Column(DateTime(timezone=True))
    version = Column(Integer, nullable=False, default=1)  # bumped on every transition
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_tv_note", "note_id"),
        Index("idx_tv_status", "status"),
        Index("idx_tv_owner", "owner_wallet"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return (
            f"<TransactionVerification id={self.id} note_id={self.note_id} "
            f"tx_hash={self.tx_hash!r} status={self.status} retry_count={self.retry_count}>"
        )


def new_record(
    note_id: int,
    tx_hash: str,
    content_hash: str | None,
    owner_wallet: str | None,
    max_retries: int,
    now: datetime | None = None,
) -> TransactionVerification:
    """Build a fresh PENDING record with both timestamps stamped."""
    now = now or utcnow()
    return TransactionVerification(
        id=str(uuid.uuid4()),
        note_id=note_id,
        tx_hash=tx_hash,
        content_hash=content_hash,
        owner_wallet=owner_wallet,
        status=VerificationStatus.PENDING.value,
        retry_count=0,
        max_retries=max_retries,
        version=1,
        created_at=now,
        updated_at=now,
    )
