from notesapp.models.note import Note
from notesapp.models.transaction_verification import (
    TransactionVerification,
    VerificationStatus,
)

__all__ = [
    "Note",
    "TransactionVerification",
    "VerificationStatus",
]
