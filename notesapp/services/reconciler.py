"""Reconciliation decisions for transaction verifications.

Pure functions: given a verification record and what the ledger returned,
decide the record's next status and side fields. Nothing here touches the
database or the network; ``verification_service`` applies the decision.

Note provenance is written under metadata label ``674``::

    {"label": "674", "json_metadata": {"msg": ["create"], "contentHash": "...", "owner": "addr..."}}

Values may be plain strings or lists of string chunks (the ledger caps
metadata strings at 64 bytes, so wallets often split them).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping

from notesapp.models.transaction_verification import (
    TransactionVerification,
    VerificationStatus,
    utcnow,
)

NOTE_METADATA_LABEL = "674"

ERR_NO_METADATA = "No metadata found in transaction"
ERR_LABEL_NOT_FOUND = f"Note metadata (label {NOTE_METADATA_LABEL}) not found in transaction"


@dataclass(frozen=True)
class MetadataObservation:
    content_hash: str | None
    action: str | None
    owner: str | None


@dataclass(frozen=True)
class ReconcileDecision:
    status: VerificationStatus
    retry_count: int
    last_error: str | None
    hash_match: bool | None = None
    verified_at: datetime | None = None
    observation: MetadataObservation | None = None

    @property
    def verified(self) -> bool:
        return self.status == VerificationStatus.VERIFIED

    def to_values(self) -> dict[str, Any]:
        """Column values to write. Ledger fields are left alone when nothing was observed."""
        values: dict[str, Any] = {
            "status": self.status.value,
            "retry_count": self.retry_count,
            "last_error": self.last_error,
        }
        if self.verified_at is not None:
            values["verified_at"] = self.verified_at
        if self.observation is not None:
            values["blockchain_content_hash"] = self.observation.content_hash
            values["blockchain_action"] = self.observation.action
            values["blockchain_owner"] = self.observation.owner
            values["hash_match"] = self.hash_match
        return values


def extract_note_metadata(entries: Iterable[Mapping[str, Any]] | None) -> dict | None:
    """Return the label 674 payload, or None when no entry carries a mapping under it."""
    for entry in entries or ():
        if not isinstance(entry, Mapping):
            continue
        if str(entry.get("label")) != NOTE_METADATA_LABEL:
            continue
        payload = entry.get("json_metadata")
        if isinstance(payload, Mapping):
            return dict(payload)
    return None


def extract_metadata_string(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        if value:
            return str(value[0])
        return str(value)
    return str(value)


def observe(payload: Mapping[str, Any]) -> MetadataObservation:
    return MetadataObservation(
        content_hash=extract_metadata_string(payload, "contentHash"),
        action=extract_metadata_string(payload, "msg"),
        owner=extract_metadata_string(payload, "owner"),
    )


def hashes_match(expected: str | None, observed: str | None) -> bool:
    # Exact, case-sensitive; a record without a stored hash can never verify.
    return expected is not None and expected == observed


def decide_failure(
    record: TransactionVerification,
    error: str,
    observation: MetadataObservation | None = None,
) -> ReconcileDecision:
    """Consume one retry and pick FAILED or EXPIRED."""
    retry_count = record.retry_count or 0
    max_retries = record.max_retries or 0
    # A manual retry of an exhausted record must not push the counter past the budget.
    if retry_count < max_retries:
        retry_count += 1
    status = VerificationStatus.EXPIRED if retry_count >= max_retries else VerificationStatus.FAILED
    return ReconcileDecision(
        status=status,
        retry_count=retry_count,
        last_error=error,
        hash_match=False if observation is not None else None,
        observation=observation,
    )


def decide(
    record: TransactionVerification,
    entries: Iterable[Mapping[str, Any]] | None,
    now: datetime | None = None,
) -> ReconcileDecision:
    """Decide the outcome of one attempt from the ledger's metadata list."""
    entries = list(entries or ())
    if not entries:
        return decide_failure(record, ERR_NO_METADATA)

    payload = extract_note_metadata(entries)
    if payload is None:
        return decide_failure(record, ERR_LABEL_NOT_FOUND)

    observation = observe(payload)
    if not hashes_match(record.content_hash, observation.content_hash):
        return decide_failure(
            record,
            f"Content hash mismatch: expected {record.content_hash}, found {observation.content_hash}",
            observation=observation,
        )

    return ReconcileDecision(
        status=VerificationStatus.VERIFIED,
        retry_count=record.retry_count or 0,
        last_error=None,
        hash_match=True,
        verified_at=now or utcnow(),
        observation=observation,
    )
