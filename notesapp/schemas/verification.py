from datetime import datetime

from pydantic import BaseModel, Field


class VerificationQueueRequest(BaseModel):
    note_id: int = Field(..., gt=0)
    tx_hash: str = Field(..., min_length=1, max_length=128)
    content_hash: str | None = Field(default=None, max_length=128)
    owner_wallet: str | None = Field(default=None, max_length=128)


class VerificationResponse(BaseModel):
    id: str
    note_id: int
    tx_hash: str
    content_hash: str | None = None
    owner_wallet: str | None = None
    status: str
    retry_count: int
    max_retries: int
    last_error: str | None = None
    blockchain_content_hash: str | None = None
    blockchain_action: str | None = None
    blockchain_owner: str | None = None
    hash_match: bool | None = None
    verified_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class VerificationStatsResponse(BaseModel):
    pending: int
    processing: int
    verified: int
    failed: int
    expired: int
    total: int


class WorkerStatusResponse(BaseModel):
    running: bool
    batch_size: int
