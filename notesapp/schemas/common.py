from pydantic import BaseModel


class ErrorResponse(BaseModel):
    detail: str


class HealthResponse(BaseModel):
    status: str
    version: str
    notes_count: int
    verifications_count: int
    ledger_configured: bool
    worker: dict
