from fastapi import HTTPException, status


class VerificationNotFoundError(HTTPException):
    def __init__(self, verification_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Verification {verification_id} not found",
        )


class InvalidVerificationRequestError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InvalidVerificationStateError(HTTPException):
    def __init__(self, current: str, expected: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Verification is '{current}', expected {expected}",
        )


class LedgerNotConfiguredHTTPError(HTTPException):
    def __init__(self, detail: str = "Ledger client is not configured"):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


# Ledger client errors. These are raised below the HTTP layer and translated
# by the routes (or absorbed by the reconciliation loop).


class LedgerError(Exception):
    """Base class for failures reported by the ledger indexer."""


class LedgerNotFoundError(LedgerError):
    def __init__(self, tx_hash: str):
        self.tx_hash = tx_hash
        super().__init__(f"Transaction not found: {tx_hash}")


class LedgerUpstreamError(LedgerError):
    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class LedgerUnconfiguredError(LedgerError):
    def __init__(self, message: str = "Ledger project id not configured. Set LEDGER_PROJECT_ID."):
        super().__init__(message)
