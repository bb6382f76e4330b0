import logging
import warnings

from pydantic_settings import BaseSettings

APP_VERSION = "0.1.0"
LEDGER_PLACEHOLDER_PROJECT_ID = "your_blockfrost_project_id_here"


class Settings(BaseSettings):
    # Environment
    environment: str = "development"  # development | test | production
    log_level: str = "INFO"

    # Server
    notes_host: str = "0.0.0.0"
    notes_port: int = 8000

    # Database (sqlite for local dev, postgresql+asyncpg for production)
    database_url: str = "sqlite+aiosqlite:///./data/notes.db"

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # Ledger indexer (Blockfrost-compatible)
    ledger_api_url: str = "https://cardano-preprod.blockfrost.io/api/v0"
    ledger_project_id: str = ""
    ledger_timeout_seconds: float = 10.0

    # Verification worker
    verification_worker_enabled: bool = True
    verification_interval_seconds: int = 30
    verification_expiry_interval_seconds: int = 300  # 5 minutes
    verification_initial_delay_seconds: int = 5
    verification_batch_size: int = 10
    verification_max_retries: int = 10
    verification_pacing_delay_ms: int = 500
    verification_processing_grace_seconds: int = 300

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()

_logger = logging.getLogger("notesapp.config")


def validate_runtime_posture(cfg: Settings) -> None:
    is_prod = cfg.environment.lower() in {"production", "prod"}

    if not cfg.ledger_project_id or cfg.ledger_project_id == LEDGER_PLACEHOLDER_PROJECT_ID:
        if is_prod:
            warnings.warn(
                "LEDGER_PROJECT_ID is not configured. "
                "Transaction verification will not reach the ledger until it is set.",
                stacklevel=1,
            )
        else:
            _logger.warning(
                "LEDGER_PROJECT_ID is not configured; verification attempts will be "
                "reported as unconfigured until it is set."
            )

    if cfg.cors_origins == "*":
        if is_prod:
            raise RuntimeError(
                "FATAL: CORS_ORIGINS cannot be '*' in production. "
                "Set explicit trusted origins via the CORS_ORIGINS environment variable."
            )
        _logger.warning(
            "CORS_ORIGINS is set to '*' (allow all). "
            "Configure specific origins for production via the CORS_ORIGINS environment variable."
        )

    if cfg.verification_batch_size < 1:
        raise RuntimeError("FATAL: VERIFICATION_BATCH_SIZE must be at least 1.")
    if cfg.verification_max_retries < 1:
        raise RuntimeError("FATAL: VERIFICATION_MAX_RETRIES must be at least 1.")


validate_runtime_posture(settings)
