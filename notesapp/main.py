import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from notesapp.config import APP_VERSION, settings
from notesapp.database import init_db
from notesapp.models import *  # noqa: F403

logger = logging.getLogger(__name__)
logging.basicConfig(level=settings.log_level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup: create tables
    await init_db()

    from notesapp.services.verification_worker import get_verification_worker

    worker = get_verification_worker()
    if settings.verification_worker_enabled:
        worker.start()
        logger.info(
            "Verification worker scheduled (interval=%ss, expiry sweep=%ss, batch size=%d)",
            worker.interval_seconds, worker.expiry_interval_seconds, worker.batch_size,
        )
    else:
        logger.info("Verification worker disabled (VERIFICATION_WORKER_ENABLED=false)")

    yield

    # Shutdown: stop the worker, close the ledger client and dispose connection pool
    await worker.stop()

    from notesapp.database import dispose_engine
    from notesapp.services.ledger_client import close_ledger_client

    await close_ledger_client()
    await dispose_engine()
    logger.info("Notes service shut down cleanly.")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


def create_app() -> FastAPI:
    app = FastAPI(
        title="Notes Provenance Service",
        description="Notes with on-chain content provenance and background transaction verification",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    from notesapp.api import API_PREFIX, API_ROUTERS

    for router in API_ROUTERS:
        app.include_router(router, prefix=API_PREFIX)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {
            "name": "Notes Provenance Service",
            "version": APP_VERSION,
            "docs": "/docs",
            "health": f"{API_PREFIX}/health",
            "verifications": f"{API_PREFIX}/verifications",
        }

    return app


app = create_app()


def run() -> None:
    """Serve the app with uvicorn on NOTES_HOST:NOTES_PORT."""
    import uvicorn

    uvicorn.run(
        "notesapp.main:app",
        host=settings.notes_host,
        port=settings.notes_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
