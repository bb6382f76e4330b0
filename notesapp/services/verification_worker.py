"""Background worker that drives pending verifications to a terminal status.

Two independent periodic triggers run inside the FastAPI lifespan:

- the main cycle (every ``verification_interval_seconds``) picks up to
  ``verification_batch_size`` eligible records and reconciles them one at a
  time, pausing between records to stay under the indexer's rate limit;
- the expiry sweep (every ``verification_expiry_interval_seconds``) moves
  records with an exhausted retry budget to EXPIRED.

Each tick launches its job as a separate task. The main cycle is
single-flight: a tick that fires while a cycle is still running is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from notesapp.core.async_tasks import drain_background_tasks, fire_and_forget
from notesapp.core.exceptions import LedgerUnconfiguredError
from notesapp.services import verification_service
from notesapp.services.ledger_client import LedgerClient

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    processed: int = 0
    verified: int = 0
    failed: int = 0
    aborted: bool = False


class VerificationWorker:
    def __init__(
        self,
        session_factory=None,
        ledger: LedgerClient | None = None,
        batch_size: int | None = None,
        pacing_delay_ms: int | None = None,
        interval_seconds: float | None = None,
        expiry_interval_seconds: float | None = None,
        initial_delay_seconds: float | None = None,
    ) -> None:
        from notesapp.config import settings

        self._session_factory = session_factory
        self._ledger = ledger
        self.batch_size = batch_size if batch_size is not None else settings.verification_batch_size
        delay_ms = pacing_delay_ms if pacing_delay_ms is not None else settings.verification_pacing_delay_ms
        self.pacing_delay = max(delay_ms, 0) / 1000
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.verification_interval_seconds
        )
        self.expiry_interval_seconds = (
            expiry_interval_seconds
            if expiry_interval_seconds is not None
            else settings.verification_expiry_interval_seconds
        )
        self.initial_delay_seconds = (
            initial_delay_seconds
            if initial_delay_seconds is not None
            else settings.verification_initial_delay_seconds
        )

        self._running = False
        self._stop = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return self._running

    def status(self) -> dict:
        return {"running": self._running, "batch_size": self.batch_size}

    def _session(self):
        if self._session_factory is None:
            from notesapp.database import async_session

            return async_session()
        return self._session_factory()

    # ------------------------------------------------------------------
    # Main cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleResult | None:
        """Process one batch. Returns None when another cycle is already running."""
        # Check-and-set with no await in between: atomic on the event loop.
        if self._running:
            logger.debug("Verification worker already running, skipping this cycle")
            return None
        self._running = True
        try:
            return await self._process_batch()
        except Exception:
            logger.exception("Error in verification worker")
            return CycleResult(aborted=True)
        finally:
            self._running = False

    async def _process_batch(self) -> CycleResult:
        result = CycleResult()
        logger.debug("Starting verification worker cycle")
        async with self._session() as db:
            pending = await verification_service.list_eligible_for_retry(db)
            pending_ids = [record.id for record in pending]

        if not pending_ids:
            logger.debug("No pending verifications to process")
            return result

        logger.info(
            "Found %d pending verifications, processing up to %d",
            len(pending_ids), self.batch_size,
        )
        batch = pending_ids[: self.batch_size]
        for index, verification_id in enumerate(batch):
            if self._stop.is_set():
                result.aborted = True
                break

            try:
                verified = await self._process_one(verification_id)
            except LedgerUnconfiguredError as e:
                # Every record would fail the same way; leave the batch for later.
                logger.error("Ledger client not configured, aborting verification cycle: %s", e)
                result.aborted = True
                break
            except Exception as e:
                logger.error("Error processing verification %s: %s", verification_id, e)
                verified = False

            result.processed += 1
            if verified:
                result.verified += 1
            else:
                result.failed += 1

            if index < len(batch) - 1 and await self._pause(self.pacing_delay):
                logger.warning("Verification worker interrupted")
                result.aborted = True
                break

        if len(pending_ids) > len(batch) and not result.aborted:
            logger.info(
                "Batch size limit reached, %d verifications will be processed in next cycle",
                len(pending_ids) - len(batch),
            )

        logger.info(
            "Verification worker cycle completed - processed: %d, verified: %d, failed: %d",
            result.processed, result.verified, result.failed,
        )
        return result

    async def _process_one(self, verification_id: str) -> bool:
        # One session per record so a failed attempt cannot poison the rest of the batch.
        async with self._session() as db:
            record = await verification_service.get_verification(db, verification_id)
            return await verification_service.reconcile_one(db, record, self._ledger)

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------

    async def sweep_expired(self) -> int:
        try:
            async with self._session() as db:
                return await verification_service.sweep_expired(db)
        except Exception as e:
            logger.error("Error marking expired verifications: %s", e)
            return 0

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def _pause(self, seconds: float) -> bool:
        """Sleep unless stopped. Returns True if a stop was requested."""
        if self._stop.is_set():
            return True
        if seconds <= 0:
            return False
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _tick(self, interval: float, job: Callable[[], Awaitable], name: str) -> None:
        if await self._pause(self.initial_delay_seconds):
            return
        logger.info("%s scheduler started (interval=%ss)", name, interval)
        while True:
            fire_and_forget(job(), task_name=name)
            if await self._pause(interval):
                return

    def start(self) -> None:
        if self._tasks:
            return
        self._stop.clear()
        self._tasks = [
            asyncio.create_task(
                self._tick(self.interval_seconds, self.run_cycle, "verification_cycle"),
                name="verification_cycle_scheduler",
            ),
            asyncio.create_task(
                self._tick(self.expiry_interval_seconds, self.sweep_expired, "verification_expiry"),
                name="verification_expiry_scheduler",
            ),
        ]

    async def stop(self, timeout_seconds: float = 5.0) -> None:
        """Signal shutdown, stop the schedulers and let an in-flight cycle wind down."""
        self._stop.set()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await drain_background_tasks(timeout_seconds=timeout_seconds)


_worker: VerificationWorker | None = None


def get_verification_worker() -> VerificationWorker:
    global _worker
    if _worker is None:
        _worker = VerificationWorker()
    return _worker
