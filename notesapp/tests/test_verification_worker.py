"""Tests for the background verification worker: batching, single-flight,
pacing, abort conditions and scheduler lifecycle."""

import asyncio

from notesapp.core.exceptions import LedgerUnconfiguredError
from notesapp.models.transaction_verification import VerificationStatus
from notesapp.services import verification_service
from notesapp.services.verification_worker import CycleResult, VerificationWorker


def _worker(session_factory, ledger, **kwargs) -> VerificationWorker:
    kwargs.setdefault("batch_size", 10)
    kwargs.setdefault("pacing_delay_ms", 0)
    return VerificationWorker(session_factory=session_factory, ledger=ledger, **kwargs)


async def _statuses(db, records) -> list[str]:
    for record in records:
        await db.refresh(record)
    return [record.status for record in records]


class TestRunCycle:
    async def test_empty_queue(self, session_factory, fake_ledger):
        result = await _worker(session_factory, fake_ledger).run_cycle()
        assert result == CycleResult()
        assert fake_ledger.calls == []

    async def test_processes_eligible_records(self, db, session_factory, fake_ledger, ledger_payload, make_verification):
        good = await make_verification(tx_hash="good")
        bad = await make_verification(tx_hash="bad")
        fake_ledger.responses["good"] = ledger_payload("h1")

        result = await _worker(session_factory, fake_ledger).run_cycle()

        assert result.processed == 2
        assert result.verified == 1
        assert result.failed == 1
        assert not result.aborted
        assert await _statuses(db, [good, bad]) == ["VERIFIED", "FAILED"]

    async def test_batch_size_caps_a_cycle(self, db, session_factory, fake_ledger, make_verification):
        records = [await make_verification(tx_hash=f"tx{i}") for i in range(5)]

        result = await _worker(session_factory, fake_ledger, batch_size=2).run_cycle()

        assert result.processed == 2
        assert len(fake_ledger.calls) == 2
        statuses = await _statuses(db, records)
        assert statuses.count("FAILED") == 2
        assert statuses.count("PENDING") == 3

    async def test_fewest_retries_first(self, db, session_factory, fake_ledger, make_verification):
        await make_verification(tx_hash="retried", retry_count=3, status=VerificationStatus.FAILED.value)
        await make_verification(tx_hash="fresh")

        await _worker(session_factory, fake_ledger, batch_size=1).run_cycle()
        assert fake_ledger.calls == ["fresh"]

    async def test_terminal_records_are_not_attempted(self, session_factory, fake_ledger, make_verification):
        await make_verification(tx_hash="done", status=VerificationStatus.VERIFIED.value)
        await make_verification(tx_hash="gone", status=VerificationStatus.EXPIRED.value)

        result = await _worker(session_factory, fake_ledger).run_cycle()
        assert result.processed == 0
        assert fake_ledger.calls == []

    async def test_single_flight(self, session_factory, fake_ledger, make_verification):
        await make_verification(tx_hash="tx1")
        worker = _worker(session_factory, fake_ledger)
        worker._running = True

        assert await worker.run_cycle() is None
        assert fake_ledger.calls == []

    async def test_overlapping_cycles_do_not_double_process(self, session_factory, make_verification, ledger_payload):
        await make_verification(tx_hash="slow")
        gate = asyncio.Event()

        class GatedLedger:
            def __init__(self):
                self.calls = []

            async def fetch_metadata(self, tx_hash):
                self.calls.append(tx_hash)
                await gate.wait()
                return ledger_payload("h1")

        ledger = GatedLedger()
        worker = _worker(session_factory, ledger)

        first = asyncio.create_task(worker.run_cycle())
        while not ledger.calls:
            await asyncio.sleep(0)
        assert worker.is_running
        assert await worker.run_cycle() is None

        gate.set()
        result = await first
        assert result.verified == 1
        assert ledger.calls == ["slow"]
        assert not worker.is_running

    async def test_per_record_error_does_not_abort_batch(self, db, session_factory, fake_ledger, ledger_payload, make_verification, monkeypatch):
        first = await make_verification(tx_hash="boom")
        second = await make_verification(tx_hash="ok")
        fake_ledger.responses["ok"] = ledger_payload("h1")

        real_reconcile = verification_service.reconcile_one

        async def flaky(db, record, ledger=None):
            if record.tx_hash == "boom":
                raise RuntimeError("database hiccup")
            return await real_reconcile(db, record, ledger)

        monkeypatch.setattr(verification_service, "reconcile_one", flaky)

        result = await _worker(session_factory, fake_ledger).run_cycle()

        assert result.processed == 2
        assert result.failed == 1
        assert result.verified == 1
        assert await _statuses(db, [first, second]) == ["PENDING", "VERIFIED"]

    async def test_unconfigured_ledger_aborts_cycle(self, db, session_factory, fake_ledger, make_verification):
        records = [await make_verification(tx_hash=f"tx{i}") for i in range(3)]
        fake_ledger.default = LedgerUnconfiguredError()

        result = await _worker(session_factory, fake_ledger).run_cycle()

        assert result.aborted
        assert result.processed == 0
        assert len(fake_ledger.calls) == 1
        for record in records:
            await db.refresh(record)
            assert record.status == VerificationStatus.PENDING
            assert record.retry_count == 0

    async def test_unexpected_error_is_contained(self, session_factory, fake_ledger, monkeypatch):
        async def broken(db, now=None):
            raise RuntimeError("listing failed")

        monkeypatch.setattr(verification_service, "list_eligible_for_retry", broken)
        worker = _worker(session_factory, fake_ledger)

        result = await worker.run_cycle()
        assert result.aborted
        assert not worker.is_running


class TestPacing:
    async def test_stop_interrupts_pacing(self, session_factory, fake_ledger, make_verification):
        for i in range(3):
            await make_verification(tx_hash=f"tx{i}")
        worker = _worker(session_factory, fake_ledger, pacing_delay_ms=60_000)

        cycle = asyncio.create_task(worker.run_cycle())
        while not fake_ledger.calls:
            await asyncio.sleep(0)
        worker._stop.set()

        result = await asyncio.wait_for(cycle, timeout=5)
        assert result.aborted
        assert result.processed == 1
        assert fake_ledger.calls == ["tx0"]

    async def test_pause_reports_stop(self, session_factory, fake_ledger):
        worker = _worker(session_factory, fake_ledger)
        assert await worker._pause(0) is False
        assert await worker._pause(0.01) is False
        worker._stop.set()
        assert await worker._pause(10) is True


class TestSweep:
    async def test_sweep_expired(self, db, session_factory, fake_ledger, make_verification):
        record = await make_verification(tx_hash="tx1", retry_count=10, status=VerificationStatus.FAILED.value)
        worker = _worker(session_factory, fake_ledger)

        assert await worker.sweep_expired() == 1
        assert await worker.sweep_expired() == 0
        await db.refresh(record)
        assert record.status == VerificationStatus.EXPIRED

    async def test_sweep_error_returns_zero(self, session_factory, fake_ledger, monkeypatch):
        async def broken(db):
            raise RuntimeError("locked")

        monkeypatch.setattr(verification_service, "sweep_expired", broken)
        assert await _worker(session_factory, fake_ledger).sweep_expired() == 0


class TestLifecycle:
    async def test_status(self, session_factory, fake_ledger):
        worker = _worker(session_factory, fake_ledger, batch_size=7)
        assert worker.status() == {"running": False, "batch_size": 7}

    async def test_start_runs_cycles_and_stop_halts(self, session_factory, fake_ledger, ledger_payload, make_verification):
        await make_verification(tx_hash="tx1")
        fake_ledger.responses["tx1"] = ledger_payload("h1")
        worker = _worker(
            session_factory,
            fake_ledger,
            interval_seconds=0.01,
            expiry_interval_seconds=60,
            initial_delay_seconds=0,
        )

        worker.start()
        for _ in range(200):
            if fake_ledger.calls:
                break
            await asyncio.sleep(0.01)
        await worker.stop(timeout_seconds=1)

        assert set(fake_ledger.calls) == {"tx1"}
        assert worker._tasks == []
        assert not worker.is_running

    async def test_stop_before_initial_delay(self, session_factory, fake_ledger, make_verification):
        await make_verification(tx_hash="tx1")
        worker = _worker(session_factory, fake_ledger, initial_delay_seconds=60)

        worker.start()
        await asyncio.sleep(0)
        await asyncio.wait_for(worker.stop(timeout_seconds=1), timeout=5)

        assert fake_ledger.calls == []

    async def test_start_is_idempotent(self, session_factory, fake_ledger):
        worker = _worker(session_factory, fake_ledger, initial_delay_seconds=60)
        worker.start()
        tasks = list(worker._tasks)
        worker.start()
        assert worker._tasks == tasks
        await worker.stop(timeout_seconds=1)
