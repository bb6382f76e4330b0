"""Shared test fixtures for the notes verification test suite.

Uses an in-memory SQLite database with StaticPool so all sessions share the
same connection (committed data is visible across sessions).
"""

import uuid
from typing import Any

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from notesapp.api.verifications import get_ledger, get_worker
from notesapp.database import Base, get_db
from notesapp.main import app
from notesapp.models import *  # noqa: ensure all models are loaded for create_all


# ---------------------------------------------------------------------------
# In-memory SQLite test engine (shared via StaticPool)
# ---------------------------------------------------------------------------

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@event.listens_for(test_engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


# ---------------------------------------------------------------------------
# Auto-use: create/drop tables for every test
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ---------------------------------------------------------------------------
# Fake ledger
# ---------------------------------------------------------------------------

def note_metadata(content_hash: Any, msg: Any = "create", owner: Any = "addr_test1qz_owner") -> list[dict]:
    """Build an indexer response carrying one label 674 note payload."""
    return [
        {"label": "674", "json_metadata": {"msg": msg, "contentHash": content_hash, "owner": owner}},
    ]


class FakeLedger:
    """In-memory stand-in for the indexer.

    ``responses`` maps a tx hash to either a metadata list or an exception
    instance to raise. Unknown hashes get ``default``.
    """

    def __init__(self, responses: dict | None = None, default: Any = None):
        self.responses = dict(responses or {})
        self.default = default if default is not None else []
        self.calls: list[str] = []
        self.configured = True

    async def fetch_metadata(self, tx_hash: str) -> list[dict]:
        self.calls.append(tx_hash)
        value = self.responses.get(tx_hash, self.default)
        if isinstance(value, BaseException):
            raise value
        return value


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def db():
    """Yield a fresh AsyncSession for direct service-layer tests."""
    async with TestSession() as session:
        yield session


@pytest.fixture
def session_factory():
    return TestSession


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def ledger_payload():
    """Return the builder for label 674 indexer responses."""
    return note_metadata


@pytest.fixture
async def client(fake_ledger):
    """httpx AsyncClient wired to the FastAPI app with test DB and ledger overrides."""
    import httpx

    from notesapp.services.verification_worker import VerificationWorker

    async def _override_get_db():
        async with TestSession() as session:
            yield session

    worker = VerificationWorker(session_factory=TestSession, ledger=fake_ledger, batch_size=10)

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_ledger] = lambda: fake_ledger
    app.dependency_overrides[get_worker] = lambda: worker

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------

def _tx_hash() -> str:
    return uuid.uuid4().hex + uuid.uuid4().hex


@pytest.fixture
def make_note(db: AsyncSession):
    """Factory fixture: create a Note row."""
    from notesapp.models.note import Note

    async def _make(title: str = "Shopping list", content: str = "milk, eggs"):
        note = Note(title=title, content=content)
        db.add(note)
        await db.commit()
        await db.refresh(note)
        return note

    return _make


@pytest.fixture
def make_verification(db: AsyncSession):
    """Factory fixture: enqueue a verification record through the service."""
    from notesapp.services import verification_service

    async def _make(
        note_id: int = 1,
        tx_hash: str | None = None,
        content_hash: str | None = "h1",
        owner_wallet: str | None = "addr_test1qz_owner",
        max_retries: int | None = None,
        **overrides,
    ):
        record = await verification_service.enqueue(
            db, note_id, tx_hash or _tx_hash(), content_hash, owner_wallet, max_retries=max_retries
        )
        if overrides:
            for key, value in overrides.items():
                setattr(record, key, value)
            await db.commit()
            await db.refresh(record)
        return record

    return _make
