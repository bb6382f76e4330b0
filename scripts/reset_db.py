"""Drop and recreate all database tables, optionally seeding a demo note."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from notesapp.database import async_session, dispose_engine, drop_db, init_db
from notesapp.models import *  # noqa: F401, F403
from notesapp.models.note import Note


async def _seed_note() -> None:
    async with async_session() as db:
        note = Note(title="Welcome", content="Edit this note to anchor a new version on-chain.")
        db.add(note)
        await db.commit()
        await db.refresh(note)
        print(f"Seeded demo note id={note.id}")


async def _reset_db(seed: bool) -> None:
    print("Dropping all tables...")
    await drop_db()
    print("Creating all tables...")
    await init_db()
    if seed:
        await _seed_note()
    await dispose_engine()
    print("Database reset complete.")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reset the local notes database.")
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Insert a demo note after recreating the tables.",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    asyncio.run(_reset_db(args.seed))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
