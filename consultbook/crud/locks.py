# consultbook/crud/locks.py
"""
Transaction-scoped advisory locks for check-then-insert sequences that span
two tables (a booking and a block on the same slot, or one email's bookings).
Same-table races are settled by unique constraints; these cover the rest.
PostgreSQL only. On SQLite every transaction already starts with BEGIN IMMEDIATE
(db/session.py), which serializes the same sequences database-wide.
"""
from __future__ import annotations
import hashlib
from datetime import date
from typing import Iterable

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession


def lock_key(*parts: object) -> int:
    digest = hashlib.sha1("|".join(str(p) for p in parts).encode()).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


def slot_lock_key(day: date, time: str) -> int:
    return lock_key("slot", day.isoformat(), time)


def email_lock_key(email: str) -> int:
    return lock_key("email", email.strip().lower())


async def acquire(db: AsyncSession, keys: Iterable[int]) -> None:
    """Take the locks in sorted order so overlapping batches can't deadlock."""
    if db.get_bind().dialect.name != "postgresql":
        return
    for key in sorted(set(keys)):
        await db.execute(sa.text("SELECT pg_advisory_xact_lock(:key)"), {"key": key})


async def lock_slots(db: AsyncSession, pairs: Iterable[tuple[date, str]]) -> None:
    await acquire(db, (slot_lock_key(d, t) for d, t in pairs))
