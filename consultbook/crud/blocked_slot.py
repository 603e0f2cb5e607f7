# consultbook/crud/blocked_slot.py

from __future__ import annotations
from datetime import date
from typing import Iterable, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from consultbook.core.errors import ConfigurationError
from consultbook.db.models.blocked_slot import BlockedSlot


async def blocked_times(db: AsyncSession, day: date) -> list[str]:
    res = await db.execute(sa.select(BlockedSlot.time).where(BlockedSlot.date == day))
    return list(res.scalars().all())


async def blocked_pairs_for_days(db: AsyncSession, days: Iterable[date]) -> list[tuple[date, str]]:
    days = list(set(days))
    if not days:
        return []
    res = await db.execute(sa.select(BlockedSlot.date, BlockedSlot.time).where(BlockedSlot.date.in_(days)))
    return [(row.date, row.time) for row in res.all()]


async def blocked_pairs_between(db: AsyncSession, start: date, end: date) -> list[tuple[date, str]]:
    res = await db.execute(
        sa.select(BlockedSlot.date, BlockedSlot.time).where(BlockedSlot.date >= start, BlockedSlot.date <= end)
    )
    return [(row.date, row.time) for row in res.all()]


async def is_slot_blocked(db: AsyncSession, day: date, time: str) -> bool:
    res = await db.execute(
        sa.select(BlockedSlot.id).where(BlockedSlot.date == day, BlockedSlot.time == time).limit(1)
    )
    return res.scalar_one_or_none() is not None


async def get_block(db: AsyncSession, day: date, time: str) -> Optional[BlockedSlot]:
    res = await db.execute(sa.select(BlockedSlot).where(BlockedSlot.date == day, BlockedSlot.time == time))
    return res.scalar_one_or_none()


async def insert_block(db: AsyncSession, *, day: date, time: str, reason: str = "") -> BlockedSlot:
    """Add and flush; an existing block on the pair surfaces as IntegrityError."""
    obj = BlockedSlot(date=day, time=time, reason=reason)
    db.add(obj)
    await db.flush()
    await db.refresh(obj)
    return obj


_DIALECT_INSERT = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    try:
        return _DIALECT_INSERT[dialect]
    except KeyError:
        # make_engine refuses these at startup
        raise ConfigurationError(f"Bulk blocking needs ON CONFLICT support, got {dialect}")


async def insert_blocks_skip_conflicts(
    db: AsyncSession, pairs: Sequence[tuple[date, str]], reason: str = ""
) -> list[tuple[date, str]]:
    """
    One INSERT .. ON CONFLICT DO NOTHING RETURNING for all pairs.
    Returns the pairs actually inserted; the rest lost a race to another writer.
    """
    if not pairs:
        return []
    insert = _insert_for(db)
    stmt = (
        insert(BlockedSlot)
        .values([{"date": d, "time": t, "reason": reason} for d, t in pairs])
        .on_conflict_do_nothing(index_elements=["date", "time"])
        .returning(BlockedSlot.date, BlockedSlot.time)
    )
    res = await db.execute(stmt)
    return [(row.date, row.time) for row in res.all()]


async def delete_blocks(db: AsyncSession, day: date, times: Sequence[str]) -> list[str]:
    res = await db.execute(
        sa.delete(BlockedSlot)
        .where(BlockedSlot.date == day, BlockedSlot.time.in_(list(times)))
        .returning(BlockedSlot.time)
    )
    return list(res.scalars().all())
