# consultbook/crud/booking.py

from __future__ import annotations
from datetime import date
from typing import Iterable, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from consultbook.db.models.booking import Booking

_active = Booking.cancelled.is_(False)


async def _reload(db: AsyncSession, booking_id: Optional[int]) -> Optional[Booking]:
    if booking_id is None:
        return None
    return await db.get(Booking, booking_id, populate_existing=True)


async def get_booking_by_token(db: AsyncSession, token: str) -> Optional[Booking]:
    res = await db.execute(sa.select(Booking).where(Booking.confirmation_token == token))
    return res.scalar_one_or_none()


async def get_booking(db: AsyncSession, booking_id: int) -> Optional[Booking]:
    return await db.get(Booking, booking_id)


async def booked_times(db: AsyncSession, day: date) -> list[str]:
    res = await db.execute(sa.select(Booking.time).where(Booking.date == day, _active))
    return list(res.scalars().all())


async def booked_pairs_for_days(db: AsyncSession, days: Iterable[date]) -> list[tuple[date, str]]:
    """(date, time) of live bookings on any of ``days``; one round-trip."""
    days = list(set(days))
    if not days:
        return []
    res = await db.execute(sa.select(Booking.date, Booking.time).where(Booking.date.in_(days), _active))
    return [(row.date, row.time) for row in res.all()]


async def booked_pairs_between(db: AsyncSession, start: date, end: date) -> list[tuple[date, str]]:
    res = await db.execute(
        sa.select(Booking.date, Booking.time).where(Booking.date >= start, Booking.date <= end, _active)
    )
    return [(row.date, row.time) for row in res.all()]


async def is_slot_booked(db: AsyncSession, day: date, time: str) -> bool:
    res = await db.execute(
        sa.select(Booking.id).where(Booking.date == day, Booking.time == time, _active).limit(1)
    )
    return res.scalar_one_or_none() is not None


async def get_upcoming_booking_for_email(db: AsyncSession, email: str, from_day: date) -> Optional[Booking]:
    res = await db.execute(
        sa.select(Booking)
        .where(sa.func.lower(Booking.email) == email.lower(), Booking.date >= from_day, _active)
        .limit(1)
    )
    return res.scalar_one_or_none()


async def insert_booking(db: AsyncSession, **values) -> Booking:
    """Add and flush; a taken slot surfaces here as IntegrityError."""
    obj = Booking(confirmed=False, cancelled=False, **values)
    db.add(obj)
    await db.flush()
    await db.refresh(obj)
    return obj


async def update_booking(db: AsyncSession, booking_id: int, values: dict) -> Optional[Booking]:
    res = await db.execute(
        sa.update(Booking)
        .where(Booking.id == booking_id)
        .values(**values)
        .returning(Booking.id)
        .execution_options(synchronize_session=False)
    )
    return await _reload(db, res.scalar_one_or_none())


async def mark_cancelled(db: AsyncSession, booking_id: int) -> Optional[Booking]:
    """Flip cancelled false -> true; None when another request got there first."""
    res = await db.execute(
        sa.update(Booking)
        .where(Booking.id == booking_id, _active)
        .values(cancelled=True)
        .returning(Booking.id)
        .execution_options(synchronize_session=False)
    )
    return await _reload(db, res.scalar_one_or_none())


async def mark_confirmed(db: AsyncSession, booking_id: int) -> Optional[Booking]:
    res = await db.execute(
        sa.update(Booking)
        .where(Booking.id == booking_id, Booking.confirmed.is_(False))
        .values(confirmed=True)
        .returning(Booking.id)
        .execution_options(synchronize_session=False)
    )
    return await _reload(db, res.scalar_one_or_none())


async def list_upcoming(db: AsyncSession, *, from_day: date, limit: int = 500) -> Sequence[Booking]:
    q = (
        sa.select(Booking)
        .where(Booking.date >= from_day, _active)
        .order_by(Booking.date.asc(), Booking.time.asc())
        .limit(limit)
    )
    res = await db.execute(q)
    return res.scalars().all()
