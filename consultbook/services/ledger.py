# consultbook/services/ledger.py
"""
Slot ledger: the bookings and administrator blocks that make a (day, time)
unavailable, and the only code that writes either table.

Write methods run inside the caller's transaction (``db``) so a lifecycle step
and its ledger change commit together. Every check-then-insert is backed by a
unique index; on PostgreSQL the cross-table part (booking vs block on one slot)
is additionally serialized with advisory locks, see crud/locks.py.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Dict, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consultbook.core.business import TIME_SLOTS, slots_inside_notice, utc_now
from consultbook.core.errors import ConflictError
from consultbook.core.logging import get_logger
from consultbook.crud import blocked_slot as blocks_crud
from consultbook.crud import booking as bookings_crud
from consultbook.crud.locks import lock_slots
from consultbook.db.models.blocked_slot import BlockedSlot
from consultbook.db.models.booking import Booking
from consultbook.services.cache import AVAILABILITY_PREFIX, AvailabilityCache

logger = get_logger(__name__)

Clock = Callable[[], datetime]

SLOT_UNAVAILABLE = "This time slot is not available"


def catalog_order(labels) -> list[str]:
    """Catalog labels first in catalog order, then any legacy labels sorted."""
    labels = set(labels)
    ordered = [t for t in TIME_SLOTS if t in labels]
    return ordered + sorted(labels - set(TIME_SLOTS))


@dataclass(frozen=True)
class DaySlots:
    blocked_times: list[str]
    booked_times: list[str]

    def to_dict(self) -> dict:
        return {"blockedTimes": self.blocked_times, "bookedTimes": self.booked_times}


@dataclass
class BlockBatchResult:
    inserted: list[tuple[date, str]]
    conflicts: list[tuple[date, str]]


class SlotLedger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession],
                 clock: Clock = utc_now, cache: Optional[AvailabilityCache] = None):
        self.sessions = session_factory
        self.clock = clock
        self.cache = cache

    # ---------- reads ----------

    async def get_slots_by_date(self, day: date) -> DaySlots:
        async with self.sessions() as db:
            blocked = await blocks_crud.blocked_times(db, day)
            booked = await bookings_crud.booked_times(db, day)
        return DaySlots(blocked_times=catalog_order(blocked), booked_times=catalog_order(booked))

    async def get_availability(self, day: date, minimum_notice_hours: int) -> list[str]:
        """Booked + blocked labels for ``day`` plus every label inside the notice window."""
        slots = await self.get_slots_by_date(day)
        unavailable = set(slots.blocked_times) | set(slots.booked_times)
        unavailable.update(slots_inside_notice(day, self.clock(), minimum_notice_hours))
        return catalog_order(unavailable)

    async def is_slot_available(self, day: date, label: str) -> bool:
        async with self.sessions() as db:
            return await self.is_free(db, day, label)

    async def is_free(self, db: AsyncSession, day: date, label: str) -> bool:
        if await blocks_crud.is_slot_blocked(db, day, label):
            return False
        return not await bookings_crud.is_slot_booked(db, day, label)

    async def taken_between(self, start: date, end: date) -> Dict[date, set[str]]:
        """Booked + blocked labels per day for [start, end]: two queries regardless of span."""
        taken: Dict[date, set[str]] = defaultdict(set)
        async with self.sessions() as db:
            for d, t in await bookings_crud.booked_pairs_between(db, start, end):
                taken[d].add(t)
            for d, t in await blocks_crud.blocked_pairs_between(db, start, end):
                taken[d].add(t)
        return taken

    # ---------- booking writes ----------

    async def insert_booking(self, db: AsyncSession, *, day: date, label: str, **fields) -> Booking:
        await lock_slots(db, [(day, label)])
        if not await self.is_free(db, day, label):
            raise ConflictError(SLOT_UNAVAILABLE)
        try:
            return await bookings_crud.insert_booking(db, date=day, time=label, **fields)
        except IntegrityError:
            # lost the race for the slot to a concurrent booking
            logger.info("booking_slot_race_lost", date=day.isoformat(), time=label)
            raise ConflictError(SLOT_UNAVAILABLE)

    async def move_booking(self, db: AsyncSession, booking: Booking, day: date, label: str) -> Booking:
        """Re-point a booking at a new slot; the old slot frees up with the same row update."""
        await lock_slots(db, [(day, label)])
        if not await self.is_free(db, day, label):
            raise ConflictError("Selected time slot is not available")
        try:
            moved = await bookings_crud.update_booking(db, booking.id, {"date": day, "time": label})
        except IntegrityError:
            raise ConflictError("Selected time slot is not available")
        return moved

    async def confirm_booking(self, db: AsyncSession, booking_id: int) -> Optional[Booking]:
        return await bookings_crud.mark_confirmed(db, booking_id)

    async def cancel_booking(self, db: AsyncSession, booking_id: int) -> Optional[Booking]:
        return await bookings_crud.mark_cancelled(db, booking_id)

    # ---------- block writes ----------

    async def insert_block(self, db: AsyncSession, day: date, label: str, reason: str = "") -> BlockedSlot:
        await lock_slots(db, [(day, label)])
        if await blocks_crud.is_slot_blocked(db, day, label):
            raise ConflictError("This time slot is already blocked")
        if await bookings_crud.is_slot_booked(db, day, label):
            raise ConflictError("This time slot already has a booking")
        try:
            return await blocks_crud.insert_block(db, day=day, time=label, reason=reason)
        except IntegrityError:
            raise ConflictError("This time slot is already blocked")

    async def insert_blocks(self, db: AsyncSession, pairs: Sequence[tuple[date, str]],
                            reason: str = "") -> BlockBatchResult:
        """
        Block every pair that is neither blocked nor booked. Reads are one query
        per table for all days; the insert is a single ON CONFLICT DO NOTHING
        batch, and pairs it skips (a concurrent writer got there) are conflicts.
        """
        pairs = list(dict.fromkeys(pairs))
        await lock_slots(db, pairs)
        days = {d for d, _ in pairs}
        taken = set(await blocks_crud.blocked_pairs_for_days(db, days))
        taken |= set(await bookings_crud.booked_pairs_for_days(db, days))

        candidates = [p for p in pairs if p not in taken]
        inserted = set(await blocks_crud.insert_blocks_skip_conflicts(db, candidates, reason))
        raced = [p for p in candidates if p not in inserted]
        if raced:
            logger.info("bulk_block_race_lost", pairs=len(raced))

        return BlockBatchResult(
            inserted=[p for p in pairs if p in inserted],
            conflicts=[p for p in pairs if p not in inserted],
        )

    async def delete_blocks(self, db: AsyncSession, day: date, labels: Sequence[str]) -> list[str]:
        return catalog_order(await blocks_crud.delete_blocks(db, day, labels))

    # ---------- change notification ----------

    async def changed(self) -> None:
        """Call after a ledger write commits: cached availability is stale now."""
        if self.cache is not None:
            await self.cache.invalidate_prefix(AVAILABILITY_PREFIX)
