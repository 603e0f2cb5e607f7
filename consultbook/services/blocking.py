# consultbook/services/blocking.py
"""
Administrator blocks: single slot, bulk (dates x times) and recurring by
weekday. Bulk requests report per-pair outcomes; a partial success is still
a success.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consultbook.core.business import is_valid_slot, sunday_based_weekday, today, utc_now
from consultbook.core.errors import ConflictError, InvalidRequestError
from consultbook.core.logging import get_logger
from consultbook.db.models.blocked_slot import BlockedSlot
from consultbook.services.ledger import Clock, SlotLedger

logger = get_logger(__name__)

RECURRING_REASON = "Recurring block"


@dataclass
class BulkBlockResults:
    successful: list[dict] = field(default_factory=list)
    conflicts: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"successful": self.successful, "conflicts": self.conflicts}


@dataclass
class BulkBlockOutcome:
    message: str
    results: BulkBlockResults


def group_by_day(days: Sequence[date], pairs: Iterable[tuple[date, str]]) -> list[dict]:
    """[{date, times}] in request day order, skipping days with nothing to report."""
    per_day: dict[date, list[str]] = {}
    for d, t in pairs:
        per_day.setdefault(d, []).append(t)
    return [{"date": d.isoformat(), "times": per_day[d]} for d in days if d in per_day]


def recurring_dates(weekdays: Sequence[int], number_of_weeks: int, start: date) -> list[date]:
    """
    Concrete dates for weekday numbers (0=Sunday .. 6=Saturday) over
    ``number_of_weeks`` weeks. Week w spans start+7w .. start+7w+6 and each
    weekday lands on its first occurrence in that span, so nothing falls
    before ``start``.
    """
    dates: list[date] = []
    for week in range(number_of_weeks):
        week_start = start + timedelta(days=7 * week)
        current = sunday_based_weekday(week_start)
        for weekday in weekdays:
            dates.append(week_start + timedelta(days=(weekday - current) % 7))
    return dates


class BlockingService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], ledger: SlotLedger,
                 clock: Clock = utc_now, max_pairs: int = 1000, max_weeks: int = 52):
        self.sessions = session_factory
        self.ledger = ledger
        self.clock = clock
        self.max_pairs = max_pairs
        self.max_weeks = max_weeks

    @staticmethod
    def _check_labels(times: Sequence[str]) -> None:
        bad = [t for t in times if not is_valid_slot(t)]
        if bad:
            raise InvalidRequestError("Invalid time slot", details={"invalidTimes": bad})

    async def block_time_slot(self, day: date, time: str, reason: str = "") -> BlockedSlot:
        self._check_labels([time])
        async with self.sessions() as db, db.begin():
            block = await self.ledger.insert_block(db, day, time, reason or "")
        logger.info("slot_blocked", date=day.isoformat(), time=time)
        await self.ledger.changed()
        return block

    async def block_bulk_time_slots(self, days: Sequence[date], times: Sequence[str],
                                    reason: str = "") -> BulkBlockOutcome:
        if not days or not times:
            raise InvalidRequestError("Dates and times arrays are required")
        self._check_labels(times)
        days = list(dict.fromkeys(days))
        times = list(dict.fromkeys(times))
        if len(days) * len(times) > self.max_pairs:
            raise InvalidRequestError(f"Too many time slots in one request (max {self.max_pairs})")

        pairs = [(d, t) for d in days for t in times]
        async with self.sessions() as db, db.begin():
            batch = await self.ledger.insert_blocks(db, pairs, reason or "")

        results = BulkBlockResults(
            successful=group_by_day(days, batch.inserted),
            conflicts=group_by_day(days, batch.conflicts),
        )
        logger.info("slots_bulk_blocked", requested=len(pairs), inserted=len(batch.inserted),
                    conflicts=len(batch.conflicts))

        if not batch.inserted:
            raise ConflictError("All selected time slots have conflicts", details=results.to_dict())

        await self.ledger.changed()
        if batch.conflicts:
            return BulkBlockOutcome("Some time slots were blocked successfully, but there were conflicts", results)
        return BulkBlockOutcome("All time slots were blocked successfully", results)

    async def block_recurring_time_slots(self, weekdays: Sequence[int], number_of_weeks: int,
                                         times: Sequence[str], reason: str = RECURRING_REASON) -> BulkBlockOutcome:
        if not weekdays or not times or number_of_weeks < 1:
            raise InvalidRequestError("Days of week, number of weeks, and times are required")
        if any(not 0 <= d <= 6 for d in weekdays):
            raise InvalidRequestError("Days of week must be between 0 (Sunday) and 6 (Saturday)")
        if number_of_weeks > self.max_weeks:
            raise InvalidRequestError(f"Number of weeks must be at most {self.max_weeks}")

        days = recurring_dates(list(dict.fromkeys(weekdays)), number_of_weeks, today(self.clock()))
        return await self.block_bulk_time_slots(days, times, reason or RECURRING_REASON)

    async def unblock_time_slots(self, day: date, times: Sequence[str]) -> list[str]:
        if not times:
            raise InvalidRequestError("Times array is required")
        async with self.sessions() as db, db.begin():
            removed = await self.ledger.delete_blocks(db, day, times)
        logger.info("slots_unblocked", date=day.isoformat(), removed=removed)
        if removed:
            await self.ledger.changed()
        return removed
