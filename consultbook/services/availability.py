# consultbook/services/availability.py
"""Earliest bookable weekday within the horizon, read-only against the ledger."""
from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from consultbook.core.business import TIME_SLOTS, is_weekend, iter_days, slots_inside_notice, today, utc_now
from consultbook.core.errors import NotFoundError
from consultbook.core.logging import get_logger
from consultbook.services.ledger import Clock, SlotLedger

logger = get_logger(__name__)


class AvailabilitySearch:
    def __init__(self, ledger: SlotLedger, clock: Clock = utc_now, horizon_days: int = 30):
        self.ledger = ledger
        self.clock = clock
        self.horizon_days = horizon_days

    async def find_next_available(self, minimum_notice_hours: int) -> Optional[date]:
        now = self.clock()
        start = today(now)
        end = start + timedelta(days=self.horizon_days)
        taken = await self.ledger.taken_between(start, end)

        for day in iter_days(start, end):
            if is_weekend(day):
                continue
            unavailable = taken.get(day, set()) | set(slots_inside_notice(day, now, minimum_notice_hours))
            if any(label not in unavailable for label in TIME_SLOTS):
                return day
        return None

    async def get_next_available_date(self, minimum_notice_hours: int) -> date:
        found = await self.find_next_available(minimum_notice_hours)
        if found is None:
            logger.info("next_available_none", horizon_days=self.horizon_days)
            raise NotFoundError(f"No available slots found in the next {self.horizon_days} days")
        return found
