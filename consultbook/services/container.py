# consultbook/services/container.py
"""Builds every service once per process; routes receive the bundle via app.state."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consultbook.core.business import utc_now
from consultbook.core.config import Settings
from consultbook.services.auth import AuthService
from consultbook.services.availability import AvailabilitySearch
from consultbook.services.blocking import BlockingService
from consultbook.services.booking import BookingService
from consultbook.services.cache import AvailabilityCache
from consultbook.services.ledger import Clock, SlotLedger
from consultbook.services.notifications import NotificationDispatcher, Notifier, build_notifier


@dataclass
class Services:
    settings: Settings
    ledger: SlotLedger
    bookings: BookingService
    search: AvailabilitySearch
    blocking: BlockingService
    auth: AuthService
    dispatcher: NotificationDispatcher
    cache: AvailabilityCache

    async def close(self) -> None:
        await self.dispatcher.drain()
        await self.cache.close()


def build_services(session_factory: async_sessionmaker[AsyncSession], settings: Settings,
                   notifier: Optional[Notifier] = None, cache: Optional[AvailabilityCache] = None,
                   clock: Clock = utc_now) -> Services:
    cache = cache or AvailabilityCache(settings.REDIS_URL, default_ttl=settings.AVAILABILITY_CACHE_TTL)
    dispatcher = NotificationDispatcher(
        notifier or build_notifier(settings),
        admin_email=settings.ADMIN_NOTIFY_EMAIL or settings.ADMIN_EMAIL,
        reset_ttl_minutes=settings.PASSWORD_RESET_TTL_MINUTES,
    )
    ledger = SlotLedger(session_factory, clock=clock, cache=cache)
    return Services(
        settings=settings,
        ledger=ledger,
        bookings=BookingService(
            session_factory, ledger, dispatcher, clock=clock,
            minimum_notice_hours=settings.MINIMUM_NOTICE_HOURS,
            upcoming_limit=settings.UPCOMING_LIMIT,
        ),
        search=AvailabilitySearch(ledger, clock=clock, horizon_days=settings.NEXT_AVAILABLE_HORIZON_DAYS),
        blocking=BlockingService(
            session_factory, ledger, clock=clock,
            max_pairs=settings.MAX_BULK_BLOCK_PAIRS, max_weeks=settings.MAX_RECURRING_WEEKS,
        ),
        auth=AuthService(
            session_factory, dispatcher, clock=clock,
            reset_ttl_minutes=settings.PASSWORD_RESET_TTL_MINUTES,
        ),
        dispatcher=dispatcher,
        cache=cache,
    )
