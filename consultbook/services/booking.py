# consultbook/services/booking.py
"""
Booking lifecycle: create, confirm, reschedule and cancel one booking.

Each operation runs in its own transaction. The per-email rule and the slot
claim happen inside it, under advisory locks on PostgreSQL and behind the
partial unique index everywhere. Notifications go out only after commit.
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consultbook.core.business import is_valid_slot, notice_cutoff, slot_start, today, utc_now
from consultbook.core.errors import ConflictError, InvalidRequestError, NotFoundError
from consultbook.core.logging import get_logger
from consultbook.crud import booking as bookings_crud
from consultbook.crud.locks import acquire, email_lock_key
from consultbook.db.models.booking import Booking
from consultbook.services.ledger import SLOT_UNAVAILABLE, Clock, SlotLedger
from consultbook.services.notifications import NotificationDispatcher

logger = get_logger(__name__)

DUPLICATE_BOOKING = (
    "You already have an upcoming consultation scheduled. Please check your confirmation "
    "email to manage your booking, or contact us for assistance."
)


@dataclass
class BookingResult:
    message: str
    booking: Booking


def new_confirmation_token() -> str:
    return secrets.token_hex(32)


class BookingService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], ledger: SlotLedger,
                 dispatcher: NotificationDispatcher, clock: Clock = utc_now,
                 minimum_notice_hours: int = 20, upcoming_limit: int = 500):
        self.sessions = session_factory
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.clock = clock
        self.minimum_notice_hours = minimum_notice_hours
        self.upcoming_limit = upcoming_limit

    def _check_bookable(self, day: date, label: str, unavailable_message: str) -> None:
        if not is_valid_slot(label):
            raise InvalidRequestError(f"Invalid time slot {label!r}")
        if slot_start(day, label) < notice_cutoff(self.clock(), self.minimum_notice_hours):
            raise ConflictError(unavailable_message)

    async def _by_token(self, db: AsyncSession, token: str) -> Booking:
        booking = await bookings_crud.get_booking_by_token(db, token)
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    async def create_booking(self, *, name: str, email: str, company: str, day: date, time: str,
                             message: Optional[str] = None) -> Booking:
        self._check_bookable(day, time, SLOT_UNAVAILABLE)
        email = email.strip()

        async with self.sessions() as db, db.begin():
            await acquire(db, [email_lock_key(email)])
            existing = await bookings_crud.get_upcoming_booking_for_email(db, email, today(self.clock()))
            if existing is not None:
                raise ConflictError(DUPLICATE_BOOKING)

            booking = await self.ledger.insert_booking(
                db,
                day=day,
                label=time,
                name=name,
                email=email,
                company=company,
                message=message or None,
                confirmation_token=new_confirmation_token(),
            )

        logger.info("booking_created", booking_id=booking.id, date=day.isoformat(), time=time)
        await self.ledger.changed()
        self.dispatcher.booking_created(booking)
        return booking

    async def get_booking_by_token(self, token: str) -> Booking:
        async with self.sessions() as db:
            return await self._by_token(db, token)

    async def confirm_booking(self, token: str) -> BookingResult:
        async with self.sessions() as db, db.begin():
            booking = await self._by_token(db, token)
            if booking.confirmed:
                return BookingResult("Booking was already confirmed", booking)
            confirmed = await self.ledger.confirm_booking(db, booking.id)

        if confirmed is None:
            # a concurrent confirm won
            return BookingResult("Booking was already confirmed", booking)
        logger.info("booking_confirmed", booking_id=confirmed.id)
        return BookingResult("Booking confirmed successfully", confirmed)

    async def update_booking(self, token: str, day: date, time: str) -> BookingResult:
        message = "Selected time slot is not available"
        async with self.sessions() as db, db.begin():
            booking = await self._by_token(db, token)
            if booking.cancelled:
                raise ConflictError("Booking was cancelled and cannot be rescheduled")
            self._check_bookable(day, time, message)
            previous = (booking.date.isoformat(), booking.time)
            moved = await self.ledger.move_booking(db, booking, day, time)

        logger.info("booking_rescheduled", booking_id=moved.id, previous=previous,
                    date=day.isoformat(), time=time)
        await self.ledger.changed()
        self.dispatcher.booking_rescheduled(moved)
        return BookingResult("Booking updated successfully", moved)

    async def _cancel(self, booking: Booking, db: AsyncSession) -> Optional[Booking]:
        if booking.cancelled:
            return None
        return await self.ledger.cancel_booking(db, booking.id)

    async def cancel_booking(self, token: str) -> BookingResult:
        async with self.sessions() as db, db.begin():
            booking = await self._by_token(db, token)
            cancelled = await self._cancel(booking, db)

        if cancelled is None:
            return BookingResult("Booking was already cancelled", booking)
        logger.info("booking_cancelled", booking_id=cancelled.id, by="token_holder")
        await self.ledger.changed()
        self.dispatcher.booking_cancelled(cancelled)
        return BookingResult("Booking cancelled successfully", cancelled)

    async def get_upcoming_consultations(self) -> Sequence[Booking]:
        async with self.sessions() as db:
            return await bookings_crud.list_upcoming(db, from_day=today(self.clock()), limit=self.upcoming_limit)

    async def cancel_consultation_by_id(self, booking_id: int) -> BookingResult:
        async with self.sessions() as db, db.begin():
            booking = await bookings_crud.get_booking(db, booking_id)
            if booking is None:
                raise NotFoundError("Consultation not found")
            cancelled = await self._cancel(booking, db)

        if cancelled is None:
            return BookingResult("Consultation was already cancelled", booking)
        logger.info("booking_cancelled", booking_id=cancelled.id, by="admin")
        await self.ledger.changed()
        self.dispatcher.booking_cancelled(cancelled)
        return BookingResult("Consultation cancelled successfully", cancelled)
