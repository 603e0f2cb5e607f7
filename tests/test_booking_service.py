#!/usr/bin/env python3
"""
Tests for the booking lifecycle: create, confirm, reschedule, cancel.
"""

import asyncio
import pytest
import sys
import os
from datetime import date

# Add app to Python path for testing
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from consultbook.core.errors import ConflictError, InvalidRequestError, NotFoundError
from consultbook.db.models.booking import Booking
from consultbook.services.booking import DUPLICATE_BOOKING
from consultbook.services.cache import AvailabilityCache
from consultbook.services.container import build_services
from conftest import FailingNotifier, OWNER_EMAIL

MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
WEDNESDAY = date(2030, 1, 9)

pytestmark = pytest.mark.integration


@pytest.fixture
def create(services, booking_details):
    async def _create(day=TUESDAY, time="10:00", **overrides):
        fields = {**booking_details, **overrides}
        return await services.bookings.create_booking(day=day, time=time, **fields)
    return _create


class TestCreateBooking:

    async def test_new_booking_is_unconfirmed_and_retrievable(self, services, create):
        booking = await create()
        assert booking.id is not None
        assert len(booking.confirmation_token) == 64

        fetched = await services.bookings.get_booking_by_token(booking.confirmation_token)
        assert fetched.id == booking.id
        assert fetched.confirmed is False
        assert fetched.cancelled is False
        assert fetched.date == TUESDAY
        assert fetched.time == "10:00"

    async def test_tokens_are_unique(self, create):
        a = await create(email="a@acmecorp.com")
        b = await create(email="b@acmecorp.com", time="11:00")
        assert a.confirmation_token != b.confirmation_token

    async def test_sends_confirmation_and_admin_notice(self, services, create, notifier):
        booking = await create()
        await services.dispatcher.drain()

        assert sorted(notifier.kinds()) == ["admin_notification", "booking_confirmation_request"]
        to_booker = next(n for n in notifier.sent if n.kind.value == "booking_confirmation_request")
        assert to_booker.to == "jane@acmecorp.com"
        assert to_booker.payload["token"] == booking.confirmation_token
        to_admin = next(n for n in notifier.sent if n.kind.value == "admin_notification")
        assert to_admin.to == OWNER_EMAIL
        assert to_admin.payload["event"] == "new"

    async def test_taken_slot_conflicts(self, create):
        await create()
        with pytest.raises(ConflictError, match="This time slot is not available"):
            await create(email="someone.else@acmecorp.com")

    async def test_blocked_slot_conflicts(self, services, create):
        await services.blocking.block_time_slot(TUESDAY, "10:00")
        with pytest.raises(ConflictError):
            await create()

    async def test_one_upcoming_booking_per_email(self, create):
        await create()
        with pytest.raises(ConflictError, match="already have an upcoming consultation"):
            await create(day=WEDNESDAY, time="09:00", email="JANE@acmecorp.com")

    async def test_cancelled_booking_does_not_count_for_email_rule(self, services, create):
        first = await create()
        await services.bookings.cancel_booking(first.confirmation_token)
        second = await create(day=WEDNESDAY)
        assert second.id != first.id

    async def test_past_booking_does_not_count_for_email_rule(self, services, create, clock):
        await create()
        clock.advance(days=2)  # Wednesday 08:00: Tuesday's booking is history
        booking = await create(day=date(2030, 1, 10))
        assert booking.date == date(2030, 1, 10)

    async def test_slot_inside_notice_window_rejected(self, create):
        with pytest.raises(ConflictError):
            await create(day=MONDAY, time="16:00")

    async def test_unknown_slot_label_rejected(self, create):
        with pytest.raises(InvalidRequestError):
            await create(time="13:00")

    async def test_concurrent_creates_exactly_one_wins(self, create, session_factory):
        results = await asyncio.gather(
            create(email="first@acmecorp.com"),
            create(email="second@acmecorp.com"),
            return_exceptions=True,
        )
        wins = [r for r in results if isinstance(r, Booking)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(wins) == 1
        assert len(conflicts) == 1

    async def test_concurrent_creates_for_one_email_keep_one_booking(self, services, create):
        results = await asyncio.gather(
            create(day=TUESDAY, time="10:00"),
            create(day=WEDNESDAY, time="11:00"),
            return_exceptions=True,
        )
        wins = [r for r in results if isinstance(r, Booking)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(wins) == 1
        assert len(conflicts) == 1
        assert conflicts[0].message == DUPLICATE_BOOKING

        upcoming = await services.bookings.get_upcoming_consultations()
        assert [b.email for b in upcoming] == ["jane@acmecorp.com"]

    async def test_concurrent_booking_and_block_never_share_a_slot(self, services, create):
        results = await asyncio.gather(
            create(day=TUESDAY, time="10:00"),
            services.blocking.block_time_slot(TUESDAY, "10:00", "offsite"),
            return_exceptions=True,
        )
        assert sum(isinstance(r, ConflictError) for r in results) == 1

        slots = await services.ledger.get_slots_by_date(TUESDAY)
        assert len(slots.blocked_times) + len(slots.booked_times) == 1

    async def test_concurrent_booking_and_bulk_block_never_share_a_slot(self, services, create):
        booking, outcome = await asyncio.gather(
            create(day=TUESDAY, time="10:00"),
            services.blocking.block_bulk_time_slots([TUESDAY], ["09:00", "10:00"]),
            return_exceptions=True,
        )
        slots = await services.ledger.get_slots_by_date(TUESDAY)
        assert "09:00" in slots.blocked_times
        assert not (set(slots.blocked_times) & set(slots.booked_times))
        if isinstance(booking, Booking):
            assert outcome.results.conflicts == [{"date": "2030-01-08", "times": ["10:00"]}]
        else:
            assert isinstance(booking, ConflictError)
            assert slots.blocked_times == ["09:00", "10:00"]

    async def test_notification_failure_keeps_booking(self, session_factory, test_settings, clock, booking_details):
        failing = FailingNotifier()
        svc = build_services(session_factory, test_settings, notifier=failing,
                             cache=AvailabilityCache(None), clock=clock)
        booking = await svc.bookings.create_booking(day=TUESDAY, time="09:00", **booking_details)
        await svc.dispatcher.drain()

        assert failing.attempts == 2
        assert svc.dispatcher.failures == 2
        fetched = await svc.bookings.get_booking_by_token(booking.confirmation_token)
        assert fetched.cancelled is False


class TestTokenOperations:

    async def test_unknown_token(self, services):
        with pytest.raises(NotFoundError, match="Booking not found"):
            await services.bookings.get_booking_by_token("nope")
        with pytest.raises(NotFoundError):
            await services.bookings.confirm_booking("nope")
        with pytest.raises(NotFoundError):
            await services.bookings.cancel_booking("nope")

    async def test_confirm_twice(self, services, create):
        booking = await create()
        first = await services.bookings.confirm_booking(booking.confirmation_token)
        assert first.message == "Booking confirmed successfully"
        assert first.booking.confirmed is True

        second = await services.bookings.confirm_booking(booking.confirmation_token)
        assert second.message == "Booking was already confirmed"
        assert second.booking.confirmed is True

    async def test_cancel_twice_notifies_once(self, services, create, notifier):
        booking = await create()
        await services.dispatcher.drain()
        notifier.sent.clear()

        first = await services.bookings.cancel_booking(booking.confirmation_token)
        await services.dispatcher.drain()
        assert first.message == "Booking cancelled successfully"
        assert first.booking.cancelled is True
        assert notifier.kinds().count("booking_cancelled") == 1

        second = await services.bookings.cancel_booking(booking.confirmation_token)
        await services.dispatcher.drain()
        assert second.message == "Booking was already cancelled"
        assert notifier.kinds().count("booking_cancelled") == 1

    async def test_cancel_frees_slot(self, services, create):
        booking = await create()
        await services.bookings.cancel_booking(booking.confirmation_token)
        assert await services.ledger.is_slot_available(TUESDAY, "10:00")
        again = await create(email="bob@acmecorp.com")
        assert again.time == "10:00"


class TestReschedule:

    async def test_moves_booking_and_frees_old_slot(self, services, create, notifier):
        booking = await create()
        result = await services.bookings.update_booking(booking.confirmation_token, WEDNESDAY, "14:00")
        await services.dispatcher.drain()

        assert result.message == "Booking updated successfully"
        assert result.booking.id == booking.id
        assert (result.booking.date, result.booking.time) == (WEDNESDAY, "14:00")
        assert await services.ledger.is_slot_available(TUESDAY, "10:00")
        assert not await services.ledger.is_slot_available(WEDNESDAY, "14:00")
        assert "booking_rescheduled" in notifier.kinds()

    async def test_target_taken(self, services, create):
        booking = await create()
        await services.blocking.block_time_slot(WEDNESDAY, "14:00")
        with pytest.raises(ConflictError, match="Selected time slot is not available"):
            await services.bookings.update_booking(booking.confirmation_token, WEDNESDAY, "14:00")

    async def test_same_slot_is_unavailable(self, services, create):
        booking = await create()
        with pytest.raises(ConflictError):
            await services.bookings.update_booking(booking.confirmation_token, TUESDAY, "10:00")

    async def test_cancelled_booking_cannot_move(self, services, create):
        booking = await create()
        await services.bookings.cancel_booking(booking.confirmation_token)
        with pytest.raises(ConflictError, match="cancelled"):
            await services.bookings.update_booking(booking.confirmation_token, WEDNESDAY, "14:00")


class TestAdminConsultations:

    async def test_upcoming_sorted_and_excludes_cancelled(self, services, create):
        late = await create(day=WEDNESDAY, time="09:00", email="a@acmecorp.com")
        early = await create(day=TUESDAY, time="15:00", email="b@acmecorp.com")
        earliest = await create(day=TUESDAY, time="09:00", email="c@acmecorp.com")
        gone = await create(day=TUESDAY, time="11:00", email="d@acmecorp.com")
        await services.bookings.cancel_booking(gone.confirmation_token)

        upcoming = await services.bookings.get_upcoming_consultations()
        assert [b.id for b in upcoming] == [earliest.id, early.id, late.id]

    async def test_cancel_by_id(self, services, create, notifier):
        booking = await create()
        result = await services.bookings.cancel_consultation_by_id(booking.id)
        assert result.message == "Consultation cancelled successfully"
        assert result.booking.cancelled is True

        again = await services.bookings.cancel_consultation_by_id(booking.id)
        assert again.message == "Consultation was already cancelled"

        await services.dispatcher.drain()
        assert notifier.kinds().count("booking_cancelled") == 1

    async def test_cancel_unknown_id(self, services):
        with pytest.raises(NotFoundError, match="Consultation not found"):
            await services.bookings.cancel_consultation_by_id(999)
