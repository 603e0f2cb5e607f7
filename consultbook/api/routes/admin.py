# consultbook/api/routes/admin.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from consultbook.api.deps import get_services, parse_day_query, require_admin
from consultbook.schemas.blocked_slot import (
    BlockedSlotOut,
    BlockSlotIn,
    BulkBlockIn,
    RecurringBlockIn,
    SlotsByDateOut,
    UnblockIn,
)
from consultbook.schemas.booking import BookingEnvelope, BookingOut
from consultbook.services.container import Services

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# -------- Consultations --------

@router.get("/consultations", response_model=list[BookingOut])
async def list_consultations(services: Services = Depends(get_services)):
    return [BookingOut.model_validate(b) for b in await services.bookings.get_upcoming_consultations()]


@router.delete("/consultations/{booking_id}", response_model=BookingEnvelope)
async def cancel_consultation(booking_id: int, services: Services = Depends(get_services)):
    result = await services.bookings.cancel_consultation_by_id(booking_id)
    return BookingEnvelope(message=result.message, booking=BookingOut.model_validate(result.booking))


# -------- Blocked slots --------

@router.get("/blocked-slots", response_model=SlotsByDateOut)
async def slots_by_date(date: str = Query(..., description="YYYY-MM-DD"),
                        services: Services = Depends(get_services)):
    slots = await services.ledger.get_slots_by_date(parse_day_query(date))
    return SlotsByDateOut(blocked_times=slots.blocked_times, booked_times=slots.booked_times)


@router.post("/blocked-slots")
async def block_slot(payload: BlockSlotIn, services: Services = Depends(get_services)):
    block = await services.blocking.block_time_slot(payload.date, payload.time, payload.reason or "")
    return {
        "message": "Time slot blocked successfully",
        "blockedSlot": BlockedSlotOut.model_validate(block).model_dump(mode="json", by_alias=True),
    }


@router.post("/blocked-slots/bulk")
async def block_bulk(payload: BulkBlockIn, services: Services = Depends(get_services)):
    outcome = await services.blocking.block_bulk_time_slots(payload.dates, payload.times, payload.reason or "")
    return {"message": outcome.message, "results": outcome.results.to_dict()}


@router.post("/blocked-slots/recurring")
async def block_recurring(payload: RecurringBlockIn, services: Services = Depends(get_services)):
    outcome = await services.blocking.block_recurring_time_slots(
        payload.days_of_week,
        payload.number_of_weeks,
        payload.times,
        payload.reason or "Recurring block",
    )
    return {"message": outcome.message, "results": outcome.results.to_dict()}


@router.delete("/blocked-slots")
async def unblock(payload: UnblockIn, services: Services = Depends(get_services)):
    removed = await services.blocking.unblock_time_slots(payload.date, payload.times)
    return {"message": "Time slots unblocked successfully", "unblocked": removed}
