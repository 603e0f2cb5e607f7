# consultbook/api/routes/bookings.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from consultbook.api.deps import get_services, parse_day_query
from consultbook.core.business import TIME_SLOTS
from consultbook.schemas.booking import (
    AvailabilityOut,
    BookingCreate,
    BookingEnvelope,
    BookingOut,
    BookingReschedule,
    NextAvailableOut,
)
from consultbook.services.cache import AVAILABILITY_PREFIX
from consultbook.services.container import Services

router = APIRouter(prefix="/api", tags=["bookings"])


# -------- Availability (read-through cached) --------

@router.get("/availability", response_model=AvailabilityOut)
async def get_availability(date: str = Query(..., description="YYYY-MM-DD"),
                           services: Services = Depends(get_services)):
    day = parse_day_query(date)
    notice = services.settings.MINIMUM_NOTICE_HOURS

    async def load():
        return await services.ledger.get_availability(day, notice)

    unavailable, _ = await services.cache.get_or_load(f"{AVAILABILITY_PREFIX}day:{day.isoformat()}:{notice}", load)
    return AvailabilityOut(unavailable_times=unavailable)


@router.get("/availability/next", response_model=NextAvailableOut)
async def get_next_available(services: Services = Depends(get_services)):
    notice = services.settings.MINIMUM_NOTICE_HOURS

    async def load():
        return (await services.search.get_next_available_date(notice)).isoformat()

    found, _ = await services.cache.get_or_load(f"{AVAILABILITY_PREFIX}next:{notice}", load)
    return NextAvailableOut(next_available_date=found)


@router.get("/time-slots")
async def get_time_slots():
    return {"timeSlots": list(TIME_SLOTS)}


# -------- Booking lifecycle (token holder) --------

@router.post("/bookings", response_model=BookingEnvelope, status_code=201)
async def create_booking(payload: BookingCreate, services: Services = Depends(get_services)):
    booking = await services.bookings.create_booking(
        name=payload.name,
        email=payload.email,
        company=payload.company,
        message=payload.message,
        day=payload.date,
        time=payload.time,
    )
    return BookingEnvelope(
        message="Consultation booked successfully. Please check your email to confirm the booking.",
        booking=BookingOut.model_validate(booking),
    )


@router.get("/bookings/confirm/{token}", response_model=BookingEnvelope)
async def confirm_booking(token: str, request: Request, services: Services = Depends(get_services)):
    result = await services.bookings.confirm_booking(token)
    if "text/html" in request.headers.get("accept", ""):
        frontend = services.settings.FRONTEND_URL.rstrip("/")
        return RedirectResponse(f"{frontend}/booking/success?token={token}", status_code=302)
    return BookingEnvelope(message=result.message, booking=BookingOut.model_validate(result.booking))


@router.get("/bookings/{token}", response_model=BookingOut)
async def get_booking(token: str, services: Services = Depends(get_services)):
    return BookingOut.model_validate(await services.bookings.get_booking_by_token(token))


@router.put("/bookings/{token}", response_model=BookingEnvelope)
async def update_booking(token: str, payload: BookingReschedule, services: Services = Depends(get_services)):
    result = await services.bookings.update_booking(token, payload.date, payload.time)
    return BookingEnvelope(message=result.message, booking=BookingOut.model_validate(result.booking))


@router.delete("/bookings/{token}", response_model=BookingEnvelope)
async def cancel_booking(token: str, services: Services = Depends(get_services)):
    result = await services.bookings.cancel_booking(token)
    return BookingEnvelope(message=result.message, booking=BookingOut.model_validate(result.booking))
