# consultbook/schemas/booking.py

from datetime import date as _Date, datetime as _Datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from consultbook.core.business import TIME_SLOTS, is_valid_slot, to_business_date, parse_day_key


def coerce_day(v: Any) -> Any:
    """Accept YYYY-MM-DD or a full ISO timestamp (taken in the business timezone)."""
    if isinstance(v, str):
        v = v.strip()
        if len(v) == 10:
            return parse_day_key(v)
        try:
            return to_business_date(_Datetime.fromisoformat(v.replace("Z", "+00:00")))
        except ValueError:
            raise ValueError(f"Invalid date {v!r}, expected YYYY-MM-DD")
    if isinstance(v, _Datetime):
        return to_business_date(v)
    return v


def check_slot(v: str) -> str:
    v = v.strip()
    if not is_valid_slot(v):
        raise ValueError(f"time must be one of {', '.join(TIME_SLOTS)}")
    return v


class BookingCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    company: str = Field(..., min_length=1, max_length=200)
    message: Optional[str] = Field(None, max_length=5000)
    date: _Date
    time: str

    @field_validator("name", "company")
    @classmethod
    def _clean_text(cls, v: str) -> str:
        # trim + collapse internal extra spaces
        v = " ".join(v.strip().split())
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("date", mode="before")
    @classmethod
    def _parse_day(cls, v: Any) -> Any:
        return coerce_day(v)

    @field_validator("time")
    @classmethod
    def _check_slot(cls, v: str) -> str:
        return check_slot(v)


class BookingReschedule(BaseModel):
    date: _Date
    time: str

    @field_validator("date", mode="before")
    @classmethod
    def _parse_day(cls, v: Any) -> Any:
        return coerce_day(v)

    @field_validator("time")
    @classmethod
    def _check_slot(cls, v: str) -> str:
        return check_slot(v)


class BookingOut(BaseModel):
    """Booking as returned to the token holder and the admin dashboard."""
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    name: str
    email: str
    company: str
    message: Optional[str] = None
    date: _Date
    time: str
    confirmation_token: str
    confirmed: bool
    cancelled: bool
    created_at: _Datetime


class BookingEnvelope(BaseModel):
    message: str
    booking: BookingOut


class AvailabilityOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    unavailable_times: list[str]


class NextAvailableOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    next_available_date: _Date
