# consultbook/schemas/blocked_slot.py

from datetime import date as _Date, datetime as _Datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from consultbook.schemas.booking import check_slot, coerce_day

_camel = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BlockSlotIn(BaseModel):
    date: _Date
    time: str
    reason: Optional[str] = Field("", max_length=500)

    @field_validator("date", mode="before")
    @classmethod
    def _parse_day(cls, v: Any) -> Any:
        return coerce_day(v)

    @field_validator("time")
    @classmethod
    def _check_slot(cls, v: str) -> str:
        return check_slot(v)


class BulkBlockIn(BaseModel):
    dates: list[_Date] = Field(..., min_length=1)
    times: list[str] = Field(..., min_length=1)
    reason: Optional[str] = Field("", max_length=500)

    @field_validator("dates", mode="before")
    @classmethod
    def _parse_days(cls, v: Any) -> Any:
        return [coerce_day(d) for d in v] if isinstance(v, list) else v

    @field_validator("times")
    @classmethod
    def _check_slots(cls, v: list[str]) -> list[str]:
        return [check_slot(t) for t in v]


class RecurringBlockIn(BaseModel):
    """Weekdays are 0=Sunday .. 6=Saturday; strings like "1" are accepted."""
    model_config = _camel

    days_of_week: list[int] = Field(..., min_length=1)
    number_of_weeks: int = Field(..., ge=1)
    times: list[str] = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("days_of_week")
    @classmethod
    def _check_weekdays(cls, v: list[int]) -> list[int]:
        if any(d < 0 or d > 6 for d in v):
            raise ValueError("days of week must be between 0 (Sunday) and 6 (Saturday)")
        return v

    @field_validator("times")
    @classmethod
    def _check_slots(cls, v: list[str]) -> list[str]:
        return [check_slot(t) for t in v]


class UnblockIn(BaseModel):
    date: _Date
    times: list[str] = Field(..., min_length=1)

    @field_validator("date", mode="before")
    @classmethod
    def _parse_day(cls, v: Any) -> Any:
        return coerce_day(v)


class BlockedSlotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    date: _Date
    time: str
    reason: str
    created_at: _Datetime


class SlotsByDateOut(BaseModel):
    model_config = _camel

    blocked_times: list[str]
    booked_times: list[str]
