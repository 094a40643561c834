import math
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from pydantic.alias_generators import to_camel

ARABIC = "ar"


class BookingRequest(BaseModel):
    name: str
    email: EmailStr
    phone: str
    booking_type: str
    price: float
    date: str
    time: Optional[str] = None
    time_from: Optional[str] = None
    time_to: Optional[str] = None
    reason: Optional[str] = None

    @field_validator("name", "phone", "booking_type", "date")
    @classmethod
    def required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Missing required fields")
        return v

    @field_validator("time", "time_from", "time_to", "reason")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("price")
    @classmethod
    def positive_price(cls, v: float) -> float:
        if not math.isfinite(v) or v <= 0:
            raise ValueError("Invalid price")
        return v


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UserOut(_CamelModel):
    id: str
    name: str
    email: str
    phone: str


class BookingOut(_CamelModel):
    id: str
    user_id: str
    type_ar: str
    type_en: str
    type: str
    price: float
    reason_ar: Optional[str] = None
    reason_en: Optional[str] = None
    reason: Optional[str] = None
    date: date
    time: str
    receipt_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    user: UserOut

    @classmethod
    def from_booking(cls, booking, locale: Optional[str] = "en") -> "BookingOut":
        arabic = (locale or "").lower() == ARABIC
        return cls(
            id=booking.id,
            user_id=booking.user_id,
            type_ar=booking.type_ar,
            type_en=booking.type_en,
            type=booking.type_ar if arabic else booking.type_en,
            price=float(booking.price),
            reason_ar=booking.reason_ar,
            reason_en=booking.reason_en,
            reason=booking.reason_ar if arabic else booking.reason_en,
            date=booking.date,
            time=booking.time,
            receipt_url=booking.receipt_url,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
            user=UserOut.model_validate(booking.user),
        )
