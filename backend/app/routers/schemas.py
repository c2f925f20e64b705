from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from backend.app.auth.flow import AuthStep
from backend.app.auth.models import Role
from backend.app.booking.lifecycle import ReservationStatus
from backend.app.booking.slots import MAX_HOURS, MIN_HOURS


class YachtOut(BaseModel):
    id: str
    name: str
    hourly_price: Decimal


class QuoteOut(BaseModel):
    currency: str
    hourly_rate: Decimal
    hours: int
    discount_percent: Decimal
    subtotal: Decimal
    discount: Decimal
    total: Decimal
    offer_id: str | None = None


class SlotOut(BaseModel):
    label: str
    value: str
    end_label: str
    available: bool


class AvailabilityOut(BaseModel):
    yacht_id: str
    booking_date: date
    hours: int
    slots: list[SlotOut]
    fully_booked: bool
    message: str | None = None
    quote: QuoteOut


class CommitReservationIn(BaseModel):
    yacht_id: str
    booking_date: date
    # One of the fixed start times, e.g. "09:00"
    start_time: str = Field(pattern=r"^\d{2}:\d{2}$")
    hours: int = Field(ge=MIN_HOURS, le=MAX_HOURS)
    guest_name: str | None = Field(default=None, max_length=200)
    guest_email: str | None = Field(default=None, max_length=254)
    guest_phone: str | None = Field(default=None, max_length=32)


class CommitReservationOut(BaseModel):
    id: str
    status: ReservationStatus
    total_price: Decimal


class ReservationOut(BaseModel):
    id: str
    yacht_id: str
    booking_date: date
    start_time: str
    hours: int
    total_price: Decimal
    status: ReservationStatus
    guest_name: str
    guest_email: str
    guest_phone: str | None = None
    offer_id: str | None = None
    created_at: datetime | None = None


class StatusUpdateIn(BaseModel):
    status: ReservationStatus


class EmailIn(BaseModel):
    email: str = Field(max_length=254)


class NavigateIn(BaseModel):
    step: AuthStep


class RegisterIn(BaseModel):
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: str = Field(default="", max_length=254)
    password: str = ""
    confirm_password: str = ""
    phone: str | None = Field(default=None, max_length=32)


class OtpIn(BaseModel):
    code: str = Field(max_length=16)


class PasswordIn(BaseModel):
    password: str


class NewPasswordIn(BaseModel):
    password: str
    confirm_password: str


class SessionUserOut(BaseModel):
    id: str
    email: str
    role: Role
    is_verified: bool
    first_name: str | None = None
    last_name: str | None = None


class SessionOut(BaseModel):
    token: str
    landing: str
    user: SessionUserOut
    expires_in_seconds: int


class FlowOut(BaseModel):
    flow_id: str
    step: AuthStep
    email: str | None = None
    message: str | None = None
    # Only populated when DEV_EXPOSE_OTP is enabled
    dev_code: str | None = None
    session: SessionOut | None = None


class SessionStatusOut(BaseModel):
    user: SessionUserOut
    remaining_seconds: int
    warning: bool
