from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from backend.app.core.errors import AccessDenied, InvalidTransition


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Only these statuses hold the yacht for conflict checks
OCCUPYING_STATUSES: tuple[ReservationStatus, ...] = (
    ReservationStatus.PENDING,
    ReservationStatus.CONFIRMED,
)


@dataclass(frozen=True)
class NewReservation:
    yacht_id: str
    booking_date: date
    start_hour: int
    hours: int
    total_price: Decimal
    guest_name: str
    guest_email: str
    guest_phone: str | None = None
    user_id: str | None = None
    offer_id: str | None = None
    status: ReservationStatus = ReservationStatus.PENDING


@dataclass(frozen=True)
class Reservation:
    id: str
    yacht_id: str
    booking_date: date
    start_hour: int
    hours: int
    total_price: Decimal
    status: ReservationStatus
    guest_name: str
    guest_email: str
    guest_phone: str | None = None
    user_id: str | None = None
    offer_id: str | None = None
    created_at: datetime | None = None


def check_customer_cancel(reservation: Reservation, user_id: str) -> None:
    """A customer may cancel their own reservation, and only while pending."""
    if reservation.user_id != user_id:
        raise AccessDenied("You can only cancel your own bookings")
    if reservation.status is not ReservationStatus.PENDING:
        raise InvalidTransition("Only pending bookings can be cancelled")


def check_admin_transition(current: ReservationStatus, target: ReservationStatus) -> None:
    if current is target:
        raise InvalidTransition(f"Booking is already {target.value}")
