from __future__ import annotations

from datetime import date
from typing import Iterable

from backend.app.booking.lifecycle import NewReservation
from backend.app.booking.pricing import Quote, quote
from backend.app.booking.slots import (
    BASE_TIME_SLOTS,
    BookedInterval,
    CandidateSlot,
    SlotStatus,
    blocked_slots,
    check_hours,
    evaluate_slots,
    find_slot,
)
from backend.app.core.errors import SlotConflict, ValidationFailed

DEFAULT_HOURS = 3


class BookingDraft:
    """Ephemeral booking sheet state for one yacht.

    Nothing here is persisted; ``to_record()`` produces the pending
    reservation once the sheet is complete. Changing the date or the
    duration drops the selected slot, since the occupied window moves.
    """

    def __init__(
        self,
        yacht_id: str,
        hourly_rate,
        *,
        discount_percent=0,
        offer_id: str | None = None,
        candidates: tuple[CandidateSlot, ...] = BASE_TIME_SLOTS,
    ) -> None:
        self.yacht_id = yacht_id
        self.hourly_rate = hourly_rate
        self.discount_percent = discount_percent
        self.offer_id = offer_id
        self.candidates = candidates

        self.booking_date: date | None = None
        self.hours = DEFAULT_HOURS
        self.selected_slot: CandidateSlot | None = None
        self.booked: list[BookedInterval] = []

        self.guest_name = ""
        self.guest_email = ""
        self.guest_phone = ""

    def set_date(self, booking_date: date, *, today: date | None = None) -> None:
        if booking_date < (today or date.today()):
            raise ValidationFailed("Booking date cannot be in the past")
        self.booking_date = booking_date
        self.booked = []
        self.selected_slot = None

    def set_hours(self, hours: int) -> None:
        try:
            self.hours = check_hours(hours)
        except ValueError as exc:
            raise ValidationFailed(str(exc)) from exc
        self.selected_slot = None

    def set_booked(self, booked: Iterable[BookedInterval]) -> None:
        self.booked = list(booked)

    def blocked(self) -> set[str]:
        if self.booking_date is None:
            return set()
        return blocked_slots(self.booked, self.hours, self.candidates)

    def slots(self) -> list[SlotStatus]:
        if self.booking_date is None:
            return []
        return evaluate_slots(self.booked, self.hours, self.candidates)

    def select_slot(self, value: str) -> CandidateSlot:
        if self.booking_date is None:
            raise ValidationFailed("Please select a date first")
        slot = find_slot(value, self.candidates)
        if slot is None:
            raise ValidationFailed(f"Unknown time slot {value!r}")
        if slot.value in self.blocked():
            raise SlotConflict(f"The {slot.label} slot is not available for {self.hours} hours")
        self.selected_slot = slot
        return slot

    def set_contact(self, name: str = "", email: str = "", phone: str = "") -> None:
        self.guest_name = (name or "").strip()
        self.guest_email = (email or "").strip()
        self.guest_phone = (phone or "").strip()

    def quote(self) -> Quote:
        return quote(self.hourly_rate, self.hours, self.discount_percent)

    def to_record(
        self,
        *,
        user_id: str | None = None,
        user_email: str | None = None,
        user_name: str | None = None,
    ) -> NewReservation:
        if self.booking_date is None or self.selected_slot is None:
            raise ValidationFailed("Please select date and time slot")

        authenticated = user_id is not None
        if not authenticated and not (self.guest_name and self.guest_email):
            raise ValidationFailed("Name and email are required to book as a guest")

        return NewReservation(
            yacht_id=self.yacht_id,
            booking_date=self.booking_date,
            start_hour=self.selected_slot.start_hour,
            hours=self.hours,
            total_price=self.quote().total,
            guest_name=self.guest_name or user_name or "",
            guest_email=self.guest_email or user_email or "",
            guest_phone=self.guest_phone or None,
            user_id=user_id,
            offer_id=self.offer_id,
        )
