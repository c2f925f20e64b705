"""Slot availability for a yacht on a single day.

A day is modelled as an hour line starting at 0. A booked interval occupies
``[start_hour, start_hour + hours)``; candidates are the fixed start times in
``BASE_TIME_SLOTS``. Windows are never wrapped past midnight: a 22:00 start
with 5 hours ends at hour 27 and only competes with bookings on the same
booking date.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

DEFAULT_BOOKED_HOURS = 2
MIN_HOURS = 2
MAX_HOURS = 10
HOUR_OPTIONS = tuple(range(MIN_HOURS, MAX_HOURS + 1))

NO_AVAILABILITY_MESSAGE = "No available slots for {hours} hours on this date. Try a different duration or date."


@dataclass(frozen=True)
class CandidateSlot:
    label: str
    value: str  # "HH:MM"

    @property
    def start_hour(self) -> int:
        return int(self.value.split(":")[0])


@dataclass(frozen=True)
class BookedInterval:
    start_hour: int
    hours: int | None = None

    @property
    def end_hour(self) -> int:
        return self.start_hour + (self.hours if self.hours is not None else DEFAULT_BOOKED_HOURS)


@dataclass(frozen=True)
class SlotStatus:
    slot: CandidateSlot
    end_label: str
    available: bool


BASE_TIME_SLOTS: tuple[CandidateSlot, ...] = (
    CandidateSlot("6:00 AM", "06:00"),
    CandidateSlot("9:00 AM", "09:00"),
    CandidateSlot("12:00 PM", "12:00"),
    CandidateSlot("3:00 PM", "15:00"),
    CandidateSlot("7:00 PM", "19:00"),
    CandidateSlot("10:00 PM", "22:00"),
)


def find_slot(value: str, candidates: Sequence[CandidateSlot] = BASE_TIME_SLOTS) -> CandidateSlot | None:
    for slot in candidates:
        if slot.value == value:
            return slot
    return None


def parse_start_hour(value: str) -> int:
    """Hour component of an "HH:MM" or "HH:MM:SS" time string."""
    return int(value.split(":")[0])


def format_hour(hour: int) -> str:
    """12-hour clock label. Only the label wraps; 27 reads as "3:00 AM"."""
    hour %= 24
    period = "PM" if hour >= 12 else "AM"
    if hour > 12:
        display = hour - 12
    elif hour == 0:
        display = 12
    else:
        display = hour
    return f"{display}:00 {period}"


def windows_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    # Half-open windows: touching at a boundary is not an overlap
    return not (end_a <= start_b or start_a >= end_b)


def check_hours(hours: int) -> int:
    if isinstance(hours, bool) or not isinstance(hours, int):
        raise ValueError("hours must be an integer")
    if hours < MIN_HOURS or hours > MAX_HOURS:
        raise ValueError(f"hours must be between {MIN_HOURS} and {MAX_HOURS}")
    return hours


def blocked_slots(
    booked: Iterable[BookedInterval],
    requested_hours: int,
    candidates: Sequence[CandidateSlot] = BASE_TIME_SLOTS,
) -> set[str]:
    """Return the candidate values that would overlap an existing booking."""
    check_hours(requested_hours)
    booked = list(booked)
    blocked: set[str] = set()
    for slot in candidates:
        slot_start = slot.start_hour
        slot_end = slot_start + requested_hours
        if any(windows_overlap(slot_start, slot_end, b.start_hour, b.end_hour) for b in booked):
            blocked.add(slot.value)
    return blocked


def evaluate_slots(
    booked: Iterable[BookedInterval],
    requested_hours: int,
    candidates: Sequence[CandidateSlot] = BASE_TIME_SLOTS,
) -> list[SlotStatus]:
    blocked = blocked_slots(booked, requested_hours, candidates)
    return [
        SlotStatus(
            slot=slot,
            end_label=format_hour(slot.start_hour + requested_hours),
            available=slot.value not in blocked,
        )
        for slot in candidates
    ]


def is_fully_booked(statuses: Sequence[SlotStatus]) -> bool:
    return bool(statuses) and not any(s.available for s in statuses)
