from __future__ import annotations

from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status

from backend.app.booking.draft import BookingDraft
from backend.app.booking.lifecycle import OCCUPYING_STATUSES
from backend.app.booking.pricing import CURRENCY, Quote
from backend.app.booking.slots import MAX_HOURS, MIN_HOURS, NO_AVAILABILITY_MESSAGE, is_fully_booked
from backend.app.routers.schemas import AvailabilityOut, QuoteOut, SlotOut, YachtOut
from backend.app.services.store import CharterStore, Offer, Yacht, get_store

router = APIRouter()


def quote_out(quote: Quote, offer: Offer | None) -> QuoteOut:
    return QuoteOut(
        currency=CURRENCY,
        hourly_rate=quote.hourly_rate,
        hours=quote.hours,
        discount_percent=quote.discount_percent,
        subtotal=quote.subtotal,
        discount=quote.discount,
        total=quote.total,
        offer_id=offer.id if offer else None,
    )


async def load_draft(
    store: CharterStore,
    yacht_id: str,
    booking_date: date,
    hours: int,
) -> tuple[BookingDraft, Offer | None]:
    """Build a booking draft for (yacht, date, hours) with that day's bookings applied."""
    yacht = await store.get_yacht(yacht_id)
    if yacht is None or not yacht.is_active:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Yacht not found")

    offer = await store.get_active_offer(yacht_id, datetime.now(timezone.utc))
    draft = BookingDraft(
        yacht.id,
        yacht.hourly_price,
        discount_percent=offer.discount_percentage if offer else 0,
        offer_id=offer.id if offer else None,
    )
    draft.set_date(booking_date)
    draft.set_hours(hours)
    draft.set_booked(await store.list_reservations(yacht_id, booking_date, OCCUPYING_STATUSES))
    return draft, offer


def _yacht_out(yacht: Yacht) -> YachtOut:
    return YachtOut(id=yacht.id, name=yacht.name, hourly_price=yacht.hourly_price)


@router.get("/yachts", response_model=list[YachtOut])
async def list_yachts(store: CharterStore = Depends(get_store)) -> list[YachtOut]:
    return [_yacht_out(y) for y in await store.list_yachts()]


@router.get("/yachts/{yacht_id}", response_model=YachtOut)
async def get_yacht(yacht_id: str, store: CharterStore = Depends(get_store)) -> YachtOut:
    yacht = await store.get_yacht(yacht_id)
    if yacht is None or not yacht.is_active:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Yacht not found")
    return _yacht_out(yacht)


@router.get("/yachts/{yacht_id}/availability", response_model=AvailabilityOut)
async def check_availability(
    yacht_id: str,
    booking_date: date = Query(alias="date"),
    hours: int = Query(default=3, ge=MIN_HOURS, le=MAX_HOURS),
    store: CharterStore = Depends(get_store),
) -> AvailabilityOut:
    draft, offer = await load_draft(store, yacht_id, booking_date, hours)
    statuses = draft.slots()
    fully_booked = is_fully_booked(statuses)
    return AvailabilityOut(
        yacht_id=yacht_id,
        booking_date=booking_date,
        hours=hours,
        slots=[
            SlotOut(label=s.slot.label, value=s.slot.value, end_label=s.end_label, available=s.available)
            for s in statuses
        ],
        fully_booked=fully_booked,
        message=NO_AVAILABILITY_MESSAGE.format(hours=hours) if fully_booked else None,
        quote=quote_out(draft.quote(), offer),
    )
