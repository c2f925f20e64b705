import logging

from fastapi import APIRouter, Depends, status

from backend.app.auth.sessions import SessionState
from backend.app.booking.lifecycle import Reservation
from backend.app.core import redis_client as redis_module
from backend.app.core.config import settings
from backend.app.core.errors import SlotConflict
from backend.app.core.redis_client import redis_errors
from backend.app.routers.availability import load_draft
from backend.app.routers.deps import optional_session, require_admin, require_user
from backend.app.routers.schemas import (
    CommitReservationIn,
    CommitReservationOut,
    ReservationOut,
    StatusUpdateIn,
)
from backend.app.services.reservations import cancel_reservation, commit_reservation, set_reservation_status
from backend.app.services.store import CharterStore, get_store

logger = logging.getLogger(__name__)

router = APIRouter()


def _slot_key(yacht_id: str, booking_date: str, start_hour: int, end_hour: int) -> str:
    return f"hold:{yacht_id}:{booking_date}:{start_hour:02d}:{end_hour:02d}"


def reservation_out(reservation: Reservation) -> ReservationOut:
    return ReservationOut(
        id=reservation.id,
        yacht_id=reservation.yacht_id,
        booking_date=reservation.booking_date,
        start_time=f"{reservation.start_hour:02d}:00",
        hours=reservation.hours,
        total_price=reservation.total_price,
        status=reservation.status,
        guest_name=reservation.guest_name,
        guest_email=reservation.guest_email,
        guest_phone=reservation.guest_phone,
        offer_id=reservation.offer_id,
        created_at=reservation.created_at,
    )


@router.post("/reservations", response_model=CommitReservationOut, status_code=status.HTTP_201_CREATED)
async def commit_endpoint(
    payload: CommitReservationIn,
    store: CharterStore = Depends(get_store),
    state: SessionState | None = Depends(optional_session),
) -> CommitReservationOut:
    draft, _ = await load_draft(store, payload.yacht_id, payload.booking_date, payload.hours)
    slot = draft.select_slot(payload.start_time)
    draft.set_contact(payload.guest_name or "", payload.guest_email or "", payload.guest_phone or "")

    session = state.session if state else None
    record = draft.to_record(
        user_id=session.user_id if session else None,
        user_email=session.email if session else None,
        user_name=session.first_name if session else None,
    )

    hold_key = _slot_key(
        payload.yacht_id,
        payload.booking_date.isoformat(),
        slot.start_hour,
        slot.start_hour + payload.hours,
    )
    redis = redis_module.require_redis()
    with redis_errors():
        hold_acquired = await redis.set(
            hold_key,
            "1",
            nx=True,
            px=settings.SLOT_HOLD_TTL_SECONDS * 1000,
        )
    if not hold_acquired:
        raise SlotConflict("Slot temporarily held by another request")

    try:
        reservation_id = await commit_reservation(store, record)
    except SlotConflict:
        with redis_errors():
            await redis.delete(hold_key)
        logger.info("Slot %s lost to a concurrent booking", hold_key)
        raise
    except Exception:
        with redis_errors():
            await redis.delete(hold_key)
        raise

    return CommitReservationOut(id=reservation_id, status=record.status, total_price=record.total_price)


@router.get("/reservations/mine", response_model=list[ReservationOut])
async def my_reservations(
    store: CharterStore = Depends(get_store),
    state: SessionState = Depends(require_user),
) -> list[ReservationOut]:
    return [reservation_out(r) for r in await store.list_user_reservations(state.session.user_id)]


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationOut)
async def cancel_endpoint(
    reservation_id: str,
    store: CharterStore = Depends(get_store),
    state: SessionState = Depends(require_user),
) -> ReservationOut:
    reservation = await cancel_reservation(store, reservation_id, state.session.user_id)
    return reservation_out(reservation)


@router.patch("/admin/reservations/{reservation_id}", response_model=ReservationOut)
async def update_status_endpoint(
    reservation_id: str,
    payload: StatusUpdateIn,
    store: CharterStore = Depends(get_store),
    state: SessionState = Depends(require_admin),
) -> ReservationOut:
    reservation = await set_reservation_status(store, reservation_id, payload.status)
    return reservation_out(reservation)
