import logging

from backend.app.booking.lifecycle import (
    NewReservation,
    Reservation,
    ReservationStatus,
    check_admin_transition,
    check_customer_cancel,
)
from backend.app.core.errors import NotFound
from backend.app.services.store import CharterStore

logger = logging.getLogger(__name__)


async def commit_reservation(store: CharterStore, record: NewReservation) -> str:
    """Insert a pending reservation and return its id.

    The store raises ``SlotConflict`` when the window overlaps another
    occupying booking that landed after the caller's availability check.
    """
    reservation_id = await store.create_reservation(record)
    logger.info(
        "Reservation %s created for yacht %s on %s at %02d:00 for %dh (total %s)",
        reservation_id,
        record.yacht_id,
        record.booking_date,
        record.start_hour,
        record.hours,
        record.total_price,
    )
    return reservation_id


async def _get(store: CharterStore, reservation_id: str) -> Reservation:
    reservation = await store.get_reservation(reservation_id)
    if reservation is None:
        raise NotFound("Booking not found")
    return reservation


async def cancel_reservation(store: CharterStore, reservation_id: str, user_id: str) -> Reservation:
    reservation = await _get(store, reservation_id)
    check_customer_cancel(reservation, user_id)
    await store.update_reservation_status(reservation_id, ReservationStatus.CANCELLED)
    logger.info("Reservation %s cancelled by customer %s", reservation_id, user_id)
    return await _get(store, reservation_id)


async def set_reservation_status(
    store: CharterStore,
    reservation_id: str,
    target: ReservationStatus,
) -> Reservation:
    reservation = await _get(store, reservation_id)
    check_admin_transition(reservation.status, target)
    await store.update_reservation_status(reservation_id, target)
    logger.info("Reservation %s moved %s -> %s", reservation_id, reservation.status.value, target.value)
    return await _get(store, reservation_id)
