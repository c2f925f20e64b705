"""Data access for bookings, users, OTP codes and the yacht catalogue.

``CharterStore`` is the contract the rest of the app codes against;
``SqlCharterStore`` implements it with raw SQL on an ``AsyncSession``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol

from asyncpg import exceptions as asyncpg_exc
from sqlalchemy import bindparam, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.auth.models import OtpRecord, OtpType, Role, User
from backend.app.booking.lifecycle import NewReservation, Reservation, ReservationStatus
from backend.app.booking.slots import BookedInterval
from backend.app.core.errors import BackendUnavailable, CharterError, SlotConflict, ValidationFailed
from backend.app.db.session import SessionLocal

logger = logging.getLogger(__name__)

USER_FIELDS = ("password_hash", "role", "is_verified", "first_name", "last_name", "phone")


@dataclass(frozen=True)
class Yacht:
    id: str
    name: str
    hourly_price: Decimal
    is_active: bool = True


@dataclass(frozen=True)
class Offer:
    id: str
    yacht_id: str
    discount_percentage: Decimal
    valid_from: datetime
    valid_until: datetime
    is_active: bool = True


class CharterStore(Protocol):
    async def list_reservations(
        self, yacht_id: str, booking_date: date, statuses: Sequence[ReservationStatus]
    ) -> list[BookedInterval]: ...

    async def create_reservation(self, record: NewReservation) -> str: ...

    async def update_reservation_status(self, reservation_id: str, status: ReservationStatus) -> bool: ...

    async def get_reservation(self, reservation_id: str) -> Reservation | None: ...

    async def list_user_reservations(self, user_id: str) -> list[Reservation]: ...

    async def find_user_by_email(self, email: str) -> User | None: ...

    async def create_user(self, email: str, **fields: Any) -> User: ...

    async def update_user(self, email: str, **fields: Any) -> User: ...

    async def insert_otp(
        self, *, email: str, code: str, otp_type: OtpType, expires_at: datetime, user_id: str | None
    ) -> OtpRecord: ...

    async def find_latest_otp(self, email: str, code: str, now: datetime) -> OtpRecord | None: ...

    async def mark_otp_used(self, otp_id: str) -> None: ...

    async def get_yacht(self, yacht_id: str) -> Yacht | None: ...

    async def list_yachts(self) -> list[Yacht]: ...

    async def get_active_offer(self, yacht_id: str, now: datetime) -> Offer | None: ...


def _user(row) -> User:
    return User(
        id=str(row["id"]),
        email=row["email"],
        role=Role(row["role"]),
        is_verified=bool(row["is_verified"]),
        password_hash=row["password_hash"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        phone=row["phone"],
    )


def _reservation(row) -> Reservation:
    return Reservation(
        id=str(row["id"]),
        yacht_id=str(row["yacht_id"]),
        booking_date=row["booking_date"],
        start_hour=row["start_hour"],
        hours=row["hours"],
        total_price=Decimal(row["total_price"]),
        status=ReservationStatus(row["status"]),
        guest_name=row["guest_name"],
        guest_email=row["guest_email"],
        guest_phone=row["guest_phone"],
        user_id=str(row["user_id"]) if row["user_id"] else None,
        offer_id=str(row["offer_id"]) if row["offer_id"] else None,
        created_at=row["created_at"],
    )


def _otp(row) -> OtpRecord:
    return OtpRecord(
        id=str(row["id"]),
        email=row["email"],
        code=row["code"],
        otp_type=OtpType(row["otp_type"]),
        expires_at=row["expires_at"],
        used=bool(row["used"]),
        user_id=str(row["user_id"]) if row["user_id"] else None,
        created_at=row["created_at"],
    )


def _yacht(row) -> Yacht:
    return Yacht(
        id=str(row["id"]),
        name=row["name"],
        hourly_price=Decimal(row["hourly_price"]),
        is_active=bool(row["is_active"]),
    )


class SqlCharterStore:
    """``CharterStore`` over Postgres via SQLAlchemy's async engine."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _read(self, query, params: dict | None = None):
        try:
            return await self.session.execute(query, params or {})
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.exception("Database read failed")
            raise BackendUnavailable("Database error") from exc

    async def _write(self, query, params: dict, conflict: CharterError | None = None):
        try:
            result = await self.session.execute(query, params)
            await self.session.commit()
            return result
        except DBAPIError as exc:
            await self.session.rollback()
            orig = getattr(exc, "orig", exc)
            cause = getattr(orig, "__cause__", None) or orig
            sqlstate = getattr(orig, "sqlstate", None)
            if sqlstate in ("23P01", "23505") or isinstance(
                cause, (asyncpg_exc.ExclusionViolationError, asyncpg_exc.UniqueViolationError)
            ):
                raise (conflict or SlotConflict()) from exc
            if isinstance(cause, asyncpg_exc.CheckViolationError):
                raise ValidationFailed("Booking violates a data constraint") from exc
            logger.exception("Database write failed")
            raise BackendUnavailable("Database error") from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.exception("Database write failed")
            raise BackendUnavailable("Database error") from exc

    async def list_reservations(self, yacht_id, booking_date, statuses):
        query = text(
            """
            SELECT start_hour, hours
            FROM bookings
            WHERE yacht_id = :yacht_id
              AND booking_date = :booking_date
              AND status IN :statuses
            ORDER BY start_hour
            """
        ).bindparams(bindparam("statuses", expanding=True))
        result = await self._read(
            query,
            {
                "yacht_id": yacht_id,
                "booking_date": booking_date,
                "statuses": [ReservationStatus(s).value for s in statuses],
            },
        )
        return [BookedInterval(row.start_hour, row.hours) for row in result]

    async def create_reservation(self, record):
        result = await self._write(
            text(
                """
                INSERT INTO bookings (
                  user_id, yacht_id, booking_date, start_hour, hours, total_price,
                  offer_id, guest_name, guest_email, guest_phone, status
                ) VALUES (
                  :user_id, :yacht_id, :booking_date, :start_hour, :hours, :total_price,
                  :offer_id, :guest_name, :guest_email, :guest_phone, :status
                )
                RETURNING id
                """
            ),
            {
                "user_id": record.user_id,
                "yacht_id": record.yacht_id,
                "booking_date": record.booking_date,
                "start_hour": record.start_hour,
                "hours": record.hours,
                "total_price": record.total_price,
                "offer_id": record.offer_id,
                "guest_name": record.guest_name,
                "guest_email": record.guest_email,
                "guest_phone": record.guest_phone,
                "status": record.status.value,
            },
        )
        return str(result.scalar_one())

    async def update_reservation_status(self, reservation_id, status):
        result = await self._write(
            text("UPDATE bookings SET status = :status WHERE id = :id RETURNING id"),
            {"id": reservation_id, "status": ReservationStatus(status).value},
        )
        return result.first() is not None

    async def get_reservation(self, reservation_id):
        result = await self._read(
            text("SELECT * FROM bookings WHERE id = :id"),
            {"id": reservation_id},
        )
        row = result.mappings().one_or_none()
        return _reservation(row) if row else None

    async def list_user_reservations(self, user_id):
        result = await self._read(
            text("SELECT * FROM bookings WHERE user_id = :user_id ORDER BY created_at DESC"),
            {"user_id": user_id},
        )
        return [_reservation(row) for row in result.mappings()]

    async def find_user_by_email(self, email):
        result = await self._read(
            text("SELECT * FROM users WHERE email = :email"),
            {"email": email},
        )
        row = result.mappings().one_or_none()
        return _user(row) if row else None

    async def create_user(self, email, **fields):
        values = {"email": email, "role": Role.USER.value, "is_verified": False}
        values.update({k: v for k, v in fields.items() if k in USER_FIELDS})
        if isinstance(values["role"], Role):
            values["role"] = values["role"].value
        columns = ", ".join(values)
        placeholders = ", ".join(f":{name}" for name in values)
        result = await self._write(
            text(f"INSERT INTO users ({columns}) VALUES ({placeholders}) RETURNING *"),
            values,
            conflict=ValidationFailed("User with this email already exists"),
        )
        return _user(result.mappings().one())

    async def update_user(self, email, **fields):
        values = {k: v for k, v in fields.items() if k in USER_FIELDS}
        if isinstance(values.get("role"), Role):
            values["role"] = values["role"].value
        assignments = ", ".join(f"{name} = :{name}" for name in values)
        result = await self._write(
            text(f"UPDATE users SET {assignments}, updated_at = now() WHERE email = :email RETURNING *"),
            {**values, "email": email},
        )
        row = result.mappings().one_or_none()
        if row is None:
            raise ValidationFailed("User not found")
        return _user(row)

    async def insert_otp(self, *, email, code, otp_type, expires_at, user_id):
        result = await self._write(
            text(
                """
                INSERT INTO otp_codes (user_id, email, code, otp_type, expires_at)
                VALUES (:user_id, :email, :code, :otp_type, :expires_at)
                RETURNING *
                """
            ),
            {
                "user_id": user_id,
                "email": email,
                "code": code,
                "otp_type": OtpType(otp_type).value,
                "expires_at": expires_at,
            },
        )
        return _otp(result.mappings().one())

    async def find_latest_otp(self, email, code, now):
        result = await self._read(
            text(
                """
                SELECT *
                FROM otp_codes
                WHERE email = :email
                  AND code = :code
                  AND used = false
                  AND expires_at > :now
                ORDER BY created_at DESC
                LIMIT 1
                """
            ),
            {"email": email, "code": code, "now": now},
        )
        row = result.mappings().one_or_none()
        return _otp(row) if row else None

    async def mark_otp_used(self, otp_id):
        await self._write(
            text("UPDATE otp_codes SET used = true WHERE id = :id"),
            {"id": otp_id},
        )

    async def get_yacht(self, yacht_id):
        result = await self._read(
            text("SELECT id, name, hourly_price, is_active FROM yachts WHERE id = :id"),
            {"id": yacht_id},
        )
        row = result.mappings().one_or_none()
        return _yacht(row) if row else None

    async def list_yachts(self):
        result = await self._read(
            text("SELECT id, name, hourly_price, is_active FROM yachts WHERE is_active ORDER BY name")
        )
        return [_yacht(row) for row in result.mappings()]

    async def get_active_offer(self, yacht_id, now):
        result = await self._read(
            text(
                """
                SELECT id, yacht_id, discount_percentage, valid_from, valid_until, is_active
                FROM offers
                WHERE yacht_id = :yacht_id
                  AND is_active
                  AND valid_from <= :now
                  AND valid_until >= :now
                ORDER BY discount_percentage DESC
                LIMIT 1
                """
            ),
            {"yacht_id": yacht_id, "now": now},
        )
        row = result.mappings().one_or_none()
        if row is None:
            return None
        return Offer(
            id=str(row["id"]),
            yacht_id=str(row["yacht_id"]),
            discount_percentage=Decimal(row["discount_percentage"]),
            valid_from=row["valid_from"],
            valid_until=row["valid_until"],
            is_active=bool(row["is_active"]),
        )


async def get_store() -> AsyncGenerator[CharterStore, None]:
    """Yield a store bound to a request-scoped AsyncSession."""
    async with SessionLocal() as session:
        yield SqlCharterStore(session)
