import time
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from redis import exceptions as redis_exceptions

from backend.app.auth.models import OtpRecord, Role, User
from backend.app.booking.lifecycle import Reservation
from backend.app.booking.slots import BookedInterval, windows_overlap
from backend.app.core import redis_client as redis_module
from backend.app.core.config import settings
from backend.app.core.errors import SlotConflict, ValidationFailed
from backend.app.main import app
from backend.app.services.store import USER_FIELDS, Offer, Yacht, get_store


class InMemoryStore:
    """CharterStore double. Enforces the booking overlap constraint like Postgres does."""

    def __init__(self) -> None:
        self.yachts: dict[str, Yacht] = {}
        self.offers: list[Offer] = []
        self.reservations: dict[str, Reservation] = {}
        self.users: dict[str, User] = {}
        self.otps: list[OtpRecord] = []

    def add_yacht(self, name="Sea Breeze", hourly_price="1000", is_active=True) -> Yacht:
        yacht = Yacht(id=str(uuid4()), name=name, hourly_price=Decimal(hourly_price), is_active=is_active)
        self.yachts[yacht.id] = yacht
        return yacht

    def add_offer(self, yacht_id, discount_percentage, valid_from, valid_until, is_active=True) -> Offer:
        offer = Offer(
            id=str(uuid4()),
            yacht_id=yacht_id,
            discount_percentage=Decimal(str(discount_percentage)),
            valid_from=valid_from,
            valid_until=valid_until,
            is_active=is_active,
        )
        self.offers.append(offer)
        return offer

    def latest_code(self, email: str) -> str:
        return [o for o in self.otps if o.email == email][-1].code

    async def list_reservations(self, yacht_id, booking_date, statuses):
        rows = [
            r
            for r in self.reservations.values()
            if r.yacht_id == yacht_id and r.booking_date == booking_date and r.status in statuses
        ]
        return [BookedInterval(r.start_hour, r.hours) for r in sorted(rows, key=lambda r: r.start_hour)]

    async def create_reservation(self, record):
        for other in self.reservations.values():
            if (
                other.yacht_id == record.yacht_id
                and other.booking_date == record.booking_date
                and other.status.value in ("pending", "confirmed")
                and windows_overlap(
                    record.start_hour,
                    record.start_hour + record.hours,
                    other.start_hour,
                    other.start_hour + other.hours,
                )
            ):
                raise SlotConflict()
        reservation = Reservation(
            id=str(uuid4()),
            yacht_id=record.yacht_id,
            booking_date=record.booking_date,
            start_hour=record.start_hour,
            hours=record.hours,
            total_price=record.total_price,
            status=record.status,
            guest_name=record.guest_name,
            guest_email=record.guest_email,
            guest_phone=record.guest_phone,
            user_id=record.user_id,
            offer_id=record.offer_id,
            created_at=datetime.now(timezone.utc),
        )
        self.reservations[reservation.id] = reservation
        return reservation.id

    async def update_reservation_status(self, reservation_id, status):
        reservation = self.reservations.get(reservation_id)
        if reservation is None:
            return False
        self.reservations[reservation_id] = replace(reservation, status=status)
        return True

    async def get_reservation(self, reservation_id):
        return self.reservations.get(reservation_id)

    async def list_user_reservations(self, user_id):
        rows = [r for r in self.reservations.values() if r.user_id == user_id]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    async def find_user_by_email(self, email):
        return self.users.get(email)

    async def create_user(self, email, **fields):
        if email in self.users:
            raise ValidationFailed("User with this email already exists")
        values = {k: v for k, v in fields.items() if k in USER_FIELDS}
        user = User(id=str(uuid4()), email=email, **values)
        self.users[email] = user
        return user

    async def update_user(self, email, **fields):
        user = self.users.get(email)
        if user is None:
            raise ValidationFailed("User not found")
        user = replace(user, **{k: v for k, v in fields.items() if k in USER_FIELDS})
        self.users[email] = user
        return user

    async def insert_otp(self, *, email, code, otp_type, expires_at, user_id):
        record = OtpRecord(
            id=str(uuid4()),
            email=email,
            code=code,
            otp_type=otp_type,
            expires_at=expires_at,
            user_id=user_id,
            created_at=datetime.now(timezone.utc),
        )
        self.otps.append(record)
        return record

    async def find_latest_otp(self, email, code, now):
        for record in reversed(self.otps):
            if record.email == email and record.code == code and not record.used and record.expires_at > now:
                return record
        return None

    async def mark_otp_used(self, otp_id):
        self.otps = [replace(o, used=True) if o.id == otp_id else o for o in self.otps]

    async def get_yacht(self, yacht_id):
        return self.yachts.get(yacht_id)

    async def list_yachts(self):
        return sorted((y for y in self.yachts.values() if y.is_active), key=lambda y: y.name)

    async def get_active_offer(self, yacht_id, now):
        live = [
            o
            for o in self.offers
            if o.yacht_id == yacht_id and o.is_active and o.valid_from <= now <= o.valid_until
        ]
        return max(live, key=lambda o: o.discount_percentage, default=None)


class FakeRedis:
    """The subset of redis.asyncio.Redis used by the app (decode_responses=True)."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expires_at: dict[str, float] = {}

    def _purge(self, key: str) -> None:
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.data.pop(key, None)
            self.expires_at.pop(key, None)

    async def set(self, key, value, *, nx=False, px=None, ex=None):
        self._purge(key)
        if nx and key in self.data:
            return None
        self.data[key] = str(value)
        self.expires_at.pop(key, None)
        if px is not None:
            self.expires_at[key] = time.monotonic() + px / 1000
        elif ex is not None:
            self.expires_at[key] = time.monotonic() + ex
        return True

    async def get(self, key):
        self._purge(key)
        return self.data.get(key)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            self._purge(key)
            if self.data.pop(key, None) is not None:
                removed += 1
            self.expires_at.pop(key, None)
        return removed

    async def exists(self, key):
        self._purge(key)
        return int(key in self.data)

    async def pexpire(self, key, ms):
        self._purge(key)
        if key not in self.data:
            return False
        self.expires_at[key] = time.monotonic() + ms / 1000
        return True

    async def ttl(self, key):
        self._purge(key)
        if key not in self.data:
            return -2
        deadline = self.expires_at.get(key)
        return -1 if deadline is None else int(deadline - time.monotonic())

    async def ping(self):
        return True

    async def aclose(self):
        return None


class UnreachableRedis:
    """Every command fails the way a dropped Redis connection does."""

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise redis_exceptions.ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

        return fail


@pytest.fixture(autouse=True)
def no_email_gateway(monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", None)
    monkeypatch.setattr(settings, "DEV_EXPOSE_OTP", False)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def fake_redis(monkeypatch):
    client = FakeRedis()
    monkeypatch.setattr(redis_module, "redis_client", client)
    return client


@pytest.fixture
def yacht(store):
    return store.add_yacht()


@pytest_asyncio.fixture
async def client(store, fake_redis):
    app.dependency_overrides[get_store] = lambda: store
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as http:
            yield http
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def admin_user(store):
    user = User(id=str(uuid4()), email="admin@example.com", role=Role.ADMIN, is_verified=True)
    store.users[user.email] = user
    return user


@pytest.fixture
def sign_in(client, store):
    """Drive the sign-in flow for an email and return the bearer token.

    Unknown or password-less accounts go email -> code -> new password;
    accounts with a password go email -> password.
    """

    async def _sign_in(email, password="secret1"):
        flow_id = (await client.post("/api/v1/auth/flows")).json()["flow_id"]

        response = await client.post(f"/api/v1/auth/flows/{flow_id}/login", json={"email": email})
        assert response.status_code == 200, response.text
        if response.json()["step"] == "password":
            response = await client.post(f"/api/v1/auth/flows/{flow_id}/password", json={"password": password})
            assert response.status_code == 200, response.text
            return response.json()["session"]["token"]

        assert response.json()["step"] == "otp"
        response = await client.post(f"/api/v1/auth/flows/{flow_id}/otp", json={"code": store.latest_code(email)})
        assert response.json()["step"] == "set-password", response.text
        response = await client.post(
            f"/api/v1/auth/flows/{flow_id}/set-password",
            json={"password": password, "confirm_password": password},
        )
        assert response.status_code == 200, response.text
        return response.json()["session"]["token"]

    return _sign_in


@pytest.fixture
def unreachable_redis(fake_redis, monkeypatch):
    # Depends on fake_redis so this client wins whichever fixture runs first
    client = UnreachableRedis()
    monkeypatch.setattr(redis_module, "redis_client", client)
    return client
