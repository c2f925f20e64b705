"""One-time codes: issue, deliver, verify.

Codes are single-use and expire after ``OTP_TTL_MINUTES``. Issuing a new
code leaves older ones in place; verification always takes the newest
matching record.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from backend.app.auth.models import OtpType, User
from backend.app.core.config import settings
from backend.app.services.email import send_otp_email
from backend.app.services.store import CharterStore

logger = logging.getLogger(__name__)

OTP_LENGTH = 6


@dataclass(frozen=True)
class IssuedOtp:
    email: str
    otp_type: OtpType
    expires_at: datetime
    delivered: bool
    code: str  # never returned to clients unless DEV_EXPOSE_OTP is set


@dataclass(frozen=True)
class OtpVerification:
    user: User | None
    otp_type: OtpType


def generate_code() -> str:
    return "".join(secrets.choice("0123456789") for _ in range(OTP_LENGTH))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def issue_otp(
    store: CharterStore,
    email: str,
    otp_type: OtpType,
    *,
    user_id: str | None = None,
    now: datetime | None = None,
) -> IssuedOtp:
    code = generate_code()
    expires_at = (now or utcnow()) + timedelta(minutes=settings.OTP_TTL_MINUTES)
    await store.insert_otp(
        email=email,
        code=code,
        otp_type=otp_type,
        expires_at=expires_at,
        user_id=user_id,
    )

    delivered = await send_otp_email(email, code, otp_type)
    if settings.DEV_EXPOSE_OTP:
        logger.info("[DEV] %s code for %s: %s", otp_type.value, email, code)
    else:
        logger.info("Issued %s code for %s (delivered=%s)", otp_type.value, email, delivered)

    return IssuedOtp(email=email, otp_type=otp_type, expires_at=expires_at, delivered=delivered, code=code)


async def verify_otp(
    store: CharterStore,
    email: str,
    code: str,
    *,
    now: datetime | None = None,
) -> OtpVerification | None:
    """Consume the newest live code matching ``(email, code)``.

    Returns None for unknown, used or expired codes without saying which.
    """
    record = await store.find_latest_otp(email, code, now or utcnow())
    if record is None:
        return None

    await store.mark_otp_used(record.id)
    user = await store.find_user_by_email(email)
    return OtpVerification(user=user, otp_type=record.otp_type)
