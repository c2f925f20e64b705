from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from backend.app.auth.models import OtpType, User
from backend.app.auth.otp import IssuedOtp, OtpVerification, issue_otp, verify_otp
from backend.app.auth.passwords import MIN_PASSWORD_LENGTH, hash_password, verify_password
from backend.app.core.errors import AuthenticationFailed, ValidationFailed
from backend.app.services.store import CharterStore

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
INVALID_CODE_MESSAGE = "Invalid or expired OTP"
INVALID_LOGIN_MESSAGE = "Invalid email or password"


@dataclass(frozen=True)
class Registration:
    first_name: str
    last_name: str
    email: str
    password: str
    confirm_password: str
    phone: str | None = None


@dataclass(frozen=True)
class LoginDecision:
    needs_otp: bool
    issued: IssuedOtp | None = None


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not email:
        raise ValidationFailed("Please enter your email")
    if not EMAIL_RE.match(email):
        raise ValidationFailed("Please enter a valid email address")
    return email


def validate_new_password(password: str, confirm_password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if password != confirm_password:
        raise ValidationFailed("Passwords do not match")


def validate_registration(form: Registration) -> None:
    if not (form.email and form.password and form.first_name.strip() and form.last_name.strip()):
        raise ValidationFailed("Please fill all required fields")
    validate_new_password(form.password, form.confirm_password)


class AuthService:
    """Server-side auth operations composed over the store and OTP helpers."""

    def __init__(self, store: CharterStore) -> None:
        self.store = store

    async def _user_or_create(self, email: str) -> User:
        user = await self.store.find_user_by_email(email)
        if user is None:
            user = await self.store.create_user(email)
            logger.info("Created unverified account for %s", email)
        return user

    async def begin_login(self, email: str) -> LoginDecision:
        """Route a sign-in: password if one is set, otherwise a first-login code."""
        user = await self._user_or_create(email)
        if user.has_password:
            return LoginDecision(needs_otp=False)
        issued = await issue_otp(self.store, email, OtpType.FIRST_LOGIN, user_id=user.id)
        return LoginDecision(needs_otp=True, issued=issued)

    async def request_login_code(self, email: str) -> IssuedOtp:
        user = await self._user_or_create(email)
        otp_type = OtpType.LOGIN if user.has_password else OtpType.FIRST_LOGIN
        return await issue_otp(self.store, email, otp_type, user_id=user.id)

    async def register(self, form: Registration) -> IssuedOtp:
        validate_registration(form)
        email = normalize_email(form.email)
        if await self.store.find_user_by_email(email) is not None:
            raise ValidationFailed("User with this email already exists")

        user = await self.store.create_user(
            email,
            first_name=form.first_name.strip(),
            last_name=form.last_name.strip(),
            phone=(form.phone or "").strip() or None,
        )
        logger.info("Registered %s", email)
        return await issue_otp(self.store, email, OtpType.FIRST_LOGIN, user_id=user.id)

    async def request_password_reset(self, email: str) -> IssuedOtp | None:
        user = await self.store.find_user_by_email(email)
        if user is None:
            # Same outward behaviour as a known account
            logger.info("Password reset requested for unknown email %s", email)
            return None
        return await issue_otp(self.store, email, OtpType.PASSWORD_RESET, user_id=user.id)

    async def verify_code(self, email: str, code: str) -> OtpVerification:
        verification = await verify_otp(self.store, email, code)
        if verification is None or verification.user is None:
            raise AuthenticationFailed(INVALID_CODE_MESSAGE)
        return verification

    async def set_password(self, email: str, password: str, confirm_password: str) -> User:
        validate_new_password(password, confirm_password)
        user = await self.store.update_user(
            email,
            password_hash=hash_password(password),
            is_verified=True,
        )
        logger.info("Password set for %s", email)
        return user

    async def login_with_password(self, email: str, password: str) -> User:
        if not password:
            raise ValidationFailed("Please enter your password")
        user = await self.store.find_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            raise AuthenticationFailed(INVALID_LOGIN_MESSAGE)
        return user
