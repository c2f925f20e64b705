"""Multi-step sign-in state machine.

Steps::

    login ──email──> password | otp
    login ──code───> otp
    login ──> register ──> otp
    login ──> forgot-password ──> otp
    otp ──first_login/password_reset──> set-password ──> (session)
    otp ──login──> password ──> (session)

``back()`` returns any step to ``login``. A verified code never completes a
sign-in on its own; it always leads to a password step.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from backend.app.auth.access import landing_route
from backend.app.auth.models import OtpType, Session, User
from backend.app.auth.otp import IssuedOtp
from backend.app.auth.service import AuthService, Registration, normalize_email
from backend.app.core.errors import InvalidTransition, ValidationFailed

OTP_RE = re.compile(r"^\d{6}$")

# Code types that require a new password before the session is created
PASSWORD_SETTING_TYPES = (OtpType.FIRST_LOGIN, OtpType.PASSWORD_RESET)


class AuthStep(str, Enum):
    LOGIN = "login"
    REGISTER = "register"
    FORGOT_PASSWORD = "forgot-password"
    OTP = "otp"
    PASSWORD = "password"
    SET_PASSWORD = "set-password"


@dataclass(frozen=True)
class StepOutcome:
    step: AuthStep
    issued: IssuedOtp | None = None
    session: Session | None = None
    landing: str | None = None


class AuthFlow:
    def __init__(
        self,
        step: AuthStep = AuthStep.LOGIN,
        *,
        email: str | None = None,
        pending_otp_type: OtpType | None = None,
        verified_otp_type: OtpType | None = None,
        completed: bool = False,
    ) -> None:
        self.step = step
        self.email = email
        self.pending_otp_type = pending_otp_type
        self.verified_otp_type = verified_otp_type
        self.completed = completed

    def _require(self, *steps: AuthStep) -> None:
        if self.completed:
            raise InvalidTransition("Sign-in already completed")
        if self.step not in steps:
            raise InvalidTransition(f"Not allowed from step {self.step.value!r}")

    def _to_otp(self, email: str, otp_type: OtpType, issued: IssuedOtp | None) -> StepOutcome:
        self.email = email
        self.pending_otp_type = otp_type
        self.verified_otp_type = None
        self.step = AuthStep.OTP
        return StepOutcome(self.step, issued=issued)

    def _finish(self, user: User) -> StepOutcome:
        self.completed = True
        session = Session.for_user(user)
        return StepOutcome(self.step, session=session, landing=landing_route(session.role))

    def go(self, target: AuthStep) -> StepOutcome:
        self._require(AuthStep.LOGIN)
        if target not in (AuthStep.REGISTER, AuthStep.FORGOT_PASSWORD):
            raise InvalidTransition(f"Cannot navigate to {target.value!r}")
        self.step = target
        return StepOutcome(self.step)

    def back(self) -> StepOutcome:
        if self.completed or self.step is AuthStep.LOGIN:
            raise InvalidTransition("Nothing to go back to")
        self.step = AuthStep.LOGIN
        self.pending_otp_type = None
        self.verified_otp_type = None
        return StepOutcome(self.step)

    async def submit_email(self, service: AuthService, email: str) -> StepOutcome:
        self._require(AuthStep.LOGIN)
        email = normalize_email(email)
        decision = await service.begin_login(email)
        if decision.needs_otp:
            return self._to_otp(email, OtpType.FIRST_LOGIN, decision.issued)
        self.email = email
        self.step = AuthStep.PASSWORD
        return StepOutcome(self.step)

    async def request_code(self, service: AuthService, email: str) -> StepOutcome:
        self._require(AuthStep.LOGIN)
        email = normalize_email(email)
        issued = await service.request_login_code(email)
        return self._to_otp(email, issued.otp_type, issued)

    async def register(self, service: AuthService, form: Registration) -> StepOutcome:
        self._require(AuthStep.REGISTER)
        issued = await service.register(form)
        return self._to_otp(issued.email, OtpType.FIRST_LOGIN, issued)

    async def forgot_password(self, service: AuthService, email: str) -> StepOutcome:
        self._require(AuthStep.FORGOT_PASSWORD)
        email = normalize_email(email)
        issued = await service.request_password_reset(email)
        return self._to_otp(email, OtpType.PASSWORD_RESET, issued)

    async def resend_code(self, service: AuthService) -> StepOutcome:
        self._require(AuthStep.OTP)
        if self.pending_otp_type is OtpType.PASSWORD_RESET:
            issued = await service.request_password_reset(self.email)
        else:
            issued = await service.request_login_code(self.email)
        otp_type = issued.otp_type if issued else self.pending_otp_type
        return self._to_otp(self.email, otp_type, issued)

    async def submit_code(self, service: AuthService, code: str) -> StepOutcome:
        self._require(AuthStep.OTP)
        code = (code or "").strip()
        if not OTP_RE.match(code):
            raise ValidationFailed("Please enter a valid 6-digit OTP")

        verification = await service.verify_code(self.email, code)
        self.verified_otp_type = verification.otp_type
        if verification.otp_type in PASSWORD_SETTING_TYPES:
            self.step = AuthStep.SET_PASSWORD
        else:
            self.step = AuthStep.PASSWORD
        return StepOutcome(self.step)

    async def submit_password(self, service: AuthService, password: str) -> StepOutcome:
        self._require(AuthStep.PASSWORD)
        user = await service.login_with_password(self.email, password)
        return self._finish(user)

    async def submit_new_password(self, service: AuthService, password: str, confirm_password: str) -> StepOutcome:
        self._require(AuthStep.SET_PASSWORD)
        if self.verified_otp_type not in PASSWORD_SETTING_TYPES:
            raise InvalidTransition("Verify your code first")
        user = await service.set_password(self.email, password, confirm_password)
        return self._finish(user)

    def to_dict(self) -> dict:
        return {
            "step": self.step.value,
            "email": self.email,
            "pending_otp_type": self.pending_otp_type.value if self.pending_otp_type else None,
            "verified_otp_type": self.verified_otp_type.value if self.verified_otp_type else None,
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuthFlow":
        return cls(
            AuthStep(data["step"]),
            email=data.get("email"),
            pending_otp_type=OtpType(data["pending_otp_type"]) if data.get("pending_otp_type") else None,
            verified_otp_type=OtpType(data["verified_otp_type"]) if data.get("verified_otp_type") else None,
            completed=bool(data.get("completed")),
        )
