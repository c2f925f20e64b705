from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"


class OtpType(str, Enum):
    LOGIN = "login"
    PASSWORD_RESET = "password_reset"
    FIRST_LOGIN = "first_login"


@dataclass(frozen=True)
class User:
    id: str
    email: str
    role: Role = Role.USER
    is_verified: bool = False
    password_hash: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)


@dataclass(frozen=True)
class OtpRecord:
    id: str
    email: str
    code: str
    otp_type: OtpType
    expires_at: datetime
    used: bool = False
    user_id: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class Session:
    """Identity cached for an authenticated client."""

    user_id: str
    email: str
    role: Role
    is_verified: bool
    first_name: str | None = None
    last_name: str | None = None

    @classmethod
    def for_user(cls, user: User) -> "Session":
        return cls(
            user_id=user.id,
            email=user.email,
            role=user.role,
            is_verified=user.is_verified,
            first_name=user.first_name,
            last_name=user.last_name,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["role"] = self.role.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        return cls(
            user_id=data["user_id"],
            email=data["email"],
            role=Role(data["role"]),
            is_verified=bool(data.get("is_verified")),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
        )
