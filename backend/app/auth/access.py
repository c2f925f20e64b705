"""Role-based gating of application areas."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from backend.app.auth.models import Role, Session

AUTH_ROUTE = "/auth"

LANDING_ROUTES: dict[Role, str] = {
    Role.ADMIN: "/admin",
    Role.USER: "/yachts",
}


class Area(str, Enum):
    PUBLIC = "public"
    ACCOUNT = "account"
    ADMIN = "admin"


@dataclass(frozen=True)
class Allow:
    pass


@dataclass(frozen=True)
class Deny:
    reason: str


@dataclass(frozen=True)
class Redirect:
    location: str


AccessDecision = Union[Allow, Deny, Redirect]


def landing_route(role: Role) -> str:
    return LANDING_ROUTES[role]


def check_access(session: Session | None, area: Area) -> AccessDecision:
    if area is Area.PUBLIC:
        return Allow()
    if session is None:
        return Redirect(AUTH_ROUTE)
    if area is Area.ADMIN and session.role is not Role.ADMIN:
        return Deny("Access denied. Admin account required.")
    return Allow()
