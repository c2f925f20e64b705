from __future__ import annotations

import json
import logging
import secrets
import time
from dataclasses import dataclass

import redis.asyncio as redis

from backend.app.auth.idle import IdlePolicy
from backend.app.auth.models import Session
from backend.app.core.config import settings
from backend.app.core.errors import AuthenticationFailed
from backend.app.core.redis_client import redis_errors

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = "Session expired due to inactivity"


def _session_key(token: str) -> str:
    return f"session:{token}"


def _activity_key(token: str) -> str:
    return f"session:{token}:activity"


def _flow_key(flow_id: str) -> str:
    return f"authflow:{flow_id}"


@dataclass(frozen=True)
class SessionState:
    token: str
    session: Session
    remaining: float
    warning: bool


class RedisSessionStore:
    """Persisted sessions plus their last-activity timestamp (epoch ms)."""

    def __init__(self, client: redis.Redis, policy: IdlePolicy | None = None) -> None:
        self.client = client
        self.policy = policy or IdlePolicy()
        # Keys outlive the idle budget so an expired session can still be reported as expired
        self.key_ttl_ms = int(self.policy.timeout * 2 * 1000)

    @staticmethod
    def new_token() -> str:
        return secrets.token_urlsafe(32)

    async def save(self, token: str, session: Session, *, now: float | None = None) -> None:
        now = time.time() if now is None else now
        with redis_errors():
            await self.client.set(_session_key(token), json.dumps(session.to_dict()), px=self.key_ttl_ms)
            await self.client.set(_activity_key(token), str(int(now * 1000)), px=self.key_ttl_ms)

    async def load(self, token: str) -> Session | None:
        with redis_errors():
            raw = await self.client.get(_session_key(token))
        return Session.from_dict(json.loads(raw)) if raw else None

    async def clear(self, token: str) -> None:
        with redis_errors():
            await self.client.delete(_session_key(token), _activity_key(token))

    async def last_activity(self, token: str) -> float | None:
        with redis_errors():
            raw = await self.client.get(_activity_key(token))
        return int(raw) / 1000 if raw else None

    async def touch(self, token: str, *, now: float | None = None) -> None:
        now = time.time() if now is None else now
        with redis_errors():
            await self.client.set(_activity_key(token), str(int(now * 1000)), px=self.key_ttl_ms)
            await self.client.pexpire(_session_key(token), self.key_ttl_ms)

    async def resolve(self, token: str, *, touch: bool = True, now: float | None = None) -> SessionState:
        """Load a session and apply the idle policy.

        An exhausted idle budget clears the session and fails the same way as
        an unknown token, but with the expiry message.
        """
        now = time.time() if now is None else now
        session = await self.load(token)
        if session is None:
            raise AuthenticationFailed("Not authenticated")

        last = await self.last_activity(token)
        remaining = self.policy.remaining(last if last is not None else now, now)
        if self.policy.is_expired(remaining):
            await self.clear(token)
            logger.info("Session for %s expired after inactivity", session.email)
            raise AuthenticationFailed(SESSION_EXPIRED_MESSAGE)

        if touch:
            await self.touch(token, now=now)
            remaining = self.policy.timeout
        return SessionState(
            token=token,
            session=session,
            remaining=remaining,
            warning=self.policy.in_warning(remaining),
        )


class RedisFlowStore:
    """In-progress auth flows, keyed by an opaque flow id."""

    def __init__(self, client: redis.Redis, ttl_seconds: int | None = None) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds or settings.AUTH_FLOW_TTL_SECONDS

    @staticmethod
    def new_id() -> str:
        return secrets.token_urlsafe(16)

    async def save(self, flow_id: str, data: dict) -> None:
        with redis_errors():
            await self.client.set(_flow_key(flow_id), json.dumps(data), ex=self.ttl_seconds)

    async def load(self, flow_id: str) -> dict | None:
        with redis_errors():
            raw = await self.client.get(_flow_key(flow_id))
        return json.loads(raw) if raw else None

    async def clear(self, flow_id: str) -> None:
        with redis_errors():
            await self.client.delete(_flow_key(flow_id))
