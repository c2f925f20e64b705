from fastapi import Depends, Header

from backend.app.auth.access import Allow, Area, Deny, check_access
from backend.app.auth.service import AuthService
from backend.app.auth.sessions import RedisFlowStore, RedisSessionStore, SessionState
from backend.app.core import redis_client as redis_module
from backend.app.core.errors import AccessDenied, AuthenticationFailed
from backend.app.services.store import CharterStore, get_store


def get_session_store() -> RedisSessionStore:
    return RedisSessionStore(redis_module.require_redis())


def get_flow_store() -> RedisFlowStore:
    return RedisFlowStore(redis_module.require_redis())


def get_auth_service(store: CharterStore = Depends(get_store)) -> AuthService:
    return AuthService(store)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def optional_session(
    authorization: str | None = Header(default=None),
    sessions: RedisSessionStore = Depends(get_session_store),
) -> SessionState | None:
    """Resolve the caller's session if a token is sent; each call counts as activity."""
    token = _bearer_token(authorization)
    if token is None:
        return None
    return await sessions.resolve(token, touch=True)


async def peek_session(
    authorization: str | None = Header(default=None),
    sessions: RedisSessionStore = Depends(get_session_store),
) -> SessionState:
    """Resolve without counting as activity (status polling)."""
    token = _bearer_token(authorization)
    if token is None:
        raise AuthenticationFailed("Not authenticated")
    return await sessions.resolve(token, touch=False)


def _gate(state: SessionState | None, area: Area) -> SessionState:
    decision = check_access(state.session if state else None, area)
    if isinstance(decision, Allow):
        return state
    if isinstance(decision, Deny):
        raise AccessDenied(decision.reason)
    raise AuthenticationFailed("Please sign in to continue")


async def require_user(state: SessionState | None = Depends(optional_session)) -> SessionState:
    return _gate(state, Area.ACCOUNT)


async def require_admin(state: SessionState | None = Depends(optional_session)) -> SessionState:
    return _gate(state, Area.ADMIN)
