import logging
from collections.abc import Iterator
from contextlib import contextmanager

import redis.asyncio as redis

from backend.app.core.config import settings
from backend.app.core.errors import BackendUnavailable

logger = logging.getLogger(__name__)

# Sessions, auth flows and slot holds all live on this client
redis_client: redis.Redis | None = None


async def init_redis() -> None:
    global redis_client
    redis_client = redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
    )
    logger.info("Redis client created for %s", settings.REDIS_URL.rsplit("@", 1)[-1])


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None


def require_redis() -> redis.Redis:
    """Return the shared client or fail with a 503-mapped error."""
    if redis_client is None:
        raise BackendUnavailable("Redis unavailable")
    return redis_client


@contextmanager
def redis_errors() -> Iterator[None]:
    """Re-raise client and connection failures as ``BackendUnavailable``."""
    try:
        yield
    except redis.RedisError as exc:
        logger.warning("Redis call failed: %s", exc)
        raise BackendUnavailable("Redis unavailable") from exc


async def ping_redis() -> None:
    client = require_redis()
    with redis_errors():
        await client.ping()
