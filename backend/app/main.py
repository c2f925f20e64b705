from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.app.core.config import settings
from backend.app.core.errors import CharterError, charter_error_handler
from backend.app.core.logging import setup_logging
from backend.app.core.redis_client import close_redis, init_redis
from backend.app.db.session import dispose_engine
import backend.app.routers.auth as auth
import backend.app.routers.availability as availability
import backend.app.routers.health as health
import backend.app.routers.reservations as reservations
import backend.app.routers.session_ws as session_ws


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_redis()
    try:
        yield
    finally:
        await close_redis()
        await dispose_engine()


app = FastAPI(
    title="Yacht Charter Booking API",
    lifespan=lifespan,
)

app.add_exception_handler(CharterError, charter_error_handler)

app.include_router(health.router, prefix=settings.API_PREFIX)
app.include_router(availability.router, prefix=settings.API_PREFIX)
app.include_router(reservations.router, prefix=settings.API_PREFIX)
app.include_router(auth.router, prefix=settings.API_PREFIX)
app.include_router(session_ws.router)
