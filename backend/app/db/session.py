from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from backend.app.core.config import settings
from backend.app.core.errors import BackendUnavailable

# The app connects as a non-owner role; migrations run separately as the owner
engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
)

SessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session


async def check_schema(session: AsyncSession) -> None:
    """Fail unless the bookings table and its overlap guard are installed."""
    try:
        result = await session.execute(
            text("SELECT 1 FROM pg_constraint WHERE conname = 'bookings_no_overlap'")
        )
    except SQLAlchemyError as exc:
        raise BackendUnavailable("Database unavailable") from exc
    if result.first() is None:
        raise BackendUnavailable("Booking overlap constraint missing; run migrations")


async def dispose_engine() -> None:
    await engine.dispose()
