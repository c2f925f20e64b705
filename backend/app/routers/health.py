from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.redis_client import ping_redis
from backend.app.db.session import check_schema, get_session

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, bool]:
    return {"ok": True}


@router.get("/readiness")
async def readiness(session: AsyncSession = Depends(get_session)) -> dict[str, bool]:
    """Ready once Redis answers and Postgres carries the booking overlap guard."""
    await ping_redis()
    await check_schema(session)
    return {"ready": True}
