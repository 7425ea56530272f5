"""Health check endpoints."""

import redis.asyncio as redis
from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db, get_redis_client, get_services
from apps.matching import MatchingServices

router = APIRouter()


@router.get("/")
async def health_check(services: MatchingServices = Depends(get_services)) -> dict[str, str]:
    """Basic health check, including the background queue."""
    return {
        "status": "healthy",
        "background_queue": "running" if services.tasks.running else "stopped",
    }


@router.get("/db")
async def health_check_db(db: AsyncSession = Depends(get_db)) -> dict[str, str]:
    """Database health check."""
    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        return {"status": "healthy", "database": "connected"}
    except (SQLAlchemyError, OSError) as e:
        return {"status": "unhealthy", "database": "disconnected", "error": str(e)}


@router.get("/redis")
async def health_check_redis(redis_client: redis.Redis = Depends(get_redis_client)) -> dict[str, str]:
    """Redis health check (rate-limit counter, event streams, match counters)."""
    try:
        await redis_client.ping()
        return {"status": "healthy", "redis": "connected"}
    except (RedisError, OSError) as e:
        return {"status": "unhealthy", "redis": "disconnected", "error": str(e)}
