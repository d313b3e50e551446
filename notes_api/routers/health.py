from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlmodel.ext.asyncio.session import AsyncSession

from notes_api.cache.layer import cache_layer
from notes_api.database import get_db, ping_database

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check(db: AsyncSession = Depends(get_db)):
    database_up = await ping_database(db)
    # Without Redis searches just run uncached, so the cache only degrades health
    body = {
        "status": "healthy" if database_up else "unhealthy",
        "database": "up" if database_up else "down",
        "cache": "up" if await cache_layer.ping() else "degraded",
    }
    status_code = status.HTTP_200_OK if database_up else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=body)


@router.get("/cache")
async def cache_stats():
    return cache_layer.get_stats()
