"""
Health check endpoints
"""

import asyncio

from fastapi import APIRouter, Depends

from app.api.deps import get_store
from app.config import settings
from app.store.exceptions import StoreError
from app.utils.datetime import utc_now

router = APIRouter()


@router.get("/health")
async def health_check():
    """Simple API health check."""
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": settings.APP_NAME,
    }


@router.get("/health/db")
async def database_health(store=Depends(get_store)):
    """Document store health check."""
    try:
        await asyncio.to_thread(store.ping)
    except StoreError as exc:
        return {
            "status": "unhealthy",
            "database": "disconnected",
            "error": str(exc),
            "timestamp": utc_now().isoformat(),
        }

    return {
        "status": "healthy",
        "database": "connected",
        "timestamp": utc_now().isoformat(),
    }
