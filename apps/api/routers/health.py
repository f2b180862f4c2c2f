"""Health check endpoints."""

import logging

from fastapi import APIRouter, Depends

from apps.api.deps import get_services
from services.container import Services

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/")
async def health_check() -> dict[str, str]:
    """Basic health check."""
    return {"status": "healthy"}


@router.get("/storage")
async def health_check_storage(services: Services = Depends(get_services)) -> dict[str, str]:
    """Storage backend health check."""
    try:
        await services.repo.get_profile("__healthcheck__")
        return {"status": "healthy", "storage": "connected"}
    except Exception as e:
        logger.warning(f"Storage health check failed: {e}")
        return {"status": "unhealthy", "storage": "disconnected", "error": str(e)}


@router.get("/redis")
async def health_check_redis(services: Services = Depends(get_services)) -> dict[str, str]:
    """Redis health check."""
    try:
        await services.redis.ping()
        return {"status": "healthy", "redis": "connected"}
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        return {"status": "unhealthy", "redis": "disconnected", "error": str(e)}
