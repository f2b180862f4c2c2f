"""Developer tools: auto-match toggle, demo data and reset. Refused in production."""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from apps.api.deps import dev_tools_enabled, get_services
from core.auth import admin_basic_auth
from services.container import Services
from services.seed import seed_demo_profiles

router = APIRouter(prefix="/dev", tags=["dev"], dependencies=[Depends(dev_tools_enabled)])
logger = logging.getLogger(__name__)


class AutoMatchIn(BaseModel):
    enabled: bool


@router.get("/auto-match")
async def get_auto_match(
    admin: str = Depends(admin_basic_auth), services: Services = Depends(get_services)
) -> dict[str, bool]:
    return {"enabled": services.matching.auto_match_on_like}


@router.put("/auto-match")
async def set_auto_match(
    body: AutoMatchIn,
    admin: str = Depends(admin_basic_auth),
    services: Services = Depends(get_services),
) -> dict[str, bool]:
    """Every like creates a match immediately while enabled."""
    services.matching.set_auto_match_on_like(body.enabled)
    return {"enabled": services.matching.auto_match_on_like}


@router.post("/seed")
async def seed(admin: str = Depends(admin_basic_auth), services: Services = Depends(get_services)) -> dict[str, int]:
    added = await seed_demo_profiles(services.repo)
    return {"added": added}


@router.post("/reset")
async def reset(admin: str = Depends(admin_basic_auth), services: Services = Depends(get_services)) -> dict[str, bool]:
    """Delete all stored data and stop running call countdowns."""
    await services.calls.shutdown()
    await services.repo.reset()
    logger.warning(f"Storage reset by {admin}")
    return {"ok": True}
