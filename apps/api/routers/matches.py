"""Swipe and match endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from apps.api.deps import current_user_id, get_services
from core.errors import NotFound, PermissionDenied
from services.container import Services
from services.entities import CallThread, Match, SwipeAction, SwipeResult, UserProfile

router = APIRouter(prefix="/matches", tags=["matches"])


class SwipeIn(BaseModel):
    to_id: str
    action: SwipeAction


async def _own_match(services: Services, user_id: str, match_id: str) -> Match:
    match = await services.matching.get_match(match_id)
    if match is None:
        raise NotFound("Match not found")
    if not match.involves(user_id):
        raise PermissionDenied("Not your match")
    return match


@router.post("/swipes")
async def record_swipe(
    body: SwipeIn,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> SwipeResult:
    """Like or pass on a profile; a mutual like creates the match."""
    return await services.matching.record_swipe(user_id, body.to_id, body.action)


@router.get("")
async def list_matches(
    user_id: str = Depends(current_user_id), services: Services = Depends(get_services)
) -> list[Match]:
    return await services.matching.list_matches(user_id)


@router.get("/{match_id}")
async def get_match(
    match_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> Match:
    return await _own_match(services, user_id, match_id)


@router.get("/{match_id}/thread")
async def get_thread_for_match(
    match_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> CallThread:
    match = await _own_match(services, user_id, match_id)
    thread = await services.matching.get_thread_for_match(match.id)
    if thread is None:
        raise NotFound("Call thread not found")
    return thread


@router.get("/{match_id}/other-user")
async def get_other_user(
    match_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> UserProfile:
    match = await _own_match(services, user_id, match_id)
    profile = await services.profiles.get_other_user(user_id, match)
    if profile is None:
        raise NotFound("Profile not found")
    return profile
