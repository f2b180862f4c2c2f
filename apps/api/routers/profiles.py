"""Profile endpoints."""

from fastapi import APIRouter, Depends, status

from apps.api.deps import current_user_id, get_services
from core.errors import NotFound
from services.container import Services
from services.entities import UserProfile
from services.profiles import ProfileCreate, ProfileUpdate

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/me")
async def my_profile(
    user_id: str = Depends(current_user_id), services: Services = Depends(get_services)
) -> UserProfile:
    profile = await services.profiles.get_profile(user_id)
    if profile is None:
        raise NotFound("Create your profile to continue")
    return profile


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_profile(
    body: ProfileCreate,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> UserProfile:
    return await services.profiles.create_profile(user_id, body)


@router.get("/candidates")
async def list_candidates(
    user_id: str = Depends(current_user_id), services: Services = Depends(get_services)
) -> list[UserProfile]:
    """Profiles to swipe on: everyone not yet swiped and not blocked."""
    return await services.profiles.list_candidates(user_id)


@router.get("/{profile_id}")
async def get_profile(
    profile_id: str,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> UserProfile:
    profile = await services.profiles.get_profile(profile_id)
    if profile is None:
        raise NotFound("Profile not found")
    return profile


@router.patch("/{profile_id}")
async def update_profile(
    profile_id: str,
    body: ProfileUpdate,
    user_id: str = Depends(current_user_id),
    services: Services = Depends(get_services),
) -> UserProfile:
    profile = await services.profiles.update_profile(user_id, profile_id, body)
    if profile is None:
        raise NotFound("Profile not found")
    return profile
