"""Profile store and discovery candidate listing."""

import logging
from datetime import date
from typing import Any, Protocol

from pydantic import BaseModel, Field

from core.config import Settings
from core.errors import Conflict, InvalidInput, PermissionDenied, require_actor
from core.metrics import profiles_created_total, profiles_edited_total
from services.entities import Gender, Match, Sexuality, ShowMe, UserProfile, age_on, utcnow
from services.repository import Repository

logger = logging.getLogger(__name__)

MAX_PHOTOS = 3
PROMPT_COUNT = 3
MAX_NAME_LENGTH = 64
MAX_BIO_LENGTH = 500


class ProfileCreate(BaseModel):
    name: str
    birthday: date
    gender: Gender
    sexuality: Sexuality
    show_me: ShowMe
    prompts: list[str] = Field(default_factory=lambda: ["", "", ""])
    photos: list[str] = Field(default_factory=list)
    bio: str | None = None


class ProfileUpdate(BaseModel):
    name: str | None = None
    birthday: date | None = None
    gender: Gender | None = None
    sexuality: Sexuality | None = None
    show_me: ShowMe | None = None
    prompts: list[str] | None = None
    photos: list[str] | None = None
    bio: str | None = None


class PhotoStore(Protocol):
    async def delete(self, url: str) -> None: ...


class NullPhotoStore:
    """Photo storage is an external collaborator; nothing to delete locally."""

    async def delete(self, url: str) -> None:
        logger.debug(f"Photo scheduled for deletion: {url}")


class ProfileService:
    def __init__(self, repo: Repository, settings: Settings, photo_store: PhotoStore | None = None) -> None:
        self.repo = repo
        self.settings = settings
        self.photo_store = photo_store or NullPhotoStore()

    async def get_profile(self, profile_id: str) -> UserProfile | None:
        return await self.repo.get_profile(profile_id)

    async def create_profile(self, actor_id: str | None, data: ProfileCreate) -> UserProfile:
        """Create the actor's own profile; the profile id is the actor's user id."""
        actor_id = require_actor(actor_id)
        self._validate(data.model_dump())

        if await self.repo.get_profile(actor_id):
            raise Conflict("Profile already exists")

        profile = UserProfile(id=actor_id, **data.model_dump())
        profile = await self.repo.create_profile(profile)
        profiles_created_total.inc()
        logger.info(f"Profile created: {profile.id}")
        return profile

    async def update_profile(self, actor_id: str | None, profile_id: str, data: ProfileUpdate) -> UserProfile | None:
        """Apply a partial update; only the owner may edit a profile."""
        actor_id = require_actor(actor_id)
        if actor_id != profile_id:
            raise PermissionDenied("You can only edit your own profile")

        current = await self.repo.get_profile(profile_id)
        if current is None:
            return None

        changes = data.model_dump(exclude_unset=True)
        for key in ("name", "birthday", "gender", "sexuality", "show_me", "prompts", "photos"):
            if key in changes and changes[key] is None:
                raise InvalidInput(f"{key} cannot be empty")
        self._validate(changes)

        updated = await self.repo.update_profile(profile_id, changes)
        profiles_edited_total.inc()

        if "photos" in changes:
            removed = [url for url in current.photos if url not in changes["photos"]]
            await self._delete_photos(removed)
        return updated

    async def list_candidates(self, user_id: str) -> list[UserProfile]:
        """All profiles except self, anyone already swiped on, and anyone blocked either way."""
        excluded = {user_id}
        excluded |= await self.repo.swiped_ids(user_id)
        excluded |= await self.repo.blocked_ids(user_id)
        return await self.repo.list_profiles(exclude_ids=excluded)

    async def get_other_user(self, actor_id: str | None, match: Match) -> UserProfile | None:
        actor_id = require_actor(actor_id)
        if not match.involves(actor_id):
            raise PermissionDenied("Not your match")
        return await self.repo.get_profile(match.other(actor_id))

    def _validate(self, fields: dict[str, Any]) -> None:
        name = fields.get("name")
        if name is not None and not (1 <= len(name.strip()) <= MAX_NAME_LENGTH):
            raise InvalidInput(f"Name must be 1 to {MAX_NAME_LENGTH} characters")

        birthday = fields.get("birthday")
        if birthday is not None:
            today = utcnow().date()
            if birthday > today:
                raise InvalidInput("Birthday cannot be in the future")
            if age_on(birthday, today) < self.settings.min_age:
                raise InvalidInput(f"You must be {self.settings.min_age}+ to use this app")

        photos = fields.get("photos")
        if photos is not None and len(photos) > MAX_PHOTOS:
            raise InvalidInput(f"You can add up to {MAX_PHOTOS} photos")

        prompts = fields.get("prompts")
        if prompts is not None and len(prompts) != PROMPT_COUNT:
            raise InvalidInput(f"Profiles have exactly {PROMPT_COUNT} prompts")

        bio = fields.get("bio")
        if bio is not None and len(bio) > MAX_BIO_LENGTH:
            raise InvalidInput(f"Bio must be at most {MAX_BIO_LENGTH} characters")

    async def _delete_photos(self, urls: list[str]) -> None:
        """Best-effort cleanup of photos dropped by an edit."""
        for url in urls:
            try:
                await self.photo_store.delete(url)
            except Exception as e:
                logger.warning(f"Failed to delete orphaned photo {url}: {e}")
