"""Swipe/match engine."""

import logging

from core.config import Settings
from core.errors import Conflict, InvalidInput, PreconditionFailed, require_actor
from core.metrics import matches_created_total, swipes_total
from services.entities import CallThread, Match, Swipe, SwipeAction, SwipeResult
from services.repository import Repository

logger = logging.getLogger(__name__)


class MatchingService:
    def __init__(self, repo: Repository, settings: Settings) -> None:
        self.repo = repo
        self.settings = settings
        self._auto_match_on_like = settings.auto_match_on_like

    @property
    def auto_match_on_like(self) -> bool:
        """Dev/test override: every like matches. Never active in production."""
        return self._auto_match_on_like and not self.settings.is_production

    def set_auto_match_on_like(self, enabled: bool) -> None:
        self._auto_match_on_like = enabled
        logger.info(f"Auto-match on like set to {enabled}")

    async def record_swipe(self, actor_id: str | None, to_id: str, action: SwipeAction) -> SwipeResult:
        """
        Record a like or pass from the actor and detect a mutual like.

        Returns:
            SwipeResult with is_match=True only for the call that created the Match
        """
        from_id = require_actor(actor_id)
        if action not in ("like", "pass"):
            raise InvalidInput("Swipe action must be 'like' or 'pass'")
        if from_id == to_id:
            raise InvalidInput("You cannot swipe on yourself")
        if await self.repo.get_profile(to_id) is None:
            raise PreconditionFailed("Profile not found")
        if await self.repo.is_blocked(from_id, to_id):
            raise Conflict("This user is not available")

        await self.repo.add_swipe(Swipe(from_id=from_id, to_id=to_id, action=action))
        swipes_total.labels(action=action).inc()

        if action == "pass":
            return SwipeResult(is_match=False)

        mutual = await self.repo.has_liked(to_id, from_id)
        if not mutual and not self.auto_match_on_like:
            return SwipeResult(is_match=False)

        match, thread, created = await self.repo.create_match_with_thread(from_id, to_id)
        if not created:
            logger.debug(f"Pair ({from_id}, {to_id}) already has match {match.id} in state {match.state}")
            return SwipeResult(is_match=False)

        matches_created_total.labels(trigger="mutual" if mutual else "auto").inc()
        logger.info(f"Match created: {match.id} thread={thread.id} ({match.user_a_id}, {match.user_b_id})")
        return SwipeResult(is_match=True, match_id=match.id)

    async def list_matches(self, user_id: str) -> list[Match]:
        """Active matches whose counterpart is not blocked in either direction."""
        blocked = await self.repo.blocked_ids(user_id)
        matches = await self.repo.list_matches(user_id, state="active")
        return [m for m in matches if m.other(user_id) not in blocked]

    async def get_match(self, match_id: str) -> Match | None:
        return await self.repo.get_match(match_id)

    async def get_thread_for_match(self, match_id: str) -> CallThread | None:
        return await self.repo.get_thread_for_match(match_id)

    async def get_thread(self, thread_id: str) -> CallThread | None:
        return await self.repo.get_thread(thread_id)
