"""Safety subsystem: blocking, reporting and post-call feedback."""

import logging
import time

import redis.asyncio as redis

from core.config import Settings
from core.errors import (
    Conflict,
    InvalidInput,
    PermissionDenied,
    PreconditionFailed,
    RateLimited,
    require_actor,
)
from core.metrics import (
    blocks_latency_seconds,
    blocks_total,
    feedback_total,
    reports_latency_seconds,
    reports_total,
)
from services.calls import feedback_due_key
from services.entities import (
    REPORT_CATEGORIES,
    Block,
    Feedback,
    FeedbackRating,
    Match,
    Report,
    ReportCategory,
)
from services.repository import Repository

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 1000


def report_rate_key(user_id: str) -> str:
    return f"rl:report:{user_id}"


class SafetyService:
    def __init__(self, repo: Repository, redis_client: redis.Redis, settings: Settings) -> None:
        self.repo = repo
        self.redis = redis_client
        self.settings = settings

    async def block_user(self, actor_id: str | None, blocked_id: str) -> list[Match]:
        """
        Block another user and mark every Match of the pair as blocked.

        Blocking is idempotent: blocking someone already blocked changes nothing.

        Returns:
            Matches moved to the blocked state
        """
        t0 = time.perf_counter()
        try:
            blocker_id = require_actor(actor_id)
            if blocker_id == blocked_id:
                raise InvalidInput("You cannot block yourself")
            if await self.repo.get_profile(blocked_id) is None:
                raise PreconditionFailed("Profile not found")

            if await self.repo.is_blocked(blocker_id, blocked_id):
                match = await self.repo.find_match_for_pair(blocker_id, blocked_id)
                if match is None or match.state == "blocked":
                    logger.debug(f"Block already in place: {blocker_id} -> {blocked_id}")
                    return []

            affected = await self.repo.add_block_and_archive(Block(blocker_id=blocker_id, blocked_id=blocked_id))

            blocks_total.inc()
            logger.info(f"Block executed: blocker={blocker_id}, blocked={blocked_id}, matches={len(affected)}")
            return affected

        finally:
            blocks_latency_seconds.observe(time.perf_counter() - t0)

    async def _check_report(
        self, reporter_id: str, reported_id: str, category: ReportCategory, notes: str | None
    ) -> None:
        if category not in REPORT_CATEGORIES:
            raise InvalidInput(f"Invalid category. Must be one of: {', '.join(REPORT_CATEGORIES)}")
        if reporter_id == reported_id:
            raise InvalidInput("You cannot report yourself")
        if notes is not None and len(notes) > MAX_NOTES_LENGTH:
            raise InvalidInput(f"Notes must be at most {MAX_NOTES_LENGTH} characters")
        if await self.repo.get_profile(reported_id) is None:
            raise PreconditionFailed("Profile not found")

    async def report_user(
        self,
        actor_id: str | None,
        reported_id: str,
        category: ReportCategory,
        notes: str | None = None,
    ) -> Report:
        """
        File a report about another user. Reporting does not block on its own.

        Raises:
            InvalidInput: unknown category, self-report or notes too long
            PreconditionFailed: reported profile does not exist
            RateLimited: reporter filed another report too recently
        """
        t0 = time.perf_counter()
        try:
            reporter_id = require_actor(actor_id)
            await self._check_report(reporter_id, reported_id, category, notes)

            # Rate limit: one report per window per reporter
            window = self.settings.report_rate_limit_seconds
            if window > 0:
                rl_key = report_rate_key(reporter_id)
                if not await self.redis.setnx(rl_key, "1"):
                    raise RateLimited("Too many reports. Please wait before reporting again.")
                await self.redis.expire(rl_key, window)

            report = await self.repo.add_report(
                Report(reporter_id=reporter_id, reported_id=reported_id, category=category, notes=notes or None)
            )

            reports_total.labels(category=category).inc()
            logger.info(f"Report created: reporter={reporter_id}, reported={reported_id}, category={category}")
            return report

        finally:
            reports_latency_seconds.observe(time.perf_counter() - t0)

    async def report_and_block(
        self,
        actor_id: str | None,
        reported_id: str,
        category: ReportCategory,
        notes: str | None = None,
    ) -> Report:
        """
        Block the reported user, then file the report.

        The block applies even when the report itself is rate limited.
        """
        reporter_id = require_actor(actor_id)
        await self._check_report(reporter_id, reported_id, category, notes)
        await self.block_user(reporter_id, reported_id)
        return await self.report_user(reporter_id, reported_id, category, notes)

    async def submit_feedback(self, actor_id: str | None, call_event_id: str, rating: FeedbackRating) -> Feedback:
        """Record the actor's post-call rating; one per call and user."""
        user_id = require_actor(actor_id)
        if rating not in ("interested", "not_interested"):
            raise InvalidInput("Rating must be 'interested' or 'not_interested'")

        event = await self.repo.get_call_event(call_event_id)
        if event is None:
            raise PreconditionFailed("Call not found")
        thread = await self.repo.get_thread(event.thread_id)
        match = await self.repo.get_match(thread.match_id) if thread else None
        if match is None:
            raise PreconditionFailed("Match not found for this call")
        if not match.involves(user_id):
            raise PermissionDenied("Not your call")
        if event.state != "completed":
            raise Conflict("Feedback opens once the call has ended")

        feedback = await self.repo.add_feedback(Feedback(call_event_id=event.id, user_id=user_id, rating=rating))
        feedback_total.labels(rating=rating).inc()
        logger.info(f"Feedback recorded: call={event.id}, user={user_id}, rating={rating}")

        key = feedback_due_key(user_id)
        if await self.redis.get(key) == event.id:
            await self.redis.delete(key)

        if self.settings.archive_on_mutual_not_interested and rating == "not_interested":
            await self._archive_if_mutual_pass(event.id, match)
        return feedback

    async def _archive_if_mutual_pass(self, call_event_id: str, match: Match) -> None:
        entries = await self.repo.list_feedback(call_event_id)
        passed = {f.user_id for f in entries if f.rating == "not_interested"}
        if not {match.user_a_id, match.user_b_id} <= passed:
            return
        # A block that landed meanwhile wins over archiving
        if await self.repo.set_match_state(match.id, "archived", from_states=("active",)):
            logger.info(f"Match archived after mutual not_interested: {match.id}")
