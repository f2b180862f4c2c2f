"""Call session controller: lobby, live countdown and call lifecycle."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

import redis.asyncio as redis

from core.config import Settings
from core.errors import Conflict, InvalidInput, PermissionDenied, PreconditionFailed, require_actor
from core.metrics import call_transitions_total
from services.entities import CallEvent, CallState, EndCallResult, LobbyStatus, Match, as_utc, utcnow
from services.identity import active_call_key
from services.repository import Repository

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[CallState, tuple[CallState, ...]] = {
    "scheduled": ("live", "canceled", "missed"),
    "live": ("completed", "missed"),
    "completed": (),
    "missed": (),
    "canceled": (),
}


def feedback_due_key(user_id: str) -> str:
    return f"feedback_due:{user_id}"


def countdown_label(seconds_until_start: int) -> str:
    if seconds_until_start <= 0:
        return "Ready to join!"
    if seconds_until_start < 60:
        return f"{seconds_until_start} seconds"
    if seconds_until_start < 3600:
        minutes = seconds_until_start // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    hours, rest = divmod(seconds_until_start, 3600)
    return f"{hours}h {rest // 60}m"


class CallCountdown:
    """Per-second countdown for a live call.

    Decrements from the call duration once per tick and awaits ``on_expire``
    when it reaches zero. ``cancel()`` stops it early.
    """

    def __init__(
        self,
        event_id: str,
        duration_seconds: int,
        on_expire: Callable[[], Awaitable[object]],
        tick_seconds: float = 1.0,
    ) -> None:
        self.event_id = event_id
        self.remaining = duration_seconds
        self.on_expire = on_expire
        self.tick_seconds = tick_seconds
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"call-countdown-{self.event_id}")

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self) -> None:
        if self._task is None or self._task.done():
            return
        # The expiry path ends the call itself and must not cancel its own task
        if self._task is asyncio.current_task():
            return
        self._task.cancel()

    async def wait(self) -> None:
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while self.remaining > 0:
            await asyncio.sleep(self.tick_seconds)
            self.remaining -= 1
        logger.info(f"Countdown reached zero for call {self.event_id}")
        try:
            await self.on_expire()
        except Exception as e:
            logger.error(f"Failed to end call {self.event_id} on countdown expiry: {e}")


class CallSessionController:
    def __init__(
        self,
        repo: Repository,
        redis_client: redis.Redis,
        settings: Settings,
        tick_seconds: float = 1.0,
    ) -> None:
        self.repo = repo
        self.redis = redis_client
        self.settings = settings
        self.tick_seconds = tick_seconds
        self.countdowns: dict[str, CallCountdown] = {}

    async def get_call_event(self, event_id: str) -> CallEvent | None:
        return await self.repo.get_call_event(event_id)

    async def _match_for(self, event: CallEvent) -> Match:
        thread = await self.repo.get_thread(event.thread_id)
        match = await self.repo.get_match(thread.match_id) if thread else None
        if match is None:
            raise PreconditionFailed("Match not found for this call")
        return match

    async def _load(self, actor_id: str, event_id: str) -> tuple[CallEvent, Match]:
        event = await self.repo.get_call_event(event_id)
        if event is None:
            raise PreconditionFailed("Call not found")
        match = await self._match_for(event)
        if not match.involves(actor_id):
            raise PermissionDenied("Not your call")
        return event, match

    async def get_participant_call(self, actor_id: str | None, event_id: str) -> CallEvent:
        event, _ = await self._load(require_actor(actor_id), event_id)
        return event

    def lobby_status(self, event: CallEvent, now: datetime | None = None) -> LobbyStatus:
        now = as_utc(now) if now else utcnow()
        diff = int((as_utc(event.scheduled_start) - now).total_seconds())
        return LobbyStatus(can_join=diff <= 0, seconds_until_start=max(diff, 0), label=countdown_label(diff))

    async def join_call(self, actor_id: str | None, event_id: str, now: datetime | None = None) -> CallEvent:
        """
        Enter the call screen: the first join at or after the start time makes it live.

        Joining a call that is already live returns it unchanged.

        Raises:
            PreconditionFailed: call missing or not yet joinable
            PermissionDenied: actor is not a participant
            Conflict: call already ended, or the match is no longer active
        """
        actor_id = require_actor(actor_id)
        event, match = await self._load(actor_id, event_id)
        now = as_utc(now) if now else utcnow()

        if match.state != "active":
            raise Conflict(f"This match is {match.state}")

        if event.state == "scheduled":
            if now < as_utc(event.scheduled_start):
                status = self.lobby_status(event, now)
                raise PreconditionFailed(f"This call starts in {status.label}")
            live = await self.repo.transition_call_event(event.id, ("scheduled",), "live")
            if live is not None:
                event = live
                call_transitions_total.labels(state="live").inc()
                logger.info(f"Call live: {event.id} (joined by {actor_id})")
            else:
                event = await self.repo.get_call_event(event.id) or event

        if event.state != "live":
            raise Conflict(f"This call is {event.state}")

        await self.redis.set(active_call_key(actor_id), event.id)
        self._start_countdown(event, actor_id)
        return event

    def _start_countdown(self, event: CallEvent, actor_id: str) -> None:
        if event.id in self.countdowns:
            return

        async def expire() -> None:
            await self._finish(event.id, actor_id)

        countdown = CallCountdown(event.id, event.duration_seconds, expire, self.tick_seconds)
        self.countdowns[event.id] = countdown
        countdown.start()

    async def end_call(self, actor_id: str | None, event_id: str) -> EndCallResult:
        """
        End a live call. Only the first end succeeds; later calls report ended=False.
        """
        actor_id = require_actor(actor_id)
        await self._load(actor_id, event_id)
        return await self._finish(event_id, actor_id)

    async def _finish(self, event_id: str, ended_by: str) -> EndCallResult:
        completed = await self.repo.transition_call_event(event_id, ("live",), "completed")
        if completed is None:
            event = await self.repo.get_call_event(event_id)
            if event is None:
                raise PreconditionFailed("Call not found")
            if event.state == "scheduled":
                raise Conflict("This call has not started yet")
            logger.debug(f"Call {event_id} already {event.state}, end ignored")
            return EndCallResult(call_event=event, ended=False)

        self._stop_countdown(event_id)
        await self._clear_active_calls(completed)
        await self.redis.set(feedback_due_key(ended_by), completed.id)
        call_transitions_total.labels(state="completed").inc()
        logger.info(f"Call completed: {completed.id} (ended by {ended_by})")
        return EndCallResult(call_event=completed, ended=True, feedback_user_id=ended_by)

    def _stop_countdown(self, event_id: str) -> None:
        countdown = self.countdowns.pop(event_id, None)
        if countdown:
            countdown.cancel()

    async def _clear_active_calls(self, event: CallEvent) -> None:
        match = await self._match_for(event)
        for user_id in (match.user_a_id, match.user_b_id):
            key = active_call_key(user_id)
            if await self.redis.get(key) == event.id:
                await self.redis.delete(key)

    async def cancel_call(self, actor_id: str | None, event_id: str) -> CallEvent:
        actor_id = require_actor(actor_id)
        await self._load(actor_id, event_id)
        canceled = await self.repo.transition_call_event(event_id, ("scheduled",), "canceled")
        if canceled is None:
            raise Conflict("Only scheduled calls can be canceled")
        call_transitions_total.labels(state="canceled").inc()
        logger.info(f"Call canceled: {event_id} by {actor_id}")
        return canceled

    async def _mark_missed(self, event_id: str) -> CallEvent | None:
        missed = await self.repo.transition_call_event(event_id, ("scheduled", "live"), "missed")
        if missed is None:
            return None
        self._stop_countdown(event_id)
        await self._clear_active_calls(missed)
        call_transitions_total.labels(state="missed").inc()
        logger.info(f"Call missed: {event_id}")
        return missed

    async def mark_missed_calls(self, now: datetime | None = None) -> list[CallEvent]:
        """Mark scheduled calls nobody joined within the grace period as missed."""
        now = as_utc(now) if now else utcnow()
        cutoff = now - timedelta(seconds=self.settings.missed_call_grace_seconds)
        missed = []
        for event in await self.repo.list_scheduled_before(cutoff):
            result = await self._mark_missed(event.id)
            if result:
                missed.append(result)
        return missed

    async def set_call_event_state(self, actor_id: str | None, event_id: str, state: CallState) -> CallEvent:
        actor_id = require_actor(actor_id)
        if state not in ALLOWED_TRANSITIONS:
            raise InvalidInput(f"Unknown call state: {state}")
        event, _ = await self._load(actor_id, event_id)
        if state not in ALLOWED_TRANSITIONS[event.state]:
            raise Conflict(f"Cannot move a {event.state} call to {state}")

        if state == "live":
            return await self.join_call(actor_id, event_id)
        if state == "completed":
            return (await self.end_call(actor_id, event_id)).call_event
        if state == "canceled":
            return await self.cancel_call(actor_id, event_id)

        missed = await self._mark_missed(event_id)
        if missed is None:
            current = await self.repo.get_call_event(event_id)
            raise Conflict(f"Cannot move a {current.state if current else 'missing'} call to missed")
        return missed

    async def get_active_call(self, user_id: str) -> str | None:
        return await self.redis.get(active_call_key(user_id))

    async def get_feedback_due(self, user_id: str) -> str | None:
        return await self.redis.get(feedback_due_key(user_id))

    async def shutdown(self) -> None:
        for event_id in list(self.countdowns):
            self._stop_countdown(event_id)
