"""Scheduling state machine over a match's call thread.

    pending   --propose-->  proposed
    proposed  --propose-->  proposed   (newest proposal supersedes)
    proposed  --confirm-->  confirmed  (other party picks a slot, CallEvent created)
    confirmed --propose-->  proposed   (only once no call is upcoming any more)
"""

import logging
from datetime import datetime, timedelta

from pydantic import BaseModel

from core.config import Settings
from core.errors import Conflict, InvalidInput, PermissionDenied, PreconditionFailed, require_actor
from core.metrics import calls_confirmed_total, proposals_created_total
from services.call_provider import CallProvider
from services.entities import (
    CallEvent,
    CallProposal,
    CallThread,
    CallType,
    Match,
    SchedulingView,
    as_utc,
    new_id,
    utcnow,
)
from services.repository import Repository

logger = logging.getLogger(__name__)

MAX_SLOTS = 3


class SlotPreset(BaseModel):
    label: str
    slot: str


def parse_slot(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are read as UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        raise InvalidInput(f"Invalid time slot: {value!r}") from None
    return as_utc(parsed)


def normalize_slot(value: str) -> str:
    return parse_slot(value).isoformat()


def slot_presets(now: datetime) -> list[SlotPreset]:
    """Quick options offered when proposing, relative to the caller's local ``now``."""
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = start_of_day + timedelta(days=1)
    options = [
        ("Now", now),
        ("In 30 minutes", now + timedelta(minutes=30)),
        ("In 1 hour", now + timedelta(hours=1)),
        ("Tonight 8pm", start_of_day.replace(hour=20)),
        ("Tomorrow 12pm", tomorrow.replace(hour=12)),
        ("Tomorrow 6pm", tomorrow.replace(hour=18)),
    ]
    return [SlotPreset(label=label, slot=as_utc(value).isoformat()) for label, value in options]


class SchedulingService:
    def __init__(self, repo: Repository, settings: Settings, call_provider: CallProvider) -> None:
        self.repo = repo
        self.settings = settings
        self.call_provider = call_provider

    async def _load(self, actor_id: str, thread_id: str) -> tuple[CallThread, Match]:
        thread = await self.repo.get_thread(thread_id)
        if thread is None:
            raise PreconditionFailed("Call thread not found")
        match = await self.repo.get_match(thread.match_id)
        if match is None:
            raise PreconditionFailed("Match not found")
        if not match.involves(actor_id):
            raise PermissionDenied("Not your match")
        return thread, match

    @staticmethod
    def _require_active(match: Match) -> None:
        if match.state != "active":
            raise Conflict(f"This match is {match.state}; scheduling is closed")

    async def create_proposal(
        self, actor_id: str | None, thread_id: str, call_type: CallType, slots: list[str]
    ) -> CallProposal:
        """Offer 1-3 candidate start times for an audio or video call."""
        actor_id = require_actor(actor_id)
        thread, match = await self._load(actor_id, thread_id)
        self._require_active(match)

        if call_type not in ("audio", "video"):
            raise InvalidInput("Call type must be 'audio' or 'video'")
        if not 1 <= len(slots) <= MAX_SLOTS:
            raise InvalidInput(f"Pick between 1 and {MAX_SLOTS} time slots")
        normalized = [normalize_slot(slot) for slot in slots]
        if len(set(normalized)) != len(normalized):
            raise InvalidInput("Time slots must be different")

        if await self.repo.get_upcoming_call(thread.id):
            raise Conflict("A call is already scheduled for this match")

        # Keep "latest by creation time" unambiguous
        created_at = utcnow()
        latest = await self.repo.get_latest_proposal(thread.id)
        if latest and created_at <= latest.created_at:
            created_at = latest.created_at + timedelta(microseconds=1)

        proposal = CallProposal(
            thread_id=thread.id,
            proposed_by=actor_id,
            call_type=call_type,
            slots=normalized,
            created_at=created_at,
        )
        proposal = await self.repo.add_proposal(proposal)
        proposals_created_total.labels(call_type=call_type).inc()
        logger.info(f"Proposal created: {proposal.id} thread={thread.id} by={actor_id} slots={len(normalized)}")
        return proposal

    async def get_thread(self, actor_id: str | None, thread_id: str) -> CallThread:
        """The thread, provided the actor takes part in its match."""
        thread, _ = await self._load(require_actor(actor_id), thread_id)
        return thread

    async def get_latest_proposal(self, thread_id: str) -> CallProposal | None:
        return await self.repo.get_latest_proposal(thread_id)

    async def list_proposals(self, thread_id: str) -> list[CallProposal]:
        return await self.repo.list_proposals(thread_id)

    async def confirm_slot(self, actor_id: str | None, thread_id: str, iso_slot: str) -> CallEvent:
        """
        Accept one slot of the latest proposal and schedule the call.

        Only the participant who did not make the proposal may confirm.

        Raises:
            PreconditionFailed: no thread or no proposal
            PermissionDenied: actor is not a participant, or is the proposer
            Conflict: match not active, call already scheduled, stale slot, or the
                proposal was superseded while the call was being set up
        """
        actor_id = require_actor(actor_id)
        thread, match = await self._load(actor_id, thread_id)
        self._require_active(match)

        proposal = await self.repo.get_latest_proposal(thread.id)
        if proposal is None:
            raise PreconditionFailed("There is no proposal to confirm")
        if await self.repo.get_upcoming_call(thread.id):
            raise Conflict("A call is already scheduled for this match")
        if thread.scheduling_state != "proposed":
            raise Conflict("There is no open proposal to confirm")
        if proposal.proposed_by == actor_id:
            raise PermissionDenied("Waiting for the other person to pick a time")

        slot = normalize_slot(iso_slot)
        if slot not in proposal.slots:
            raise Conflict("That time is not part of the current proposal")

        event_id = new_id()
        event = CallEvent(
            id=event_id,
            thread_id=thread.id,
            scheduled_start=parse_slot(slot),
            duration_seconds=self.settings.call_duration,
            call_type=proposal.call_type,
            state="scheduled",
            provider_join_url=await self.call_provider.create_room(event_id),
        )
        event = await self.repo.create_call_event(event, proposal.id)
        calls_confirmed_total.labels(call_type=event.call_type).inc()
        logger.info(f"Slot confirmed: event={event.id} thread={thread.id} start={event.scheduled_start_iso}")
        return event

    async def get_upcoming_call(self, thread_id: str) -> CallEvent | None:
        return await self.repo.get_upcoming_call(thread_id)

    async def get_scheduling_view(self, actor_id: str | None, thread_id: str) -> SchedulingView:
        actor_id = require_actor(actor_id)
        thread, _ = await self._load(actor_id, thread_id)

        upcoming = await self.repo.get_upcoming_call(thread.id)
        if upcoming:
            return SchedulingView(mode="upcoming", thread=thread, upcoming_call=upcoming)

        latest = await self.repo.get_latest_proposal(thread.id)
        if latest and thread.scheduling_state == "proposed":
            mode = "waiting" if latest.proposed_by == actor_id else "confirm"
            return SchedulingView(mode=mode, thread=thread, latest_proposal=latest)

        return SchedulingView(mode="propose", thread=thread)
