"""In-memory repository with optional JSON snapshot persistence.

Used for local demo runs and tests. When a path is given, the whole store is
serialized to a single JSON document after every write and loaded back on
construction.
"""

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, Field

from core.errors import Conflict
from services.entities import (
    UPCOMING_STATES,
    Account,
    Block,
    CallEvent,
    CallProposal,
    CallState,
    CallThread,
    Feedback,
    Match,
    MatchState,
    Report,
    Swipe,
    UserProfile,
    as_utc,
    utcnow,
)
from services.repository import ordered_pair

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class LocalDatabase(BaseModel):
    accounts: list[Account] = Field(default_factory=list)
    profiles: list[UserProfile] = Field(default_factory=list)
    swipes: list[Swipe] = Field(default_factory=list)
    matches: list[Match] = Field(default_factory=list)
    call_threads: list[CallThread] = Field(default_factory=list)
    call_proposals: list[CallProposal] = Field(default_factory=list)
    call_events: list[CallEvent] = Field(default_factory=list)
    feedback: list[Feedback] = Field(default_factory=list)
    blocks: list[Block] = Field(default_factory=list)
    reports: list[Report] = Field(default_factory=list)


def _copy(item: T) -> T:
    return item.model_copy(deep=True)


class InMemoryRepository:
    """Repository backed by Python lists guarded by a single asyncio lock."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else None
        self._lock = asyncio.Lock()
        self._db = LocalDatabase()
        if self.path and self.path.exists():
            self._db = LocalDatabase.model_validate_json(self.path.read_text(encoding="utf-8"))
            logger.info(f"Loaded local store from {self.path}")

    async def _save(self) -> None:
        if self.path is None:
            return
        payload = self._db.model_dump_json()
        await asyncio.to_thread(self.path.write_text, payload, "utf-8")

    # ============ Accounts ============

    async def create_account(self, account: Account) -> Account:
        async with self._lock:
            for existing in self._db.accounts:
                if account.phone and existing.phone == account.phone:
                    raise Conflict("An account with this phone number already exists")
                if account.email and existing.email == account.email:
                    raise Conflict("An account with this email already exists")
            self._db.accounts.append(_copy(account))
            await self._save()
        return _copy(account)

    async def get_account(self, account_id: str) -> Account | None:
        return next((_copy(a) for a in self._db.accounts if a.id == account_id), None)

    async def get_account_by_phone(self, phone: str) -> Account | None:
        return next((_copy(a) for a in self._db.accounts if a.phone == phone), None)

    async def get_account_by_email(self, email: str) -> Account | None:
        return next((_copy(a) for a in self._db.accounts if a.email == email), None)

    # ============ Profiles ============

    async def create_profile(self, profile: UserProfile) -> UserProfile:
        async with self._lock:
            if any(p.id == profile.id for p in self._db.profiles):
                raise Conflict("Profile already exists")
            self._db.profiles.append(_copy(profile))
            await self._save()
        return _copy(profile)

    async def get_profile(self, profile_id: str) -> UserProfile | None:
        return next((_copy(p) for p in self._db.profiles if p.id == profile_id), None)

    async def update_profile(self, profile_id: str, changes: dict[str, Any]) -> UserProfile | None:
        async with self._lock:
            for index, profile in enumerate(self._db.profiles):
                if profile.id == profile_id:
                    updated = profile.model_copy(update={**changes, "updated_at": utcnow()}, deep=True)
                    self._db.profiles[index] = updated
                    await self._save()
                    return _copy(updated)
        return None

    async def list_profiles(self, exclude_ids: Iterable[str] = ()) -> list[UserProfile]:
        excluded = set(exclude_ids)
        return [_copy(p) for p in self._db.profiles if p.id not in excluded]

    # ============ Swipes ============

    async def add_swipe(self, swipe: Swipe) -> Swipe:
        async with self._lock:
            self._db.swipes.append(_copy(swipe))
            await self._save()
        return _copy(swipe)

    async def has_liked(self, from_id: str, to_id: str) -> bool:
        return any(s.from_id == from_id and s.to_id == to_id and s.action == "like" for s in self._db.swipes)

    async def swiped_ids(self, from_id: str) -> set[str]:
        return {s.to_id for s in self._db.swipes if s.from_id == from_id}

    # ============ Matches & threads ============

    def _pair_match(self, user_x: str, user_y: str) -> Match | None:
        lo, hi = ordered_pair(user_x, user_y)
        return next((m for m in self._db.matches if m.user_a_id == lo and m.user_b_id == hi), None)

    async def create_match_with_thread(self, user_x: str, user_y: str) -> tuple[Match, CallThread, bool]:
        async with self._lock:
            existing = self._pair_match(user_x, user_y)
            if existing:
                thread = next(t for t in self._db.call_threads if t.match_id == existing.id)
                return _copy(existing), _copy(thread), False

            lo, hi = ordered_pair(user_x, user_y)
            match = Match(user_a_id=lo, user_b_id=hi)
            thread = CallThread(match_id=match.id)
            self._db.matches.append(match)
            self._db.call_threads.append(thread)
            await self._save()
            return _copy(match), _copy(thread), True

    async def get_match(self, match_id: str) -> Match | None:
        return next((_copy(m) for m in self._db.matches if m.id == match_id), None)

    async def find_match_for_pair(self, user_x: str, user_y: str) -> Match | None:
        match = self._pair_match(user_x, user_y)
        return _copy(match) if match else None

    async def list_matches(self, user_id: str, state: MatchState | None = None) -> list[Match]:
        return [
            _copy(m)
            for m in self._db.matches
            if m.involves(user_id) and (state is None or m.state == state)
        ]

    async def set_match_state(
        self, match_id: str, state: MatchState, from_states: Iterable[MatchState] | None = None
    ) -> Match | None:
        allowed = set(from_states) if from_states is not None else None
        async with self._lock:
            for match in self._db.matches:
                if match.id == match_id:
                    if allowed is not None and match.state not in allowed:
                        return None
                    match.state = state
                    await self._save()
                    return _copy(match)
        return None

    async def get_thread(self, thread_id: str) -> CallThread | None:
        return next((_copy(t) for t in self._db.call_threads if t.id == thread_id), None)

    async def get_thread_for_match(self, match_id: str) -> CallThread | None:
        return next((_copy(t) for t in self._db.call_threads if t.match_id == match_id), None)

    def _touch_thread(self, thread_id: str, state: str) -> None:
        for thread in self._db.call_threads:
            if thread.id == thread_id:
                thread.scheduling_state = state  # type: ignore[assignment]
                thread.last_activity_at = utcnow()

    # ============ Proposals ============

    def _has_upcoming(self, thread_id: str) -> bool:
        return any(e.thread_id == thread_id and e.state in UPCOMING_STATES for e in self._db.call_events)

    async def add_proposal(self, proposal: CallProposal) -> CallProposal:
        async with self._lock:
            if self._has_upcoming(proposal.thread_id):
                raise Conflict("A call is already scheduled for this match")
            self._db.call_proposals.append(_copy(proposal))
            self._touch_thread(proposal.thread_id, "proposed")
            await self._save()
        return _copy(proposal)

    async def get_latest_proposal(self, thread_id: str) -> CallProposal | None:
        proposals = await self.list_proposals(thread_id)
        return proposals[0] if proposals else None

    async def list_proposals(self, thread_id: str) -> list[CallProposal]:
        return [_copy(p) for p in self._proposals_newest_first(thread_id)]

    def _proposals_newest_first(self, thread_id: str) -> list[CallProposal]:
        """Insertion order breaks created_at ties."""
        indexed = [(i, p) for i, p in enumerate(self._db.call_proposals) if p.thread_id == thread_id]
        indexed.sort(key=lambda item: (as_utc(item[1].created_at), item[0]), reverse=True)
        return [p for _, p in indexed]

    # ============ Call events ============

    async def create_call_event(self, event: CallEvent, proposal_id: str) -> CallEvent:
        async with self._lock:
            if self._has_upcoming(event.thread_id):
                raise Conflict("A call is already scheduled for this match")
            thread = next((t for t in self._db.call_threads if t.id == event.thread_id), None)
            proposals = self._proposals_newest_first(event.thread_id)
            current = thread is not None and thread.scheduling_state == "proposed"
            if not (current and proposals and proposals[0].id == proposal_id):
                raise Conflict("That proposal is no longer current")
            self._db.call_events.append(_copy(event))
            self._touch_thread(event.thread_id, "confirmed")
            await self._save()
        return _copy(event)

    async def get_call_event(self, event_id: str) -> CallEvent | None:
        return next((_copy(e) for e in self._db.call_events if e.id == event_id), None)

    async def get_upcoming_call(self, thread_id: str) -> CallEvent | None:
        return next(
            (_copy(e) for e in self._db.call_events if e.thread_id == thread_id and e.state in UPCOMING_STATES),
            None,
        )

    async def transition_call_event(
        self, event_id: str, from_states: Iterable[CallState], to_state: CallState
    ) -> CallEvent | None:
        allowed = set(from_states)
        async with self._lock:
            for event in self._db.call_events:
                if event.id == event_id:
                    if event.state not in allowed:
                        return None
                    event.state = to_state
                    await self._save()
                    return _copy(event)
        return None

    async def list_scheduled_before(self, cutoff: datetime) -> list[CallEvent]:
        return [
            _copy(e)
            for e in self._db.call_events
            if e.state == "scheduled" and as_utc(e.scheduled_start) < as_utc(cutoff)
        ]

    # ============ Feedback ============

    async def add_feedback(self, feedback: Feedback) -> Feedback:
        async with self._lock:
            if any(
                f.call_event_id == feedback.call_event_id and f.user_id == feedback.user_id
                for f in self._db.feedback
            ):
                raise Conflict("Feedback already submitted for this call")
            self._db.feedback.append(_copy(feedback))
            await self._save()
        return _copy(feedback)

    async def list_feedback(self, call_event_id: str) -> list[Feedback]:
        return [_copy(f) for f in self._db.feedback if f.call_event_id == call_event_id]

    # ============ Safety ============

    async def add_block_and_archive(self, block: Block) -> list[Match]:
        async with self._lock:
            self._db.blocks.append(_copy(block))
            affected = []
            for match in self._db.matches:
                if match.involves(block.blocker_id) and match.involves(block.blocked_id):
                    match.state = "blocked"
                    affected.append(_copy(match))
                    self._cancel_scheduled_calls(match.id)
            await self._save()
        return affected

    def _cancel_scheduled_calls(self, match_id: str) -> None:
        thread_ids = {t.id for t in self._db.call_threads if t.match_id == match_id}
        for event in self._db.call_events:
            if event.thread_id in thread_ids and event.state == "scheduled":
                event.state = "canceled"

    async def is_blocked(self, user_x: str, user_y: str) -> bool:
        return any(
            (b.blocker_id == user_x and b.blocked_id == user_y) or (b.blocker_id == user_y and b.blocked_id == user_x)
            for b in self._db.blocks
        )

    async def blocked_ids(self, user_id: str) -> set[str]:
        outgoing = {b.blocked_id for b in self._db.blocks if b.blocker_id == user_id}
        incoming = {b.blocker_id for b in self._db.blocks if b.blocked_id == user_id}
        return outgoing | incoming

    async def add_report(self, report: Report) -> Report:
        async with self._lock:
            self._db.reports.append(_copy(report))
            await self._save()
        return _copy(report)

    async def list_reports(self, reported_id: str) -> list[Report]:
        return [_copy(r) for r in self._db.reports if r.reported_id == reported_id]

    # ============ Dev tools ============

    async def reset(self) -> None:
        async with self._lock:
            self._db = LocalDatabase()
            await self._save()
