"""Storage contract implemented by the in-memory and SQL backends.

Every method is scoped by explicit ids. Methods that combine several writes
(match + thread, proposal + thread state, call event + thread state,
block + match archival) are atomic: a reader never observes half of them.
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol

from services.entities import (
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
)


def ordered_pair(user_x: str, user_y: str) -> tuple[str, str]:
    """Canonical (lo, hi) ordering of an unordered user pair."""
    lo, hi = sorted((user_x, user_y))
    return lo, hi


class Repository(Protocol):
    # Accounts
    async def create_account(self, account: Account) -> Account: ...

    async def get_account(self, account_id: str) -> Account | None: ...

    async def get_account_by_phone(self, phone: str) -> Account | None: ...

    async def get_account_by_email(self, email: str) -> Account | None: ...

    # Profiles
    async def create_profile(self, profile: UserProfile) -> UserProfile: ...

    async def get_profile(self, profile_id: str) -> UserProfile | None: ...

    async def update_profile(self, profile_id: str, changes: dict[str, Any]) -> UserProfile | None: ...

    async def list_profiles(self, exclude_ids: Iterable[str] = ()) -> list[UserProfile]: ...

    # Swipes
    async def add_swipe(self, swipe: Swipe) -> Swipe: ...

    async def has_liked(self, from_id: str, to_id: str) -> bool: ...

    async def swiped_ids(self, from_id: str) -> set[str]: ...

    # Matches & threads
    async def create_match_with_thread(self, user_x: str, user_y: str) -> tuple[Match, CallThread, bool]:
        """Create a Match and its CallThread unless the pair already has a Match.

        Returns (match, thread, created). When the pair already has a Match in
        any state, that Match and its thread are returned with created=False.
        """
        ...

    async def get_match(self, match_id: str) -> Match | None: ...

    async def find_match_for_pair(self, user_x: str, user_y: str) -> Match | None: ...

    async def list_matches(self, user_id: str, state: MatchState | None = None) -> list[Match]: ...

    async def set_match_state(
        self, match_id: str, state: MatchState, from_states: Iterable[MatchState] | None = None
    ) -> Match | None:
        """Set the state; with from_states, only when the current state is one of them (None otherwise)."""
        ...

    async def get_thread(self, thread_id: str) -> CallThread | None: ...

    async def get_thread_for_match(self, match_id: str) -> CallThread | None: ...

    # Proposals
    async def add_proposal(self, proposal: CallProposal) -> CallProposal:
        """Persist the proposal and move its thread to ``proposed``.

        Raises Conflict when the thread already has an upcoming event.
        """
        ...

    async def get_latest_proposal(self, thread_id: str) -> CallProposal | None: ...

    async def list_proposals(self, thread_id: str) -> list[CallProposal]: ...

    # Call events
    async def create_call_event(self, event: CallEvent, proposal_id: str) -> CallEvent:
        """Insert the event and move its thread to ``confirmed``.

        Raises Conflict when the thread already has an upcoming event, or when
        ``proposal_id`` is no longer the thread's latest open proposal.
        """
        ...

    async def get_call_event(self, event_id: str) -> CallEvent | None: ...

    async def get_upcoming_call(self, thread_id: str) -> CallEvent | None: ...

    async def transition_call_event(
        self, event_id: str, from_states: Iterable[CallState], to_state: CallState
    ) -> CallEvent | None:
        """Compare-and-set the event state; None when the event is not in from_states."""
        ...

    async def list_scheduled_before(self, cutoff: datetime) -> list[CallEvent]: ...

    # Feedback
    async def add_feedback(self, feedback: Feedback) -> Feedback:
        """Raises Conflict when the user already left feedback for the event."""
        ...

    async def list_feedback(self, call_event_id: str) -> list[Feedback]: ...

    # Safety
    async def add_block_and_archive(self, block: Block) -> list[Match]:
        """Insert the block, mark every Match of the pair as blocked and cancel their scheduled calls."""
        ...

    async def is_blocked(self, user_x: str, user_y: str) -> bool: ...

    async def blocked_ids(self, user_id: str) -> set[str]: ...

    async def add_report(self, report: Report) -> Report: ...

    async def list_reports(self, reported_id: str) -> list[Report]: ...

    # Dev tools
    async def reset(self) -> None: ...
