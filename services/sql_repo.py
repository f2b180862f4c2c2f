"""SQLAlchemy-backed repository.

Each public method runs in its own session and commits once, so multi-row
writes are atomic. Uniqueness races are settled by the database indexes
declared on the models (match pair, upcoming call per thread, feedback per
call and user); an IntegrityError is rolled back and translated.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.errors import Conflict
from models import Account as AccountRow
from models import Block as BlockRow
from models import CallEvent as CallEventRow
from models import CallProposal as CallProposalRow
from models import CallThread as CallThreadRow
from models import Feedback as FeedbackRow
from models import Match as MatchRow
from models import Profile as ProfileRow
from models import Report as ReportRow
from models import Swipe as SwipeRow
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

_DATETIME_FIELDS = ("created_at", "updated_at", "last_activity_at", "scheduled_start")


def _entity(model: type, row: Any) -> Any:
    """Convert an ORM row into its entity, restoring UTC on datetimes."""
    entity = model.model_validate(row)
    for field in _DATETIME_FIELDS:
        value = getattr(entity, field, None)
        if isinstance(value, datetime):
            setattr(entity, field, as_utc(value))
    return entity


class SqlRepository:
    """Repository over a relational database through SQLAlchemy's async ORM."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    # ============ Accounts ============

    async def create_account(self, account: Account) -> Account:
        async with self.session_factory() as db:
            db.add(AccountRow(**account.model_dump()))
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise Conflict("An account with these credentials already exists") from None
        return account

    async def get_account(self, account_id: str) -> Account | None:
        async with self.session_factory() as db:
            row = await db.get(AccountRow, account_id)
            return _entity(Account, row) if row else None

    async def get_account_by_phone(self, phone: str) -> Account | None:
        async with self.session_factory() as db:
            row = (await db.execute(select(AccountRow).where(AccountRow.phone == phone))).scalar_one_or_none()
            return _entity(Account, row) if row else None

    async def get_account_by_email(self, email: str) -> Account | None:
        async with self.session_factory() as db:
            row = (await db.execute(select(AccountRow).where(AccountRow.email == email))).scalar_one_or_none()
            return _entity(Account, row) if row else None

    # ============ Profiles ============

    async def create_profile(self, profile: UserProfile) -> UserProfile:
        async with self.session_factory() as db:
            db.add(ProfileRow(**profile.model_dump(exclude={"age"})))
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise Conflict("Profile already exists") from None
        return profile

    async def get_profile(self, profile_id: str) -> UserProfile | None:
        async with self.session_factory() as db:
            row = await db.get(ProfileRow, profile_id)
            return _entity(UserProfile, row) if row else None

    async def update_profile(self, profile_id: str, changes: dict[str, Any]) -> UserProfile | None:
        async with self.session_factory() as db:
            row = await db.get(ProfileRow, profile_id)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = utcnow()
            await db.commit()
            return _entity(UserProfile, row)

    async def list_profiles(self, exclude_ids: Iterable[str] = ()) -> list[UserProfile]:
        excluded = list(exclude_ids)
        query = select(ProfileRow).order_by(ProfileRow.created_at)
        if excluded:
            query = query.where(ProfileRow.id.not_in(excluded))
        async with self.session_factory() as db:
            rows = (await db.execute(query)).scalars().all()
            return [_entity(UserProfile, row) for row in rows]

    # ============ Swipes ============

    async def add_swipe(self, swipe: Swipe) -> Swipe:
        async with self.session_factory() as db:
            db.add(SwipeRow(**swipe.model_dump()))
            await db.commit()
        return swipe

    async def has_liked(self, from_id: str, to_id: str) -> bool:
        query = (
            select(SwipeRow.id)
            .where(and_(SwipeRow.from_id == from_id, SwipeRow.to_id == to_id, SwipeRow.action == "like"))
            .limit(1)
        )
        async with self.session_factory() as db:
            return (await db.execute(query)).first() is not None

    async def swiped_ids(self, from_id: str) -> set[str]:
        async with self.session_factory() as db:
            result = await db.execute(select(SwipeRow.to_id).where(SwipeRow.from_id == from_id))
            return {row[0] for row in result.all()}

    # ============ Matches & threads ============

    async def _pair_with_thread(self, db: AsyncSession, lo: str, hi: str) -> tuple[Match, CallThread] | None:
        result = await db.execute(
            select(MatchRow, CallThreadRow)
            .join(CallThreadRow, CallThreadRow.match_id == MatchRow.id)
            .where(and_(MatchRow.user_a_id == lo, MatchRow.user_b_id == hi))
        )
        row = result.first()
        if row is None:
            return None
        match_row, thread_row = row
        return _entity(Match, match_row), _entity(CallThread, thread_row)

    async def create_match_with_thread(self, user_x: str, user_y: str) -> tuple[Match, CallThread, bool]:
        lo, hi = ordered_pair(user_x, user_y)
        async with self.session_factory() as db:
            existing = await self._pair_with_thread(db, lo, hi)
            if existing:
                return existing[0], existing[1], False

            match = Match(user_a_id=lo, user_b_id=hi)
            thread = CallThread(match_id=match.id)
            try:
                db.add(MatchRow(**match.model_dump()))
                await db.flush()
                db.add(CallThreadRow(**thread.model_dump()))
                await db.commit()
            except IntegrityError:
                # Concurrent mutual like created the pair first
                await db.rollback()
                logger.info(f"Match creation lost race for pair ({lo}, {hi}), using existing match")
                existing = await self._pair_with_thread(db, lo, hi)
                if existing is None:
                    raise
                return existing[0], existing[1], False
            return match, thread, True

    async def get_match(self, match_id: str) -> Match | None:
        async with self.session_factory() as db:
            row = await db.get(MatchRow, match_id)
            return _entity(Match, row) if row else None

    async def find_match_for_pair(self, user_x: str, user_y: str) -> Match | None:
        lo, hi = ordered_pair(user_x, user_y)
        async with self.session_factory() as db:
            result = await db.execute(select(MatchRow).where(and_(MatchRow.user_a_id == lo, MatchRow.user_b_id == hi)))
            row = result.scalar_one_or_none()
            return _entity(Match, row) if row else None

    async def list_matches(self, user_id: str, state: MatchState | None = None) -> list[Match]:
        query = (
            select(MatchRow)
            .where(or_(MatchRow.user_a_id == user_id, MatchRow.user_b_id == user_id))
            .order_by(MatchRow.created_at)
        )
        if state is not None:
            query = query.where(MatchRow.state == state)
        async with self.session_factory() as db:
            rows = (await db.execute(query)).scalars().all()
            return [_entity(Match, row) for row in rows]

    async def set_match_state(
        self, match_id: str, state: MatchState, from_states: Iterable[MatchState] | None = None
    ) -> Match | None:
        query = update(MatchRow).where(MatchRow.id == match_id)
        if from_states is not None:
            query = query.where(MatchRow.state.in_(list(from_states)))
        async with self.session_factory() as db:
            result = await db.execute(query.values(state=state))
            await db.commit()
            if result.rowcount != 1:
                return None
            row = await db.get(MatchRow, match_id)
            return _entity(Match, row) if row else None

    async def get_thread(self, thread_id: str) -> CallThread | None:
        async with self.session_factory() as db:
            row = await db.get(CallThreadRow, thread_id)
            return _entity(CallThread, row) if row else None

    async def get_thread_for_match(self, match_id: str) -> CallThread | None:
        async with self.session_factory() as db:
            result = await db.execute(select(CallThreadRow).where(CallThreadRow.match_id == match_id))
            row = result.scalar_one_or_none()
            return _entity(CallThread, row) if row else None

    @staticmethod
    async def _touch_thread(db: AsyncSession, thread_id: str, state: str) -> None:
        await db.execute(
            update(CallThreadRow)
            .where(CallThreadRow.id == thread_id)
            .values(scheduling_state=state, last_activity_at=utcnow())
        )

    @staticmethod
    async def _lock_thread(db: AsyncSession, thread_id: str) -> str | None:
        """Write to the thread row first so concurrent scheduling writes queue behind this one.

        Returns the thread's scheduling state, None when the thread is missing.
        """
        await db.execute(
            update(CallThreadRow).where(CallThreadRow.id == thread_id).values(last_activity_at=utcnow())
        )
        result = await db.execute(select(CallThreadRow.scheduling_state).where(CallThreadRow.id == thread_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def _has_upcoming(db: AsyncSession, thread_id: str) -> bool:
        result = await db.execute(
            select(CallEventRow.id).where(
                and_(CallEventRow.thread_id == thread_id, CallEventRow.state.in_(UPCOMING_STATES))
            )
        )
        return result.first() is not None

    # ============ Proposals ============

    async def add_proposal(self, proposal: CallProposal) -> CallProposal:
        async with self.session_factory() as db:
            await self._lock_thread(db, proposal.thread_id)
            if await self._has_upcoming(db, proposal.thread_id):
                await db.rollback()
                raise Conflict("A call is already scheduled for this match")
            db.add(CallProposalRow(**proposal.model_dump()))
            await self._touch_thread(db, proposal.thread_id, "proposed")
            await db.commit()
        return proposal

    async def get_latest_proposal(self, thread_id: str) -> CallProposal | None:
        proposals = await self.list_proposals(thread_id)
        return proposals[0] if proposals else None

    async def list_proposals(self, thread_id: str) -> list[CallProposal]:
        """Newest first."""
        query = (
            select(CallProposalRow)
            .where(CallProposalRow.thread_id == thread_id)
            .order_by(CallProposalRow.created_at.desc())
        )
        async with self.session_factory() as db:
            rows = (await db.execute(query)).scalars().all()
            return [_entity(CallProposal, row) for row in rows]

    # ============ Call events ============

    async def create_call_event(self, event: CallEvent, proposal_id: str) -> CallEvent:
        async with self.session_factory() as db:
            state = await self._lock_thread(db, event.thread_id)
            if await self._has_upcoming(db, event.thread_id):
                await db.rollback()
                raise Conflict("A call is already scheduled for this match")

            latest = await db.execute(
                select(CallProposalRow.id)
                .where(CallProposalRow.thread_id == event.thread_id)
                .order_by(CallProposalRow.created_at.desc())
                .limit(1)
            )
            if state != "proposed" or latest.scalar_one_or_none() != proposal_id:
                await db.rollback()
                raise Conflict("That proposal is no longer current")

            db.add(CallEventRow(**event.model_dump()))
            await self._touch_thread(db, event.thread_id, "confirmed")
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise Conflict("A call is already scheduled for this match") from None
        return event

    async def get_call_event(self, event_id: str) -> CallEvent | None:
        async with self.session_factory() as db:
            row = await db.get(CallEventRow, event_id)
            return _entity(CallEvent, row) if row else None

    async def get_upcoming_call(self, thread_id: str) -> CallEvent | None:
        query = select(CallEventRow).where(
            and_(CallEventRow.thread_id == thread_id, CallEventRow.state.in_(UPCOMING_STATES))
        )
        async with self.session_factory() as db:
            row = (await db.execute(query)).scalars().first()
            return _entity(CallEvent, row) if row else None

    async def transition_call_event(
        self, event_id: str, from_states: Iterable[CallState], to_state: CallState
    ) -> CallEvent | None:
        async with self.session_factory() as db:
            result = await db.execute(
                update(CallEventRow)
                .where(and_(CallEventRow.id == event_id, CallEventRow.state.in_(list(from_states))))
                .values(state=to_state)
            )
            await db.commit()
            if result.rowcount != 1:
                return None
            row = await db.get(CallEventRow, event_id)
            return _entity(CallEvent, row) if row else None

    async def list_scheduled_before(self, cutoff: datetime) -> list[CallEvent]:
        query = select(CallEventRow).where(
            and_(CallEventRow.state == "scheduled", CallEventRow.scheduled_start < cutoff)
        )
        async with self.session_factory() as db:
            rows = (await db.execute(query)).scalars().all()
            return [_entity(CallEvent, row) for row in rows]

    # ============ Feedback ============

    async def add_feedback(self, feedback: Feedback) -> Feedback:
        async with self.session_factory() as db:
            db.add(FeedbackRow(**feedback.model_dump()))
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise Conflict("Feedback already submitted for this call") from None
        return feedback

    async def list_feedback(self, call_event_id: str) -> list[Feedback]:
        async with self.session_factory() as db:
            result = await db.execute(select(FeedbackRow).where(FeedbackRow.call_event_id == call_event_id))
            return [_entity(Feedback, row) for row in result.scalars().all()]

    # ============ Safety ============

    def _pair_filter(self, user_x: str, user_y: str) -> Any:
        lo, hi = ordered_pair(user_x, user_y)
        return and_(MatchRow.user_a_id == lo, MatchRow.user_b_id == hi)

    async def _block_pair(self, db: AsyncSession, user_x: str, user_y: str) -> None:
        """Mark the pair's matches blocked and cancel their scheduled calls."""
        pair = self._pair_filter(user_x, user_y)
        await db.execute(update(MatchRow).where(pair).values(state="blocked"))
        pair_threads = select(CallThreadRow.id).join(MatchRow, MatchRow.id == CallThreadRow.match_id).where(pair)
        await db.execute(
            update(CallEventRow)
            .where(and_(CallEventRow.thread_id.in_(pair_threads), CallEventRow.state == "scheduled"))
            .values(state="canceled")
            .execution_options(synchronize_session=False)
        )

    async def add_block_and_archive(self, block: Block) -> list[Match]:
        async with self.session_factory() as db:
            db.add(BlockRow(**block.model_dump()))
            await self._block_pair(db, block.blocker_id, block.blocked_id)
            try:
                await db.commit()
            except IntegrityError:
                # Same block recorded concurrently; still make sure the pair is blocked
                await db.rollback()
                await self._block_pair(db, block.blocker_id, block.blocked_id)
                await db.commit()
            result = await db.execute(select(MatchRow).where(self._pair_filter(block.blocker_id, block.blocked_id)))
            return [_entity(Match, row) for row in result.scalars().all()]

    async def is_blocked(self, user_x: str, user_y: str) -> bool:
        query = (
            select(BlockRow.id)
            .where(
                or_(
                    and_(BlockRow.blocker_id == user_x, BlockRow.blocked_id == user_y),
                    and_(BlockRow.blocker_id == user_y, BlockRow.blocked_id == user_x),
                )
            )
            .limit(1)
        )
        async with self.session_factory() as db:
            return (await db.execute(query)).first() is not None

    async def blocked_ids(self, user_id: str) -> set[str]:
        async with self.session_factory() as db:
            outgoing = await db.execute(select(BlockRow.blocked_id).where(BlockRow.blocker_id == user_id))
            incoming = await db.execute(select(BlockRow.blocker_id).where(BlockRow.blocked_id == user_id))
            return {row[0] for row in outgoing.all()} | {row[0] for row in incoming.all()}

    async def add_report(self, report: Report) -> Report:
        async with self.session_factory() as db:
            db.add(ReportRow(**report.model_dump()))
            await db.commit()
        return report

    async def list_reports(self, reported_id: str) -> list[Report]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ReportRow).where(ReportRow.reported_id == reported_id).order_by(ReportRow.created_at)
            )
            return [_entity(Report, row) for row in result.scalars().all()]

    # ============ Dev tools ============

    async def reset(self) -> None:
        async with self.session_factory() as db:
            for table in (
                FeedbackRow,
                CallEventRow,
                CallProposalRow,
                CallThreadRow,
                MatchRow,
                SwipeRow,
                BlockRow,
                ReportRow,
                ProfileRow,
                AccountRow,
            ):
                await db.execute(delete(table))
            await db.commit()
            logger.warning("Database reset")
