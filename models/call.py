"""Scheduling models - call threads, proposals, events and post-call feedback."""

from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base
from services.entities import new_id, utcnow

UPCOMING_WHERE = "state IN ('scheduled','live')"


class CallThread(Base):
    """Scheduling mailbox, one per match."""

    __tablename__ = "call_threads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    match_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("matches.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    scheduling_state: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("scheduling_state IN ('pending','proposed','confirmed')", name="chk_thread_state"),
    )

    def __repr__(self) -> str:
        return f"<CallThread(id={self.id}, match_id={self.match_id}, state={self.scheduling_state})>"


class CallProposal(Base):
    """Up to three candidate start times offered by one participant."""

    __tablename__ = "call_proposals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    thread_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("call_threads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    proposed_by: Mapped[str] = mapped_column(String(36), nullable=False)
    call_type: Mapped[str] = mapped_column(String(8), nullable=False)
    slots: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (CheckConstraint("call_type IN ('audio','video')", name="chk_proposal_call_type"),)

    def __repr__(self) -> str:
        return f"<CallProposal(id={self.id}, thread_id={self.thread_id}, by={self.proposed_by})>"


class CallEvent(Base):
    """A confirmed call slot and its lifecycle."""

    __tablename__ = "call_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    thread_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("call_threads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scheduled_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    call_type: Mapped[str] = mapped_column(String(8), nullable=False)
    state: Mapped[str] = mapped_column(String(16), nullable=False, default="scheduled")
    provider_join_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("call_type IN ('audio','video')", name="chk_event_call_type"),
        CheckConstraint(
            "state IN ('scheduled','live','completed','missed','canceled')", name="chk_event_state"
        ),
        # At most one upcoming (scheduled or live) call per thread
        Index(
            "uq_call_events_thread_upcoming",
            "thread_id",
            unique=True,
            postgresql_where=text(UPCOMING_WHERE),
            sqlite_where=text(UPCOMING_WHERE),
        ),
        # Missed-call sweep
        Index("idx_call_events_scheduled", "scheduled_start", postgresql_where=text("state = 'scheduled'")),
    )

    def __repr__(self) -> str:
        return f"<CallEvent(id={self.id}, thread_id={self.thread_id}, state={self.state})>"


class Feedback(Base):
    """Post-call disposition, one per (call event, user)."""

    __tablename__ = "feedback"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    call_event_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("call_events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    rating: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("rating IN ('interested','not_interested')", name="chk_feedback_rating"),
        Index("uq_feedback_once_per_call", "call_event_id", "user_id", unique=True),
    )

    def __repr__(self) -> str:
        return f"<Feedback(id={self.id}, call_event_id={self.call_event_id}, rating={self.rating})>"
