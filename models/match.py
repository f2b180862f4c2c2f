from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base
from services.entities import new_id, utcnow


class Swipe(Base):
    """Append-only like/pass decision."""

    __tablename__ = "swipes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    from_id: Mapped[str] = mapped_column(String(36), nullable=False)
    to_id: Mapped[str] = mapped_column(String(36), nullable=False)
    action: Mapped[str] = mapped_column(String(8), nullable=False)  # like, pass
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("action IN ('like','pass')", name="chk_swipe_action"),
        # Reverse-like lookup: WHERE from_id = :to AND to_id = :from AND action = 'like'
        Index("idx_swipes_pair", "from_id", "to_id", "action"),
    )

    def __repr__(self) -> str:
        return f"<Swipe(from={self.from_id}, to={self.to_id}, action={self.action})>"


class Match(Base):
    """Mutual-like pairing between two users."""

    __tablename__ = "matches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    # Canonically ordered: user_a_id < user_b_id
    user_a_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_b_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    state: Mapped[str] = mapped_column(String(16), nullable=False, default="active")  # active, archived, blocked
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        # Prevent self-matching
        CheckConstraint("user_a_id <> user_b_id", name="chk_match_no_self"),
        CheckConstraint("state IN ('active','archived','blocked')", name="chk_match_state"),
        # One match per unordered pair, whatever its state
        Index("uq_match_pair", "user_a_id", "user_b_id", unique=True),
    )

    def __repr__(self) -> str:
        return f"<Match(id={self.id}, user_a={self.user_a_id}, user_b={self.user_b_id}, state={self.state})>"
