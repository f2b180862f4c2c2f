"""Safety models - blocks and reports."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base
from services.entities import new_id, utcnow


class Block(Base):
    """Directional record with symmetric effect: either direction hides the pair."""

    __tablename__ = "blocks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    blocker_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    blocked_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("blocker_id <> blocked_id", name="chk_block_no_self"),
        Index("uq_blocks_pair", "blocker_id", "blocked_id", unique=True),
    )

    def __repr__(self) -> str:
        return f"<Block(blocker={self.blocker_id}, blocked={self.blocked_id})>"


class Report(Base):
    """User-generated report about another user."""

    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    reporter_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    reported_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "category IN ('inappropriate','fake','harassment','spam','other')", name="chk_report_category"
        ),
    )

    def __repr__(self) -> str:
        return f"<Report(id={self.id}, reporter={self.reporter_id}, reported={self.reported_id})>"
