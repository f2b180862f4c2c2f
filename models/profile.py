from datetime import date, datetime

from sqlalchemy import JSON, CheckConstraint, Date, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base
from services.entities import utcnow


class Profile(Base):
    """Dating profile, keyed by the owner's account id."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    birthday: Mapped[date] = mapped_column(Date, nullable=False)
    gender: Mapped[str] = mapped_column(String(16), nullable=False)
    sexuality: Mapped[str] = mapped_column(String(16), nullable=False)
    show_me: Mapped[str] = mapped_column(String(16), nullable=False)
    prompts: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    photos: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("gender IN ('man','woman','non_binary','other')", name="chk_profile_gender"),
        CheckConstraint(
            "sexuality IN ('straight','gay','lesbian','bisexual','pansexual','queer','asexual','other')",
            name="chk_profile_sexuality",
        ),
        CheckConstraint("show_me IN ('men','women','everyone')", name="chk_profile_show_me"),
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, name={self.name})>"
