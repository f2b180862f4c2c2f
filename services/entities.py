"""Domain entities shared by every storage backend and service."""

from datetime import date, datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field

SwipeAction = Literal["like", "pass"]
MatchState = Literal["active", "archived", "blocked"]
SchedulingState = Literal["pending", "proposed", "confirmed"]
CallType = Literal["audio", "video"]
CallState = Literal["scheduled", "live", "completed", "missed", "canceled"]
FeedbackRating = Literal["interested", "not_interested"]
ReportCategory = Literal["inappropriate", "fake", "harassment", "spam", "other"]
Gender = Literal["man", "woman", "non_binary", "other"]
Sexuality = Literal["straight", "gay", "lesbian", "bisexual", "pansexual", "queer", "asexual", "other"]
ShowMe = Literal["men", "women", "everyone"]

UPCOMING_STATES: tuple[CallState, ...] = ("scheduled", "live")
REPORT_CATEGORIES: tuple[str, ...] = ("inappropriate", "fake", "harassment", "spam", "other")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def age_on(birthday: date, today: date) -> int:
    return today.year - birthday.year - ((today.month, today.day) < (birthday.month, birthday.day))


class Entity(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class Account(Entity):
    """Credential holder; its id is the user id shared with the profile."""

    id: str = Field(default_factory=new_id)
    phone: str | None = None
    email: str | None = None
    password_hash: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class UserProfile(Entity):
    id: str
    name: str
    birthday: date
    gender: Gender
    sexuality: Sexuality
    show_me: ShowMe
    prompts: list[str] = Field(default_factory=lambda: ["", "", ""])
    photos: list[str] = Field(default_factory=list)
    bio: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def age(self) -> int:
        return age_on(self.birthday, utcnow().date())


class Swipe(Entity):
    id: str = Field(default_factory=new_id)
    from_id: str
    to_id: str
    action: SwipeAction
    created_at: datetime = Field(default_factory=utcnow)


class Match(Entity):
    id: str = Field(default_factory=new_id)
    user_a_id: str
    user_b_id: str
    state: MatchState = "active"
    created_at: datetime = Field(default_factory=utcnow)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)

    def other(self, user_id: str) -> str:
        return self.user_b_id if user_id == self.user_a_id else self.user_a_id


class CallThread(Entity):
    id: str = Field(default_factory=new_id)
    match_id: str
    scheduling_state: SchedulingState = "pending"
    last_activity_at: datetime = Field(default_factory=utcnow)


class CallProposal(Entity):
    id: str = Field(default_factory=new_id)
    thread_id: str
    proposed_by: str
    call_type: CallType
    slots: list[str]
    created_at: datetime = Field(default_factory=utcnow)


class CallEvent(Entity):
    id: str = Field(default_factory=new_id)
    thread_id: str
    scheduled_start: datetime
    duration_seconds: int
    call_type: CallType
    state: CallState = "scheduled"
    provider_join_url: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def scheduled_start_iso(self) -> str:
        return as_utc(self.scheduled_start).isoformat()


class Feedback(Entity):
    id: str = Field(default_factory=new_id)
    call_event_id: str
    user_id: str
    rating: FeedbackRating
    created_at: datetime = Field(default_factory=utcnow)


class Block(Entity):
    id: str = Field(default_factory=new_id)
    blocker_id: str
    blocked_id: str
    created_at: datetime = Field(default_factory=utcnow)


class Report(Entity):
    id: str = Field(default_factory=new_id)
    reporter_id: str
    reported_id: str
    category: ReportCategory
    notes: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class Session(BaseModel):
    """The authenticated actor."""

    user_id: str
    created_at: datetime = Field(default_factory=utcnow)


class SwipeResult(BaseModel):
    is_match: bool
    match_id: str | None = None


class LobbyStatus(BaseModel):
    can_join: bool
    seconds_until_start: int
    label: str


class SchedulingView(BaseModel):
    """What the scheduling screen shows for one participant.

    mode is one of:
    - ``upcoming``: a call is already scheduled or live
    - ``confirm``: the other party proposed slots, pick one
    - ``waiting``: the actor proposed and waits for the other party
    - ``propose``: nothing proposed yet
    """

    mode: Literal["upcoming", "confirm", "waiting", "propose"]
    thread: CallThread
    latest_proposal: CallProposal | None = None
    upcoming_call: CallEvent | None = None


class EndCallResult(BaseModel):
    call_event: CallEvent
    ended: bool
    feedback_user_id: str | None = None
