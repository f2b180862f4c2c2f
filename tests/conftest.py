from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import timedelta

import pytest
from fakeredis.aioredis import FakeRedis

import models  # noqa: F401  registers tables on Base.metadata
from core.config import Settings
from core.db import Base, build_engine, build_session_factory
from services.container import Services, build_services
from services.entities import CallEvent, CallThread, Match, UserProfile, utcnow
from services.memory_repo import InMemoryRepository
from services.repository import Repository
from services.seed import birthday_for_age
from services.sql_repo import SqlRepository

ProfileFactory = Callable[..., Awaitable[UserProfile]]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        storage_backend="memory",
        call_duration_seconds=3,
        missed_call_grace_seconds=900,
        report_rate_limit_seconds=60,
    )


@pytest.fixture(params=["memory", "sqlite"])
async def repo(request: pytest.FixtureRequest, tmp_path) -> AsyncIterator[Repository]:
    if request.param == "memory":
        yield InMemoryRepository()
        return

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SqlRepository(build_session_factory(engine))
    await engine.dispose()


@pytest.fixture
async def redis_client() -> AsyncIterator[FakeRedis]:
    client = FakeRedis(decode_responses=True)
    await client.flushall()
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
async def services(repo: Repository, redis_client: FakeRedis, settings: Settings) -> AsyncIterator[Services]:
    services = build_services(repo, redis_client, settings, tick_seconds=0.01)
    yield services
    await services.calls.shutdown()


@pytest.fixture
def make_profile(repo: Repository) -> ProfileFactory:
    async def factory(user_id: str, name: str | None = None, age: int = 25) -> UserProfile:
        profile = UserProfile(
            id=user_id,
            name=name or user_id.title(),
            birthday=birthday_for_age(age),
            gender="woman",
            sexuality="bisexual",
            show_me="everyone",
            prompts=["one", "two", "three"],
        )
        return await repo.create_profile(profile)

    return factory


@pytest.fixture
async def matched_pair(services: Services, make_profile: ProfileFactory) -> tuple[Match, CallThread]:
    """Alice (25) and Bob (27) liked each other."""
    await make_profile("alice", age=25)
    await make_profile("bob", age=27)
    await services.matching.record_swipe("alice", "bob", "like")
    result = await services.matching.record_swipe("bob", "alice", "like")
    assert result.is_match
    match = await services.matching.get_match(result.match_id)
    thread = await services.matching.get_thread_for_match(match.id)
    return match, thread


@pytest.fixture
async def scheduled_call(services: Services, matched_pair: tuple[Match, CallThread]) -> CallEvent:
    """A video call alice proposed and bob confirmed, starting in one hour."""
    _, thread = matched_pair
    start = (utcnow() + timedelta(hours=1)).replace(microsecond=0).isoformat()
    await services.scheduling.create_proposal("alice", thread.id, "video", [start])
    return await services.scheduling.confirm_slot("bob", thread.id, start)
