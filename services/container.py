"""Wiring of the domain services around one repository and Redis client."""

import logging
from dataclasses import dataclass

import redis.asyncio as redis

from core.config import Settings
from core.db import AsyncSessionLocal
from services.call_provider import CallProvider, MockCallProvider
from services.calls import CallSessionController
from services.identity import IdentityService
from services.matching import MatchingService
from services.memory_repo import InMemoryRepository
from services.profiles import ProfileService
from services.repository import Repository
from services.safety import SafetyService
from services.scheduling import SchedulingService
from services.sql_repo import SqlRepository

logger = logging.getLogger(__name__)


@dataclass
class Services:
    repo: Repository
    redis: redis.Redis
    settings: Settings
    identity: IdentityService
    profiles: ProfileService
    matching: MatchingService
    scheduling: SchedulingService
    calls: CallSessionController
    safety: SafetyService


def build_repository(settings: Settings) -> Repository:
    if settings.storage_backend == "memory":
        logger.info(f"Using in-memory storage (snapshot: {settings.local_store_path or 'none'})")
        return InMemoryRepository(settings.local_store_path)
    if settings.storage_backend == "sql":
        return SqlRepository(AsyncSessionLocal)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")


def build_services(
    repo: Repository,
    redis_client: redis.Redis,
    settings: Settings,
    call_provider: CallProvider | None = None,
    tick_seconds: float = 1.0,
) -> Services:
    return Services(
        repo=repo,
        redis=redis_client,
        settings=settings,
        identity=IdentityService(repo, redis_client, settings),
        profiles=ProfileService(repo, settings),
        matching=MatchingService(repo, settings),
        scheduling=SchedulingService(repo, settings, call_provider or MockCallProvider()),
        calls=CallSessionController(repo, redis_client, settings, tick_seconds=tick_seconds),
        safety=SafetyService(repo, redis_client, settings),
    )
