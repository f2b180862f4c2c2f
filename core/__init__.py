"""Core modules for the application."""

from core.config import settings
from core.db import Base
from core.redis import close_redis, get_redis

__all__ = ["settings", "Base", "get_redis", "close_redis"]
