"""Core modules: settings, database, Redis and the error taxonomy."""

from core.config import settings
from core.db import Base, engine, get_db
from core.errors import MatchingError, PersistenceFailure, RateLimitExceeded
from core.redis import close_redis, get_redis

__all__ = [
    "settings",
    "Base",
    "get_db",
    "engine",
    "get_redis",
    "close_redis",
    "MatchingError",
    "PersistenceFailure",
    "RateLimitExceeded",
]
