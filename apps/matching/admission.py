"""Admission control: per-user, per-action quotas for swipes and super likes.

The centralized counter is authoritative. When it cannot be reached the
check degrades open to an in-process sliding-window counter instead of
denying the action outright.
"""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum

import httpx
import redis.asyncio as redis
from pydantic import BaseModel, ValidationError
from redis.exceptions import RedisError

from core.config import Settings
from core.errors import RateLimitServiceUnavailable
from core.metrics import rate_limit_denials_total, rate_limit_fallbacks_total

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    SWIPE = "swipe"
    SUPER_LIKE = "send_super_like"


@dataclass(frozen=True)
class Quota:
    limit: int
    window_seconds: float


@dataclass(frozen=True)
class RateLimitVerdict:
    allowed: bool
    retry_after: float | None = None
    remaining: int | None = None


@dataclass(frozen=True)
class Admission:
    """Outcome of ``AdmissionControl.try_consume``."""

    allowed: bool
    retry_after: float | None = None
    degraded: bool = False  # decided by the local fallback counter


def quotas_from_settings(settings: Settings) -> dict[ActionKind, Quota]:
    return {
        ActionKind.SWIPE: Quota(settings.swipe_limit, settings.swipe_window_seconds),
        ActionKind.SUPER_LIKE: Quota(settings.super_like_limit, settings.super_like_window_seconds),
    }


class RateLimitService(ABC):
    """Centralized quota counter."""

    @abstractmethod
    async def check(self, user_id: str, action: ActionKind) -> RateLimitVerdict:
        """Count one action and report whether it is allowed.

        Raises:
            RateLimitServiceUnavailable: The counter could not be reached
        """


class RedisRateLimitService(RateLimitService):
    """Fixed-window counter in Redis, shared by every session of a user."""

    def __init__(self, client: redis.Redis, quotas: dict[ActionKind, Quota]) -> None:
        self.client = client
        self.quotas = quotas

    async def check(self, user_id: str, action: ActionKind) -> RateLimitVerdict:
        quota = self.quotas[action]
        key = f"rl:{action.value}:{user_id}"
        window = max(int(quota.window_seconds), 1)
        try:
            # MULTI/EXEC: start the window if needed, count, read what is left of it
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.set(key, 0, ex=window, nx=True)
                pipe.incr(key)
                pipe.ttl(key)
                _, count, ttl = await pipe.execute()
        except RedisError as e:
            raise RateLimitServiceUnavailable(f"Redis rate limit check failed: {e}") from e

        count = int(count)
        if count > quota.limit:
            return RateLimitVerdict(allowed=False, retry_after=float(ttl) if ttl and ttl > 0 else None, remaining=0)
        return RateLimitVerdict(allowed=True, remaining=quota.limit - count)


class RateLimitResponse(BaseModel):
    allowed: bool
    remaining: int | None = None
    reset_at: datetime | None = None
    retry_after: float | None = None


def _parse_retry_after(value: str | None) -> float | None:
    """Seconds from a Retry-After header, in delay-seconds or HTTP-date form."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    if not math.isfinite(seconds):
        return None
    return max(seconds, 0.0)


class HttpRateLimitService(RateLimitService):
    """Client for a remote rate-limit endpoint."""

    def __init__(self, client: httpx.AsyncClient, endpoint: str = "/v1/rate-limit/check") -> None:
        self.client = client
        self.endpoint = endpoint

    async def check(self, user_id: str, action: ActionKind) -> RateLimitVerdict:
        payload = {
            "user_id": user_id,
            "action": action.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            response = await self.client.post(self.endpoint, json=payload)
        except httpx.HTTPError as e:
            raise RateLimitServiceUnavailable(f"Rate limit service unreachable: {e}") from e

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            return RateLimitVerdict(allowed=False, retry_after=retry_after)
        if response.status_code >= 500:
            raise RateLimitServiceUnavailable(f"Rate limit service returned {response.status_code}")
        if response.status_code >= 400:
            # A request the service rejects says nothing about the quota
            raise RateLimitServiceUnavailable(f"Rate limit service rejected request: {response.status_code}")

        try:
            body = RateLimitResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RateLimitServiceUnavailable(f"Malformed rate limit response: {e}") from e

        if not body.allowed:
            logger.warning(f"Rate limit exceeded for action: {action.value}")
        return RateLimitVerdict(allowed=body.allowed, retry_after=body.retry_after, remaining=body.remaining)


class LocalRateLimiter:
    """In-process sliding-window counter used when the central one is down."""

    def __init__(self, quotas: dict[ActionKind, Quota], clock: Callable[[], float] = time.monotonic) -> None:
        self.quotas = quotas
        self.clock = clock
        self._times: dict[tuple[str, ActionKind], deque[float]] = {}

    @property
    def tracked(self) -> int:
        """Number of (user, action) windows currently held in memory."""
        return len(self._times)

    def _live_times(self, key: tuple[str, ActionKind], window: float, now: float) -> deque[float] | None:
        """Drop expired timestamps; forget the key once its window is empty."""
        times = self._times.get(key)
        if times is None:
            return None
        cutoff = now - window
        while times and times[0] <= cutoff:
            times.popleft()
        if not times:
            del self._times[key]
            return None
        return times

    def try_consume(self, user_id: str, action: ActionKind) -> RateLimitVerdict:
        quota = self.quotas[action]
        now = self.clock()
        key = (user_id, action)
        times = self._live_times(key, quota.window_seconds, now)
        used = len(times) if times else 0

        if used >= quota.limit:
            retry_after = times[0] + quota.window_seconds - now if times else quota.window_seconds
            return RateLimitVerdict(allowed=False, retry_after=max(retry_after, 0.0), remaining=0)

        if times is None:
            times = self._times[key] = deque()
        times.append(now)
        return RateLimitVerdict(allowed=True, remaining=quota.limit - len(times))

    def remaining(self, user_id: str, action: ActionKind) -> int:
        quota = self.quotas[action]
        times = self._live_times((user_id, action), quota.window_seconds, self.clock())
        if times is None:
            return quota.limit
        return max(0, quota.limit - len(times))

    def reset(self) -> None:
        self._times.clear()


class AdmissionControl:
    """Quota gate consulted before every swipe."""

    def __init__(self, service: RateLimitService, fallback: LocalRateLimiter, timeout: float = 2.0) -> None:
        self.service = service
        self.fallback = fallback
        self.timeout = timeout

    async def try_consume(self, user_id: str, action: ActionKind) -> Admission:
        try:
            verdict = await asyncio.wait_for(self.service.check(user_id, action), timeout=self.timeout)
        except (RateLimitServiceUnavailable, asyncio.TimeoutError) as e:
            rate_limit_fallbacks_total.labels(action=action.value).inc()
            logger.error(f"Rate limit service unavailable for {action.value}, using local fallback: {e!r}")
            verdict = self.fallback.try_consume(user_id, action)
            if not verdict.allowed:
                rate_limit_denials_total.labels(action=action.value, source="local").inc()
            return Admission(allowed=verdict.allowed, retry_after=verdict.retry_after, degraded=True)

        if not verdict.allowed:
            rate_limit_denials_total.labels(action=action.value, source="remote").inc()
            logger.warning(f"Rate limit exceeded for user {user_id}, action {action.value}")
        else:
            logger.debug(f"Rate limit check passed for {action.value} (remaining: {verdict.remaining})")
        return Admission(allowed=verdict.allowed, retry_after=verdict.retry_after)
