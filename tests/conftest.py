"""Pytest fixtures shared by the matching tests.

Everything runs against the in-memory store and in-process fakes for the
rate-limit service, event sink and match counter. The Redis adapters run on
fakeredis. No database is needed except where a test builds its own SQLite
engine.
"""

import os

# Settings are read at import time and the API secret has no default
os.environ.setdefault("INTERNAL_API_SECRET", "test-secret")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")

from typing import Any

import fakeredis
import pytest

from apps.matching import MatchingServices, build_services
from apps.matching.admission import ActionKind, LocalRateLimiter, Quota, RateLimitService, RateLimitVerdict
from apps.matching.events import EventSink
from apps.matching.matches import MatchCounter
from apps.workers.background import BackgroundTaskQueue
from core.config import Settings
from core.errors import RateLimitServiceUnavailable, TelemetryFailure
from core.store import MemoryKeyValueStore
from models.profile import Profile


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingEventSink(EventSink):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise TelemetryFailure(f"sink down: {event_name}")
        self.events.append((event_name, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class InMemoryMatchCounter(MatchCounter):
    def __init__(self) -> None:
        self.counts: dict[str, int] = {}

    async def increment(self, user_id: str) -> None:
        self.counts[user_id] = self.counts.get(user_id, 0) + 1

    async def get(self, user_id: str) -> int:
        return self.counts.get(user_id, 0)


class StubRateLimitService(RateLimitService):
    """Remote counter that allows, denies or is unreachable on demand."""

    def __init__(self, mode: str = "allow", retry_after: float | None = 30.0) -> None:
        self.mode = mode
        self.retry_after = retry_after
        self.calls: list[tuple[str, ActionKind]] = []

    async def check(self, user_id: str, action: ActionKind) -> RateLimitVerdict:
        self.calls.append((user_id, action))
        if self.mode == "unavailable":
            raise RateLimitServiceUnavailable("stub counter down")
        if self.mode == "deny":
            return RateLimitVerdict(allowed=False, retry_after=self.retry_after, remaining=0)
        return RateLimitVerdict(allowed=True, remaining=99)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        internal_api_secret="test-secret",
        swipe_limit=100,
        super_like_limit=5,
        background_queue_size=100,
        background_workers=2,
        background_task_timeout_seconds=1.0,
        rate_limit_timeout_seconds=0.5,
    )


@pytest.fixture
def store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def event_sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def counters() -> InMemoryMatchCounter:
    return InMemoryMatchCounter()


@pytest.fixture
def rate_limit_service() -> StubRateLimitService:
    return StubRateLimitService()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fallback(clock: FakeClock) -> LocalRateLimiter:
    quotas = {
        ActionKind.SWIPE: Quota(limit=3, window_seconds=60),
        ActionKind.SUPER_LIKE: Quota(limit=1, window_seconds=60),
    }
    return LocalRateLimiter(quotas, clock=clock)


@pytest.fixture
async def tasks():
    queue = BackgroundTaskQueue(maxsize=100, workers=2, task_timeout=1.0)
    await queue.start()
    yield queue
    await queue.stop()


@pytest.fixture
def services(
    test_settings: Settings,
    store: MemoryKeyValueStore,
    rate_limit_service: StubRateLimitService,
    event_sink: RecordingEventSink,
    counters: InMemoryMatchCounter,
    fallback: LocalRateLimiter,
    tasks: BackgroundTaskQueue,
) -> MatchingServices:
    return build_services(
        test_settings,
        store=store,
        rate_limit_service=rate_limit_service,
        event_sink=event_sink,
        counters=counters,
        fallback=fallback,
        tasks=tasks,
    )


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
async def redis_client(redis_server: fakeredis.FakeServer):
    client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def make_profile():
    """Build a Profile with overridable fields."""

    def _make(profile_id: str, **fields: Any) -> Profile:
        data: dict[str, Any] = {"id": profile_id, "age": 30}
        data.update(fields)
        return Profile(**data)

    return _make
