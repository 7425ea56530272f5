"""Tests for the Redis-backed event sink and match counter."""

import json

import pytest

from apps.matching import build_services
from apps.matching.events import MATCH_CREATED, SWIPE_RECORDED, RedisStreamEventSink
from apps.matching.matches import RedisMatchCounter
from core.errors import TelemetryFailure
from tests.conftest import StubRateLimitService


async def test_stream_sink_appends_flat_fields(redis_client):
    sink = RedisStreamEventSink(redis_client, maxlen=100)

    await sink.emit(
        SWIPE_RECORDED,
        {"from_user": "alice", "to_user": "bob", "is_super_like": True, "score": 0.5},
    )
    await sink.emit(MATCH_CREATED, {"match_id": "alice:bob:1"})

    entries = await redis_client.xrange(SWIPE_RECORDED)
    assert len(entries) == 1
    _, fields = entries[0]
    assert fields["from_user"] == "alice"
    assert json.loads(fields["is_super_like"]) is True
    assert json.loads(fields["score"]) == 0.5

    # One stream per event name
    assert [f for _, f in await redis_client.xrange(MATCH_CREATED)] == [{"match_id": "alice:bob:1"}]


async def test_stream_sink_failure_is_telemetry_failure(redis_server, redis_client):
    sink = RedisStreamEventSink(redis_client)
    redis_server.connected = False

    with pytest.raises(TelemetryFailure):
        await sink.emit(MATCH_CREATED, {"match_id": "alice:bob:1"})


async def test_match_counter_round_trip(redis_client):
    counter = RedisMatchCounter(redis_client)

    assert await counter.get("alice") == 0

    await counter.increment("alice")
    await counter.increment("alice")
    await counter.increment("bob")

    assert await counter.get("alice") == 2
    assert await counter.get("bob") == 1
    assert await redis_client.get("match_count:alice") == "2"


async def test_match_counter_fed_by_match_creation(test_settings, store, event_sink, fallback, tasks, redis_client):
    services = build_services(
        test_settings,
        store=store,
        rate_limit_service=StubRateLimitService(),
        event_sink=event_sink,
        counters=RedisMatchCounter(redis_client),
        fallback=fallback,
        tasks=tasks,
    )

    await services.ledger.like("alice", "bob")
    await services.ledger.like("bob", "alice")
    await tasks.join()

    assert await services.matches.match_count("alice") == 1
    assert await services.matches.match_count("bob") == 1
