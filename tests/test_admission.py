"""Tests for admission control and the rate-limit service clients."""

import asyncio
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import fakeredis
import httpx
import pytest

from apps.matching.admission import (
    ActionKind,
    AdmissionControl,
    HttpRateLimitService,
    Quota,
    RateLimitService,
    RateLimitVerdict,
    RedisRateLimitService,
)
from core.errors import RateLimitServiceUnavailable
from tests.conftest import StubRateLimitService


class SlowRateLimitService(RateLimitService):
    async def check(self, user_id: str, action: ActionKind) -> RateLimitVerdict:
        await asyncio.sleep(10)
        return RateLimitVerdict(allowed=True)


async def test_remote_allow(fallback):
    admission = AdmissionControl(StubRateLimitService("allow"), fallback)

    result = await admission.try_consume("alice", ActionKind.SWIPE)

    assert result.allowed
    assert not result.degraded
    # Local counter untouched while the remote one answers
    assert fallback.remaining("alice", ActionKind.SWIPE) == 3


async def test_remote_deny_is_authoritative(fallback):
    admission = AdmissionControl(StubRateLimitService("deny", retry_after=42.0), fallback)

    result = await admission.try_consume("alice", ActionKind.SWIPE)

    assert not result.allowed
    assert result.retry_after == 42.0
    assert not result.degraded


async def test_unavailable_falls_back_to_local(fallback):
    admission = AdmissionControl(StubRateLimitService("unavailable"), fallback)

    results = [await admission.try_consume("alice", ActionKind.SWIPE) for _ in range(4)]

    assert [r.allowed for r in results] == [True, True, True, False]
    assert all(r.degraded for r in results)
    assert results[-1].retry_after == pytest.approx(60.0)


async def test_timeout_falls_back_to_local(fallback):
    admission = AdmissionControl(SlowRateLimitService(), fallback, timeout=0.01)

    result = await admission.try_consume("alice", ActionKind.SWIPE)

    assert result.allowed
    assert result.degraded
    assert fallback.remaining("alice", ActionKind.SWIPE) == 2


def test_local_window_slides(fallback, clock):
    assert fallback.try_consume("alice", ActionKind.SWIPE).allowed
    clock.advance(30)
    assert fallback.try_consume("alice", ActionKind.SWIPE).allowed
    assert fallback.try_consume("alice", ActionKind.SWIPE).allowed

    denied = fallback.try_consume("alice", ActionKind.SWIPE)
    assert not denied.allowed
    assert denied.retry_after == pytest.approx(30.0)

    # The first use leaves the window
    clock.advance(30)
    assert fallback.try_consume("alice", ActionKind.SWIPE).allowed
    assert not fallback.try_consume("alice", ActionKind.SWIPE).allowed


def test_local_quotas_are_independent(fallback):
    assert fallback.try_consume("alice", ActionKind.SUPER_LIKE).allowed
    assert not fallback.try_consume("alice", ActionKind.SUPER_LIKE).allowed

    # Other action and other user are unaffected
    assert fallback.try_consume("alice", ActionKind.SWIPE).allowed
    assert fallback.try_consume("bob", ActionKind.SUPER_LIKE).allowed


def test_local_reset(fallback):
    for _ in range(3):
        fallback.try_consume("alice", ActionKind.SWIPE)
    assert fallback.remaining("alice", ActionKind.SWIPE) == 0

    fallback.reset()

    assert fallback.remaining("alice", ActionKind.SWIPE) == 3


def _http_service(handler) -> HttpRateLimitService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://ratelimit.test")
    return HttpRateLimitService(client)


async def test_http_allowed():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = request.content
        return httpx.Response(200, json={"allowed": True, "remaining": 7})

    verdict = await _http_service(handler).check("alice", ActionKind.SUPER_LIKE)

    assert verdict.allowed
    assert verdict.remaining == 7
    assert seen["path"] == "/v1/rate-limit/check"
    assert b'"send_super_like"' in seen["body"]


async def test_http_429_is_denial():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"Retry-After": "120"})

    verdict = await _http_service(handler).check("alice", ActionKind.SWIPE)

    assert not verdict.allowed
    assert verdict.retry_after == 120.0


async def test_http_denied_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"allowed": False, "retry_after": 5})

    verdict = await _http_service(handler).check("alice", ActionKind.SWIPE)

    assert not verdict.allowed
    assert verdict.retry_after == 5.0


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503),
        httpx.Response(400),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"remaining": 3}),
    ],
)
async def test_http_failures_are_unavailable(response):
    service = _http_service(lambda request: response)

    with pytest.raises(RateLimitServiceUnavailable):
        await service.check("alice", ActionKind.SWIPE)


async def test_http_transport_error_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RateLimitServiceUnavailable):
        await _http_service(handler).check("alice", ActionKind.SWIPE)


async def test_redis_counter_window(redis_client):
    service = RedisRateLimitService(redis_client, {ActionKind.SWIPE: Quota(2, 60)})

    first = await service.check("alice", ActionKind.SWIPE)
    second = await service.check("alice", ActionKind.SWIPE)
    denied = await service.check("alice", ActionKind.SWIPE)

    assert (first.allowed, first.remaining) == (True, 1)
    assert (second.allowed, second.remaining) == (True, 0)
    assert not denied.allowed
    assert 0 < denied.retry_after <= 60
    assert await redis_client.ttl("rl:swipe:alice") > 0

    # Window over
    await redis_client.pexpire("rl:swipe:alice", 1)
    await asyncio.sleep(0.01)

    assert (await service.check("alice", ActionKind.SWIPE)).allowed


async def test_redis_counter_is_per_user_and_action(redis_client):
    quotas = {ActionKind.SWIPE: Quota(1, 60), ActionKind.SUPER_LIKE: Quota(1, 60)}
    service = RedisRateLimitService(redis_client, quotas)

    assert (await service.check("alice", ActionKind.SWIPE)).allowed
    assert not (await service.check("alice", ActionKind.SWIPE)).allowed
    assert (await service.check("alice", ActionKind.SUPER_LIKE)).allowed
    assert (await service.check("bob", ActionKind.SWIPE)).allowed


async def test_redis_counter_shared_across_sessions(redis_server):
    # Two clients stand in for two sessions of the same user
    quotas = {ActionKind.SWIPE: Quota(3, 60)}
    phone = RedisRateLimitService(fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True), quotas)
    laptop = RedisRateLimitService(fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True), quotas)

    verdicts = await asyncio.gather(*(svc.check("alice", ActionKind.SWIPE) for svc in (phone, laptop) * 3))

    assert sum(v.allowed for v in verdicts) == 3


async def test_redis_counter_unreachable(redis_server, redis_client, fallback):
    service = RedisRateLimitService(redis_client, {ActionKind.SWIPE: Quota(2, 60)})
    redis_server.connected = False

    with pytest.raises(RateLimitServiceUnavailable):
        await service.check("alice", ActionKind.SWIPE)

    result = await AdmissionControl(service, fallback).try_consume("alice", ActionKind.SWIPE)
    assert result.allowed and result.degraded


@pytest.mark.parametrize(
    ("header", "expected"),
    [("1.5", 1.5), ("0", 0.0), ("soon", None), ("", None)],
)
async def test_http_429_retry_after_forms(header, expected):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"Retry-After": header})

    verdict = await _http_service(handler).check("alice", ActionKind.SWIPE)

    assert not verdict.allowed
    assert verdict.retry_after == expected


async def test_http_429_retry_after_http_date():
    when = datetime.now(timezone.utc) + timedelta(seconds=120)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"Retry-After": format_datetime(when, usegmt=True)})

    verdict = await _http_service(handler).check("alice", ActionKind.SWIPE)

    assert 100 < verdict.retry_after <= 120


def test_local_forgets_expired_windows(fallback, clock):
    for user in ("alice", "bob", "carol"):
        fallback.try_consume(user, ActionKind.SWIPE)
    assert fallback.tracked == 3

    clock.advance(61)
    fallback.remaining("alice", ActionKind.SWIPE)
    fallback.try_consume("bob", ActionKind.SWIPE)

    # alice's window emptied and was dropped; bob's was renewed
    assert fallback.tracked == 2
    assert fallback.remaining("carol", ActionKind.SWIPE) == 3
    assert fallback.tracked == 1
