import pytest
from starlette.requests import Request

from app.core.exceptions import TooManyRequestsError
from app.services import rate_limit


class FakeRedis:
    def __init__(self):
        self.counts = {}
        self.ttls = {}

    async def incr(self, key):
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    async def expire(self, key, seconds):
        self.ttls[key] = seconds


class DownRedis:
    async def incr(self, key):
        raise ConnectionError("redis down")


def _request(ip: str = "10.0.0.1", forwarded: str | None = None) -> Request:
    headers = [(b"x-forwarded-for", forwarded.encode())] if forwarded else []
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers, "client": (ip, 1234)})


def test_window_key_buckets():
    assert rate_limit.window_key("auth", "1.2.3.4", 60, now=119) == "ratelimit:auth:1.2.3.4:1"
    assert rate_limit.window_key("auth", "1.2.3.4", 60, now=120) == "ratelimit:auth:1.2.3.4:2"


def test_client_ip_prefers_forwarded_for():
    assert rate_limit.client_ip(_request(forwarded="203.0.113.7, 10.0.0.1")) == "203.0.113.7"
    assert rate_limit.client_ip(_request()) == "10.0.0.1"


@pytest.mark.asyncio
async def test_hit_sets_expiry_once():
    redis = FakeRedis()
    assert await rate_limit.hit(redis, "k", 60) == 1
    assert await rate_limit.hit(redis, "k", 60) == 2
    assert redis.ttls == {"k": 60}


@pytest.mark.asyncio
async def test_hit_fails_open():
    assert await rate_limit.hit(DownRedis(), "k", 60) == 0


@pytest.mark.asyncio
async def test_limit_exceeded(monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(rate_limit, "get_redis", lambda: redis)
    limiter = rate_limit.RateLimit("auth", "slow down")
    limit, _ = limiter.limits()
    for _ in range(limit):
        await limiter(_request())
    with pytest.raises(TooManyRequestsError) as exc:
        await limiter(_request())
    assert exc.value.message == "slow down"
    assert exc.value.status_code == 429
    await limiter(_request(ip="10.0.0.2"))
