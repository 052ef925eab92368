from types import SimpleNamespace

import pytest
import redis
from fastapi import HTTPException

from app import config
from app.rate_limiter import check_rate_limit, create_rate_limiter


class FakeRedis:
    """Counter store with the pipeline/expire surface the limiter uses"""

    def __init__(self):
        self.counts = {}
        self.ttls = {}

    def pipeline(self):
        return FakePipeline(self)

    def expire(self, key, seconds):
        self.ttls[key] = seconds


class FakePipeline:
    def __init__(self, store):
        self.store = store
        self.ops = []

    def incr(self, key):
        self.ops.append(("incr", key))

    def ttl(self, key):
        self.ops.append(("ttl", key))

    def execute(self):
        results = []
        for op, key in self.ops:
            if op == "incr":
                self.store.counts[key] = self.store.counts.get(key, 0) + 1
                results.append(self.store.counts[key])
            else:
                results.append(self.store.ttls.get(key, -1))
        return results


def test_window_counts_and_blocks():
    client = FakeRedis()

    results = [check_rate_limit("k", 2, 60, client) for _ in range(3)]

    assert [allowed for allowed, _, _ in results] == [True, True, False]
    assert results[-1][1] == 3
    assert client.ttls["k"] == 60


def _request():
    return SimpleNamespace(state=SimpleNamespace())


async def test_limiter_raises_429_with_retry_after(monkeypatch):
    monkeypatch.setattr(config, "RATE_LIMIT_ENABLED", True)
    client = FakeRedis()
    monkeypatch.setattr("app.rate_limiter.get_redis_client", lambda: client)
    limiter = create_rate_limiter(limit=1, window_seconds=60, key_prefix="sync_payment")
    user = SimpleNamespace(id=7)

    await limiter(_request(), user)
    with pytest.raises(HTTPException) as exc:
        await limiter(_request(), user)

    assert exc.value.status_code == 429
    assert exc.value.headers == {"Retry-After": "60"}
    assert "sync_payment:7" in client.counts


async def test_limiter_fails_open_when_redis_is_down(monkeypatch):
    monkeypatch.setattr(config, "RATE_LIMIT_ENABLED", True)

    def unavailable():
        raise redis.ConnectionError("connection refused")

    monkeypatch.setattr("app.rate_limiter.get_redis_client", unavailable)
    limiter = create_rate_limiter(limit=1, window_seconds=60)

    assert await limiter(_request(), SimpleNamespace(id=7)) is None


async def test_disabled_limiter_never_touches_redis(monkeypatch):
    monkeypatch.setattr(config, "RATE_LIMIT_ENABLED", False)

    def unexpected():
        raise AssertionError("redis should not be used")

    monkeypatch.setattr("app.rate_limiter.get_redis_client", unexpected)
    limiter = create_rate_limiter(limit=1, window_seconds=60)

    assert await limiter(_request(), SimpleNamespace(id=7)) is None
