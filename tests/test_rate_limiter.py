"""Tests for the Redis-backed rate limiter."""

import pytest
import redis
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from redis_rate_limiter import RedisRateLimiter


class FakeRedis:
    """The sorted-set subset of the Redis API the limiter uses."""

    def __init__(self):
        self.sets = {}

    def zremrangebyscore(self, key, low, high):
        members = self.sets.get(key, {})
        for member, score in list(members.items()):
            if low <= score <= high:
                del members[member]

    def zcard(self, key):
        return len(self.sets.get(key, {}))

    def zadd(self, key, mapping):
        self.sets.setdefault(key, {}).update(mapping)

    def zcount(self, key, low, high):
        return sum(1 for score in self.sets.get(key, {}).values() if low <= score <= high)

    def expire(self, key, seconds):
        return True

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.calls = []

    def __getattr__(self, name):
        def queue(*args):
            self.calls.append((name, args))
        return queue

    def execute(self):
        return [getattr(self.client, name)(*args) for name, args in self.calls]


class BrokenRedis:
    def pipeline(self):
        raise redis.ConnectionError("redis is down")

    def zadd(self, *args):
        raise redis.ConnectionError("redis is down")


def build_client(redis_client, ip_limit=3, user_limit=2):
    app = FastAPI()
    app.add_middleware(
        RedisRateLimiter,
        redis_client=redis_client,
        requests_per_window_ip=ip_limit,
        requests_per_window_user=user_limit,
        window_seconds=900,
    )

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    @app.get("/secret")
    async def secret():
        raise HTTPException(status_code=401, detail="nope")

    return TestClient(app)


@pytest.fixture
def fake_redis():
    return FakeRedis()


class TestIpLimit:
    def test_allows_up_to_limit(self, fake_redis):
        client = build_client(fake_redis)
        assert [client.get("/ping").status_code for _ in range(3)] == [200, 200, 200]

    def test_rejects_over_limit(self, fake_redis):
        client = build_client(fake_redis)
        for _ in range(3):
            client.get("/ping")

        response = client.get("/ping")
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "900"
        assert "Too many requests" in response.json()["detail"]

    def test_forwarded_ip_is_tracked_separately(self, fake_redis):
        client = build_client(fake_redis, ip_limit=1)
        assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
        assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2, 10.0.0.9"}).status_code == 200
        assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429


class TestUserLimit:
    def test_token_holders_have_their_own_limit(self, fake_redis):
        client = build_client(fake_redis, ip_limit=100, user_limit=2)
        headers = {"Authorization": "Bearer token-a"}
        assert client.get("/ping", headers=headers).status_code == 200
        assert client.get("/ping", headers=headers).status_code == 200
        assert client.get("/ping", headers=headers).status_code == 429
        assert client.get("/ping", headers={"Authorization": "Bearer token-b"}).status_code == 200

    def test_raw_token_is_not_stored(self, fake_redis):
        client = build_client(fake_redis, ip_limit=100)
        client.get("/ping", headers={"Authorization": "Bearer super-secret-token"})
        assert not any("super-secret" in key for key in fake_redis.sets)


class TestSuspiciousActivity:
    def test_failed_auths_are_recorded(self, fake_redis):
        client = build_client(fake_redis, ip_limit=100)
        for _ in range(5):
            assert client.get("/secret").status_code == 401

        keys = [key for key in fake_redis.sets if key.startswith("suspicious:401:")]
        assert len(keys) == 1
        assert len(fake_redis.sets[keys[0]]) == 5


class TestFailOpen:
    def test_requests_pass_when_redis_is_down(self):
        client = build_client(BrokenRedis(), ip_limit=1)
        assert [client.get("/ping").status_code for _ in range(3)] == [200, 200, 200]
        assert client.get("/secret").status_code == 401
