from __future__ import annotations

from ally.core import rate_limit
from ally.core.rate_limit import RateLimiter


class _Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_fixed_window_counts_and_resets():
    clock = _Clock()
    limiter = RateLimiter(name="test", max_requests=2, window_seconds=60, clock=clock)

    assert limiter.is_limited("a") is False
    assert limiter.is_limited("a") is False
    assert limiter.is_limited("a") is True
    assert limiter.remaining("a") == 0
    assert limiter.retry_after("a") == 60

    clock.now += 61
    assert limiter.remaining("a") == 2
    assert limiter.is_limited("a") is False


def test_keys_are_independent():
    limiter = RateLimiter(name="test", max_requests=1, clock=_Clock())

    assert limiter.is_limited("a") is False
    assert limiter.is_limited("a") is True
    assert limiter.is_limited("b") is False


def test_cleanup_drops_expired_buckets():
    clock = _Clock()
    limiter = RateLimiter(name="test", max_requests=5, window_seconds=10, clock=clock)
    limiter.is_limited("old")
    clock.now += 5
    limiter.is_limited("new")
    clock.now += 6

    assert limiter.cleanup() == 1
    assert limiter.bucket_count() == 1


def test_oldest_buckets_evicted_past_capacity(monkeypatch):
    monkeypatch.setattr(rate_limit, "MAX_BUCKETS", 10)
    monkeypatch.setattr(rate_limit, "EVICTION_HEADROOM", 3)
    limiter = RateLimiter(name="test", max_requests=5, clock=_Clock())

    for index in range(11):
        limiter.is_limited(f"key-{index}")

    # 11 - 10 + 3 oldest keys go.
    assert limiter.bucket_count() == 7
    assert limiter.remaining("key-0") == 5
    assert limiter.remaining("key-10") == 4


def test_route_returns_429_with_retry_after(client, auth, monkeypatch):
    headers, _ = auth
    monkeypatch.setattr(rate_limit.checkin_limiter, "max_requests", 2)

    assert client.get("/daily-checkin", headers=headers).status_code == 200
    assert client.get("/daily-checkin", headers=headers).status_code == 200
    resp = client.get("/daily-checkin", headers=headers)

    assert resp.status_code == 429
    assert resp.json()["detail"] == "Too many requests"
    assert int(resp.headers["Retry-After"]) >= 1


def test_rate_limit_can_be_disabled(client, auth, monkeypatch):
    headers, _ = auth
    monkeypatch.setattr(rate_limit.checkin_limiter, "max_requests", 1)
    monkeypatch.setattr(rate_limit.settings, "rate_limit_enabled", False)

    for _ in range(3):
        assert client.get("/daily-checkin", headers=headers).status_code == 200
