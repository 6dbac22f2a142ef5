"""In-process fixed-window rate limiting."""
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict

from fastapi import Depends, HTTPException, Request, status

from ally.core.config import settings
from ally.core.security import require_user
from ally.db.models.user import User

logger = logging.getLogger(__name__)

MAX_BUCKETS = 10_000
EVICTION_HEADROOM = 1_000


@dataclass
class _Bucket:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window request counter keyed by user id or client address."""

    def __init__(
        self,
        *,
        name: str,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._buckets: "OrderedDict[str, _Bucket]" = OrderedDict()
        self._lock = Lock()

    def is_limited(self, key: str) -> bool:
        """Count a request for ``key`` and report whether it exceeds the window budget."""
        now = self._clock()
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or now > bucket.reset_at:
                self._buckets[key] = _Bucket(count=1, reset_at=now + self.window_seconds)
                self._cap_size()
                return False
            bucket.count += 1
            return bucket.count > self.max_requests

    def remaining(self, key: str) -> int:
        now = self._clock()
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or now > bucket.reset_at:
                return self.max_requests
            return max(0, self.max_requests - bucket.count)

    def retry_after(self, key: str) -> int:
        """Seconds until the bucket for ``key`` resets (0 when not tracked)."""
        now = self._clock()
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None or now > bucket.reset_at:
                return 0
            return max(1, int(bucket.reset_at - now + 0.999))

    def cleanup(self) -> int:
        """Drop expired buckets and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, bucket in self._buckets.items() if now > bucket.reset_at]
            for key in expired:
                del self._buckets[key]
        return len(expired)

    def bucket_count(self) -> int:
        with self._lock:
            return len(self._buckets)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()

    def _cap_size(self) -> None:
        # Caller holds the lock.
        if len(self._buckets) <= MAX_BUCKETS:
            return
        to_drop = len(self._buckets) - MAX_BUCKETS + EVICTION_HEADROOM
        for _ in range(to_drop):
            self._buckets.popitem(last=False)
        logger.warning("Rate limiter %s evicted %s buckets", self.name, to_drop)


coach_limiter = RateLimiter(name="coach", max_requests=30)
mood_limiter = RateLimiter(name="mood", max_requests=30)
tasks_limiter = RateLimiter(name="tasks", max_requests=60)
outcomes_limiter = RateLimiter(name="outcomes", max_requests=30)
now_mode_limiter = RateLimiter(name="now_mode", max_requests=30)
inbox_limiter = RateLimiter(name="inbox", max_requests=30)
checkin_limiter = RateLimiter(name="checkin", max_requests=20)
balance_limiter = RateLimiter(name="balance", max_requests=20)
weekly_planning_limiter = RateLimiter(name="weekly_planning", max_requests=30)
dump_limiter = RateLimiter(name="dump", max_requests=10)
weekly_review_limiter = RateLimiter(name="weekly_review", max_requests=20)

LIMITERS: Dict[str, RateLimiter] = {
    limiter.name: limiter
    for limiter in (
        coach_limiter,
        mood_limiter,
        tasks_limiter,
        outcomes_limiter,
        now_mode_limiter,
        inbox_limiter,
        checkin_limiter,
        balance_limiter,
        weekly_planning_limiter,
        dump_limiter,
        weekly_review_limiter,
    )
}


def reset_all_limiters() -> None:
    for limiter in LIMITERS.values():
        limiter.reset()


def client_ip(request: Request) -> str:
    """Resolve the caller address, honouring proxy headers."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def enforce_rate_limit(limiter: RateLimiter, key: str) -> None:
    """Raise a 429 HTTPException when ``key`` is over budget for ``limiter``."""
    if not settings.rate_limit_enabled:
        return
    if limiter.is_limited(key):
        logger.info("Rate limit hit for %s (key=%s)", limiter.name, key)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests",
            headers={"Retry-After": str(limiter.retry_after(key))},
        )


def rate_limited(limiter: RateLimiter) -> Callable[..., User]:
    """Dependency factory: authenticate the caller, then count the request against ``limiter``."""

    def dependency(user: User = Depends(require_user)) -> User:
        enforce_rate_limit(limiter, str(user.id))
        return user

    return dependency
