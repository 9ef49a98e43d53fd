import pytest

from infrastructure.locks import InMemoryRateLimiter, RedisRateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class FakeRedis:
    """Only the counter surface the limiter uses."""

    def __init__(self, *, broken: bool = False) -> None:
        self.counts = {}
        self.ttls = {}
        self.broken = broken

    async def incr(self, key, amount=1, ttl=None):
        if self.broken:
            return None
        self.counts[key] = self.counts.get(key, 0) + amount
        if self.counts[key] == amount:
            self.ttls[key] = ttl
        return self.counts[key]


@pytest.mark.asyncio
async def test_in_memory_window_resets():
    clock = FakeClock()
    limiter = InMemoryRateLimiter(limit=3, window=60, clock=clock)

    assert [await limiter.hit("1.2.3.4") for _ in range(4)] == [True, True, True, False]
    assert await limiter.hit("5.6.7.8") is True

    clock.now += 59
    assert await limiter.hit("1.2.3.4") is False
    clock.now += 1
    assert await limiter.hit("1.2.3.4") is True


@pytest.mark.asyncio
async def test_zero_limit_disables_limiting():
    limiter = InMemoryRateLimiter(limit=0)
    assert all([await limiter.hit("1.2.3.4") for _ in range(100)])


@pytest.mark.asyncio
async def test_redis_limiter_counts_per_sender_with_window_expiry():
    redis = FakeRedis()
    limiter = RedisRateLimiter(redis, limit=2, window=60)

    assert [await limiter.hit("1.2.3.4") for _ in range(3)] == [True, True, False]
    assert redis.ttls == {"rate:webhook:1.2.3.4": 60}
    assert redis.counts["rate:webhook:1.2.3.4"] == 3


@pytest.mark.asyncio
async def test_redis_limiter_lets_traffic_through_when_redis_fails():
    limiter = RedisRateLimiter(FakeRedis(broken=True), limit=1, window=60)
    assert await limiter.hit("1.2.3.4") is True
    assert await limiter.hit("1.2.3.4") is True
