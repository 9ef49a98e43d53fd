from .booking_lock import InMemoryBookingLock, RedisBookingLock
from .pending_checks import InMemoryPendingCheckCounter, RedisPendingCheckCounter
from .rate_limiter import InMemoryRateLimiter, RedisRateLimiter

__all__ = [
    "InMemoryBookingLock",
    "RedisBookingLock",
    "InMemoryPendingCheckCounter",
    "RedisPendingCheckCounter",
    "InMemoryRateLimiter",
    "RedisRateLimiter",
]
