"""
Rate limiting for OTP issuance.

Provides:
- Sliding Window and Fixed Window algorithms
- In-memory and Redis-backed counter storage
"""

from .algorithms import (
    FixedWindowRateLimit,
    RateLimitAlgorithm,
    RateLimitResult,
    SlidingWindowRateLimit,
    create_rate_limiter,
)
from .config import RateLimitRule, TimeWindow
from .config import RateLimitAlgorithm as RateLimitAlgorithmType
from .exceptions import (
    RateLimitConfigError,
    RateLimitError,
    RateLimitStorageError,
)
from .storage import MemoryRateLimitStorage, RateLimitStorage, RedisRateLimitStorage

__all__ = [
    "FixedWindowRateLimit",
    "MemoryRateLimitStorage",
    "RateLimitAlgorithm",
    "RateLimitAlgorithmType",
    "RateLimitConfigError",
    "RateLimitError",
    "RateLimitResult",
    "RateLimitRule",
    "RateLimitStorage",
    "RateLimitStorageError",
    "RedisRateLimitStorage",
    "SlidingWindowRateLimit",
    "TimeWindow",
    "create_rate_limiter",
]
