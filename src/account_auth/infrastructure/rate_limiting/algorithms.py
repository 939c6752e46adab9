"""
Rate limiting algorithms for OTP issuance.

Implements Sliding Window (exact, in-process) and Fixed Window (counter based,
backed by a shared storage) algorithms.
"""

import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime

from .config import RateLimitAlgorithm as AlgorithmType
from .config import RateLimitRule
from .exceptions import RateLimitConfigError
from .storage import MemoryRateLimitStorage, RateLimitStorage


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    allowed: bool
    current_count: int
    limit: int
    remaining: int
    reset_time: datetime | None
    retry_after: int | None  # Seconds to wait before retry


class RateLimitAlgorithm(ABC):
    """Abstract base class for rate limiting algorithms."""

    def __init__(self, rule: RateLimitRule) -> None:
        self.rule = rule
        self.lock = threading.RLock()

        if rule.limit <= 0:
            raise RateLimitConfigError("Rate limit must be positive", config_field="limit")
        if rule.window.seconds <= 0:
            raise RateLimitConfigError("Time window must be positive", config_field="window")

    @abstractmethod
    def check_rate_limit(self, identifier: str, tokens: int = 1) -> RateLimitResult:
        """Check if request is within rate limit, consuming tokens when allowed."""
        pass

    @abstractmethod
    def cleanup_expired(self) -> int:
        """Clean up expired entries and return number removed."""
        pass


class SlidingWindowRateLimit(RateLimitAlgorithm):
    """
    Sliding Window rate limiting algorithm.

    Maintains precise tracking of requests within a sliding time window, so the
    limit is exact at the boundary: the Nth request inside any window passes and
    the (N+1)th is rejected until the oldest request leaves the window.
    """

    def __init__(self, rule: RateLimitRule) -> None:
        super().__init__(rule)

        # Each identifier has a deque of request timestamps
        self._windows: dict[str, deque[float]] = {}

    def _prune(self, window: deque[float], current_time: float) -> None:
        window_start = current_time - self.rule.window.seconds
        while window and window[0] <= window_start:
            window.popleft()

    def check_rate_limit(self, identifier: str, tokens: int = 1) -> RateLimitResult:
        """Check rate limit using sliding window algorithm."""
        with self.lock:
            current_time = time.time()
            window = self._windows.setdefault(identifier, deque())
            self._prune(window, current_time)

            if len(window) + tokens <= self.rule.limit:
                for _ in range(tokens):
                    window.append(current_time)

                return RateLimitResult(
                    allowed=True,
                    current_count=len(window),
                    limit=self.rule.limit,
                    remaining=self.rule.limit - len(window),
                    reset_time=datetime.fromtimestamp(window[0] + self.rule.window.seconds, UTC),
                    retry_after=None,
                )

            # Deny request; the oldest request decides when capacity frees up
            if window:
                expires_at = window[0] + self.rule.window.seconds
            else:
                expires_at = current_time + self.rule.window.seconds

            return RateLimitResult(
                allowed=False,
                current_count=len(window),
                limit=self.rule.limit,
                remaining=max(0, self.rule.limit - len(window)),
                reset_time=datetime.fromtimestamp(expires_at, UTC),
                retry_after=int(expires_at - current_time) + 1,
            )

    def cleanup_expired(self) -> int:
        """Clean up expired entries from all windows."""
        with self.lock:
            current_time = time.time()
            cleaned_count = 0

            for identifier, window in list(self._windows.items()):
                original_size = len(window)
                self._prune(window, current_time)
                cleaned_count += original_size - len(window)

                if not window:
                    del self._windows[identifier]

            return cleaned_count


class FixedWindowRateLimit(RateLimitAlgorithm):
    """
    Fixed Window rate limiting algorithm.

    Divides time into fixed windows and counts requests per window in a
    RateLimitStorage. With Redis storage the counter is shared by every
    application instance and incremented atomically.
    """

    def __init__(self, rule: RateLimitRule, storage: RateLimitStorage | None = None) -> None:
        super().__init__(rule)
        self.storage = storage or MemoryRateLimitStorage()

    def _get_window_start(self, current_time: float) -> int:
        """Get the start time of the current window."""
        return int(current_time // self.rule.window.seconds) * self.rule.window.seconds

    def _key(self, identifier: str, window_start: int) -> str:
        return f"{self.rule.identifier or 'default'}:{identifier}:{window_start}"

    def check_rate_limit(self, identifier: str, tokens: int = 1) -> RateLimitResult:
        """Check rate limit using fixed window algorithm."""
        current_time = time.time()
        window_start = self._get_window_start(current_time)
        window_end = window_start + self.rule.window.seconds
        reset_time = datetime.fromtimestamp(window_end, UTC)

        count = self.storage.increment(
            self._key(identifier, window_start), tokens, ttl=self.rule.window.seconds
        )

        if count <= self.rule.limit:
            return RateLimitResult(
                allowed=True,
                current_count=count,
                limit=self.rule.limit,
                remaining=self.rule.limit - count,
                reset_time=reset_time,
                retry_after=None,
            )

        return RateLimitResult(
            allowed=False,
            current_count=count,
            limit=self.rule.limit,
            remaining=0,
            reset_time=reset_time,
            retry_after=int(window_end - current_time) + 1,
        )

    def cleanup_expired(self) -> int:
        """Clean up expired windows."""
        return self.storage.cleanup_expired()


def create_rate_limiter(
    rule: RateLimitRule, storage: RateLimitStorage | None = None
) -> RateLimitAlgorithm:
    """Factory function to create appropriate rate limiter."""
    if rule.algorithm == AlgorithmType.SLIDING_WINDOW:
        return SlidingWindowRateLimit(rule)
    elif rule.algorithm == AlgorithmType.FIXED_WINDOW:
        return FixedWindowRateLimit(rule, storage)
    else:
        raise RateLimitConfigError(f"Unknown algorithm: {rule.algorithm}")
