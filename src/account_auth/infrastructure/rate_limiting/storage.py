"""
Storage backends for rate limiting.

Provides Redis and in-memory counter storage so OTP rate limits can be shared
across application instances or kept local in development and tests.
"""

import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Any

import redis
from redis.exceptions import RedisError

from .exceptions import RateLimitStorageError


class RateLimitStorage(ABC):
    """Abstract base class for rate limit storage backends."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Get value by key."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Set value with optional TTL."""
        pass

    @abstractmethod
    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Atomically increment counter."""
        pass

    @abstractmethod
    def cleanup_expired(self) -> int:
        """Clean up expired entries."""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """Check storage backend health."""
        pass


class MemoryRateLimitStorage(RateLimitStorage):
    """
    In-memory storage backend for rate limiting.

    Suitable for single-instance deployments or development.
    Data is lost when application restarts.
    """

    def __init__(self, cleanup_interval: int = 3600) -> None:
        self._store: dict[str, tuple[Any, float | None]] = {}  # key -> (value, expires_at)
        self._lock = threading.RLock()
        self.cleanup_interval = cleanup_interval
        self._last_cleanup = time.time()

    def _cleanup_if_needed(self) -> None:
        """Perform cleanup if enough time has passed."""
        current_time = time.time()
        if current_time - self._last_cleanup > self.cleanup_interval:
            self.cleanup_expired()
            self._last_cleanup = current_time

    def _is_expired(self, expires_at: float | None) -> bool:
        if expires_at is None:
            return False
        return time.time() >= expires_at

    def get(self, key: str) -> Any | None:
        """Get value by key."""
        with self._lock:
            self._cleanup_if_needed()

            if key not in self._store:
                return None

            value, expires_at = self._store[key]
            if self._is_expired(expires_at):
                del self._store[key]
                return None

            return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Set value with optional TTL."""
        with self._lock:
            expires_at = time.time() + ttl if ttl is not None else None
            self._store[key] = (value, expires_at)
            return True

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Atomically increment counter; the TTL is applied when the key is created."""
        with self._lock:
            current_value = self.get(key)
            if current_value is None:
                self.set(key, amount, ttl)
                return amount

            _, expires_at = self._store[key]
            new_value = int(current_value) + amount
            self._store[key] = (new_value, expires_at)
            return new_value

    def cleanup_expired(self) -> int:
        """Clean up expired keys."""
        with self._lock:
            expired_keys = [
                key for key, (_, expires_at) in self._store.items() if self._is_expired(expires_at)
            ]
            for key in expired_keys:
                del self._store[key]
            return len(expired_keys)

    def health_check(self) -> bool:
        """Memory storage is always healthy."""
        return True


class RedisRateLimitStorage(RateLimitStorage):
    """
    Redis storage backend for rate limiting.

    Provides distributed rate limiting across multiple application instances.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "account_auth:rl:",
        redis_client: redis.Redis | None = None,
    ) -> None:
        self.key_prefix = key_prefix

        if redis_client is not None:
            self.redis_client = redis_client
            return

        try:
            self.redis_client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            self.redis_client.ping()
        except RedisError as e:
            raise RateLimitStorageError(f"Failed to connect to Redis: {e}", storage_backend="redis")

    def _make_key(self, key: str) -> str:
        """Create prefixed key."""
        return f"{self.key_prefix}{key}"

    def get(self, key: str) -> Any | None:
        """Get value by key."""
        try:
            value = self.redis_client.get(self._make_key(key))
            if value is None:
                return None

            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                return value

        except RedisError as e:
            raise RateLimitStorageError(
                f"Redis GET failed: {e}", operation="get", storage_backend="redis"
            )

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Set value with optional TTL."""
        try:
            prefixed_key = self._make_key(key)
            serialized_value = json.dumps(value) if isinstance(value, (dict, list)) else str(value)

            if ttl is not None:
                result = self.redis_client.setex(prefixed_key, ttl, serialized_value)
            else:
                result = self.redis_client.set(prefixed_key, serialized_value)
            return bool(result)

        except RedisError as e:
            raise RateLimitStorageError(
                f"Redis SET failed: {e}", operation="set", storage_backend="redis"
            )

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Atomically increment counter."""
        try:
            prefixed_key = self._make_key(key)

            # MULTI/EXEC keeps the increment and its expiry together
            with self.redis_client.pipeline() as pipe:
                pipe.multi()
                pipe.incrby(prefixed_key, amount)
                if ttl is not None:
                    pipe.expire(prefixed_key, ttl)
                results = pipe.execute()
                return int(results[0])

        except RedisError as e:
            raise RateLimitStorageError(
                f"Redis INCREMENT failed: {e}", operation="increment", storage_backend="redis"
            )

    def cleanup_expired(self) -> int:
        """Redis expires keys on its own."""
        return 0

    def health_check(self) -> bool:
        """Check Redis connection health."""
        try:
            return bool(self.redis_client.ping())
        except RedisError:
            return False
