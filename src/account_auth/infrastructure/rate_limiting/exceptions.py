"""
Errors raised by the OTP rate limiters and their counter stores.

Callers in the auth services translate these into DependencyFailure; none of
them reach an HTTP client as-is.
"""


class RateLimitError(Exception):
    """A limiter could not answer whether an OTP request may proceed."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RateLimitConfigError(RateLimitError):
    """A RateLimitRule that no limiter can enforce, e.g. a zero window."""

    def __init__(self, message: str, config_field: str | None = None) -> None:
        super().__init__(message)
        self.config_field = config_field


class RateLimitStorageError(RateLimitError):
    """The shared counter store (Redis) failed while counting OTP requests."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        storage_backend: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.storage_backend = storage_backend
