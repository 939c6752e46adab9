"""
Domain-level exceptions for the account authentication system.

This module defines the failure taxonomy raised by the authentication services.
Every exception carries a stable machine-readable code, an HTTP-shaped status
code and optional details so the outer layer can render a uniform envelope.
"""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain-level errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AuthError(DomainException):
    """Base class for failures reported to callers of the account use cases."""

    code = "auth_error"
    status_code = 400

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


# Validation ------------------------------------------------------------------


class ValidationError(AuthError):
    """Malformed or missing input."""

    code = "validation_error"


class InvalidInput(ValidationError):
    """Input failed a semantic check (bad email, phone, birth date ...)."""

    code = "invalid_input"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, {"field": field} if field else None)
        self.field = field


# Business rules ----------------------------------------------------------------


class BusinessRuleViolation(AuthError):
    """Request is well formed but breaks an account rule."""

    code = "business_rule_violation"


class WeakPassword(BusinessRuleViolation):
    """Password does not satisfy the strength policy."""

    code = "weak_password"

    def __init__(self, reasons: list[str]) -> None:
        super().__init__("Password does not meet security requirements", {"reasons": reasons})
        self.reasons = reasons


class DuplicateIdentifier(BusinessRuleViolation):
    """Email or phone already belongs to another account at registration."""

    code = "duplicate_identifier"

    def __init__(self, channel: str) -> None:
        noun = "email address" if channel == "email" else "phone number"
        super().__init__(f"An account with this {noun} already exists", {"field": channel})
        self.channel = channel


class AlreadyInUse(BusinessRuleViolation):
    """Requested new email or phone is registered with another account."""

    code = "already_in_use"

    def __init__(self, channel: str) -> None:
        noun = "Email" if channel == "email" else "Phone number"
        super().__init__(f"{noun} is already registered with another account", {"field": channel})
        self.channel = channel


class PasswordReused(BusinessRuleViolation):
    """New password equals the current one."""

    code = "password_reused"

    def __init__(self) -> None:
        super().__init__("New password must be different from current password")


class VerificationRequired(BusinessRuleViolation):
    """A contact channel must be verified before this operation."""

    code = "verification_required"
    status_code = 403

    def __init__(self, message: str, channels: list[str] | None = None) -> None:
        super().__init__(message, {"channels": channels} if channels else None)
        self.channels = channels or []


class TwoFactorAlreadyEnabled(BusinessRuleViolation):
    code = "two_factor_already_enabled"

    def __init__(self) -> None:
        super().__init__("2FA is already enabled for this account")


class TwoFactorNotEnabled(BusinessRuleViolation):
    code = "two_factor_not_enabled"

    def __init__(self) -> None:
        super().__init__("2FA is not enabled for this account")


class TwoFactorSetupNotInitiated(BusinessRuleViolation):
    code = "two_factor_setup_not_initiated"

    def __init__(self) -> None:
        super().__init__("2FA setup has not been initiated")


# Authentication ----------------------------------------------------------------


class AuthenticationFailure(AuthError):
    """Caller could not prove who they are."""

    code = "authentication_failed"
    status_code = 401


class InvalidCredentials(AuthenticationFailure):
    """Unknown identifier or wrong password, deliberately indistinguishable."""

    code = "invalid_credentials"

    def __init__(self) -> None:
        super().__init__("Invalid credentials")


class CurrentPasswordIncorrect(AuthenticationFailure):
    code = "current_password_incorrect"

    def __init__(self) -> None:
        super().__init__("Current password is incorrect")


class NoPasswordSet(AuthenticationFailure):
    """Account was created through a social provider and has no password."""

    code = "no_password_set"

    def __init__(self) -> None:
        super().__init__("This account has no password; sign in with its social provider")


class AccountLocked(AuthenticationFailure):
    """Too many failed login attempts."""

    code = "account_locked"
    status_code = 423

    def __init__(self, retry_after: int) -> None:
        super().__init__(
            "Account temporarily locked due to too many failed login attempts",
            {"retry_after": retry_after},
        )
        self.retry_after = retry_after


class InvalidOrExpiredCode(AuthenticationFailure):
    """One-time passcode could not be accepted."""

    code = "invalid_or_expired_code"

    def __init__(self, message: str = "Invalid or expired verification code") -> None:
        super().__init__(message)


class OtpNotFound(InvalidOrExpiredCode):
    """No active challenge for the key, or the code belongs to a superseded one."""


class OtpExpired(InvalidOrExpiredCode):
    """Active challenge is past its expiry."""


class OtpMismatch(InvalidOrExpiredCode):
    """Code does not match the active challenge."""

    def __init__(self, attempts_remaining: int | None = None) -> None:
        super().__init__()
        self.attempts_remaining = attempts_remaining


class OtpAttemptsExceeded(OtpMismatch):
    """Challenge reached its attempt ceiling and can no longer be consumed."""

    def __init__(self) -> None:
        super().__init__(attempts_remaining=0)


class OtpAlreadyConsumed(InvalidOrExpiredCode):
    """Challenge was already used successfully."""


class TokenError(AuthenticationFailure):
    """Base class for access, refresh and two-factor token failures."""

    code = "token_error"


class TokenInvalid(TokenError):
    code = "token_invalid"

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class TokenExpired(TokenError):
    code = "token_expired"

    def __init__(self, message: str = "Token has expired") -> None:
        super().__init__(message)


class TokenVersionMismatch(TokenError):
    """Token was issued before the account's sessions were invalidated."""

    code = "token_version_mismatch"

    def __init__(self) -> None:
        super().__init__("Token is no longer valid; please sign in again")


class ProviderVerificationFailed(AuthenticationFailure):
    """Federated credential could not be verified with the provider."""

    code = "provider_verification_failed"

    def __init__(self, provider: str, reason: str | None = None) -> None:
        super().__init__(
            f"Could not verify {provider} credentials", {"provider": provider, "reason": reason}
        )
        self.provider = provider
        self.reason = reason


# Throttling, masking and dependencies -------------------------------------------


class RateLimited(AuthError):
    """Too many requests for an identifier within the current window."""

    code = "rate_limited"
    status_code = 429

    def __init__(self, message: str, retry_after: int | None = None) -> None:
        super().__init__(message, {"retry_after": retry_after})
        self.retry_after = retry_after


class NotFoundButMasked(AuthError):
    """
    Identifier does not resolve to an account.

    Used internally only; use cases turn it into a success-shaped result so the
    caller cannot tell whether the identifier exists.
    """

    code = "not_found"
    status_code = 200

    def __init__(self, channel: str, identifier: str) -> None:
        super().__init__("Account not found", {"channel": channel})
        self.channel = channel
        self.identifier = identifier


class DependencyFailure(AuthError):
    """Storage or another critical collaborator failed."""

    code = "dependency_failure"
    status_code = 503

    def __init__(self, message: str, dependency: str, cause: Exception | None = None) -> None:
        super().__init__(message, {"dependency": dependency})
        self.dependency = dependency
        self.cause = cause
