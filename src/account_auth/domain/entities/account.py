"""
Account Entity - Identity record with verification, session and 2FA state
"""

from __future__ import annotations

# Standard library imports
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from uuid import uuid4

from ..value_objects import (
    AuthType,
    ContactChannel,
    PhoneNumber,
    TwoFactorMethod,
    TwoFactorStatus,
    VerificationStatus,
)


@dataclass
class Account:
    """
    Account entity representing one user identity.

    Accounts are mutated only through the repository's atomic update, which
    hands a working copy to a mutation callback. Helper methods here change
    the copy in place and never touch storage.
    """

    # Identity
    id: str = field(default_factory=lambda: uuid4().hex)

    # Contact channels
    email: str | None = None
    country_code: str | None = None
    phone: str | None = None
    email_status: VerificationStatus = VerificationStatus.UNVERIFIED
    phone_status: VerificationStatus = VerificationStatus.UNVERIFIED

    # Staged contact updates
    pending_email: str | None = None
    pending_country_code: str | None = None
    pending_phone: str | None = None

    # Credentials and sessions
    password_hash: str | None = None
    token_version: int = 1
    login_attempts: int = 0
    locked_until: datetime | None = None
    last_password_change_at: datetime | None = None
    last_login_at: datetime | None = None

    # Second factor
    two_factor_status: TwoFactorStatus = TwoFactorStatus.DISABLED
    two_factor_method: TwoFactorMethod | None = None
    two_factor_secret: str | None = None
    last_totp_step: int | None = None

    # Federation
    auth_type: AuthType = AuthType.EMAIL
    social_provider: str | None = None
    social_id: str | None = None

    # Profile
    first_name: str | None = None
    last_name: str | None = None
    avatar_url: str | None = None
    date_of_birth: date | None = None

    # Timestamps and storage version
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    version: int = 1

    def __post_init__(self) -> None:
        if not self.email and not self.phone and not self.social_id:
            raise ValueError("Account needs an email, a phone number or a social identity")
        if bool(self.phone) != bool(self.country_code):
            raise ValueError("Phone number and country code must be set together")

    # Derived state -------------------------------------------------------------

    @property
    def is_email_verified(self) -> bool:
        return self.email_status is VerificationStatus.VERIFIED

    @property
    def is_phone_verified(self) -> bool:
        return self.phone_status is VerificationStatus.VERIFIED

    @property
    def has_verified_channel(self) -> bool:
        return self.is_email_verified or self.is_phone_verified

    @property
    def is_2fa_enabled(self) -> bool:
        return self.two_factor_status is TwoFactorStatus.ENABLED

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    @property
    def phone_number(self) -> PhoneNumber | None:
        if not self.phone or not self.country_code:
            return None
        return PhoneNumber(self.country_code, self.phone)

    @property
    def phone_e164(self) -> str | None:
        number = self.phone_number
        return number.e164 if number else None

    @property
    def pending_phone_number(self) -> PhoneNumber | None:
        if not self.pending_phone or not self.pending_country_code:
            return None
        return PhoneNumber(self.pending_country_code, self.pending_phone)

    def status_of(self, channel: ContactChannel) -> VerificationStatus:
        return self.email_status if channel is ContactChannel.EMAIL else self.phone_status

    def identifier_for(self, channel: ContactChannel) -> str | None:
        """OTP identifier for the account's current value on a channel."""
        return self.email if channel is ContactChannel.EMAIL else self.phone_e164

    def pending_identifier_for(self, channel: ContactChannel) -> str | None:
        if channel is ContactChannel.EMAIL:
            return self.pending_email
        number = self.pending_phone_number
        return number.e164 if number else None

    # Lockout -----------------------------------------------------------------

    def is_locked(self, now: datetime | None = None) -> bool:
        """Check if account is currently locked."""
        if self.locked_until is None:
            return False
        return (now or datetime.now(UTC)) < self.locked_until

    def lock_seconds_remaining(self, now: datetime | None = None) -> int:
        if self.locked_until is None:
            return 0
        remaining = (self.locked_until - (now or datetime.now(UTC))).total_seconds()
        return max(0, int(remaining) + 1)

    def register_failed_login(self, max_attempts: int, lockout: timedelta) -> int:
        """Increment failed attempts and lock once the ceiling is reached."""
        self.login_attempts += 1
        if self.login_attempts >= max_attempts:
            self.locked_until = datetime.now(UTC) + lockout
        return self.login_attempts

    def register_successful_login(self) -> None:
        self.login_attempts = 0
        self.locked_until = None
        self.last_login_at = datetime.now(UTC)

    # Mutations ---------------------------------------------------------------

    def set_status(self, channel: ContactChannel, status: VerificationStatus) -> None:
        if channel is ContactChannel.EMAIL:
            self.email_status = status
        else:
            self.phone_status = status

    def change_password(self, password_hash: str) -> None:
        """Replace the password hash and invalidate every issued token."""
        self.password_hash = password_hash
        self.last_password_change_at = datetime.now(UTC)
        self.token_version += 1
        self.login_attempts = 0
        self.locked_until = None

    def touch(self) -> None:
        self.updated_at = datetime.now(UTC)
