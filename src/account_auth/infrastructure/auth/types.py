"""
Shared authentication types.

Result objects returned by the account use cases. Each one describes the
side effects of the call (codes dispatched, tokens issued, state reached)
and renders itself for the HTTP envelope.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from account_auth.domain.entities import Account
from account_auth.domain.value_objects import (
    ContactChannel,
    TwoFactorMethod,
    TwoFactorStatus,
    mask_identifier,
)

from .token_service import TokenPair

if TYPE_CHECKING:
    from .services.otp_engine import OtpHandle


@dataclass
class OtpDispatchResult:
    """A code was (or, for unknown identifiers, appears to have been) sent."""

    message: str
    channel: str | None = None
    destination: str | None = None
    delivered: bool | None = None
    expires_at: datetime | None = None

    @classmethod
    def from_handle(cls, handle: "OtpHandle", message: str) -> "OtpDispatchResult":
        return cls(
            message=message,
            channel=handle.channel.value,
            destination=mask_identifier(handle.identifier),
            delivered=handle.delivered,
            expires_at=handle.expires_at,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"channel": self.channel, "destination": self.destination}
        if self.delivered is not None:
            data["delivered"] = self.delivered
        if self.expires_at is not None:
            data["expires_at"] = self.expires_at.isoformat()
        return data


@dataclass
class RegistrationRequest:
    """Validated registration intent; at least one of email or phone is required."""

    password: str
    email: str | None = None
    phone: str | None = None
    country_code: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    date_of_birth: date | None = None


@dataclass
class RegistrationResult:
    """Account created; verification code dispatched for the primary channel."""

    account_id: str
    verification: OtpDispatchResult | None
    message: str = "Registration successful. Please verify your account."

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "verification": self.verification.to_dict() if self.verification else None,
        }


@dataclass
class VerificationResult:
    account_id: str
    channel: ContactChannel
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"account_id": self.account_id, "channel": self.channel.value, "verified": True}


@dataclass
class LoginResult:
    """
    Login outcome.

    With 2FA enabled no session tokens are issued; the caller gets a short
    lived two-factor token to complete the login instead.
    """

    account_id: str
    tokens: TokenPair | None = None
    requires_2fa: bool = False
    two_factor_token: str | None = None
    two_factor_method: TwoFactorMethod | None = None
    otp: OtpDispatchResult | None = None
    message: str = "Login successful"

    def to_dict(self) -> dict[str, Any]:
        if self.requires_2fa:
            data: dict[str, Any] = {
                "requires_2fa": True,
                "two_factor_token": self.two_factor_token,
                "method": self.two_factor_method.value if self.two_factor_method else None,
            }
            if self.otp is not None:
                data["otp"] = self.otp.to_dict()
            return data
        return {
            "requires_2fa": False,
            "account_id": self.account_id,
            **(self.tokens.to_dict() if self.tokens else {}),
        }


@dataclass
class PasswordChangeResult:
    sessions_invalidated: bool
    token_version: int
    message: str = "Password changed successfully. Please sign in again on all devices."

    def to_dict(self) -> dict[str, Any]:
        return {"sessions_invalidated": self.sessions_invalidated}


@dataclass
class TwoFactorSetup:
    """Second factor setup in progress (or finished, after confirmation)."""

    method: TwoFactorMethod
    status: TwoFactorStatus
    message: str
    otp: OtpDispatchResult | None = None
    secret: str | None = None
    provisioning_uri: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"method": self.method.value, "status": self.status.value}
        if self.otp is not None:
            data["otp"] = self.otp.to_dict()
        if self.secret is not None:
            data["secret"] = self.secret
            data["provisioning_uri"] = self.provisioning_uri
        return data


@dataclass
class ProfileView:
    """The authenticated account's own profile."""

    account_id: str
    email: str | None
    phone: str | None
    email_verified: bool
    phone_verified: bool
    pending_email: str | None
    pending_phone: str | None
    two_factor_enabled: bool
    two_factor_method: str | None
    auth_type: str
    has_password: bool
    first_name: str | None
    last_name: str | None
    avatar_url: str | None
    date_of_birth: date | None
    created_at: datetime

    @classmethod
    def from_account(cls, account: Account) -> "ProfileView":
        pending_phone = account.pending_phone_number
        return cls(
            account_id=account.id,
            email=account.email,
            phone=account.phone_e164,
            email_verified=account.is_email_verified,
            phone_verified=account.is_phone_verified,
            pending_email=account.pending_email,
            pending_phone=pending_phone.e164 if pending_phone else None,
            two_factor_enabled=account.is_2fa_enabled,
            two_factor_method=account.two_factor_method.value
            if account.two_factor_method
            else None,
            auth_type=account.auth_type.value,
            has_password=account.has_password,
            first_name=account.first_name,
            last_name=account.last_name,
            avatar_url=account.avatar_url,
            date_of_birth=account.date_of_birth,
            created_at=account.created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "email": self.email,
            "phone": self.phone,
            "email_verified": self.email_verified,
            "phone_verified": self.phone_verified,
            "pending_email": self.pending_email,
            "pending_phone": self.pending_phone,
            "two_factor_enabled": self.two_factor_enabled,
            "two_factor_method": self.two_factor_method,
            "auth_type": self.auth_type,
            "has_password": self.has_password,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "avatar_url": self.avatar_url,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "created_at": self.created_at.isoformat(),
        }
