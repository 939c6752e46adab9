"""Enumerations shared by the authentication services."""

from enum import Enum


class VerificationStatus(Enum):
    """Verification state of a single contact channel."""

    UNVERIFIED = "unverified"
    PENDING_OTP = "pending_otp"
    VERIFIED = "verified"


class TwoFactorStatus(Enum):
    """Two-factor authentication state of an account."""

    DISABLED = "disabled"
    SETUP_INITIATED = "setup_initiated"
    ENABLED = "enabled"


class TwoFactorMethod(Enum):
    """Second factor delivery method."""

    EMAIL = "email"
    SMS = "sms"
    AUTH_APP = "auth_app"


class DeliveryChannel(Enum):
    """Out-of-band channel used to deliver a one-time passcode."""

    EMAIL = "email"
    SMS = "sms"


class ContactChannel(Enum):
    """Contact channel tracked by the verification state machine."""

    EMAIL = "email"
    PHONE = "phone"

    @property
    def delivery_channel(self) -> DeliveryChannel:
        return DeliveryChannel.EMAIL if self is ContactChannel.EMAIL else DeliveryChannel.SMS


class AuthType(Enum):
    """How the account was first created."""

    EMAIL = "email"
    PHONE = "phone"
    GOOGLE = "google"
    GITHUB = "github"


class SocialProvider(Enum):
    """Supported federated identity providers."""

    GOOGLE = "google"
    GITHUB = "github"

    @property
    def auth_type(self) -> AuthType:
        return AuthType(self.value)


class PurposeClass(Enum):
    """Group of OTP purposes sharing one rate-limit window."""

    VERIFICATION = "verification"
    PASSWORD_RESET = "password-reset"
    TWO_FACTOR = "two-factor"


class OtpPurpose(Enum):
    """Reason an OTP challenge was issued."""

    EMAIL_VERIFY = "email-verify"
    PHONE_VERIFY = "phone-verify"
    PASSWORD_RESET = "password-reset"
    TWO_FA_SETUP = "2fa-setup"
    TWO_FA_LOGIN = "2fa-login"
    EMAIL_UPDATE = "email-update"
    PHONE_UPDATE = "phone-update"
    GENERIC_RESEND = "generic-resend"

    @property
    def purpose_class(self) -> PurposeClass:
        if self is OtpPurpose.PASSWORD_RESET:
            return PurposeClass.PASSWORD_RESET
        if self in (OtpPurpose.TWO_FA_SETUP, OtpPurpose.TWO_FA_LOGIN):
            return PurposeClass.TWO_FACTOR
        return PurposeClass.VERIFICATION

    @property
    def contact_channel(self) -> ContactChannel | None:
        """Channel whose verification or update the purpose belongs to."""
        if self in (OtpPurpose.EMAIL_VERIFY, OtpPurpose.EMAIL_UPDATE):
            return ContactChannel.EMAIL
        if self in (OtpPurpose.PHONE_VERIFY, OtpPurpose.PHONE_UPDATE):
            return ContactChannel.PHONE
        return None

    @property
    def is_contact_update(self) -> bool:
        return self in (OtpPurpose.EMAIL_UPDATE, OtpPurpose.PHONE_UPDATE)

    @classmethod
    def for_verification(cls, channel: ContactChannel) -> "OtpPurpose":
        return cls.EMAIL_VERIFY if channel is ContactChannel.EMAIL else cls.PHONE_VERIFY

    @classmethod
    def for_update(cls, channel: ContactChannel) -> "OtpPurpose":
        return cls.EMAIL_UPDATE if channel is ContactChannel.EMAIL else cls.PHONE_UPDATE
