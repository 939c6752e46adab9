"""Value objects for the account domain."""

from .enums import (
    AuthType,
    ContactChannel,
    DeliveryChannel,
    OtpPurpose,
    PurposeClass,
    SocialProvider,
    TwoFactorMethod,
    TwoFactorStatus,
    VerificationStatus,
)
from .phone import PhoneNumber, mask_email, mask_identifier
from .principal import AuthenticatedPrincipal

__all__ = [
    "AuthType",
    "AuthenticatedPrincipal",
    "ContactChannel",
    "DeliveryChannel",
    "OtpPurpose",
    "PhoneNumber",
    "PurposeClass",
    "SocialProvider",
    "TwoFactorMethod",
    "TwoFactorStatus",
    "VerificationStatus",
    "mask_email",
    "mask_identifier",
]
