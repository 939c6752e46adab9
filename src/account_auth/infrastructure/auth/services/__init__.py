"""
Account service components.

The account lifecycle is split into focused services composed by
AccountService.
"""

from .account_service import AccountService
from .authentication import AuthenticationService
from .contact_update import ContactUpdateService
from .otp_engine import OtpEngine, OtpHandle
from .password_lifecycle import PasswordLifecycleService
from .password_service import CredentialStore, PasswordHasher, PasswordValidator
from .profile import ProfileService
from .registration import RegistrationService
from .session_manager import SessionManager
from .two_factor import TwoFactorService
from .verification import (
    VerificationService,
    require_verified_channel,
    require_verified_email,
    require_verified_phone,
)

__all__ = [
    "AccountService",
    "AuthenticationService",
    "ContactUpdateService",
    "CredentialStore",
    "OtpEngine",
    "OtpHandle",
    "PasswordHasher",
    "PasswordLifecycleService",
    "PasswordValidator",
    "ProfileService",
    "RegistrationService",
    "SessionManager",
    "TwoFactorService",
    "VerificationService",
    "require_verified_channel",
    "require_verified_email",
    "require_verified_phone",
]
