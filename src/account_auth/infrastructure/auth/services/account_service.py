"""
Account lifecycle orchestrator.

Provides a unified interface for all account use cases by orchestrating the
specialized services. Every use case for a signed-in caller takes the
AuthenticatedPrincipal produced by the token service.
"""

import logging
from datetime import date

from account_auth.application.config import SecurityConfig
from account_auth.application.interfaces import IAccountRepository, ISocialIdentityVerifier
from account_auth.domain.entities import Account
from account_auth.domain.exceptions import InvalidInput, NotFoundButMasked
from account_auth.domain.value_objects import (
    AuthenticatedPrincipal,
    ContactChannel,
    OtpPurpose,
    SocialProvider,
    TwoFactorMethod,
    VerificationStatus,
    mask_identifier,
)

from ...monitoring import log_security_event
from ..token_service import TokenPair, TokenService
from ..types import (
    LoginResult,
    OtpDispatchResult,
    PasswordChangeResult,
    ProfileView,
    RegistrationRequest,
    RegistrationResult,
    TwoFactorSetup,
    VerificationResult,
)
from .account_lookup import AccountLookup
from .authentication import AuthenticationService
from .contact_update import ContactUpdateService
from .otp_engine import OtpEngine
from .password_lifecycle import PasswordLifecycleService
from .password_service import CredentialStore
from .profile import ProfileService
from .registration import RegistrationService
from .session_manager import SessionManager
from .two_factor import TwoFactorService
from .validators import classify_identifier
from .verification import VerificationService

logger = logging.getLogger(__name__)

RESEND_MESSAGE = "If an account with this identifier exists, a new verification code has been sent."

RESENDABLE_PURPOSES = (
    OtpPurpose.EMAIL_VERIFY,
    OtpPurpose.PHONE_VERIFY,
    OtpPurpose.EMAIL_UPDATE,
    OtpPurpose.PHONE_UPDATE,
    OtpPurpose.PASSWORD_RESET,
    OtpPurpose.GENERIC_RESEND,
)


class AccountService:
    """
    Main account management service.

    Orchestrates registration, authentication, verification, password
    management, contact updates, 2FA and profile data by delegating to
    specialized services.
    """

    def __init__(
        self,
        accounts: IAccountRepository,
        credentials: CredentialStore,
        tokens: TokenService,
        otp: OtpEngine,
        social_verifiers: dict[SocialProvider, ISocialIdentityVerifier] | None = None,
        config: SecurityConfig | None = None,
        issuer_name: str = "Account Auth",
    ):
        """
        Initialize account service with its dependencies.

        Args:
            accounts: Account repository
            credentials: Password hashing and policy
            tokens: Token service
            otp: OTP engine
            social_verifiers: Verifier per enabled social provider
            config: Security settings (lockout, age, verified-contact rule)
            issuer_name: Issuer shown in authenticator apps
        """
        self.accounts = accounts
        self.credentials = credentials
        self.tokens = tokens
        self.otp = otp
        self.config = config or SecurityConfig()
        self.lookup = AccountLookup(accounts)

        # Initialize specialized services
        self.verification = VerificationService(accounts, otp)
        self.two_factor = TwoFactorService(accounts, credentials, otp, issuer_name)
        self.registration_service = RegistrationService(
            accounts, credentials, self.verification, self.config
        )
        self.auth_service = AuthenticationService(
            accounts, credentials, tokens, self.two_factor, social_verifiers, self.config
        )
        self.password_lifecycle = PasswordLifecycleService(self.lookup, credentials, otp)
        self.contact_updates = ContactUpdateService(self.lookup, self.verification)
        self.session_manager = SessionManager(tokens)
        self.profile_service = ProfileService(self.lookup, self.config)

    # Registration and verification
    async def register(self, request: RegistrationRequest) -> RegistrationResult:
        """Register a new account."""
        return await self.registration_service.register(request)

    def verify_contact(
        self,
        identifier: str,
        channel: ContactChannel,
        code: str,
        country_code: str | None = None,
    ) -> VerificationResult:
        """Confirm an email or phone with the code sent to it."""
        identifier_channel, normalized = classify_identifier(identifier, country_code)
        if identifier_channel is not channel:
            raise InvalidInput(f"Identifier is not a valid {channel.value}", field="identifier")

        account = self.verification.confirm(normalized, channel, code)
        noun = "Email address" if channel is ContactChannel.EMAIL else "Phone number"
        return VerificationResult(
            account_id=account.id, channel=channel, message=f"{noun} verified successfully"
        )

    async def send_verification(
        self, principal: AuthenticatedPrincipal, channel: ContactChannel
    ) -> OtpDispatchResult:
        """Send a verification code for the signed-in account's email or phone."""
        account = self.lookup.by_principal(principal)
        handle = await self.verification.begin(account, channel, enforce_cooldown=True)
        noun = "email address" if channel is ContactChannel.EMAIL else "phone number"
        return OtpDispatchResult.from_handle(handle, f"A verification code was sent to your {noun}")

    async def resend_otp(
        self,
        identifier: str,
        purpose: OtpPurpose | None = None,
        country_code: str | None = None,
    ) -> OtpDispatchResult:
        """
        Send a fresh code for an identifier.

        Without an explicit purpose (or with generic-resend) it is inferred: a
        pending contact update first, then an unverified channel. When nothing
        is pending no code is sent. Responses, the cooldown and the quota never
        reveal whether the identifier belongs to an account.

        Raises:
            InvalidInput: If the purpose cannot be resent this way
            RateLimited: If the cooldown or the rate limit window is exhausted
        """
        if purpose is not None and purpose not in RESENDABLE_PURPOSES:
            raise InvalidInput(f"Codes for {purpose.value} cannot be resent", field="purpose")
        if purpose is OtpPurpose.GENERIC_RESEND:
            purpose = None

        account: Account | None
        try:
            account, channel, normalized = self.lookup.known_identifier(identifier, country_code)
        except NotFoundButMasked as e:
            account, channel, normalized = None, ContactChannel(e.channel), e.identifier

        if purpose is not None and not purpose.is_contact_update:
            verify_channel = purpose.contact_channel
            if verify_channel is not None and verify_channel is not channel:
                raise InvalidInput(
                    f"Identifier is not a valid {verify_channel.value}", field="identifier"
                )
        self.otp.check_cooldown(normalized)

        if account is not None:
            purpose = purpose or self._infer_purpose(account, channel)
        sent = (
            account is not None
            and purpose is not None
            and await self._resend(account, channel, normalized, purpose)
        )
        if not sent:
            # Spend quota exactly as a delivered code would
            self.otp.check_rate_limit(normalized, purpose or OtpPurpose.GENERIC_RESEND)

        log_security_event(
            "otp_resend_requested",
            account_id=account.id if account else None,
            success=sent,
            purpose=purpose.value if purpose else None,
        )
        return _resend_response(channel, normalized)

    @staticmethod
    def _infer_purpose(account: Account, channel: ContactChannel) -> OtpPurpose | None:
        if account.pending_identifier_for(channel):
            return OtpPurpose.for_update(channel)
        if account.status_of(channel) is not VerificationStatus.VERIFIED:
            return OtpPurpose.for_verification(channel)
        return None

    async def _resend(
        self, account: Account, channel: ContactChannel, identifier: str, purpose: OtpPurpose
    ) -> bool:
        """Send the code for a pending step; False when the step is not pending."""
        update_channel = purpose.contact_channel if purpose.is_contact_update else None
        if update_channel is not None:
            pending = account.pending_identifier_for(update_channel)
            if pending is None:
                return False
            await self.otp.generate_and_send(
                pending, purpose, update_channel.delivery_channel, account_id=account.id
            )
            return True

        if purpose is OtpPurpose.PASSWORD_RESET:
            await self.otp.generate_and_send(
                identifier, purpose, channel.delivery_channel, account_id=account.id
            )
            return True

        if account.status_of(channel) is VerificationStatus.VERIFIED:
            return False
        await self.verification.begin(account, channel)
        return True

    # Authentication
    async def login(
        self, identifier: str, password: str, country_code: str | None = None
    ) -> LoginResult:
        """Authenticate with a password."""
        return await self.auth_service.login(identifier, password, country_code)

    def complete_two_factor_login(self, two_factor_token: str, code: str) -> LoginResult:
        """Finish a login with the second factor."""
        return self.auth_service.complete_two_factor_login(two_factor_token, code)

    async def social_login(self, provider: SocialProvider, credential: str) -> LoginResult:
        """Sign in with a social provider credential."""
        return await self.auth_service.social_login(provider, credential)

    async def social_login_with_code(
        self, provider: SocialProvider, code: str, redirect_uri: str
    ) -> LoginResult:
        return await self.auth_service.social_login_with_code(provider, code, redirect_uri)

    def social_authorization_url(
        self, provider: SocialProvider, state: str, redirect_uri: str
    ) -> str:
        return self.auth_service.social_authorization_url(provider, state, redirect_uri)

    # Sessions
    def authenticate(self, access_token: str) -> AuthenticatedPrincipal:
        """Resolve an access token into a principal."""
        return self.session_manager.authenticate(access_token)

    def refresh(self, refresh_token: str) -> TokenPair:
        return self.session_manager.refresh(refresh_token)

    def logout(self, principal: AuthenticatedPrincipal) -> None:
        self.session_manager.logout(principal)

    def logout_all(self, principal: AuthenticatedPrincipal) -> int:
        """Revoke every token of the account."""
        return self.session_manager.logout_all(principal)

    # Password management
    def change_password(
        self, principal: AuthenticatedPrincipal, current_password: str, new_password: str
    ) -> PasswordChangeResult:
        """Change password and invalidate every session."""
        return self.password_lifecycle.change_password(principal, current_password, new_password)

    async def forgot_password(
        self, identifier: str, country_code: str | None = None
    ) -> OtpDispatchResult:
        return await self.password_lifecycle.forgot_password(identifier, country_code)

    def reset_password(
        self, identifier: str, code: str, new_password: str, country_code: str | None = None
    ) -> PasswordChangeResult:
        return self.password_lifecycle.reset_password(identifier, code, new_password, country_code)

    # Contact updates
    async def update_email(
        self, principal: AuthenticatedPrincipal, new_email: str
    ) -> OtpDispatchResult:
        return await self.contact_updates.update_email(principal, new_email)

    async def update_phone(
        self, principal: AuthenticatedPrincipal, country_code: str | None, phone: str
    ) -> OtpDispatchResult:
        return await self.contact_updates.update_phone(principal, country_code, phone)

    def confirm_email_update(
        self, principal: AuthenticatedPrincipal, code: str
    ) -> VerificationResult:
        return self.contact_updates.confirm_email_update(principal, code)

    def confirm_phone_update(
        self, principal: AuthenticatedPrincipal, code: str
    ) -> VerificationResult:
        return self.contact_updates.confirm_phone_update(principal, code)

    # Two-factor authentication
    async def setup_two_factor(
        self, principal: AuthenticatedPrincipal, method: TwoFactorMethod, password: str
    ) -> TwoFactorSetup:
        """Start 2FA setup."""
        account = self.lookup.by_principal(principal)
        return await self.two_factor.setup(account, method, password)

    def confirm_two_factor(self, principal: AuthenticatedPrincipal, code: str) -> TwoFactorSetup:
        """Confirm 2FA setup with a code from the chosen method."""
        account = self.lookup.by_principal(principal)
        return self.two_factor.confirm_setup(account, code)

    def disable_two_factor(self, principal: AuthenticatedPrincipal, password: str) -> None:
        """Disable 2FA."""
        account = self.lookup.by_principal(principal)
        self.two_factor.disable(account, password)

    # Profile
    def get_profile(self, principal: AuthenticatedPrincipal) -> ProfileView:
        return self.profile_service.get_profile(principal)

    def update_profile(
        self,
        principal: AuthenticatedPrincipal,
        first_name: str | None = None,
        last_name: str | None = None,
        avatar_url: str | None = None,
        date_of_birth: date | None = None,
    ) -> ProfileView:
        return self.profile_service.update_profile(
            principal, first_name, last_name, avatar_url, date_of_birth
        )

    # Maintenance
    def cleanup_expired(self) -> int:
        """Remove stale OTP challenges, rate limit state and unknown-identifier lockouts."""
        self.auth_service.unknown_lockout.cleanup_expired()
        return self.otp.cleanup_expired()


def _resend_response(channel: ContactChannel, identifier: str) -> OtpDispatchResult:
    return OtpDispatchResult(
        message=RESEND_MESSAGE,
        channel=channel.delivery_channel.value,
        destination=mask_identifier(identifier),
    )
