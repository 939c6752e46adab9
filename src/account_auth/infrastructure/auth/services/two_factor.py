"""
Two-factor authentication manager.

Handles setup, confirmation, disabling and login-time verification of the
second factor. Codes for the email and sms methods go through the OTP
engine; the auth_app method uses TOTP secrets generated with pyotp.
"""

import hmac
import logging
from datetime import UTC, datetime

import pyotp

from account_auth.application.interfaces import (
    EntityNotFoundError,
    IAccountRepository,
    RepositoryError,
)
from account_auth.application.interfaces.repositories import AccountMutation, AccountPredicate
from account_auth.domain.entities import Account
from account_auth.domain.exceptions import (
    DependencyFailure,
    InvalidOrExpiredCode,
    OtpAlreadyConsumed,
    RateLimited,
    TokenInvalid,
    TwoFactorAlreadyEnabled,
    TwoFactorNotEnabled,
    TwoFactorSetupNotInitiated,
)
from account_auth.domain.value_objects import (
    DeliveryChannel,
    OtpPurpose,
    TwoFactorMethod,
    TwoFactorStatus,
)

from ...monitoring import log_security_event
from ...rate_limiting import RateLimitAlgorithmType, RateLimitRule, create_rate_limiter
from ..types import OtpDispatchResult, TwoFactorSetup
from .otp_engine import OtpEngine, OtpHandle
from .password_service import CredentialStore
from .verification import require_verified_email, require_verified_phone

logger = logging.getLogger(__name__)


class TwoFactorService:
    """
    Two-factor authentication service.

    States: Disabled -> SetupInitiated -> Enabled, and Enabled -> Disabled.
    """

    def __init__(
        self,
        accounts: IAccountRepository,
        credentials: CredentialStore,
        otp: OtpEngine,
        issuer_name: str = "Account Auth",
        max_totp_attempts: int = 5,
    ) -> None:
        """
        Initialize two-factor service.

        Args:
            accounts: Account repository
            credentials: Credential store used to re-verify the password
            otp: OTP engine for email and sms codes
            issuer_name: Issuer shown in authenticator apps
            max_totp_attempts: Authenticator codes accepted per account every 5 minutes
        """
        self.accounts = accounts
        self.credentials = credentials
        self.otp = otp
        self.issuer_name = issuer_name
        self.totp_limiter = create_rate_limiter(
            RateLimitRule(
                limit=max_totp_attempts,
                window="5min",
                algorithm=RateLimitAlgorithmType.SLIDING_WINDOW,
                identifier="totp",
                description="Authenticator code attempts",
            )
        )

    async def setup(
        self, account: Account, method: TwoFactorMethod, password: str
    ) -> TwoFactorSetup:
        """
        Start two-factor setup.

        Args:
            account: Account enabling the second factor
            method: Preferred second factor
            password: Current password, re-verified before any change

        Returns:
            TwoFactorSetup with either the dispatched code or the TOTP secret

        Raises:
            VerificationRequired: If email and phone are not both verified
            TwoFactorAlreadyEnabled: If 2FA is already on
            NoPasswordSet: If the account has no password
            CurrentPasswordIncorrect: If the password is wrong
        """
        require_verified_email(account)
        require_verified_phone(account)
        if account.is_2fa_enabled:
            raise TwoFactorAlreadyEnabled()
        self.credentials.verify_current(password, account.password_hash)

        secret: str | None = None
        provisioning_uri: str | None = None
        otp_result: OtpDispatchResult | None = None

        if method is TwoFactorMethod.AUTH_APP:
            secret = pyotp.random_base32()
            provisioning_uri = pyotp.totp.TOTP(secret).provisioning_uri(
                name=account.email or account.phone_e164 or account.id,
                issuer_name=self.issuer_name,
            )
            message = "Scan the QR code with your authenticator app and enter the code"
        else:
            handle = await self._send(account, method, OtpPurpose.TWO_FA_SETUP)
            message = f"A verification code was sent to your {_describe(method)}"
            otp_result = OtpDispatchResult.from_handle(handle, message)

        def initiate(current: Account) -> None:
            current.two_factor_status = TwoFactorStatus.SETUP_INITIATED
            current.two_factor_method = method
            current.two_factor_secret = secret
            current.last_totp_step = None
            current.touch()

        updated = self._update(account.id, lambda current: not current.is_2fa_enabled, initiate)
        if updated is None:
            raise TwoFactorAlreadyEnabled()

        log_security_event("2fa_setup_initiated", account_id=account.id, method=method.value)
        return TwoFactorSetup(
            method=method,
            status=TwoFactorStatus.SETUP_INITIATED,
            message=message,
            otp=otp_result,
            secret=secret,
            provisioning_uri=provisioning_uri,
        )

    def confirm_setup(self, account: Account, code: str) -> TwoFactorSetup:
        """
        Finish setup with a code from the chosen method.

        Raises:
            TwoFactorAlreadyEnabled: If 2FA is already on
            TwoFactorSetupNotInitiated: If setup was never started
            InvalidOrExpiredCode: If the code is not accepted
        """
        if account.is_2fa_enabled:
            raise TwoFactorAlreadyEnabled()
        method = account.two_factor_method
        if account.two_factor_status is not TwoFactorStatus.SETUP_INITIATED or method is None:
            raise TwoFactorSetupNotInitiated()

        self._check_code(account, method, OtpPurpose.TWO_FA_SETUP, code)

        def enable(current: Account) -> None:
            current.two_factor_status = TwoFactorStatus.ENABLED
            current.touch()

        updated = self._update(
            account.id,
            lambda current: current.two_factor_status is TwoFactorStatus.SETUP_INITIATED
            and current.two_factor_method is method,
            enable,
        )
        if updated is None:
            raise TwoFactorSetupNotInitiated()

        log_security_event("2fa_enabled", account_id=account.id, method=method.value)
        return TwoFactorSetup(
            method=method,
            status=TwoFactorStatus.ENABLED,
            message="Two-factor authentication enabled",
        )

    def disable(self, account: Account, password: str) -> Account:
        """
        Disable two-factor authentication.

        Raises:
            TwoFactorNotEnabled: If 2FA is off
            NoPasswordSet: If the account has no password
            CurrentPasswordIncorrect: If the password is wrong
        """
        if not account.is_2fa_enabled:
            raise TwoFactorNotEnabled()
        self.credentials.verify_current(password, account.password_hash)

        def clear(current: Account) -> None:
            current.two_factor_status = TwoFactorStatus.DISABLED
            current.two_factor_method = None
            current.two_factor_secret = None
            current.last_totp_step = None
            current.touch()

        updated = self._update(account.id, lambda current: current.is_2fa_enabled, clear)
        if updated is None:
            raise TwoFactorNotEnabled()

        log_security_event("2fa_disabled", account_id=account.id)
        return updated

    async def send_login_code(self, account: Account) -> OtpHandle | None:
        """Send a login code for email and sms methods; auth_app needs nothing sent."""
        method = account.two_factor_method
        if method is None or method is TwoFactorMethod.AUTH_APP:
            return None
        return await self._send(account, method, OtpPurpose.TWO_FA_LOGIN)

    def verify_for_login(self, account: Account, code: str) -> None:
        """
        Check the second factor during login.

        Raises:
            TwoFactorNotEnabled: If 2FA is off
            InvalidOrExpiredCode: If the code is not accepted
        """
        method = account.two_factor_method
        if not account.is_2fa_enabled or method is None:
            raise TwoFactorNotEnabled()
        self._check_code(account, method, OtpPurpose.TWO_FA_LOGIN, code)
        log_security_event("2fa_verified", account_id=account.id, method=method.value)

    async def _send(
        self, account: Account, method: TwoFactorMethod, purpose: OtpPurpose
    ) -> OtpHandle:
        identifier, channel = _destination(account, method)
        return await self.otp.generate_and_send(
            identifier, purpose, channel, account_id=account.id
        )

    def _check_code(
        self, account: Account, method: TwoFactorMethod, purpose: OtpPurpose, code: str
    ) -> None:
        if method is TwoFactorMethod.AUTH_APP:
            self._check_totp(account, purpose, code)
            return

        identifier, _ = _destination(account, method)
        challenge = self.otp.validate(identifier, purpose, code)
        if challenge.account_id != account.id:
            raise InvalidOrExpiredCode()

    def _check_totp(self, account: Account, purpose: OtpPurpose, code: str) -> None:
        """Accept an authenticator code once; its time step is recorded on the account."""
        secret = account.two_factor_secret
        if not secret:
            raise TwoFactorSetupNotInitiated()
        attempt = self.totp_limiter.check_rate_limit(account.id)
        if not attempt.allowed:
            raise RateLimited(
                "Too many authentication code attempts. Please try again later.",
                retry_after=attempt.retry_after,
            )

        step = matching_totp_step(secret, code or "")
        if step is None:
            log_security_event(
                "2fa_failed", account_id=account.id, success=False, purpose=purpose.value
            )
            raise InvalidOrExpiredCode("Invalid authentication code")

        def record_step(current: Account) -> None:
            current.last_totp_step = step
            current.touch()

        recorded = self._update(
            account.id,
            lambda current: current.two_factor_secret == secret
            and (current.last_totp_step is None or current.last_totp_step < step),
            record_step,
        )
        if recorded is None:
            log_security_event(
                "2fa_code_reused", account_id=account.id, success=False, purpose=purpose.value
            )
            raise OtpAlreadyConsumed("Authentication code was already used")

    def _update(
        self, account_id: str, predicate: AccountPredicate, mutation: AccountMutation
    ) -> Account | None:
        try:
            return self.accounts.atomic_update(account_id, predicate, mutation)
        except EntityNotFoundError:
            raise TokenInvalid()
        except RepositoryError as e:
            raise DependencyFailure("Account storage unavailable", "account_repository", e)


def _destination(account: Account, method: TwoFactorMethod) -> tuple[str, DeliveryChannel]:
    if method is TwoFactorMethod.EMAIL and account.email:
        return account.email, DeliveryChannel.EMAIL
    if method is TwoFactorMethod.SMS and account.phone_e164:
        return account.phone_e164, DeliveryChannel.SMS
    raise TwoFactorSetupNotInitiated()


def _describe(method: TwoFactorMethod) -> str:
    return "email address" if method is TwoFactorMethod.EMAIL else "phone number"


def matching_totp_step(secret: str, code: str, valid_window: int = 1) -> int | None:
    """Return the time step whose TOTP equals ``code`` within the drift window, if any."""
    totp = pyotp.TOTP(secret)
    current = totp.timecode(datetime.now(UTC))
    for step in range(current - valid_window, current + valid_window + 1):
        if hmac.compare_digest(totp.generate_otp(step).encode(), code.encode()):
            return step
    return None
