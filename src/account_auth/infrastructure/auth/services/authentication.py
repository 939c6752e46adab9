"""
Authentication service.

Handles password login, account lockout, the two-factor second step and
social provider sign-in.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import NoReturn

from account_auth.application.config import SecurityConfig
from account_auth.application.interfaces import (
    DuplicateEntityError,
    IAccountRepository,
    ISocialIdentityVerifier,
    RepositoryError,
    SocialIdentity,
)
from account_auth.domain.entities import Account
from account_auth.domain.exceptions import (
    AccountLocked,
    DependencyFailure,
    InvalidCredentials,
    NoPasswordSet,
    ProviderVerificationFailed,
    TokenInvalid,
    VerificationRequired,
)
from account_auth.domain.value_objects import (
    ContactChannel,
    SocialProvider,
    VerificationStatus,
)

from ...monitoring import log_security_event
from ..token_service import TokenService
from ..types import LoginResult, OtpDispatchResult
from .account_lookup import AccountLookup
from .password_service import CredentialStore
from .two_factor import TwoFactorService
from .validators import normalize_email

logger = logging.getLogger(__name__)


@dataclass
class _FailedLogins:
    attempts: int = 0
    locked_until: datetime | None = None
    last_failure_at: datetime | None = None


class UnknownIdentifierLockout:
    """
    Lockout bookkeeping for login identifiers that match no account.

    Uses the account lockout ceiling and duration, so repeated failures answer
    AccountLocked whether or not the identifier is registered.
    """

    def __init__(self, max_attempts: int, lockout: timedelta) -> None:
        self.max_attempts = max_attempts
        self.lockout = lockout
        self.lock = threading.RLock()
        self._entries: dict[str, _FailedLogins] = {}

    def seconds_remaining(self, identifier: str) -> int:
        """Seconds until the identifier unlocks; 0 when it is not locked."""
        with self.lock:
            entry = self._entries.get(identifier)
            if entry is None or entry.locked_until is None:
                return 0
            return _seconds_until(entry.locked_until)

    def register_failure(self, identifier: str) -> int:
        """Count a failure; returns the lock length when this failure locks, else 0."""
        now = datetime.now(UTC)
        with self.lock:
            entry = self._entries.setdefault(identifier, _FailedLogins())
            if entry.locked_until is not None and entry.locked_until <= now:
                # Previous lock has run out; start counting afresh
                entry.attempts = 0
                entry.locked_until = None
            entry.attempts += 1
            entry.last_failure_at = now
            if entry.attempts < self.max_attempts:
                return 0
            entry.locked_until = now + self.lockout
            return _seconds_until(entry.locked_until)

    def cleanup_expired(self) -> int:
        """Forget identifiers that are unlocked and idle for a lockout period."""
        # A lock never outlasts its last failure by more than one lockout period
        cutoff = datetime.now(UTC) - self.lockout
        with self.lock:
            stale = [
                identifier
                for identifier, entry in self._entries.items()
                if entry.last_failure_at is not None and entry.last_failure_at <= cutoff
            ]
            for identifier in stale:
                del self._entries[identifier]
            return len(stale)


def _seconds_until(moment: datetime) -> int:
    remaining = (moment - datetime.now(UTC)).total_seconds()
    return int(remaining) + 1 if remaining > 0 else 0


class AuthenticationService:
    """Account authentication service."""

    def __init__(
        self,
        accounts: IAccountRepository,
        credentials: CredentialStore,
        tokens: TokenService,
        two_factor: TwoFactorService,
        social_verifiers: dict[SocialProvider, ISocialIdentityVerifier] | None = None,
        config: SecurityConfig | None = None,
    ):
        self.accounts = accounts
        self.lookup = AccountLookup(accounts)
        self.credentials = credentials
        self.tokens = tokens
        self.two_factor = two_factor
        self.social_verifiers = social_verifiers or {}
        self.config = config or SecurityConfig()
        self.lockout_duration = timedelta(minutes=self.config.lockout_minutes)
        self.unknown_lockout = UnknownIdentifierLockout(
            self.config.max_login_attempts, self.lockout_duration
        )

    async def login(
        self, identifier: str, password: str, country_code: str | None = None
    ) -> LoginResult:
        """
        Authenticate with an email or phone and a password.

        Unknown identifiers and wrong passwords fail the same way and cost the
        same single bcrypt comparison.

        Returns:
            LoginResult with tokens, or with a two-factor token when 2FA is on

        Raises:
            InvalidCredentials: Unknown identifier or wrong password
            NoPasswordSet: Social-only account
            AccountLocked: Too many failed attempts, for unknown identifiers too
            VerificationRequired: No verified contact channel
        """
        account, _, normalized = self.lookup.by_identifier(identifier, country_code)

        if account is None:
            self.credentials.verify_or_dummy(password, None)
            self._fail_unknown_identifier(normalized)

        if account.is_locked():
            # Keep the timing of locked accounts identical to other failures
            self.credentials.verify_or_dummy(password, account.password_hash)
            log_security_event(
                "login_failed", account_id=account.id, success=False, reason="account_locked"
            )
            raise AccountLocked(account.lock_seconds_remaining())

        matched = self.credentials.verify_or_dummy(password, account.password_hash)
        if not account.has_password:
            log_security_event(
                "login_failed", account_id=account.id, success=False, reason="no_password"
            )
            raise NoPasswordSet()
        if not matched:
            self._handle_failed_login(account)
            raise InvalidCredentials()

        if self.config.login_requires_verified_contact and not account.has_verified_channel:
            raise VerificationRequired(
                "Please verify your email or phone number first",
                [channel.value for channel in ContactChannel],
            )

        seen_hash = account.password_hash
        new_hash = None
        if seen_hash and self.credentials.needs_rehash(seen_hash):
            new_hash = self.credentials.hash(password)

        def succeed(current: Account) -> None:
            current.register_successful_login()
            if new_hash:
                current.password_hash = new_hash
            current.touch()

        updated = self.lookup.update(
            account.id,
            lambda current: current.password_hash == seen_hash and not current.is_locked(),
            succeed,
            on_missing=InvalidCredentials,
        )
        if updated is None:
            # Password changed or the account got locked while we were verifying
            raise InvalidCredentials()
        if new_hash:
            logger.info(f"Rehashed password for account {updated.id}")

        return await self._complete_login(updated, "password")

    def _fail_unknown_identifier(self, identifier: str) -> NoReturn:
        """Fail a login for an identifier with no account, locking it like an account."""
        remaining = self.unknown_lockout.seconds_remaining(identifier)
        if remaining:
            log_security_event("login_failed", success=False, reason="account_locked")
            raise AccountLocked(remaining)

        remaining = self.unknown_lockout.register_failure(identifier)
        if remaining:
            log_security_event("account_locked", success=False, reason="unknown_identifier")
            raise AccountLocked(remaining)
        log_security_event("login_failed", success=False, reason="unknown_identifier")
        raise InvalidCredentials()

    def _handle_failed_login(self, account: Account) -> None:
        """Count the failure and lock the account at the ceiling."""
        max_attempts = self.config.max_login_attempts

        def fail(current: Account) -> None:
            if current.locked_until is not None and not current.is_locked():
                # Previous lock has run out; start counting afresh
                current.login_attempts = 0
                current.locked_until = None
            current.register_failed_login(max_attempts, self.lockout_duration)
            current.touch()

        updated = self.lookup.update(
            account.id, lambda _: True, fail, on_missing=InvalidCredentials
        )
        if updated is not None and updated.is_locked():
            log_security_event(
                "account_locked",
                account_id=account.id,
                success=False,
                attempts=updated.login_attempts,
            )
            raise AccountLocked(updated.lock_seconds_remaining())

        log_security_event(
            "login_failed",
            account_id=account.id,
            success=False,
            reason="invalid_password",
            attempts=updated.login_attempts if updated else None,
        )

    async def _complete_login(self, account: Account, via: str) -> LoginResult:
        if account.is_2fa_enabled and account.two_factor_method is not None:
            method = account.two_factor_method
            two_factor_token = self.tokens.issue_two_factor_token(
                account.id, account.token_version, method
            )
            handle = await self.two_factor.send_login_code(account)
            otp = (
                OtpDispatchResult.from_handle(handle, "A sign-in code was sent")
                if handle is not None
                else None
            )
            log_security_event("login_2fa_required", account_id=account.id, via=via)
            return LoginResult(
                account_id=account.id,
                requires_2fa=True,
                two_factor_token=two_factor_token,
                two_factor_method=method,
                otp=otp,
                message="Two-factor authentication required",
            )

        tokens = self.tokens.issue(account.id, account.token_version)
        log_security_event("login_success", account_id=account.id, via=via)
        return LoginResult(account_id=account.id, tokens=tokens)

    def complete_two_factor_login(self, two_factor_token: str, code: str) -> LoginResult:
        """
        Finish a login that stopped at the second factor.

        Raises:
            TokenInvalid: If the two-factor token no longer matches the account's 2FA state
            TokenExpired: If the two-factor token has expired
            InvalidOrExpiredCode: If the code is not accepted
        """
        account, method = self.tokens.verify_two_factor_token(two_factor_token)
        if not account.is_2fa_enabled or account.two_factor_method is not method:
            raise TokenInvalid()
        if account.is_locked():
            raise AccountLocked(account.lock_seconds_remaining())

        self.two_factor.verify_for_login(account, code)

        tokens = self.tokens.issue(account.id, account.token_version)
        log_security_event("login_success", account_id=account.id, via="two_factor")
        return LoginResult(account_id=account.id, tokens=tokens)

    def social_authorization_url(
        self, provider: SocialProvider, state: str, redirect_uri: str
    ) -> str:
        return self._verifier(provider).authorization_url(state, redirect_uri)

    async def social_login_with_code(
        self, provider: SocialProvider, code: str, redirect_uri: str
    ) -> LoginResult:
        """Exchange an OAuth authorization code and sign in with the resulting credential."""
        credential = await self._verifier(provider).exchange_code(code, redirect_uri)
        return await self.social_login(provider, credential)

    async def social_login(self, provider: SocialProvider, credential: str) -> LoginResult:
        """
        Sign in with a social provider credential.

        The account is found by provider id, else linked by email when the
        provider vouches for that email, else created.

        Raises:
            ProviderVerificationFailed: If the credential cannot be verified
            AccountLocked: If the account is locked
        """
        identity = await self._verifier(provider).verify(credential)
        account = self._resolve_social_account(identity)

        if account.is_locked():
            raise AccountLocked(account.lock_seconds_remaining())

        def succeed(current: Account) -> None:
            current.register_successful_login()
            current.touch()

        updated = self.lookup.update(account.id, lambda _: True, succeed) or account
        return await self._complete_login(updated, provider.value)

    def _verifier(self, provider: SocialProvider) -> ISocialIdentityVerifier:
        verifier = self.social_verifiers.get(provider)
        if verifier is None:
            raise ProviderVerificationFailed(provider.value, "Provider not configured")
        return verifier

    def _resolve_social_account(self, identity: SocialIdentity) -> Account:
        provider = identity.provider
        account = self.lookup.by_social_id(provider.value, identity.provider_user_id)
        if account is not None:
            return account

        email = normalize_email(identity.email) if identity.email else None
        if email and identity.email_verified:
            existing = self.lookup.by_email(email)
            if existing is not None:
                return self._link(existing, identity)

        if email and not identity.email_verified and self.lookup.by_email(email) is not None:
            # Unverified provider email collides with a local account; keep them separate
            email = None

        account = Account(
            email=email,
            email_status=VerificationStatus.VERIFIED
            if email and identity.email_verified
            else VerificationStatus.UNVERIFIED,
            auth_type=provider.auth_type,
            social_provider=provider.value,
            social_id=identity.provider_user_id,
            first_name=identity.first_name,
            last_name=identity.last_name,
            avatar_url=identity.avatar_url,
        )
        try:
            created = self.accounts.create(account)
        except DuplicateEntityError:
            # Concurrent first sign-in for the same provider identity
            existing = self.lookup.by_social_id(provider.value, identity.provider_user_id)
            if existing is None:
                raise ProviderVerificationFailed(provider.value, "Account conflict")
            return existing
        except RepositoryError as e:
            raise DependencyFailure("Account storage unavailable", "account_repository", e)

        log_security_event("account_registered", account_id=created.id, via=provider.value)
        return created

    def _link(self, account: Account, identity: SocialIdentity) -> Account:
        """Attach a provider identity to an account with the same verified email."""

        def link(current: Account) -> None:
            current.social_provider = identity.provider.value
            current.social_id = identity.provider_user_id
            current.email_status = VerificationStatus.VERIFIED
            current.first_name = current.first_name or identity.first_name
            current.last_name = current.last_name or identity.last_name
            current.avatar_url = current.avatar_url or identity.avatar_url
            current.touch()

        try:
            linked = self.lookup.update(
                account.id, lambda current: current.social_id is None, link
            )
        except DependencyFailure as e:
            if isinstance(e.cause, DuplicateEntityError):
                raise ProviderVerificationFailed(identity.provider.value, "Account conflict")
            raise
        if linked is None:
            # Already linked to another provider identity; the verified email still proves it
            return account

        log_security_event(
            "social_account_linked", account_id=account.id, provider=identity.provider.value
        )
        return linked
