"""
Password lifecycle service.

Change, forgot and reset flows. Every successful password change bumps the
account's token version, which revokes all tokens issued before it.
"""

import logging

from account_auth.domain.entities import Account
from account_auth.domain.exceptions import (
    CurrentPasswordIncorrect,
    InvalidOrExpiredCode,
    NotFoundButMasked,
    PasswordReused,
    WeakPassword,
)
from account_auth.domain.value_objects import (
    AuthenticatedPrincipal,
    ContactChannel,
    OtpPurpose,
    mask_identifier,
)

from ...monitoring import log_security_event
from ..types import OtpDispatchResult, PasswordChangeResult
from .account_lookup import AccountLookup
from .otp_engine import OtpEngine
from .password_service import CredentialStore

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = (
    "If an account with this identifier exists, a password reset code has been sent."
)


class PasswordLifecycleService:
    """Password change and recovery."""

    def __init__(self, lookup: AccountLookup, credentials: CredentialStore, otp: OtpEngine):
        self.lookup = lookup
        self.credentials = credentials
        self.otp = otp

    def change_password(
        self, principal: AuthenticatedPrincipal, current_password: str, new_password: str
    ) -> PasswordChangeResult:
        """
        Change the password of the signed-in account.

        Raises:
            NoPasswordSet: If the account has no password
            CurrentPasswordIncorrect: If the current password is wrong
            PasswordReused: If the new password equals the current one
            WeakPassword: If the new password fails the strength policy
        """
        account = self.lookup.by_principal(principal)
        self.credentials.verify_current(current_password, account.password_hash)

        seen_hash = account.password_hash
        self._check_new_password(account, new_password)
        new_hash = self.credentials.hash(new_password)

        def change(current: Account) -> None:
            current.change_password(new_hash)
            current.touch()

        updated = self.lookup.update(
            account.id, lambda current: current.password_hash == seen_hash, change
        )
        if updated is None:
            raise CurrentPasswordIncorrect()

        log_security_event(
            "password_changed", account_id=account.id, token_version=updated.token_version
        )
        return PasswordChangeResult(sessions_invalidated=True, token_version=updated.token_version)

    async def forgot_password(
        self, identifier: str, country_code: str | None = None
    ) -> OtpDispatchResult:
        """
        Send a password reset code.

        The response is identical whether or not the identifier belongs to an
        account; unknown identifiers still consume rate limit quota.
        """
        purpose = OtpPurpose.PASSWORD_RESET
        try:
            account, channel, normalized = self.lookup.known_identifier(identifier, country_code)
        except NotFoundButMasked as e:
            self.otp.check_rate_limit(e.identifier, purpose)
            log_security_event("password_reset_requested", success=False, reason="unknown")
            return _masked_response(ContactChannel(e.channel), e.identifier)

        await self.otp.generate_and_send(
            normalized, purpose, channel.delivery_channel, account_id=account.id
        )
        log_security_event("password_reset_requested", account_id=account.id)
        return _masked_response(channel, normalized)

    def reset_password(
        self, identifier: str, code: str, new_password: str, country_code: str | None = None
    ) -> PasswordChangeResult:
        """
        Set a new password with a reset code.

        Raises:
            InvalidOrExpiredCode: If the code is not accepted
            WeakPassword: If the new password fails the strength policy
            PasswordReused: If the new password equals the current one
        """
        account, _, normalized = self.lookup.by_identifier(identifier, country_code)
        personal_info = (account.first_name, account.last_name, account.email) if account else ()
        strength = self.credentials.validate_strength(new_password, personal_info)
        if not strength.valid:
            raise WeakPassword(strength.reasons)

        challenge = self.otp.validate(normalized, OtpPurpose.PASSWORD_RESET, code)
        if account is None or challenge.account_id != account.id:
            raise InvalidOrExpiredCode()

        if account.password_hash and self.credentials.verify(new_password, account.password_hash):
            raise PasswordReused()
        new_hash = self.credentials.hash(new_password)

        def reset(current: Account) -> None:
            current.change_password(new_hash)
            current.touch()

        updated = self.lookup.update(
            account.id, lambda _: True, reset, on_missing=InvalidOrExpiredCode
        )
        if updated is None:
            raise InvalidOrExpiredCode()

        log_security_event(
            "password_reset", account_id=account.id, token_version=updated.token_version
        )
        return PasswordChangeResult(
            sessions_invalidated=True,
            token_version=updated.token_version,
            message="Password reset successfully. Please sign in with your new password.",
        )

    def _check_new_password(self, account: Account, new_password: str) -> None:
        if account.password_hash and self.credentials.verify(new_password, account.password_hash):
            raise PasswordReused()
        strength = self.credentials.validate_strength(
            new_password, (account.first_name, account.last_name, account.email)
        )
        if not strength.valid:
            raise WeakPassword(strength.reasons)


def _masked_response(channel: ContactChannel, identifier: str) -> OtpDispatchResult:
    return OtpDispatchResult(
        message=RESET_REQUESTED_MESSAGE,
        channel=channel.delivery_channel.value,
        destination=mask_identifier(identifier),
    )
