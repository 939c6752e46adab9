"""
Contact verification state machine.

Moves each contact channel of an account through
Unverified -> PendingOtp -> Verified, and stages email or phone changes
until the new value is confirmed with a code sent to it.
"""

import logging

from account_auth.application.interfaces import (
    DuplicateEntityError,
    EntityNotFoundError,
    IAccountRepository,
    RepositoryError,
)
from account_auth.application.interfaces.repositories import AccountMutation, AccountPredicate
from account_auth.domain.entities import Account
from account_auth.domain.exceptions import (
    AlreadyInUse,
    BusinessRuleViolation,
    DependencyFailure,
    InvalidInput,
    InvalidOrExpiredCode,
    VerificationRequired,
)
from account_auth.domain.value_objects import (
    ContactChannel,
    OtpPurpose,
    PhoneNumber,
    VerificationStatus,
)

from ...monitoring import log_security_event
from .otp_engine import OtpEngine, OtpHandle

logger = logging.getLogger(__name__)


def require_verified_email(account: Account) -> None:
    """Precondition: the account's email is verified."""
    if not account.is_email_verified:
        raise VerificationRequired("Email address must be verified first", ["email"])


def require_verified_phone(account: Account) -> None:
    """Precondition: the account's phone number is verified."""
    if not account.is_phone_verified:
        raise VerificationRequired("Phone number must be verified first", ["phone"])


def require_verified_channel(account: Account) -> None:
    """Precondition: at least one contact channel is verified."""
    if not account.has_verified_channel:
        raise VerificationRequired(
            "Please verify your email or phone number first",
            [channel.value for channel in ContactChannel],
        )


def _as_phone(value: str | PhoneNumber) -> PhoneNumber:
    if isinstance(value, PhoneNumber):
        return value
    try:
        return PhoneNumber.parse(value)
    except ValueError as e:
        raise InvalidInput(str(e), field="phone")


class VerificationService:
    """Verification state machine for contact channels."""

    def __init__(self, accounts: IAccountRepository, otp: OtpEngine) -> None:
        self.accounts = accounts
        self.otp = otp

    async def begin(
        self, account: Account, channel: ContactChannel, enforce_cooldown: bool = False
    ) -> OtpHandle:
        """
        Send a verification code for the account's current value on a channel.

        The channel moves to PendingOtp once the challenge exists.

        Raises:
            InvalidInput: If the account has no value on the channel
            BusinessRuleViolation: If the channel is already verified
            RateLimited: If too many codes were requested
        """
        identifier = account.identifier_for(channel)
        if identifier is None:
            raise InvalidInput(f"Account has no {channel.value} to verify", field=channel.value)
        if account.status_of(channel) is VerificationStatus.VERIFIED:
            raise BusinessRuleViolation(f"{channel.value.capitalize()} is already verified")

        handle = await self.otp.generate_and_send(
            identifier,
            OtpPurpose.for_verification(channel),
            channel.delivery_channel,
            account_id=account.id,
            enforce_cooldown=enforce_cooldown,
        )

        def mark_pending(current: Account) -> None:
            current.set_status(channel, VerificationStatus.PENDING_OTP)
            current.touch()

        self._update(
            account.id,
            lambda current: current.identifier_for(channel) == identifier
            and current.status_of(channel) is VerificationStatus.UNVERIFIED,
            mark_pending,
        )
        return handle

    def confirm(self, identifier: str, channel: ContactChannel, code: str) -> Account:
        """
        Confirm a channel with the code sent to it.

        Failures leave the channel in PendingOtp.

        Raises:
            InvalidOrExpiredCode: If the code is wrong, expired or already used
        """
        challenge = self.otp.validate(identifier, OtpPurpose.for_verification(channel), code)
        if challenge.account_id is None:
            raise InvalidOrExpiredCode()

        def mark_verified(current: Account) -> None:
            current.set_status(channel, VerificationStatus.VERIFIED)
            current.touch()

        updated = self._update(
            challenge.account_id,
            lambda current: current.identifier_for(channel) == identifier,
            mark_verified,
        )
        if updated is None:
            # The contact value changed after the code was sent
            raise InvalidOrExpiredCode()

        log_security_event(f"{channel.value}_verified", account_id=updated.id)
        return updated

    async def stage_update(
        self, account: Account, channel: ContactChannel, new_value: str | PhoneNumber
    ) -> OtpHandle:
        """
        Record a pending email or phone and send a code to the new value.

        The current value stays authoritative until confirm_update succeeds.

        Raises:
            VerificationRequired: If the current value is not verified
            InvalidInput: If the new value equals the current one
            AlreadyInUse: If another account holds the new value
        """
        phone: PhoneNumber | None = None
        if channel is ContactChannel.EMAIL:
            if account.email:
                require_verified_email(account)
            else:
                require_verified_channel(account)
            new_identifier = str(new_value)
            taken = self._is_taken(email=new_identifier, exclude=account.id)
        else:
            if account.phone:
                require_verified_phone(account)
            else:
                require_verified_channel(account)
            phone = _as_phone(new_value)
            new_identifier = phone.e164
            taken = self._is_taken(phone=phone, exclude=account.id)

        if new_identifier == account.identifier_for(channel):
            raise InvalidInput(
                f"New {channel.value} must be different from the current one", field=channel.value
            )
        if taken:
            raise AlreadyInUse(channel.value)

        def stage(current: Account) -> None:
            if phone is None:
                current.pending_email = new_identifier
            else:
                current.pending_country_code = phone.country_code
                current.pending_phone = phone.number
            current.touch()

        self._update(account.id, lambda _: True, stage)

        return await self.otp.generate_and_send(
            new_identifier,
            OtpPurpose.for_update(channel),
            channel.delivery_channel,
            account_id=account.id,
        )

    def confirm_update(self, account_id: str, channel: ContactChannel, code: str) -> Account:
        """
        Swap the pending value into the primary field after the code is confirmed.

        Raises:
            InvalidOrExpiredCode: If nothing is pending or the code is not accepted
            AlreadyInUse: If another account claimed the value meanwhile
        """
        account = self._load(account_id)
        pending = account.pending_identifier_for(channel)
        if pending is None:
            raise InvalidOrExpiredCode("No pending update to confirm")

        challenge = self.otp.validate(pending, OtpPurpose.for_update(channel), code)
        if challenge.account_id != account_id:
            raise InvalidOrExpiredCode()

        def still_pending(current: Account) -> bool:
            return current.pending_identifier_for(channel) == pending

        def swap(current: Account) -> None:
            if channel is ContactChannel.EMAIL:
                current.email = current.pending_email
                current.pending_email = None
            else:
                current.country_code = current.pending_country_code
                current.phone = current.pending_phone
                current.pending_country_code = None
                current.pending_phone = None
            current.set_status(channel, VerificationStatus.VERIFIED)
            current.touch()

        try:
            updated = self.accounts.atomic_update(account_id, still_pending, swap)
        except DuplicateEntityError:
            raise AlreadyInUse(channel.value)
        except RepositoryError as e:
            raise DependencyFailure("Account storage unavailable", "account_repository", e)

        if updated is None:
            raise InvalidOrExpiredCode("Pending update changed; please request a new code")

        log_security_event(f"{channel.value}_updated", account_id=account_id)
        return updated

    def _is_taken(
        self, email: str | None = None, phone: PhoneNumber | None = None, exclude: str | None = None
    ) -> bool:
        try:
            return self.accounts.is_identifier_taken(
                email=email, phone=phone, exclude_account_id=exclude
            )
        except RepositoryError as e:
            raise DependencyFailure("Account storage unavailable", "account_repository", e)

    def _load(self, account_id: str) -> Account:
        try:
            account = self.accounts.find_by_id(account_id)
        except RepositoryError as e:
            raise DependencyFailure("Account storage unavailable", "account_repository", e)
        if account is None:
            raise InvalidOrExpiredCode()
        return account

    def _update(
        self, account_id: str, predicate: AccountPredicate, mutation: AccountMutation
    ) -> Account | None:
        try:
            return self.accounts.atomic_update(account_id, predicate, mutation)
        except EntityNotFoundError:
            raise InvalidOrExpiredCode()
        except RepositoryError as e:
            raise DependencyFailure("Account storage unavailable", "account_repository", e)
