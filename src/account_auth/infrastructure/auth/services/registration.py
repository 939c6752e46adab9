"""
Account registration service.

Handles contact validation, password policy, duplicate checks and the
initial verification code for the primary contact channel.
"""

import logging

from account_auth.application.config import SecurityConfig
from account_auth.application.interfaces import (
    DuplicateEntityError,
    IAccountRepository,
    RepositoryError,
)
from account_auth.domain.entities import Account
from account_auth.domain.exceptions import (
    DependencyFailure,
    DuplicateIdentifier,
    InvalidInput,
    RateLimited,
    WeakPassword,
)
from account_auth.domain.value_objects import AuthType, ContactChannel, PhoneNumber

from ...monitoring import log_security_event
from ..types import OtpDispatchResult, RegistrationRequest, RegistrationResult
from .password_service import CredentialStore
from .validators import clean_name, normalize_email, parse_phone, validate_date_of_birth
from .verification import VerificationService

logger = logging.getLogger(__name__)


class RegistrationService:
    """Account registration service."""

    def __init__(
        self,
        accounts: IAccountRepository,
        credentials: CredentialStore,
        verification: VerificationService,
        config: SecurityConfig | None = None,
    ):
        self.accounts = accounts
        self.credentials = credentials
        self.verification = verification
        self.config = config or SecurityConfig()

    async def register(self, request: RegistrationRequest) -> RegistrationResult:
        """
        Register a new account.

        Args:
            request: Registration data

        Returns:
            Registration result with the dispatched verification code

        Raises:
            InvalidInput: If contact data or the birth date is invalid
            WeakPassword: If the password fails the strength policy
            DuplicateIdentifier: If the email or phone is already registered
        """
        if not request.email and not request.phone:
            raise InvalidInput("Email or phone number is required", field="email")

        email = normalize_email(request.email) if request.email else None
        phone = parse_phone(request.phone, request.country_code) if request.phone else None
        first_name = clean_name(request.first_name, "first_name") if request.first_name else None
        last_name = clean_name(request.last_name, "last_name") if request.last_name else None
        if request.date_of_birth is not None:
            validate_date_of_birth(request.date_of_birth, self.config.minimum_age_years)

        strength = self.credentials.validate_strength(
            request.password, personal_info=(first_name, last_name, email)
        )
        if not strength.valid:
            log_security_event("registration_rejected", success=False, reason="weak_password")
            raise WeakPassword(strength.reasons)

        self._check_duplicates(email, phone)

        account = Account(
            email=email,
            country_code=phone.country_code if phone else None,
            phone=phone.number if phone else None,
            password_hash=self.credentials.hash(request.password),
            auth_type=AuthType.EMAIL if email else AuthType.PHONE,
            first_name=first_name,
            last_name=last_name,
            date_of_birth=request.date_of_birth,
        )
        try:
            account = self.accounts.create(account)
        except DuplicateEntityError as e:
            raise DuplicateIdentifier("email" if e.field == "email" else "phone")
        except RepositoryError as e:
            raise DependencyFailure("Account storage unavailable", "account_repository", e)

        log_security_event("account_registered", account_id=account.id)
        verification = await self._send_initial_code(account)
        if verification is None:
            return RegistrationResult(
                account_id=account.id,
                verification=None,
                message="Registration successful. Please request a verification code.",
            )
        return RegistrationResult(account_id=account.id, verification=verification)

    def _check_duplicates(self, email: str | None, phone: PhoneNumber | None) -> None:
        try:
            if email and self.accounts.is_identifier_taken(email=email):
                raise DuplicateIdentifier("email")
            if phone and self.accounts.is_identifier_taken(phone=phone):
                raise DuplicateIdentifier("phone")
        except RepositoryError as e:
            raise DependencyFailure("Account storage unavailable", "account_repository", e)

    async def _send_initial_code(self, account: Account) -> OtpDispatchResult | None:
        channel = ContactChannel.EMAIL if account.email else ContactChannel.PHONE
        try:
            handle = await self.verification.begin(account, channel)
        except RateLimited as e:
            # The account exists either way; the caller can resend once the window resets
            logger.warning(f"Initial verification code for {account.id} throttled: {e.message}")
            return None

        noun = "email address" if channel is ContactChannel.EMAIL else "phone number"
        return OtpDispatchResult.from_handle(handle, f"A verification code was sent to your {noun}")
