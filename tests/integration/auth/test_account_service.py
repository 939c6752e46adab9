"""
Integration tests for the account use cases.

The AccountService is wired over in-memory repositories and the console
sender; codes are read back from the sender's outbox.
"""

from datetime import UTC, date, datetime, timedelta
from unittest.mock import patch

import pyotp
import pytest

from account_auth.application.interfaces import SocialIdentity
from account_auth.domain.exceptions import (
    AccountLocked,
    BusinessRuleViolation,
    CurrentPasswordIncorrect,
    DuplicateIdentifier,
    InvalidCredentials,
    InvalidInput,
    InvalidOrExpiredCode,
    NoPasswordSet,
    NotFoundButMasked,
    OtpAlreadyConsumed,
    OtpNotFound,
    PasswordReused,
    ProviderVerificationFailed,
    RateLimited,
    TokenVersionMismatch,
    VerificationRequired,
    WeakPassword,
)
from account_auth.domain.value_objects import (
    AuthType,
    ContactChannel,
    OtpPurpose,
    SocialProvider,
    TwoFactorMethod,
    VerificationStatus,
)
from account_auth.infrastructure.auth.types import RegistrationRequest
from account_auth.infrastructure.bootstrap import build_account_service
from tests.helpers import NEW_PASSWORD, TEST_PASSWORD, wrong_code

pytestmark = pytest.mark.integration

EMAIL = "jane@example.com"
PHONE = "+14155550100"


class FakeGoogleVerifier:
    """Verifier returning a fixed identity for any credential but 'bad'."""

    provider = SocialProvider.GOOGLE

    def __init__(self, identity: SocialIdentity) -> None:
        self.identity = identity

    def authorization_url(self, state: str, redirect_uri: str) -> str:
        return f"https://accounts.example.com/auth?state={state}&redirect_uri={redirect_uri}"

    async def exchange_code(self, code: str, redirect_uri: str) -> str:
        return f"credential-for-{code}"

    async def verify(self, credential: str) -> SocialIdentity:
        if credential == "bad":
            raise ProviderVerificationFailed(self.provider.value, "Invalid ID token")
        return self.identity


def _google_identity(**fields) -> SocialIdentity:
    defaults = {
        "provider": SocialProvider.GOOGLE,
        "provider_user_id": "google-123",
        "email": EMAIL,
        "email_verified": True,
        "first_name": "Jane",
        "last_name": "Doe",
    }
    return SocialIdentity(**{**defaults, **fields})


async def _login_tokens(account_service, identifier=EMAIL, password=TEST_PASSWORD):
    result = await account_service.login(identifier, password)
    assert not result.requires_2fa
    return result.tokens


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_and_verify_email(self, account_service, accounts, last_code):
        result = await account_service.register(
            RegistrationRequest(password=TEST_PASSWORD, email="Jane@Example.com", first_name="Jane")
        )

        assert result.verification.destination == "j***@example.com"
        account = accounts.find_by_id(result.account_id)
        assert account.email == EMAIL
        assert account.auth_type is AuthType.EMAIL
        assert account.email_status is VerificationStatus.PENDING_OTP

        verified = account_service.verify_contact(EMAIL, ContactChannel.EMAIL, last_code(EMAIL))

        assert verified.account_id == result.account_id
        assert accounts.find_by_id(result.account_id).is_email_verified

    @pytest.mark.asyncio
    async def test_register_with_phone_only(self, account_service, accounts, last_code):
        result = await account_service.register(
            RegistrationRequest(password=TEST_PASSWORD, phone="4155550100", country_code="+1")
        )

        assert result.verification.channel == "sms"
        account_service.verify_contact(
            "4155550100", ContactChannel.PHONE, last_code(PHONE), country_code="+1"
        )
        account = accounts.find_by_id(result.account_id)
        assert account.auth_type is AuthType.PHONE
        assert account.is_phone_verified

    @pytest.mark.asyncio
    async def test_common_password_rejected(self, account_service, accounts, sender):
        with pytest.raises(WeakPassword) as exc_info:
            await account_service.register(
                RegistrationRequest(password="password123", email=EMAIL)
            )

        assert exc_info.value.code == "weak_password"
        assert accounts.find_by_email(EMAIL) is None
        assert sender.outbox == []

    @pytest.mark.asyncio
    async def test_duplicate_email(self, account_service, make_account):
        make_account()

        with pytest.raises(DuplicateIdentifier):
            await account_service.register(RegistrationRequest(password=TEST_PASSWORD, email=EMAIL))

    @pytest.mark.asyncio
    async def test_duplicate_phone(self, account_service, make_account):
        make_account()

        with pytest.raises(DuplicateIdentifier):
            await account_service.register(
                RegistrationRequest(
                    password=TEST_PASSWORD, email="other@example.com", phone=PHONE
                )
            )

    @pytest.mark.asyncio
    async def test_requires_email_or_phone(self, account_service):
        with pytest.raises(InvalidInput):
            await account_service.register(RegistrationRequest(password=TEST_PASSWORD))

    @pytest.mark.asyncio
    async def test_underage(self, account_service):
        today = datetime.now(UTC).date()
        with pytest.raises(InvalidInput) as exc_info:
            await account_service.register(
                RegistrationRequest(
                    password=TEST_PASSWORD,
                    email=EMAIL,
                    date_of_birth=date(today.year - 10, 1, 1),
                )
            )
        assert exc_info.value.field == "date_of_birth"

    @pytest.mark.asyncio
    async def test_throttled_first_code_still_registers(self, account_service, accounts):
        for _ in range(3):
            account_service.otp.check_rate_limit(EMAIL, OtpPurpose.EMAIL_VERIFY)

        result = await account_service.register(
            RegistrationRequest(password=TEST_PASSWORD, email=EMAIL)
        )

        assert result.verification is None
        assert result.message == "Registration successful. Please request a verification code."
        assert accounts.find_by_id(result.account_id) is not None

    @pytest.mark.asyncio
    async def test_verify_with_mismatched_channel(self, account_service):
        with pytest.raises(InvalidInput):
            account_service.verify_contact(EMAIL, ContactChannel.PHONE, "123456")


class TestResendOtp:
    @pytest.mark.asyncio
    async def test_unknown_identifier_does_not_leak(self, account_service, sender, challenges):
        result = await account_service.resend_otp("unknown@example.com")

        assert result.message.startswith("If an account with this identifier exists")
        assert result.destination == "u***@example.com"
        assert sender.outbox == []
        assert challenges.get_latest("unknown@example.com", OtpPurpose.GENERIC_RESEND) is None

    def test_lookup_masks_unknown_identifier(self, account_service):
        with pytest.raises(NotFoundButMasked) as exc_info:
            account_service.lookup.known_identifier("Nobody@Example.com")

        assert exc_info.value.channel == "email"
        assert exc_info.value.identifier == "nobody@example.com"

    @pytest.mark.asyncio
    async def test_unknown_identifier_consumes_quota(self, account_service):
        with patch.object(account_service.otp.config, "resend_cooldown_seconds", 0):
            for _ in range(3):
                await account_service.resend_otp("unknown@example.com")

            with pytest.raises(RateLimited):
                await account_service.resend_otp("unknown@example.com")

    @pytest.mark.asyncio
    async def test_cooldown_is_identical_for_unknown_identifiers(
        self, account_service, make_account
    ):
        make_account(verified=False)
        outcomes = {}

        for identifier in (EMAIL, "ghost@example.com"):
            first = await account_service.resend_otp(identifier)
            with pytest.raises(RateLimited) as exc_info:
                await account_service.resend_otp(identifier)
            outcomes[identifier] = (
                first.message,
                exc_info.value.status_code,
                exc_info.value.retry_after,
            )

        assert outcomes[EMAIL] == outcomes["ghost@example.com"]
        assert outcomes[EMAIL][1:] == (429, 60)

    @pytest.mark.asyncio
    async def test_mismatched_purpose_is_rejected_for_unknown_identifiers(self, account_service):
        with pytest.raises(InvalidInput):
            await account_service.resend_otp("ghost@example.com", purpose=OtpPurpose.PHONE_VERIFY)

    @pytest.mark.asyncio
    async def test_verified_account_is_sent_nothing(self, account_service, make_account, sender):
        make_account()

        with patch.object(account_service.otp.config, "resend_cooldown_seconds", 0):
            result = await account_service.resend_otp(EMAIL)
            await account_service.resend_otp(EMAIL, purpose=OtpPurpose.GENERIC_RESEND)
            await account_service.resend_otp(EMAIL)

            with pytest.raises(RateLimited):
                await account_service.resend_otp(EMAIL)

        assert result.message.startswith("If an account with this identifier exists")
        assert sender.outbox == []

    @pytest.mark.asyncio
    async def test_resend_for_unverified_account(
        self, account_service, make_account, accounts, last_code
    ):
        account = make_account(verified=False)

        result = await account_service.resend_otp(EMAIL)

        assert result.message.startswith("If an account with this identifier exists")
        assert accounts.find_by_id(account.id).email_status is VerificationStatus.PENDING_OTP
        account_service.verify_contact(EMAIL, ContactChannel.EMAIL, last_code(EMAIL))
        assert accounts.find_by_id(account.id).is_email_verified

    @pytest.mark.asyncio
    async def test_resend_after_registration(self, account_service, sender):
        await account_service.register(RegistrationRequest(password=TEST_PASSWORD, email=EMAIL))

        await account_service.resend_otp(EMAIL)
        with pytest.raises(RateLimited) as exc_info:
            await account_service.resend_otp(EMAIL)

        assert exc_info.value.retry_after == 60
        assert len(sender.outbox) == 2

    @pytest.mark.asyncio
    async def test_resend_supersedes_previous_code(
        self, account_service, make_account, last_code
    ):
        make_account(verified=False)
        with patch.object(account_service.otp, "generate_code", side_effect=["111111", "222222"]):
            await account_service.resend_otp(EMAIL)
            with patch.object(account_service.otp.config, "resend_cooldown_seconds", 0):
                await account_service.resend_otp(EMAIL)

        with pytest.raises(OtpNotFound):
            account_service.verify_contact(EMAIL, ContactChannel.EMAIL, "111111")
        account_service.verify_contact(EMAIL, ContactChannel.EMAIL, "222222")

    @pytest.mark.asyncio
    async def test_non_resendable_purpose(self, account_service):
        with pytest.raises(InvalidInput):
            await account_service.resend_otp(EMAIL, purpose=OtpPurpose.TWO_FA_LOGIN)

    @pytest.mark.asyncio
    async def test_send_verification_for_signed_in_account(
        self, account_service, make_account, principal_for, last_code
    ):
        account = make_account(verified=False)

        result = await account_service.send_verification(
            principal_for(account.id), ContactChannel.PHONE
        )

        assert result.channel == "sms"
        assert last_code(PHONE)

    @pytest.mark.asyncio
    async def test_send_verification_for_verified_channel(
        self, account_service, make_account, principal_for
    ):
        account = make_account()

        with pytest.raises(BusinessRuleViolation):
            await account_service.send_verification(
                principal_for(account.id), ContactChannel.EMAIL
            )


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_with_email(self, account_service, make_account, accounts):
        account = make_account()

        result = await account_service.login(EMAIL, TEST_PASSWORD)

        assert result.tokens.access_token
        assert account_service.authenticate(result.tokens.access_token).account_id == account.id
        assert accounts.find_by_id(account.id).last_login_at is not None

    @pytest.mark.asyncio
    async def test_login_with_phone(self, account_service, make_account):
        account = make_account()

        result = await account_service.login("4155550100", TEST_PASSWORD, country_code="+1")

        assert result.account_id == account.id

    @pytest.mark.asyncio
    async def test_unknown_identifier(self, account_service):
        with pytest.raises(InvalidCredentials):
            await account_service.login("nobody@example.com", TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_lockout(self, account_service, make_account, accounts):
        account = make_account()

        for _ in range(4):
            with pytest.raises(InvalidCredentials):
                await account_service.login(EMAIL, "Wrong@1234")
        with pytest.raises(AccountLocked) as exc_info:
            await account_service.login(EMAIL, "Wrong@1234")

        assert exc_info.value.retry_after > 0
        assert accounts.find_by_id(account.id).login_attempts == 5
        # Correct password is refused while locked
        with pytest.raises(AccountLocked):
            await account_service.login(EMAIL, TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_unknown_identifier_locks_like_an_account(self, account_service, make_account):
        make_account()

        async def outcomes(identifier):
            seen = []
            for _ in range(6):
                try:
                    await account_service.login(identifier, "Wrong@1234")
                except (InvalidCredentials, AccountLocked) as e:
                    seen.append((type(e), getattr(e, "retry_after", None)))
            return seen

        known = await outcomes(EMAIL)
        # Case differences normalize onto one counter
        unknown = await outcomes("Ghost@Example.com")

        assert unknown == known
        assert [kind for kind, _ in unknown] == [InvalidCredentials] * 4 + [AccountLocked] * 2
        assert unknown[4][1] == 30 * 60

    @pytest.mark.asyncio
    async def test_unknown_identifier_lock_expires(self, account_service):
        lockout = account_service.auth_service.unknown_lockout
        for _ in range(5):
            with pytest.raises((InvalidCredentials, AccountLocked)):
                await account_service.login("ghost@example.com", "Wrong@1234")

        entry = lockout._entries["ghost@example.com"]
        entry.locked_until = datetime.now(UTC) - timedelta(minutes=1)
        with pytest.raises(InvalidCredentials):
            await account_service.login("ghost@example.com", "Wrong@1234")
        assert entry.attempts == 1

        entry.last_failure_at = datetime.now(UTC) - timedelta(hours=1)
        account_service.cleanup_expired()
        assert "ghost@example.com" not in lockout._entries

    @pytest.mark.asyncio
    async def test_expired_lock_resets_counter(self, account_service, make_account, accounts):
        account = make_account(
            login_attempts=5, locked_until=datetime.now(UTC) - timedelta(minutes=1)
        )

        with pytest.raises(InvalidCredentials):
            await account_service.login(EMAIL, "Wrong@1234")

        stored = accounts.find_by_id(account.id)
        assert stored.login_attempts == 1
        assert not stored.is_locked()

    @pytest.mark.asyncio
    async def test_success_resets_counter(self, account_service, make_account, accounts):
        account = make_account(login_attempts=3)

        await account_service.login(EMAIL, TEST_PASSWORD)

        assert accounts.find_by_id(account.id).login_attempts == 0

    @pytest.mark.asyncio
    async def test_unverified_account(self, account_service, make_account):
        make_account(verified=False)

        with pytest.raises(VerificationRequired):
            await account_service.login(EMAIL, TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_social_only_account(self, account_service, make_account):
        make_account(password=None, social_provider="google", social_id="g-1")

        with pytest.raises(NoPasswordSet):
            await account_service.login(EMAIL, TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_rehash_on_login(self, account_service, make_account, accounts):
        account = make_account()
        account_service.credentials.hasher.rounds = 5

        await account_service.login(EMAIL, TEST_PASSWORD)

        assert accounts.find_by_id(account.id).password_hash.startswith("$2b$05$")


class TestTwoFactorLogin:
    async def _enable_email_2fa(self, account_service, principal, last_code):
        await account_service.setup_two_factor(principal, TwoFactorMethod.EMAIL, TEST_PASSWORD)
        account_service.confirm_two_factor(principal, last_code(EMAIL))

    @pytest.mark.asyncio
    async def test_login_requires_second_step(
        self, account_service, make_account, principal_for, last_code
    ):
        account = make_account()
        await self._enable_email_2fa(account_service, principal_for(account.id), last_code)

        result = await account_service.login(EMAIL, TEST_PASSWORD)

        assert result.requires_2fa
        assert result.tokens is None
        assert result.two_factor_token
        assert result.to_dict()["method"] == "email"

        completed = account_service.complete_two_factor_login(
            result.two_factor_token, last_code(EMAIL)
        )
        assert completed.tokens.access_token

    @pytest.mark.asyncio
    async def test_wrong_second_factor(
        self, account_service, make_account, principal_for, last_code
    ):
        account = make_account()
        await self._enable_email_2fa(account_service, principal_for(account.id), last_code)
        result = await account_service.login(EMAIL, TEST_PASSWORD)

        with pytest.raises(InvalidOrExpiredCode):
            account_service.complete_two_factor_login(
                result.two_factor_token, wrong_code(last_code(EMAIL))
            )

    @pytest.mark.asyncio
    async def test_authenticator_code_signs_in_once(
        self, account_service, make_account, principal_for
    ):
        account = make_account()
        principal = principal_for(account.id)
        setup = await account_service.setup_two_factor(
            principal, TwoFactorMethod.AUTH_APP, TEST_PASSWORD
        )
        totp = pyotp.TOTP(setup.secret)
        account_service.confirm_two_factor(principal, totp.now())
        result = await account_service.login(EMAIL, TEST_PASSWORD)
        code = totp.at(datetime.now(UTC), counter_offset=1)

        completed = account_service.complete_two_factor_login(result.two_factor_token, code)

        assert completed.tokens.access_token
        with pytest.raises(OtpAlreadyConsumed):
            account_service.complete_two_factor_login(result.two_factor_token, code)

    @pytest.mark.asyncio
    async def test_disable_two_factor(
        self, account_service, make_account, principal_for, last_code
    ):
        account = make_account()
        principal = principal_for(account.id)
        await self._enable_email_2fa(account_service, principal, last_code)

        account_service.disable_two_factor(principal, TEST_PASSWORD)

        result = await account_service.login(EMAIL, TEST_PASSWORD)
        assert not result.requires_2fa


class TestSessions:
    @pytest.mark.asyncio
    async def test_refresh(self, account_service, make_account):
        make_account()
        tokens = await _login_tokens(account_service)

        rotated = account_service.refresh(tokens.refresh_token)

        assert account_service.authenticate(rotated.access_token)

    @pytest.mark.asyncio
    async def test_logout_all_revokes_tokens(self, account_service, make_account):
        make_account()
        tokens = await _login_tokens(account_service)
        principal = account_service.authenticate(tokens.access_token)

        account_service.logout(principal)
        assert account_service.authenticate(tokens.access_token)

        account_service.logout_all(principal)
        with pytest.raises(TokenVersionMismatch):
            account_service.authenticate(tokens.access_token)
        with pytest.raises(TokenVersionMismatch):
            account_service.refresh(tokens.refresh_token)


class TestPasswordManagement:
    @pytest.mark.asyncio
    async def test_change_password(self, account_service, make_account, accounts):
        account = make_account()
        tokens = await _login_tokens(account_service)
        principal = account_service.authenticate(tokens.access_token)

        result = account_service.change_password(principal, TEST_PASSWORD, "NewPass@1234")

        assert result.sessions_invalidated
        assert "sign in again" in result.message
        assert accounts.find_by_id(account.id).token_version == 2
        with pytest.raises(TokenVersionMismatch):
            account_service.authenticate(tokens.access_token)
        with pytest.raises(TokenVersionMismatch):
            account_service.refresh(tokens.refresh_token)
        assert (await account_service.login(EMAIL, "NewPass@1234")).tokens

    def test_change_to_same_password(self, account_service, make_account, principal_for, accounts):
        account = make_account()

        with pytest.raises(PasswordReused) as exc_info:
            account_service.change_password(principal_for(account.id), TEST_PASSWORD, TEST_PASSWORD)

        assert str(exc_info.value) == "New password must be different from current password"
        assert accounts.find_by_id(account.id).token_version == 1

    def test_change_with_wrong_current(self, account_service, make_account, principal_for):
        account = make_account()

        with pytest.raises(CurrentPasswordIncorrect):
            account_service.change_password(principal_for(account.id), "Wrong@1234", NEW_PASSWORD)

    def test_change_to_weak_password(self, account_service, make_account, principal_for):
        account = make_account()

        with pytest.raises(WeakPassword):
            account_service.change_password(principal_for(account.id), TEST_PASSWORD, "short")

    @pytest.mark.asyncio
    async def test_forgot_and_reset(self, account_service, make_account, accounts, last_code):
        account = make_account()

        result = await account_service.forgot_password(EMAIL)
        assert result.destination == "j***@example.com"

        account_service.reset_password(EMAIL, last_code(EMAIL), NEW_PASSWORD)

        assert accounts.find_by_id(account.id).token_version == 2
        assert (await account_service.login(EMAIL, NEW_PASSWORD)).tokens
        with pytest.raises(InvalidCredentials):
            await account_service.login(EMAIL, TEST_PASSWORD)

    @pytest.mark.asyncio
    async def test_forgot_unknown_identifier(self, account_service, make_account, sender):
        make_account()
        known = await account_service.forgot_password(EMAIL)
        sent = len(sender.outbox)

        unknown = await account_service.forgot_password("nobody@example.com")

        assert unknown.message == known.message
        assert len(sender.outbox) == sent

    @pytest.mark.asyncio
    async def test_reset_code_is_single_use(self, account_service, make_account, last_code):
        make_account()
        await account_service.forgot_password(EMAIL)
        code = last_code(EMAIL)
        account_service.reset_password(EMAIL, code, NEW_PASSWORD)

        with pytest.raises(InvalidOrExpiredCode):
            account_service.reset_password(EMAIL, code, "Another#9876")

    @pytest.mark.asyncio
    async def test_reset_checks_strength_before_code(
        self, account_service, make_account, challenges, last_code
    ):
        make_account()
        await account_service.forgot_password(EMAIL)

        with pytest.raises(WeakPassword):
            account_service.reset_password(EMAIL, last_code(EMAIL), "weak")

        assert challenges.get_latest(EMAIL, OtpPurpose.PASSWORD_RESET).consumed_at is None

    @pytest.mark.asyncio
    async def test_reset_to_current_password(self, account_service, make_account, last_code):
        make_account()
        await account_service.forgot_password(EMAIL)

        with pytest.raises(PasswordReused):
            account_service.reset_password(EMAIL, last_code(EMAIL), TEST_PASSWORD)


class TestContactUpdates:
    @pytest.mark.asyncio
    async def test_update_email(self, account_service, make_account, principal_for, last_code):
        account = make_account()
        principal = principal_for(account.id)

        result = await account_service.update_email(principal, "New@Example.com")
        assert result.destination == "n***@example.com"

        confirmed = account_service.confirm_email_update(principal, last_code("new@example.com"))

        assert confirmed.message == "Email address updated successfully"
        profile = account_service.get_profile(principal)
        assert profile.email == "new@example.com"
        assert profile.pending_email is None
        assert (await account_service.login("new@example.com", TEST_PASSWORD)).tokens

    @pytest.mark.asyncio
    async def test_update_phone(self, account_service, make_account, principal_for, last_code):
        account = make_account()
        principal = principal_for(account.id)

        await account_service.update_phone(principal, "+44", "7700 900123")
        account_service.confirm_phone_update(principal, last_code("+447700900123"))

        assert account_service.get_profile(principal).phone == "+447700900123"

    @pytest.mark.asyncio
    async def test_resend_pending_update_code(
        self, account_service, make_account, principal_for, last_code
    ):
        account = make_account()
        principal = principal_for(account.id)
        await account_service.update_email(principal, "new@example.com")

        with patch.object(account_service.otp.config, "resend_cooldown_seconds", 0):
            await account_service.resend_otp(EMAIL, purpose=OtpPurpose.EMAIL_UPDATE)

        account_service.confirm_email_update(principal, last_code("new@example.com"))
        assert account_service.get_profile(principal).email == "new@example.com"


class TestProfile:
    def test_get_profile(self, account_service, make_account, principal_for):
        account = make_account(first_name="Jane")

        profile = account_service.get_profile(principal_for(account.id))

        assert profile.email == EMAIL
        assert profile.phone == PHONE
        assert profile.first_name == "Jane"
        assert profile.has_password
        assert "password_hash" not in profile.to_dict()

    def test_update_profile(self, account_service, make_account, principal_for):
        account = make_account()

        profile = account_service.update_profile(
            principal_for(account.id),
            first_name="  Jane ",
            avatar_url="https://example.com/jane.png",
            date_of_birth=date(1990, 5, 17),
        )

        assert profile.first_name == "Jane"
        assert profile.avatar_url == "https://example.com/jane.png"
        assert profile.to_dict()["date_of_birth"] == "1990-05-17"

    def test_invalid_avatar(self, account_service, make_account, principal_for):
        account = make_account()

        with pytest.raises(InvalidInput):
            account_service.update_profile(principal_for(account.id), avatar_url="ftp://x")


class TestSocialLogin:
    @pytest.fixture
    def social_service(self, app_config, accounts, challenges, sender):
        def _build(identity: SocialIdentity):
            return build_account_service(
                app_config,
                accounts=accounts,
                challenges=challenges,
                sender=sender,
                social_verifiers={SocialProvider.GOOGLE: FakeGoogleVerifier(identity)},
            )

        return _build

    @pytest.mark.asyncio
    async def test_first_login_creates_account(self, social_service, accounts):
        service = social_service(_google_identity())

        result = await service.social_login(SocialProvider.GOOGLE, "id-token")

        account = accounts.find_by_id(result.account_id)
        assert result.tokens.access_token
        assert account.auth_type is AuthType.GOOGLE
        assert account.social_id == "google-123"
        assert account.is_email_verified
        assert not account.has_password

        again = await service.social_login(SocialProvider.GOOGLE, "id-token")
        assert again.account_id == result.account_id

    @pytest.mark.asyncio
    async def test_links_verified_email(self, social_service, make_account, accounts):
        existing = make_account()
        service = social_service(_google_identity())

        result = await service.social_login(SocialProvider.GOOGLE, "id-token")

        assert result.account_id == existing.id
        linked = accounts.find_by_id(existing.id)
        assert linked.social_id == "google-123"
        assert linked.has_password

    @pytest.mark.asyncio
    async def test_unverified_email_is_not_linked(self, social_service, make_account, accounts):
        existing = make_account()
        service = social_service(_google_identity(email_verified=False))

        result = await service.social_login(SocialProvider.GOOGLE, "id-token")

        assert result.account_id != existing.id
        assert accounts.find_by_id(result.account_id).email is None

    @pytest.mark.asyncio
    async def test_with_authorization_code(self, social_service):
        service = social_service(_google_identity())

        url = service.social_authorization_url(SocialProvider.GOOGLE, "st4te", "https://app/cb")
        result = await service.social_login_with_code(
            SocialProvider.GOOGLE, "auth-code", "https://app/cb"
        )

        assert "state=st4te" in url
        assert result.tokens.access_token

    @pytest.mark.asyncio
    async def test_invalid_credential(self, social_service):
        service = social_service(_google_identity())

        with pytest.raises(ProviderVerificationFailed):
            await service.social_login(SocialProvider.GOOGLE, "bad")

    @pytest.mark.asyncio
    async def test_provider_not_configured(self, account_service):
        with pytest.raises(ProviderVerificationFailed) as exc_info:
            await account_service.social_login(SocialProvider.GITHUB, "token")

        assert exc_info.value.reason == "Provider not configured"


def test_cleanup_expired(account_service):
    assert account_service.cleanup_expired() == 0
