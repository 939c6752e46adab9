"""
Unit tests for the contact verification state machine.
"""

import pytest

from account_auth.domain.exceptions import (
    AlreadyInUse,
    BusinessRuleViolation,
    InvalidInput,
    InvalidOrExpiredCode,
    OtpMismatch,
    VerificationRequired,
)
from account_auth.domain.value_objects import ContactChannel, PhoneNumber, VerificationStatus
from account_auth.infrastructure.auth.services import (
    VerificationService,
    require_verified_channel,
    require_verified_email,
    require_verified_phone,
)
from tests.helpers import wrong_code


@pytest.fixture
def verification(accounts, otp_engine):
    return VerificationService(accounts, otp_engine)


class TestVerificationPreconditions:
    def test_require_helpers(self, make_account):
        account = make_account(verified=False)

        with pytest.raises(VerificationRequired):
            require_verified_email(account)
        with pytest.raises(VerificationRequired):
            require_verified_phone(account)
        with pytest.raises(VerificationRequired) as exc_info:
            require_verified_channel(account)
        assert exc_info.value.channels == ["email", "phone"]

    def test_one_verified_channel_is_enough(self, make_account):
        account = make_account(verified=False)
        account.set_status(ContactChannel.PHONE, VerificationStatus.VERIFIED)

        require_verified_channel(account)
        require_verified_phone(account)


class TestVerifyChannel:
    """Test Unverified -> PendingOtp -> Verified."""

    @pytest.mark.asyncio
    async def test_begin_moves_to_pending(self, verification, make_account, accounts, last_code):
        account = make_account(verified=False)

        handle = await verification.begin(account, ContactChannel.EMAIL)

        assert handle.delivered
        assert last_code("jane@example.com")
        stored = accounts.find_by_id(account.id)
        assert stored.email_status is VerificationStatus.PENDING_OTP
        assert stored.phone_status is VerificationStatus.UNVERIFIED

    @pytest.mark.asyncio
    async def test_begin_phone_uses_sms(self, verification, make_account, last_code):
        account = make_account(verified=False)

        handle = await verification.begin(account, ContactChannel.PHONE)

        assert handle.identifier == "+14155550100"
        assert handle.channel.value == "sms"
        assert last_code("+14155550100")

    @pytest.mark.asyncio
    async def test_begin_rejects_verified_channel(self, verification, make_account):
        account = make_account(verified=True)

        with pytest.raises(BusinessRuleViolation):
            await verification.begin(account, ContactChannel.EMAIL)

    @pytest.mark.asyncio
    async def test_begin_without_value(self, verification, make_account):
        account = make_account(phone=None, verified=False)

        with pytest.raises(InvalidInput) as exc_info:
            await verification.begin(account, ContactChannel.PHONE)
        assert exc_info.value.field == "phone"

    @pytest.mark.asyncio
    async def test_confirm(self, verification, make_account, accounts, last_code):
        account = make_account(verified=False)
        await verification.begin(account, ContactChannel.EMAIL)

        updated = verification.confirm(
            "jane@example.com", ContactChannel.EMAIL, last_code("jane@example.com")
        )

        assert updated.is_email_verified
        assert accounts.find_by_id(account.id).email_status is VerificationStatus.VERIFIED

    @pytest.mark.asyncio
    async def test_wrong_code_stays_pending(self, verification, make_account, accounts, last_code):
        account = make_account(verified=False)
        await verification.begin(account, ContactChannel.EMAIL)
        wrong = wrong_code(last_code("jane@example.com"))

        with pytest.raises(OtpMismatch):
            verification.confirm("jane@example.com", ContactChannel.EMAIL, wrong)

        assert accounts.find_by_id(account.id).email_status is VerificationStatus.PENDING_OTP

    @pytest.mark.asyncio
    async def test_confirm_after_value_changed(
        self, verification, make_account, accounts, last_code
    ):
        account = make_account(verified=False)
        await verification.begin(account, ContactChannel.EMAIL)
        code = last_code("jane@example.com")

        def change_email(current):
            current.email = "other@example.com"

        accounts.atomic_update(account.id, lambda _: True, change_email)

        with pytest.raises(InvalidOrExpiredCode):
            verification.confirm("jane@example.com", ContactChannel.EMAIL, code)


class TestContactUpdate:
    """Test staging and confirming a new email or phone."""

    @pytest.mark.asyncio
    async def test_stage_requires_verified_current_value(self, verification, make_account):
        account = make_account(verified=False)

        with pytest.raises(VerificationRequired):
            await verification.stage_update(account, ContactChannel.EMAIL, "new@example.com")

    @pytest.mark.asyncio
    async def test_email_update(self, verification, make_account, accounts, last_code):
        account = make_account()

        handle = await verification.stage_update(
            account, ContactChannel.EMAIL, "new@example.com"
        )

        assert handle.identifier == "new@example.com"
        staged = accounts.find_by_id(account.id)
        assert staged.email == "jane@example.com"
        assert staged.pending_email == "new@example.com"

        updated = verification.confirm_update(
            account.id, ContactChannel.EMAIL, last_code("new@example.com")
        )

        assert updated.email == "new@example.com"
        assert updated.pending_email is None
        assert updated.is_email_verified

    @pytest.mark.asyncio
    async def test_phone_update(self, verification, make_account, last_code):
        account = make_account()

        await verification.stage_update(
            account, ContactChannel.PHONE, PhoneNumber("+44", "7700900123")
        )
        updated = verification.confirm_update(
            account.id, ContactChannel.PHONE, last_code("+447700900123")
        )

        assert updated.phone_e164 == "+447700900123"
        assert updated.pending_phone is None
        assert updated.is_phone_verified

    @pytest.mark.asyncio
    async def test_same_value_rejected(self, verification, make_account):
        account = make_account()

        with pytest.raises(InvalidInput):
            await verification.stage_update(account, ContactChannel.EMAIL, "jane@example.com")

    @pytest.mark.asyncio
    async def test_value_in_use(self, verification, make_account):
        account = make_account()
        make_account(email="taken@example.com", phone="4155550111")

        with pytest.raises(AlreadyInUse) as exc_info:
            await verification.stage_update(account, ContactChannel.EMAIL, "taken@example.com")
        assert exc_info.value.channel == "email"

    def test_confirm_without_pending_update(self, verification, make_account):
        account = make_account()

        with pytest.raises(InvalidOrExpiredCode):
            verification.confirm_update(account.id, ContactChannel.EMAIL, "123456")

    @pytest.mark.asyncio
    async def test_value_claimed_before_confirmation(
        self, verification, make_account, last_code
    ):
        account = make_account()
        await verification.stage_update(account, ContactChannel.EMAIL, "new@example.com")
        make_account(email="new@example.com", phone="4155550111")

        with pytest.raises(AlreadyInUse):
            verification.confirm_update(
                account.id, ContactChannel.EMAIL, last_code("new@example.com")
            )
