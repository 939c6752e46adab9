"""Email and phone change flows for the signed-in account."""

from account_auth.domain.value_objects import AuthenticatedPrincipal, ContactChannel

from ..types import OtpDispatchResult, VerificationResult
from .account_lookup import AccountLookup
from .validators import normalize_email, parse_phone
from .verification import VerificationService


class ContactUpdateService:
    """Stages a new email or phone and swaps it in once the code sent to it is confirmed."""

    def __init__(self, lookup: AccountLookup, verification: VerificationService):
        self.lookup = lookup
        self.verification = verification

    async def update_email(
        self, principal: AuthenticatedPrincipal, new_email: str
    ) -> OtpDispatchResult:
        account = self.lookup.by_principal(principal)
        handle = await self.verification.stage_update(
            account, ContactChannel.EMAIL, normalize_email(new_email)
        )
        return OtpDispatchResult.from_handle(
            handle, "A verification code was sent to your new email address"
        )

    async def update_phone(
        self, principal: AuthenticatedPrincipal, country_code: str | None, phone: str
    ) -> OtpDispatchResult:
        account = self.lookup.by_principal(principal)
        handle = await self.verification.stage_update(
            account, ContactChannel.PHONE, parse_phone(phone, country_code)
        )
        return OtpDispatchResult.from_handle(
            handle, "A verification code was sent to your new phone number"
        )

    def confirm_email_update(
        self, principal: AuthenticatedPrincipal, code: str
    ) -> VerificationResult:
        return self._confirm(principal, ContactChannel.EMAIL, code)

    def confirm_phone_update(
        self, principal: AuthenticatedPrincipal, code: str
    ) -> VerificationResult:
        return self._confirm(principal, ContactChannel.PHONE, code)

    def _confirm(
        self, principal: AuthenticatedPrincipal, channel: ContactChannel, code: str
    ) -> VerificationResult:
        account = self.verification.confirm_update(principal.account_id, channel, code)
        noun = "Email address" if channel is ContactChannel.EMAIL else "Phone number"
        return VerificationResult(
            account_id=account.id, channel=channel, message=f"{noun} updated successfully"
        )
