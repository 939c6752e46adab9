"""Profile read and update for the signed-in account."""

from datetime import date

from account_auth.application.config import SecurityConfig
from account_auth.domain.entities import Account
from account_auth.domain.exceptions import InvalidInput
from account_auth.domain.value_objects import AuthenticatedPrincipal

from ...monitoring import log_security_event
from ..types import ProfileView
from .account_lookup import AccountLookup
from .validators import clean_name, validate_date_of_birth


class ProfileService:
    """Profile service."""

    def __init__(self, lookup: AccountLookup, config: SecurityConfig | None = None):
        self.lookup = lookup
        self.config = config or SecurityConfig()

    def get_profile(self, principal: AuthenticatedPrincipal) -> ProfileView:
        return ProfileView.from_account(self.lookup.by_principal(principal))

    def update_profile(
        self,
        principal: AuthenticatedPrincipal,
        first_name: str | None = None,
        last_name: str | None = None,
        avatar_url: str | None = None,
        date_of_birth: date | None = None,
    ) -> ProfileView:
        """
        Update profile fields; fields left as None are unchanged.

        Raises:
            InvalidInput: If a name is blank or too long, the avatar URL is not
                http(s), or the birth date fails the age check
        """
        changes: dict[str, object] = {}
        if first_name is not None:
            changes["first_name"] = clean_name(first_name, "first_name")
        if last_name is not None:
            changes["last_name"] = clean_name(last_name, "last_name")
        if avatar_url is not None:
            if not avatar_url.startswith(("https://", "http://")):
                raise InvalidInput("Invalid avatar URL", field="avatar_url")
            changes["avatar_url"] = avatar_url
        if date_of_birth is not None:
            validate_date_of_birth(date_of_birth, self.config.minimum_age_years)
            changes["date_of_birth"] = date_of_birth

        if not changes:
            return self.get_profile(principal)

        def apply(current: Account) -> None:
            for name, value in changes.items():
                setattr(current, name, value)
            current.touch()

        updated = self.lookup.update(principal.account_id, lambda _: True, apply)
        if updated is None:
            return self.get_profile(principal)

        log_security_event("profile_updated", account_id=updated.id, fields=sorted(changes))
        return ProfileView.from_account(updated)
