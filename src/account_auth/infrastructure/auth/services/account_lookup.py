"""Account lookups shared by the account use cases."""

from collections.abc import Callable
from typing import Any

from account_auth.application.interfaces import (
    EntityNotFoundError,
    IAccountRepository,
    RepositoryError,
)
from account_auth.application.interfaces.repositories import AccountMutation, AccountPredicate
from account_auth.domain.entities import Account
from account_auth.domain.exceptions import (
    AuthError,
    DependencyFailure,
    NotFoundButMasked,
    TokenInvalid,
)
from account_auth.domain.value_objects import AuthenticatedPrincipal, ContactChannel

from .validators import classify_identifier, parse_phone


class AccountLookup:
    """Repository access with storage failures mapped to DependencyFailure."""

    def __init__(self, accounts: IAccountRepository) -> None:
        self.accounts = accounts

    def by_principal(self, principal: AuthenticatedPrincipal) -> Account:
        """
        Load the account behind an authenticated principal.

        Raises:
            TokenInvalid: If the account no longer exists
        """
        account = self._call(self.accounts.find_by_id, principal.account_id)
        if account is None:
            raise TokenInvalid()
        return account

    def by_id(self, account_id: str) -> Account | None:
        return self._call(self.accounts.find_by_id, account_id)

    def by_identifier(
        self, identifier: str, country_code: str | None = None
    ) -> tuple[Account | None, ContactChannel, str]:
        """
        Resolve an email or phone identifier.

        Returns:
            The account (or None), the identifier's channel and its normalized form
        """
        channel, normalized = classify_identifier(identifier, country_code)
        if channel is ContactChannel.EMAIL:
            account = self._call(self.accounts.find_by_email, normalized)
        else:
            account = self._call(self.accounts.find_by_phone, parse_phone(normalized))
        return account, channel, normalized

    def known_identifier(
        self, identifier: str, country_code: str | None = None
    ) -> tuple[Account, ContactChannel, str]:
        """
        Resolve an identifier that must belong to an account.

        Raises:
            NotFoundButMasked: If no account holds the identifier; callers
                answer as if one did
        """
        account, channel, normalized = self.by_identifier(identifier, country_code)
        if account is None:
            raise NotFoundButMasked(channel.value, normalized)
        return account, channel, normalized

    def by_social_id(self, provider: str, social_id: str) -> Account | None:
        return self._call(self.accounts.find_by_social_id, provider, social_id)

    def by_email(self, email: str) -> Account | None:
        return self._call(self.accounts.find_by_email, email)

    def update(
        self,
        account_id: str,
        predicate: AccountPredicate,
        mutation: AccountMutation,
        on_missing: Callable[[], AuthError] = TokenInvalid,
    ) -> Account | None:
        """Atomic update; a missing account raises the error built by on_missing."""
        try:
            return self.accounts.atomic_update(account_id, predicate, mutation)
        except EntityNotFoundError:
            raise on_missing()
        except RepositoryError as e:
            raise DependencyFailure("Account storage unavailable", "account_repository", e)

    @staticmethod
    def _call(finder: Callable[..., Account | None], *args: Any) -> Account | None:
        try:
            return finder(*args)
        except RepositoryError as e:
            raise DependencyFailure("Account storage unavailable", "account_repository", e)
