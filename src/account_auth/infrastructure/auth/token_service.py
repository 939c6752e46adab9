"""
Token service.

Issues access, refresh and two-factor login tokens bound to an account's
token version, and revokes every outstanding token by bumping that version.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from account_auth.application.config import TokenConfig
from account_auth.application.interfaces import (
    EntityNotFoundError,
    IAccountRepository,
    RepositoryError,
)
from account_auth.domain.entities import Account
from account_auth.domain.exceptions import DependencyFailure, TokenInvalid, TokenVersionMismatch
from account_auth.domain.value_objects import AuthenticatedPrincipal, TwoFactorMethod

from ..monitoring import log_security_event
from .jwt_signer import JWTSigner

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"
TWO_FACTOR = "2fa"


@dataclass
class TokenPair:
    """Access/refresh token pair returned to a client."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "token_type": self.token_type,
        }


class TokenService:
    """
    Token service for issuing and validating session tokens.

    A token is valid only while its ``ver`` claim equals the account's current
    token version, so incrementing the version revokes all tokens at once.
    """

    def __init__(
        self,
        signer: JWTSigner,
        accounts: IAccountRepository,
        config: TokenConfig | None = None,
    ) -> None:
        self.signer = signer
        self.accounts = accounts
        self.config = config or signer.config

        self.access_ttl = timedelta(minutes=self.config.access_token_minutes)
        self.refresh_ttl = timedelta(days=self.config.refresh_token_days)
        self.two_factor_ttl = timedelta(minutes=self.config.two_factor_token_minutes)

        self.access_audience = self.config.audience
        self.refresh_audience = f"{self.config.audience}/refresh"
        self.two_factor_audience = f"{self.config.audience}/2fa"

    def issue(self, account_id: str, token_version: int) -> TokenPair:
        """Issue a new access/refresh pair for a token version."""
        claims = {"sub": account_id, "ver": token_version}
        access_token = self.signer.sign(
            {**claims, "type": ACCESS}, self.access_ttl, self.access_audience
        )
        refresh_token = self.signer.sign(
            {**claims, "type": REFRESH}, self.refresh_ttl, self.refresh_audience
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.access_ttl.total_seconds()),
        )

    def verify_access(self, token: str) -> AuthenticatedPrincipal:
        """
        Resolve an access token to the authenticated principal.

        Raises:
            TokenExpired: If the token is past its expiry
            TokenInvalid: If the token is malformed or the account is gone
            TokenVersionMismatch: If the account's sessions were invalidated
        """
        payload = self._decode(token, self.access_audience, ACCESS)
        account = self._current_account(payload)
        return AuthenticatedPrincipal(
            account_id=account.id,
            token_version=account.token_version,
            token_id=payload.get("jti"),
        )

    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        Raises:
            TokenExpired: If the refresh token is past its expiry
            TokenInvalid: If the token is malformed or the account is gone
            TokenVersionMismatch: If the account's sessions were invalidated
        """
        payload = self._decode(refresh_token, self.refresh_audience, REFRESH)
        account = self._current_account(payload)
        logger.debug(f"Rotating refresh token for account {account.id}")
        return self.issue(account.id, account.token_version)

    def invalidate_all(self, account_id: str) -> int:
        """
        Revoke every outstanding token for an account.

        Returns:
            The new token version
        """

        def bump(account: Account) -> None:
            account.token_version += 1
            account.touch()

        try:
            updated = self.accounts.atomic_update(account_id, lambda _: True, bump)
        except EntityNotFoundError:
            raise TokenInvalid()
        except RepositoryError as e:
            raise DependencyFailure("Account storage unavailable", "account_repository", e)

        if updated is None:
            raise DependencyFailure("Could not invalidate sessions", "account_repository")

        log_security_event(
            "sessions_invalidated", account_id=account_id, token_version=updated.token_version
        )
        return updated.token_version

    def issue_two_factor_token(
        self, account_id: str, token_version: int, method: TwoFactorMethod
    ) -> str:
        """Issue the short-lived token that carries a login into its second step."""
        return self.signer.sign(
            {"sub": account_id, "ver": token_version, "type": TWO_FACTOR, "mth": method.value},
            self.two_factor_ttl,
            self.two_factor_audience,
        )

    def verify_two_factor_token(self, token: str) -> tuple[Account, TwoFactorMethod]:
        """
        Verify a two-factor login token.

        Returns:
            The current account and the second factor method chosen at login
        """
        payload = self._decode(token, self.two_factor_audience, TWO_FACTOR)
        account = self._current_account(payload)
        try:
            method = TwoFactorMethod(payload.get("mth"))
        except ValueError:
            raise TokenInvalid()
        return account, method

    def _decode(self, token: str, audience: str, token_type: str) -> dict[str, Any]:
        payload = self.signer.verify(token, audience)
        if payload.get("type") != token_type or not isinstance(payload.get("ver"), int):
            raise TokenInvalid()
        return payload

    def _current_account(self, payload: dict[str, Any]) -> Account:
        try:
            account = self.accounts.find_by_id(str(payload["sub"]))
        except RepositoryError as e:
            raise DependencyFailure("Account storage unavailable", "account_repository", e)

        if account is None:
            raise TokenInvalid()
        if account.token_version != payload["ver"]:
            raise TokenVersionMismatch()
        return account
