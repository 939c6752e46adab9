"""
Session management service.

Sessions are stateless token pairs; the only server-side session state is
the account's token version.
"""

import logging

from account_auth.domain.value_objects import AuthenticatedPrincipal

from ...monitoring import log_security_event
from ..token_service import TokenPair, TokenService

logger = logging.getLogger(__name__)


class SessionManager:
    """Token refresh and sign-out."""

    def __init__(self, tokens: TokenService):
        self.tokens = tokens

    def authenticate(self, access_token: str) -> AuthenticatedPrincipal:
        """Resolve an access token into a principal."""
        return self.tokens.verify_access(access_token)

    def refresh(self, refresh_token: str) -> TokenPair:
        """Rotate a refresh token into a new token pair."""
        pair = self.tokens.refresh(refresh_token)
        logger.debug("Refreshed token pair")
        return pair

    def logout(self, principal: AuthenticatedPrincipal) -> None:
        """
        Sign out the current client.

        Tokens are not tracked server side, so this only records the event;
        the client discards its tokens. Use logout_all to revoke them.
        """
        log_security_event("logout", account_id=principal.account_id, token_id=principal.token_id)

    def logout_all(self, principal: AuthenticatedPrincipal) -> int:
        """Revoke every token of the account; returns the new token version."""
        return self.tokens.invalidate_all(principal.account_id)
