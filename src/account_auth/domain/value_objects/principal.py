"""Authenticated principal passed explicitly into account use cases."""

from dataclasses import dataclass


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    """
    Identity resolved from a verified access token.

    Produced by TokenService.verify_access and handed to every use case that
    requires an authenticated caller.
    """

    account_id: str
    token_version: int
    token_id: str | None = None
