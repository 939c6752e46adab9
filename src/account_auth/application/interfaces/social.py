"""
Federated Identity Interface Definitions

Defines the contract for verifying credentials issued by social providers.
"""

# Standard library imports
from abc import abstractmethod
from dataclasses import dataclass
from typing import Protocol

# Local imports
from account_auth.domain.value_objects import SocialProvider


@dataclass(frozen=True)
class SocialIdentity:
    """Identity asserted by a provider after verification."""

    provider: SocialProvider
    provider_user_id: str
    email: str | None = None
    email_verified: bool = False
    first_name: str | None = None
    last_name: str | None = None
    avatar_url: str | None = None


class ISocialIdentityVerifier(Protocol):
    """Verifier for one social provider."""

    provider: SocialProvider

    @abstractmethod
    def authorization_url(self, state: str, redirect_uri: str) -> str:
        """Build the provider consent URL for the authorization code flow."""
        ...

    @abstractmethod
    async def exchange_code(self, code: str, redirect_uri: str) -> str:
        """
        Exchange an authorization code for a credential accepted by verify().

        Raises:
            ProviderVerificationFailed: If the provider rejects the code
        """
        ...

    @abstractmethod
    async def verify(self, credential: str) -> SocialIdentity:
        """
        Verify a provider credential and return the asserted identity.

        Raises:
            ProviderVerificationFailed: If the credential is invalid or the
                provider cannot be reached
        """
        ...
