"""
Social identity verifiers.

Verifies Google ID tokens and GitHub access tokens with the providers and
exchanges OAuth authorization codes for those credentials.
"""

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from account_auth.application.config import SocialConfig
from account_auth.application.interfaces import SocialIdentity
from account_auth.domain.exceptions import ProviderVerificationFailed
from account_auth.domain.value_objects import SocialProvider

logger = logging.getLogger(__name__)


class _HttpVerifier:
    """Shared HTTP plumbing; an injected client is reused, otherwise one is opened per call."""

    provider: SocialProvider

    def __init__(self, timeout: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self.timeout = timeout
        self._client = client

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.request(method, url, **kwargs)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{self.provider.value} request error: {e}")
            raise ProviderVerificationFailed(self.provider.value, "Provider unreachable")

    def _fail(self, reason: str) -> ProviderVerificationFailed:
        logger.warning(f"{self.provider.value} verification failed: {reason}")
        return ProviderVerificationFailed(self.provider.value, reason)


class GoogleIdentityVerifier(_HttpVerifier):
    """Google Sign-In: ID tokens checked through the tokeninfo endpoint."""

    provider = SocialProvider.GOOGLE

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
    ISSUERS = ("accounts.google.com", "https://accounts.google.com")

    def __init__(
        self, config: SocialConfig, client: httpx.AsyncClient | None = None
    ) -> None:
        super().__init__(config.timeout_seconds, client)
        self.client_id = config.google_client_id
        self.client_secret = config.google_client_secret

    def authorization_url(self, state: str, redirect_uri: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "access_type": "online",
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> str:
        response = await self._request(
            "POST",
            self.TOKEN_URL,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        if response.status_code != 200:
            raise self._fail(f"Code exchange returned HTTP {response.status_code}")

        id_token = response.json().get("id_token")
        if not id_token:
            raise self._fail("Code exchange returned no ID token")
        return str(id_token)

    async def verify(self, credential: str) -> SocialIdentity:
        response = await self._request("GET", self.TOKENINFO_URL, params={"id_token": credential})
        if response.status_code != 200:
            raise self._fail("Invalid ID token")

        claims = response.json()
        if self.client_id and claims.get("aud") != self.client_id:
            raise self._fail("ID token was issued for another client")
        if claims.get("iss") not in self.ISSUERS:
            raise self._fail("Unexpected token issuer")
        if not claims.get("sub"):
            raise self._fail("ID token has no subject")

        email_verified = str(claims.get("email_verified", "")).lower() == "true"
        return SocialIdentity(
            provider=self.provider,
            provider_user_id=str(claims["sub"]),
            email=claims.get("email"),
            email_verified=email_verified,
            first_name=claims.get("given_name"),
            last_name=claims.get("family_name"),
            avatar_url=claims.get("picture"),
        )


class GitHubIdentityVerifier(_HttpVerifier):
    """GitHub OAuth: access tokens checked against the user and emails API."""

    provider = SocialProvider.GITHUB

    AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
    TOKEN_URL = "https://github.com/login/oauth/access_token"
    API_URL = "https://api.github.com"

    def __init__(
        self, config: SocialConfig, client: httpx.AsyncClient | None = None
    ) -> None:
        super().__init__(config.timeout_seconds, client)
        self.client_id = config.github_client_id
        self.client_secret = config.github_client_secret

    def authorization_url(self, state: str, redirect_uri: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": "read:user user:email",
            "state": state,
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> str:
        response = await self._request(
            "POST",
            self.TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
            },
            headers={"Accept": "application/json"},
        )
        if response.status_code != 200:
            raise self._fail(f"Code exchange returned HTTP {response.status_code}")

        data = response.json()
        if "access_token" not in data:
            raise self._fail(data.get("error_description") or "Code exchange failed")
        return str(data["access_token"])

    async def verify(self, credential: str) -> SocialIdentity:
        headers = {
            "Authorization": f"Bearer {credential}",
            "Accept": "application/vnd.github+json",
        }
        user_response = await self._request("GET", f"{self.API_URL}/user", headers=headers)
        if user_response.status_code != 200:
            raise self._fail("Invalid access token")
        user = user_response.json()
        if not user.get("id"):
            raise self._fail("GitHub user has no id")

        email, email_verified = await self._primary_email(headers)

        first_name, last_name = None, None
        if user.get("name"):
            first_name, _, remainder = str(user["name"]).partition(" ")
            last_name = remainder or None

        return SocialIdentity(
            provider=self.provider,
            provider_user_id=str(user["id"]),
            email=email or user.get("email"),
            email_verified=email_verified,
            first_name=first_name,
            last_name=last_name,
            avatar_url=user.get("avatar_url"),
        )

    async def _primary_email(self, headers: dict[str, str]) -> tuple[str | None, bool]:
        response = await self._request("GET", f"{self.API_URL}/user/emails", headers=headers)
        if response.status_code != 200:
            # Token lacks the user:email scope; only the public profile email is known
            return None, False

        for entry in response.json():
            if entry.get("primary"):
                return entry.get("email"), bool(entry.get("verified"))
        return None, False


def build_social_verifiers(
    config: SocialConfig, client: httpx.AsyncClient | None = None
) -> dict[SocialProvider, GoogleIdentityVerifier | GitHubIdentityVerifier]:
    """Verifiers for every provider with a configured client id."""
    verifiers: dict[SocialProvider, GoogleIdentityVerifier | GitHubIdentityVerifier] = {}
    if config.google_client_id:
        verifiers[SocialProvider.GOOGLE] = GoogleIdentityVerifier(config, client)
    if config.github_client_id:
        verifiers[SocialProvider.GITHUB] = GitHubIdentityVerifier(config, client)
    return verifiers
