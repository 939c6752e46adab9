"""
JWT signing for access, refresh and two-factor login tokens.

This module signs and decodes tokens and maps PyJWT failures onto the
domain token errors. Session validity (token versions) is checked by the
TokenService, not here.
"""

import logging
import os
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from account_auth.application.config import Environment, TokenConfig
from account_auth.domain.exceptions import TokenExpired, TokenInvalid

logger = logging.getLogger(__name__)


class JWTSigner:
    """
    Token signer backed by PyJWT.

    Supports:
    - HS256 with a shared secret (default)
    - RS256 with PEM key files
    - Ephemeral secrets or key pairs outside production
    """

    SUPPORTED_ALGORITHMS = ("HS256", "HS384", "HS512", "RS256", "RS384", "RS512")

    def __init__(
        self,
        config: TokenConfig | None = None,
        environment: Environment = Environment.DEVELOPMENT,
    ) -> None:
        """
        Initialize JWT signer.

        Args:
            config: Algorithm, keys, issuer and audience
            environment: Production refuses to generate ephemeral keys

        Raises:
            ValueError: If the algorithm is unsupported or production keys are missing
        """
        self.config = config or TokenConfig()
        self.algorithm = self.config.algorithm
        self.issuer = self.config.issuer

        if self.algorithm not in self.SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported JWT algorithm: {self.algorithm}")

        production = environment is Environment.PRODUCTION
        if self.algorithm.startswith("HS"):
            if self.config.secret:
                self._signing_key: Any = self.config.secret
            elif production:
                raise ValueError("JWT_SECRET is required for production")
            else:
                logger.warning(
                    "No JWT secret configured - generating an ephemeral secret "
                    "for DEVELOPMENT ONLY. All tokens will be invalidated on restart!"
                )
                self._signing_key = secrets.token_urlsafe(48)
            self._verification_key: Any = self._signing_key
            return

        private_path = self.config.private_key_path
        public_path = self.config.public_key_path
        if private_path and os.path.exists(private_path):
            private_key = self._load_private_key(private_path)
            if public_path and os.path.exists(public_path):
                public_key = self._load_public_key(public_path)
            else:
                public_key = private_key.public_key()
        elif production:
            raise ValueError(
                "JWT private key is required for production. "
                "Use: openssl genrsa -out private_key.pem 2048"
            )
        else:
            logger.warning(
                "No private key found - generating ephemeral keys for DEVELOPMENT ONLY. "
                "These keys will be lost on restart and all tokens will be invalidated!"
            )
            private_key, public_key = self._generate_key_pair()

        self._signing_key = private_key
        self._verification_key = public_key

    def _load_private_key(self, path: str) -> Any:
        """Load RSA private key from file."""
        with open(path, "rb") as key_file:
            return serialization.load_pem_private_key(key_file.read(), password=None)

    def _load_public_key(self, path: str) -> Any:
        """Load RSA public key from file."""
        with open(path, "rb") as key_file:
            return serialization.load_pem_public_key(key_file.read())

    def _generate_key_pair(self) -> tuple[Any, Any]:
        """Generate new RSA key pair for development."""
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        return private_key, private_key.public_key()

    def sign(self, claims: dict[str, Any], ttl: timedelta, audience: str) -> str:
        """
        Sign a token.

        Args:
            claims: Token specific claims (sub, ver, type ...)
            ttl: Lifetime of the token
            audience: Audience the token is issued for

        Returns:
            Encoded JWT
        """
        now = datetime.now(UTC)
        payload = {
            "iss": self.issuer,
            "aud": audience,
            "iat": now,
            "nbf": now,
            "exp": now + ttl,
            "jti": secrets.token_urlsafe(16),
            **claims,
        }
        return jwt.encode(payload, self._signing_key, algorithm=self.algorithm)

    def verify(self, token: str, audience: str) -> dict[str, Any]:
        """
        Verify and decode a token.

        Raises:
            TokenExpired: If the token is past its expiry
            TokenInvalid: If the signature, issuer, audience or shape is wrong
        """
        try:
            payload = jwt.decode(
                token,
                self._verification_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=audience,
                options={"require": ["exp", "iat", "sub", "jti"]},
            )
            return dict(payload)
        except jwt.ExpiredSignatureError:
            raise TokenExpired()
        except jwt.InvalidTokenError as e:
            logger.debug(f"Token rejected: {e}")
            raise TokenInvalid()
