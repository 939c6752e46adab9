"""
Unit tests for JWT signing and verification.
"""

from datetime import timedelta

import jwt
import pytest

from account_auth.application.config import Environment, TokenConfig
from account_auth.domain.exceptions import TokenExpired, TokenInvalid
from account_auth.infrastructure.auth.jwt_signer import JWTSigner


class TestJWTSigner:
    """Test token signing with shared secrets and key pairs."""

    def test_hs256_round_trip(self, signer):
        token = signer.sign({"sub": "acc-1", "ver": 1}, timedelta(minutes=5), "users")

        payload = signer.verify(token, "users")

        assert payload["sub"] == "acc-1"
        assert payload["ver"] == 1
        assert payload["iss"] == "account-auth"
        assert payload["jti"]

    def test_every_token_has_unique_id(self, signer):
        first = signer.verify(signer.sign({"sub": "a"}, timedelta(minutes=5), "users"), "users")
        second = signer.verify(signer.sign({"sub": "a"}, timedelta(minutes=5), "users"), "users")

        assert first["jti"] != second["jti"]

    def test_expired_token(self, signer):
        token = signer.sign({"sub": "acc-1"}, timedelta(seconds=-10), "users")

        with pytest.raises(TokenExpired):
            signer.verify(token, "users")

    def test_wrong_audience(self, signer):
        token = signer.sign({"sub": "acc-1"}, timedelta(minutes=5), "users/refresh")

        with pytest.raises(TokenInvalid):
            signer.verify(token, "users")

    def test_tampered_signature(self, signer, token_config):
        other = JWTSigner(
            TokenConfig(secret="another-signing-secret-0123456789abcdef"), Environment.TESTING
        )
        token = other.sign({"sub": "acc-1"}, timedelta(minutes=5), token_config.audience)

        with pytest.raises(TokenInvalid):
            signer.verify(token, token_config.audience)

    def test_missing_subject_is_rejected(self, signer, token_config):
        token = jwt.encode(
            {"iss": "account-auth", "aud": "users", "exp": 9999999999, "iat": 0, "jti": "x"},
            token_config.secret,
            algorithm="HS256",
        )

        with pytest.raises(TokenInvalid):
            signer.verify(token, "users")

    def test_garbage_token(self, signer):
        with pytest.raises(TokenInvalid):
            signer.verify("not.a.token", "users")

    def test_rs256_with_ephemeral_keys(self):
        rsa_signer = JWTSigner(TokenConfig(algorithm="RS256"), Environment.DEVELOPMENT)
        token = rsa_signer.sign({"sub": "acc-1"}, timedelta(minutes=5), "users")

        assert jwt.get_unverified_header(token)["alg"] == "RS256"
        assert rsa_signer.verify(token, "users")["sub"] == "acc-1"

    def test_ephemeral_secret_outside_production(self):
        dev_signer = JWTSigner(TokenConfig(secret=""), Environment.DEVELOPMENT)
        token = dev_signer.sign({"sub": "acc-1"}, timedelta(minutes=5), "users")

        assert dev_signer.verify(token, "users")["sub"] == "acc-1"

    def test_production_requires_secret(self):
        with pytest.raises(ValueError):
            JWTSigner(TokenConfig(secret=""), Environment.PRODUCTION)

    def test_production_requires_private_key(self):
        with pytest.raises(ValueError):
            JWTSigner(TokenConfig(algorithm="RS256"), Environment.PRODUCTION)

    def test_unsupported_algorithm(self):
        with pytest.raises(ValueError):
            JWTSigner(TokenConfig(algorithm="none", secret="x"), Environment.TESTING)
