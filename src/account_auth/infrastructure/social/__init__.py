"""Federated identity verification for social login."""

from .providers import GitHubIdentityVerifier, GoogleIdentityVerifier, build_social_verifiers

__all__ = ["GitHubIdentityVerifier", "GoogleIdentityVerifier", "build_social_verifiers"]
