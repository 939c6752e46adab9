"""
Authentication middleware for FastAPI.

This module provides the bearer-token dependency that resolves an
AuthenticatedPrincipal, plus request id and security header middleware.
"""

import logging
import secrets
from collections.abc import Callable
from typing import Any

from fastapi import Depends, Request
from fastapi.responses import Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.middleware.base import BaseHTTPMiddleware

from account_auth.domain.exceptions import TokenInvalid
from account_auth.domain.value_objects import AuthenticatedPrincipal

from ..monitoring import correlation_context, set_account_id
from .dependencies import get_account_service
from .services.account_service import AccountService

logger = logging.getLogger(__name__)


class JWTBearer(HTTPBearer):
    """
    JWT Bearer token authentication.

    Validates the access token in the Authorization header and returns the
    principal it resolves to. Failures raise token errors, which the
    application's exception handler renders as 401 responses.
    """

    def __init__(self) -> None:
        super().__init__(auto_error=False)

    async def __call__(  # type: ignore[override]
        self,
        request: Request,
        service: AccountService = Depends(get_account_service),
    ) -> AuthenticatedPrincipal:
        """
        Validate JWT token from Authorization header.

        Args:
            request: FastAPI request object
            service: Account service resolving the token

        Returns:
            The authenticated principal

        Raises:
            TokenInvalid: If the header is missing or malformed
            TokenExpired: If the token has expired
            TokenVersionMismatch: If the account's sessions were invalidated
        """
        credentials: HTTPAuthorizationCredentials | None = await super().__call__(request)
        if not credentials:
            raise TokenInvalid("Authorization required")
        if credentials.scheme.lower() != "bearer":
            raise TokenInvalid("Invalid authentication scheme")

        principal = service.authenticate(credentials.credentials)

        request.state.account_id = principal.account_id
        set_account_id(principal.account_id)
        return principal


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID middleware.

    Adds a unique request id for tracing and binds it as the log correlation id.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        """Add request ID to request and response."""
        request_id = request.headers.get("X-Request-ID")
        if not request_id:
            request_id = f"req_{secrets.token_urlsafe(16)}"

        request.state.request_id = request_id

        with correlation_context(request_id):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        return response  # type: ignore[no-any-return]


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Security headers middleware.

    Adds security headers to all responses.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"

        return response  # type: ignore[no-any-return]
