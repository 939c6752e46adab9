"""
HTTP response envelope.

Every endpoint answers with ``{success, message, data?, errors?}``.
"""

from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from account_auth.domain.exceptions import AccountLocked, AuthError, RateLimited


class ApiResponse(BaseModel):
    """Response envelope."""

    success: bool
    message: str
    data: dict[str, Any] | None = None
    errors: list[dict[str, Any]] | None = None

    @classmethod
    def ok(cls, message: str, data: dict[str, Any] | None = None) -> "ApiResponse":
        return cls(success=True, message=message, data=data)

    @classmethod
    def from_error(cls, error: AuthError) -> "ApiResponse":
        return cls(success=False, message=error.message, errors=[error.to_dict()])

    def to_response(
        self, status_code: int = 200, headers: dict[str, str] | None = None
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content=self.model_dump(exclude_none=True),
            headers=headers,
        )


def error_response(error: AuthError) -> JSONResponse:
    """Render a domain error with its status code and retry headers."""
    headers: dict[str, str] = {}
    retry_after = None
    if isinstance(error, RateLimited | AccountLocked):
        retry_after = error.retry_after
    if retry_after:
        headers["Retry-After"] = str(retry_after)
    if error.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    return ApiResponse.from_error(error).to_response(error.status_code, headers or None)
