"""
FastAPI application factory.

Mounts the account authentication router behind the request id and
security header middleware and renders every failure in the response
envelope.
"""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from account_auth.application.config import get_config
from account_auth.domain.exceptions import AuthError

from ..monitoring import setup_structured_logging
from .dependencies import get_account_service, set_account_service
from .endpoints import router
from .middleware import RequestIDMiddleware, SecurityHeadersMiddleware
from .responses import ApiResponse, error_response
from .services.account_service import AccountService

logger = logging.getLogger(__name__)


async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.url.path}")
    return error_response(exc)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "code": "invalid_input",
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return ApiResponse(success=False, message="Invalid request", errors=errors).to_response(
        status.HTTP_400_BAD_REQUEST
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
    return ApiResponse(
        success=False,
        message="Internal server error",
        errors=[{"code": "internal_error", "message": "Internal server error"}],
    ).to_response(status.HTTP_500_INTERNAL_SERVER_ERROR)


def create_app(service: AccountService | None = None) -> FastAPI:
    """
    Create the account authentication application.

    Args:
        service: Account service to serve; built from configuration when omitted

    Returns:
        Configured FastAPI application
    """
    if service is not None:
        set_account_service(service)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting account authentication service...")
        account_service = get_account_service()
        removed = account_service.cleanup_expired()
        logger.info(f"Removed {removed} expired verification codes on startup")
        yield
        logger.info("Shutting down account authentication service...")

    app = FastAPI(
        title="Account Authentication API",
        description="Registration, verification, login and session management",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        max_age=3600,
    )

    app.add_exception_handler(AuthError, handle_auth_error)  # type: ignore[arg-type]
    app.add_exception_handler(
        RequestValidationError, handle_validation_error  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, handle_unexpected_error)

    app.include_router(router)
    return app


def create_app_from_env() -> FastAPI:
    """
    Application factory for ASGI servers.

    Configures structured logging from the environment before building the app,
    e.g. ``uvicorn account_auth.infrastructure.auth.app:create_app_from_env --factory``.
    """
    config = get_config()
    setup_structured_logging(
        level=config.logging.level,
        format_type=config.logging.format_type,
        log_file=config.logging.file,
    )
    return create_app()
