"""
Account authentication API endpoints.

This module provides FastAPI endpoints for registration, contact
verification, login, sessions, password management, contact updates,
two-factor authentication, social login and profile management.
"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from account_auth.domain.value_objects import (
    AuthenticatedPrincipal,
    ContactChannel,
    OtpPurpose,
    SocialProvider,
    TwoFactorMethod,
)

from .dependencies import get_account_service
from .middleware import JWTBearer
from .responses import ApiResponse
from .services.account_service import AccountService
from .types import RegistrationRequest

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/auth", tags=["Authentication"])

get_current_principal = JWTBearer()


# Request models
class RegisterBody(BaseModel):
    """Registration request."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str | None = Field(None, max_length=254)
    phone: str | None = Field(None, max_length=20)
    country_code: str | None = Field(None, max_length=5)
    password: SecretStr = Field(..., min_length=1, max_length=128)
    first_name: str | None = Field(None, max_length=50)
    last_name: str | None = Field(None, max_length=50)
    date_of_birth: date | None = None


class IdentifierBody(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    identifier: str = Field(..., min_length=1, max_length=254)
    country_code: str | None = Field(None, max_length=5)


class VerifyContactBody(IdentifierBody):
    channel: ContactChannel
    code: str = Field(..., min_length=4, max_length=10)


class ResendOtpBody(IdentifierBody):
    purpose: OtpPurpose | None = None


class LoginBody(IdentifierBody):
    """Login request; identifier is an email or a phone number."""

    password: SecretStr


class TwoFactorLoginBody(BaseModel):
    two_factor_token: str
    code: str = Field(..., min_length=4, max_length=10)


class RefreshBody(BaseModel):
    refresh_token: str


class ChangePasswordBody(BaseModel):
    current_password: SecretStr
    new_password: SecretStr = Field(..., min_length=1, max_length=128)


class ResetPasswordBody(IdentifierBody):
    code: str = Field(..., min_length=4, max_length=10)
    new_password: SecretStr = Field(..., min_length=1, max_length=128)


class SendVerificationBody(BaseModel):
    channel: ContactChannel


class UpdateEmailBody(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    new_email: str = Field(..., min_length=3, max_length=254)


class UpdatePhoneBody(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    country_code: str | None = Field(None, max_length=5)
    phone: str = Field(..., min_length=4, max_length=20)


class CodeBody(BaseModel):
    code: str = Field(..., min_length=4, max_length=10)


class TwoFactorSetupBody(BaseModel):
    method: TwoFactorMethod
    password: SecretStr


class PasswordBody(BaseModel):
    password: SecretStr


class ProfileUpdateBody(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str | None = Field(None, max_length=50)
    last_name: str | None = Field(None, max_length=50)
    avatar_url: str | None = Field(None, max_length=2048)
    date_of_birth: date | None = None


class SocialLoginBody(BaseModel):
    credential: str = Field(..., min_length=1)


class SocialCallbackBody(BaseModel):
    code: str = Field(..., min_length=1)
    redirect_uri: str


# Public endpoints (no authentication required)
@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterBody, service: AccountService = Depends(get_account_service)
) -> JSONResponse:
    """
    Register a new account with an email, a phone number, or both.

    A verification code is sent to the email (or the phone when there is no email).
    """
    result = await service.register(
        RegistrationRequest(
            password=body.password.get_secret_value(),
            email=body.email,
            phone=body.phone,
            country_code=body.country_code,
            first_name=body.first_name,
            last_name=body.last_name,
            date_of_birth=body.date_of_birth,
        )
    )
    return ApiResponse.ok(result.message, result.to_dict()).to_response(status.HTTP_201_CREATED)


@router.post("/verify")
async def verify_contact(
    body: VerifyContactBody, service: AccountService = Depends(get_account_service)
) -> JSONResponse:
    result = service.verify_contact(body.identifier, body.channel, body.code, body.country_code)
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/otp/resend")
async def resend_otp(
    body: ResendOtpBody, service: AccountService = Depends(get_account_service)
) -> JSONResponse:
    """Resend a code. The answer is the same whether or not the identifier exists."""
    result = await service.resend_otp(body.identifier, body.purpose, body.country_code)
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/login")
async def login(
    body: LoginBody, service: AccountService = Depends(get_account_service)
) -> JSONResponse:
    result = await service.login(
        body.identifier, body.password.get_secret_value(), body.country_code
    )
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/login/2fa")
async def complete_two_factor_login(
    body: TwoFactorLoginBody, service: AccountService = Depends(get_account_service)
) -> JSONResponse:
    result = service.complete_two_factor_login(body.two_factor_token, body.code)
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/refresh")
async def refresh_token(
    body: RefreshBody, service: AccountService = Depends(get_account_service)
) -> JSONResponse:
    pair = service.refresh(body.refresh_token)
    return ApiResponse.ok("Token refreshed", pair.to_dict()).to_response()


@router.post("/password/forgot")
async def forgot_password(
    body: IdentifierBody, service: AccountService = Depends(get_account_service)
) -> JSONResponse:
    result = await service.forgot_password(body.identifier, body.country_code)
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/password/reset")
async def reset_password(
    body: ResetPasswordBody, service: AccountService = Depends(get_account_service)
) -> JSONResponse:
    result = service.reset_password(
        body.identifier, body.code, body.new_password.get_secret_value(), body.country_code
    )
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.get("/social/{provider}/authorize")
async def social_authorize(
    provider: SocialProvider,
    state: str,
    redirect_uri: str,
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    url = service.social_authorization_url(provider, state, redirect_uri)
    return ApiResponse.ok("Authorization URL created", {"authorization_url": url}).to_response()


@router.post("/social/{provider}")
async def social_login(
    provider: SocialProvider,
    body: SocialLoginBody,
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    """Sign in with a Google ID token or a GitHub access token."""
    result = await service.social_login(provider, body.credential)
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/social/{provider}/callback")
async def social_callback(
    provider: SocialProvider,
    body: SocialCallbackBody,
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    result = await service.social_login_with_code(provider, body.code, body.redirect_uri)
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


# Protected endpoints (authentication required)
@router.post("/logout")
async def logout(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    service.logout(principal)
    return ApiResponse.ok("Logged out successfully").to_response()


@router.post("/logout-all")
async def logout_all(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    """Sign out of every device by revoking all tokens."""
    service.logout_all(principal)
    return ApiResponse.ok(
        "Logged out from all devices", {"sessions_invalidated": True}
    ).to_response()


@router.post("/verification/send")
async def send_verification(
    body: SendVerificationBody,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    result = await service.send_verification(principal, body.channel)
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/password/change")
async def change_password(
    body: ChangePasswordBody,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    """Change password; every existing session is signed out."""
    result = service.change_password(
        principal,
        body.current_password.get_secret_value(),
        body.new_password.get_secret_value(),
    )
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/email/update")
async def update_email(
    body: UpdateEmailBody,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    result = await service.update_email(principal, body.new_email)
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/email/update/confirm")
async def confirm_email_update(
    body: CodeBody,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    result = service.confirm_email_update(principal, body.code)
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/phone/update")
async def update_phone(
    body: UpdatePhoneBody,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    result = await service.update_phone(principal, body.country_code, body.phone)
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/phone/update/confirm")
async def confirm_phone_update(
    body: CodeBody,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    result = service.confirm_phone_update(principal, body.code)
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/2fa/setup")
async def setup_two_factor(
    body: TwoFactorSetupBody,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    """
    Start 2FA setup.

    Requires verified email and phone and the current password.
    """
    result = await service.setup_two_factor(
        principal, body.method, body.password.get_secret_value()
    )
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/2fa/confirm")
async def confirm_two_factor(
    body: CodeBody,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    result = service.confirm_two_factor(principal, body.code)
    return ApiResponse.ok(result.message, result.to_dict()).to_response()


@router.post("/2fa/disable")
async def disable_two_factor(
    body: PasswordBody,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    service.disable_two_factor(principal, body.password.get_secret_value())
    return ApiResponse.ok("Two-factor authentication disabled").to_response()


@router.get("/profile")
async def get_profile(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    profile = service.get_profile(principal)
    return ApiResponse.ok("Profile retrieved", profile.to_dict()).to_response()


@router.patch("/profile")
async def update_profile(
    body: ProfileUpdateBody,
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    service: AccountService = Depends(get_account_service),
) -> JSONResponse:
    profile = service.update_profile(
        principal,
        first_name=body.first_name,
        last_name=body.last_name,
        avatar_url=body.avatar_url,
        date_of_birth=body.date_of_birth,
    )
    return ApiResponse.ok("Profile updated", profile.to_dict()).to_response()
