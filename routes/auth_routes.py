"""
Authentication endpoints.

POST  /auth/register                — create an unverified account (201)
POST  /auth/verify-email            — consume an email verification token
POST  /auth/login                   — password login; tokens or an MFA challenge
POST  /auth/login/mfa               — answer the MFA challenge
POST  /auth/resend-verification     — new verification email (60s cooldown)
POST  /auth/resend-otp              — new password reset code (60s cooldown)
POST  /auth/request-password-reset  — send a password reset code
POST  /auth/verify-reset-otp        — trade the code for a reset token
POST  /auth/reset-password          — set a new password with the reset token
POST  /auth/refresh                 — new access token from the refresh cookie
POST  /auth/logout                  — clear auth cookies
POST  /auth/change-password         — authenticated password change
GET   /auth/me                      — current account
PATCH /auth/me                      — update name / phone
PATCH /auth/recovery-email          — set the recovery address

Handlers stay thin: every state transition lives in AuthService.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from config import AppSettings
from dependencies import (
    get_auth_service,
    get_current_account,
    get_rate_limiter,
    get_settings,
)
from infrastructure.rate_limiter import RateLimiter
from routes.cookies import REFRESH_COOKIE, clear_auth_cookies, set_refresh_cookie
from schemas.dto.requests.auth import (
    ChangePasswordRequest,
    EmailOnlyRequest,
    LoginRequest,
    MfaLoginRequest,
    RecoveryEmailRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdateProfileRequest,
    VerifyEmailRequest,
    VerifyResetOtpRequest,
)
from schemas.dto.responses.auth import (
    AccountProfileResponse,
    LoginResponse,
    MfaChallengeResponse,
    MfaLoginResponse,
    PasswordChangedResponse,
    RefreshResponse,
    RegisterResponse,
    ResetOtpVerifiedResponse,
    VerifyEmailResponse,
)
from schemas.dto.responses.common import ErrorResponse, MessageResponse
from schemas.models.account import AccountDoc
from services.auth_service import AuthService
from shared.ip_utils import get_client_ip
from shared.validators import normalize_email

_ERROR_RESPONSES = {
    status_code: {"model": ErrorResponse} for status_code in (400, 401, 403, 404, 409, 429, 500, 502)
}

router = APIRouter(prefix="/auth", tags=["auth"], responses=_ERROR_RESPONSES)


def _throttle_key(request: Request, email: Optional[str]) -> str:
    return f"{get_client_ip(request)}:{normalize_email(email) or '-'}"


# ── Registration & verification ────────────────────────────────────────────


@router.post("/register", status_code=201, response_model=RegisterResponse)
async def register(
    body: RegisterRequest, service: AuthService = Depends(get_auth_service)
) -> RegisterResponse:
    result = await service.register(
        body.email, body.password, body.name, body.login_provider
    )
    return RegisterResponse(message=result.message, account_id=result.account_id)


@router.post("/verify-email", response_model=VerifyEmailResponse)
async def verify_email(
    body: VerifyEmailRequest, service: AuthService = Depends(get_auth_service)
) -> VerifyEmailResponse:
    result = await service.verify_email(body.token)
    return VerifyEmailResponse(
        message=result.message, already_verified=result.already_verified
    )


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    body: EmailOnlyRequest, service: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    await service.resend_verification(body.email)
    return MessageResponse(success=True, message="Verification email sent")


# ── Login ──────────────────────────────────────────────────────────────────


@router.post("/login", response_model=LoginResponse | MfaChallengeResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: AppSettings = Depends(get_settings),
) -> LoginResponse | MfaChallengeResponse:
    throttle_key = _throttle_key(request, body.email)
    await limiter.hit(
        "login",
        throttle_key,
        settings.auth.login_rate_limit,
        settings.auth.login_rate_window_seconds,
    )

    result = await service.login(body.email, body.password)
    await limiter.reset("login", throttle_key)

    if result.requires_mfa:
        challenge = result.challenge
        return MfaChallengeResponse(
            challenge_name=challenge.challenge_name,
            session=challenge.session,
            parameters=dict(challenge.parameters),
        )

    set_refresh_cookie(response, result.tokens.refresh_token, settings.tokens)
    return LoginResponse(
        access_token=result.tokens.access_token,
        expires_in=settings.tokens.access_token_ttl_seconds,
        user=AccountProfileResponse.from_account(result.account),
    )


@router.post("/login/mfa", response_model=MfaLoginResponse)
async def login_mfa(
    body: MfaLoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_settings),
) -> MfaLoginResponse:
    result = await service.complete_mfa(
        body.email, body.session, body.challenge_name, body.code
    )
    set_refresh_cookie(response, result.tokens.refresh_token, settings.tokens)
    provider = result.provider_tokens
    return MfaLoginResponse(
        access_token=result.tokens.access_token,
        expires_in=settings.tokens.access_token_ttl_seconds,
        user=AccountProfileResponse.from_account(result.account),
        id_token=provider.id_token if provider else None,
        provider_access_token=provider.access_token if provider else None,
        provider_refresh_token=provider.refresh_token if provider else None,
    )


# ── Password reset ─────────────────────────────────────────────────────────


@router.post("/request-password-reset", response_model=MessageResponse)
async def request_password_reset(
    body: EmailOnlyRequest, service: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    await service.request_password_reset(body.email)
    return MessageResponse(success=True, message="OTP sent to your email")


@router.post("/resend-otp", response_model=MessageResponse)
async def resend_otp(
    body: EmailOnlyRequest, service: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    await service.resend_reset_otp(body.email)
    return MessageResponse(success=True, message="OTP resent to your email")


@router.post("/verify-reset-otp", response_model=ResetOtpVerifiedResponse)
async def verify_reset_otp(
    body: VerifyResetOtpRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: AppSettings = Depends(get_settings),
) -> ResetOtpVerifiedResponse:
    await limiter.hit(
        "verify_reset_otp",
        _throttle_key(request, body.email),
        settings.auth.otp_verify_rate_limit,
        settings.auth.otp_verify_rate_window_seconds,
    )
    ticket = await service.verify_reset_otp(body.email, body.otp)
    return ResetOtpVerifiedResponse(
        reset_token=ticket.reset_token, expires_in=ticket.expires_in
    )


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    await service.reset_password(body.reset_token, body.new_password, body.email)
    return MessageResponse(success=True, message="Password reset successful")


# ── Session ────────────────────────────────────────────────────────────────


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(
    request: Request,
    service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_settings),
) -> RefreshResponse:
    result = await service.refresh(request.cookies.get(REFRESH_COOKIE))
    return RefreshResponse(
        access_token=result.access_token,
        expires_in=settings.tokens.access_token_ttl_seconds,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_settings),
) -> MessageResponse:
    service.logout(request.cookies.get(REFRESH_COOKIE))
    clear_auth_cookies(response, settings.tokens)
    return MessageResponse(success=True, message="Logged out successfully")


# ── Authenticated account management ───────────────────────────────────────


@router.post("/change-password", response_model=PasswordChangedResponse)
async def change_password(
    body: ChangePasswordRequest,
    response: Response,
    account: AccountDoc = Depends(get_current_account),
    service: AuthService = Depends(get_auth_service),
    settings: AppSettings = Depends(get_settings),
) -> PasswordChangedResponse:
    pair = await service.change_password(
        account, body.current_password, body.new_password
    )
    set_refresh_cookie(response, pair.refresh_token, settings.tokens)
    return PasswordChangedResponse(
        access_token=pair.access_token,
        expires_in=settings.tokens.access_token_ttl_seconds,
    )


@router.get("/me", response_model=AccountProfileResponse)
async def me(account: AccountDoc = Depends(get_current_account)) -> AccountProfileResponse:
    return AccountProfileResponse.from_account(account)


@router.patch("/me", response_model=AccountProfileResponse)
async def update_me(
    body: UpdateProfileRequest,
    account: AccountDoc = Depends(get_current_account),
    service: AuthService = Depends(get_auth_service),
) -> AccountProfileResponse:
    updated = await service.update_profile(account, name=body.name, phone=body.phone)
    return AccountProfileResponse.from_account(updated)


@router.patch("/recovery-email", response_model=AccountProfileResponse)
async def update_recovery_email(
    body: RecoveryEmailRequest,
    account: AccountDoc = Depends(get_current_account),
    service: AuthService = Depends(get_auth_service),
) -> AccountProfileResponse:
    updated = await service.update_recovery_email(account, body.recovery_email)
    return AccountProfileResponse.from_account(updated)
