"""
Response DTOs for authentication endpoints.

AccountProfileResponse   — account shape returned by login/me/profile updates
RegisterResponse         — POST /auth/register  (201)
VerifyEmailResponse      — POST /auth/verify-email  (200)
LoginResponse            — POST /auth/login  (200, tokens issued)
MfaChallengeResponse     — POST /auth/login  (200, challenge pending)
MfaLoginResponse         — POST /auth/login/mfa  (200)
RefreshResponse          — POST /auth/refresh  (200)
ResetOtpVerifiedResponse — POST /auth/verify-reset-otp  (200)
PasswordChangedResponse  — POST /auth/change-password  (200)

The refresh token never appears in a body; it travels in the HttpOnly cookie.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.account import AccountDoc


class AccountProfileResponse(BaseModel):
    """Public view of an account."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    recovery_email: Optional[str] = None
    email_verified: bool
    status: str
    login_provider: str
    roles: list[str]
    last_login_at: Optional[int] = None  # Unix timestamp

    @classmethod
    def from_account(cls, account: AccountDoc) -> "AccountProfileResponse":
        return cls(
            id=account.account_id,
            email=account.email,
            name=account.name,
            phone=account.phone,
            recovery_email=account.recovery_email,
            email_verified=account.email_verified,
            status=str(account.status),
            login_provider=str(account.login_provider),
            roles=list(account.roles),
            last_login_at=(
                int(account.last_login_at.timestamp()) if account.last_login_at else None
            ),
        )


class RegisterResponse(BaseModel):
    """Response body for POST /auth/register (201)."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    account_id: str


class VerifyEmailResponse(BaseModel):
    """Response body for POST /auth/verify-email (200)."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    already_verified: bool


class LoginResponse(BaseModel):
    """Response body for POST /auth/login when tokens are issued."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    requires_mfa: bool = False
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: AccountProfileResponse


class MfaChallengeResponse(BaseModel):
    """Response body for POST /auth/login when the provider requires a challenge.

    ``session`` and ``challenge_name`` must be sent back to /auth/login/mfa.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    requires_mfa: bool = True
    challenge_name: str
    session: Optional[str] = None
    parameters: dict[str, str] = {}


class MfaLoginResponse(LoginResponse):
    """Response body for POST /auth/login/mfa.

    Extends LoginResponse with the identity provider's own tokens.
    """

    id_token: Optional[str] = None
    provider_access_token: Optional[str] = None
    provider_refresh_token: Optional[str] = None


class RefreshResponse(BaseModel):
    """Response body for POST /auth/refresh (200)."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    access_token: str
    token_type: str = "Bearer"
    expires_in: int


class ResetOtpVerifiedResponse(BaseModel):
    """Response body for POST /auth/verify-reset-otp (200)."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "OTP verified"
    reset_token: str
    expires_in: int


class PasswordChangedResponse(BaseModel):
    """Response body for POST /auth/change-password (200)."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str = "Password changed successfully"
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
