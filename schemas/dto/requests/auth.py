"""
Request DTOs for authentication endpoints.

RegisterRequest               — POST /auth/register
VerifyEmailRequest            — POST /auth/verify-email
LoginRequest                  — POST /auth/login
MfaLoginRequest               — POST /auth/login/mfa
EmailOnlyRequest              — POST /auth/resend-verification, /auth/resend-otp,
                                /auth/request-password-reset
VerifyResetOtpRequest         — POST /auth/verify-reset-otp
ResetPasswordRequest          — POST /auth/reset-password
ChangePasswordRequest         — POST /auth/change-password
UpdateProfileRequest          — PATCH /auth/me
RecoveryEmailRequest          — PATCH /auth/recovery-email

Presence of required fields is left to the service so missing values map to
its own ValidationError messages; format rules (password policy, OTP shape,
phone shape) are enforced here.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.validators import is_valid_otp, is_valid_phone, validate_password


def _check_password_policy(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    ok, missing = validate_password(value)
    if not ok:
        raise ValueError("Password does not meet requirements: " + ", ".join(missing))
    return value


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    login_provider: str = Field(default="password", alias="loginProvider")

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_policy(value)


class VerifyEmailRequest(BaseModel):
    """Request body for POST /auth/verify-email."""

    token: Optional[str] = None


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    email: Optional[str] = None
    password: Optional[str] = None


class MfaLoginRequest(BaseModel):
    """Request body for POST /auth/login/mfa.

    ``session`` and ``challenge_name`` are echoed back from the login response.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    session: Optional[str] = None
    challenge_name: Optional[str] = Field(default=None, alias="challengeName")
    code: Optional[str] = None


class EmailOnlyRequest(BaseModel):
    """Request body for the endpoints that only take an email address."""

    email: Optional[str] = None


class VerifyResetOtpRequest(BaseModel):
    """Request body for POST /auth/verify-reset-otp.

    ``otp`` is the numeric code sent to the account's email address; its
    configured length is checked by the service.
    """

    email: Optional[str] = None
    otp: Optional[str] = None

    @field_validator("otp")
    @classmethod
    def otp_shape(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_valid_otp(value.strip()):
            raise ValueError("OTP must contain only digits")
        return value.strip() if value is not None else value


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password."""

    model_config = ConfigDict(populate_by_name=True)

    reset_token: Optional[str] = Field(default=None, alias="resetToken")
    new_password: Optional[str] = Field(default=None, alias="newPassword")
    email: Optional[str] = None

    @field_validator("new_password")
    @classmethod
    def password_policy(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_policy(value)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /auth/change-password."""

    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(alias="currentPassword")
    new_password: str = Field(alias="newPassword")

    @field_validator("new_password")
    @classmethod
    def password_policy(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_policy(value)


class UpdateProfileRequest(BaseModel):
    """Request body for PATCH /auth/me."""

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    phone: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def phone_shape(cls, value: Optional[str]) -> Optional[str]:
        if value and not is_valid_phone(value):
            raise ValueError("Phone number must be a valid format")
        return value


class RecoveryEmailRequest(BaseModel):
    """Request body for PATCH /auth/recovery-email."""

    model_config = ConfigDict(populate_by_name=True)

    recovery_email: Optional[str] = Field(default=None, alias="recoveryEmail")
