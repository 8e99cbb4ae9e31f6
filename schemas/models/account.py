"""
Account document model.

Maps to the `accounts` MongoDB collection.

Two creation paths produce slightly different shapes:
- Password registration: password_hash set, login_provider "password"
- Federated registration: password_hash None, login_provider "google"/"github"

reset_otp_hash and reset_otp_expires_at are written and cleared together.
status "active" is only ever set together with email_verified=True.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import ConfigDict, Field

from schemas.models.base import MongoBaseModel


class AccountStatus(str, Enum):
    INVITED = "invited"
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class LoginProvider(str, Enum):
    PASSWORD = "password"
    GOOGLE = "google"
    GITHUB = "github"


class AccountDoc(MongoBaseModel):
    """Document model for the `accounts` collection."""

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        use_enum_values=True,
        validate_default=True,
    )

    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    recovery_email: Optional[str] = None

    login_provider: LoginProvider = LoginProvider.PASSWORD
    password_hash: Optional[str] = None

    email_verified: bool = False
    status: AccountStatus = AccountStatus.INVITED

    reset_otp_hash: Optional[str] = None
    reset_otp_expires_at: Optional[datetime] = None
    reset_otp_attempts: int = Field(default=0, ge=0)

    last_verification_sent_at: Optional[datetime] = None
    last_otp_sent_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    # Bumped on password change/reset; tokens carrying an older value are dead
    token_version: int = Field(default=0, ge=0)

    external_subject_id: Optional[str] = None
    # MFA deployments only: held between registration and provisioning
    provisioning_secret: Optional[str] = None

    roles: list[str] = []

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def account_id(self) -> str:
        return str(self.id)

    @property
    def uses_password(self) -> bool:
        return self.login_provider == LoginProvider.PASSWORD

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE
