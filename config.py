"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

Each token kind has its own signing secret. TokenSettings refuses to build
when two configured secrets are equal so a token minted for one purpose can
never verify as another kind.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "auth-service"
    accounts_collection: str = "accounts"


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optional; without Redis the request throttles are disabled
    redis_uri: Optional[str] = None


class TokenSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    jwt_issuer: str = "auth-service"
    jwt_audience: str = "auth-service.api"

    access_token_secret: str = ""
    refresh_token_secret: str = ""
    email_verification_secret: str = ""
    reset_token_secret: str = ""
    # HMAC key for one-time codes at rest
    otp_secret: str = ""

    access_token_ttl_seconds: int = 900
    refresh_token_ttl_seconds: int = 604800
    verification_token_ttl_seconds: int = 3600
    reset_token_ttl_seconds: int = 600

    cookie_secure: bool = True
    cookie_samesite: Literal["lax", "strict", "none"] = "lax"

    @model_validator(mode="after")
    def _secrets_are_distinct(self) -> "TokenSettings":
        configured = [s for s in self.signing_secrets.values() if s]
        if len(configured) != len(set(configured)):
            raise ValueError("token signing secrets must differ per token kind")
        return self

    @property
    def signing_secrets(self) -> dict[str, str]:
        return {
            "access": self.access_token_secret,
            "refresh": self.refresh_token_secret,
            "email_verification": self.email_verification_secret,
            "password_reset": self.reset_token_secret,
        }

    @property
    def missing_secrets(self) -> list[str]:
        missing = [kind for kind, secret in self.signing_secrets.items() if not secret]
        if not self.otp_secret:
            missing.append("otp")
        return missing


class AuthPolicySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # "direct" issues tokens on password login; "mfa" delegates to the provider
    login_mode: Literal["direct", "mfa"] = "direct"

    resend_cooldown_seconds: int = 60
    otp_ttl_seconds: int = 600
    otp_length: int = 6
    max_otp_attempts: int = 5

    verify_email_url: str = "http://localhost:3000/verify-email"

    # Request throttles (fixed window, per client IP + email)
    login_rate_limit: int = 10
    login_rate_window_seconds: int = 60
    otp_verify_rate_limit: int = 10
    otp_verify_rate_window_seconds: int = 600


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    zepto_api_token: str = ""
    zepto_from_email: str = "noreply@example.com"
    zepto_from_name: str = "Account Service"


class CognitoSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    aws_region: str = "us-east-1"
    cognito_user_pool_id: str = ""
    cognito_client_id: str = ""
    cognito_client_secret: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.cognito_user_pool_id and self.cognito_client_id)


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1
    sentry_profile_sample_rate: float = 0.05


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    env: str = "development"
    app_url: str = "http://localhost:8000"
    app_name: str = "Account Service"

    # Credentials are required for the refresh cookie, so origins must be explicit
    cors_origins: list[str] = ["http://localhost:3000"]

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    redis: Optional[RedisSettings] = None
    tokens: Optional[TokenSettings] = None
    auth: Optional[AuthPolicySettings] = None
    email: Optional[EmailSettings] = None
    cognito: Optional[CognitoSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        if self.db is None:
            self.db = DatabaseSettings()
        if self.redis is None:
            self.redis = RedisSettings()
        if self.tokens is None:
            self.tokens = TokenSettings()
        if self.auth is None:
            self.auth = AuthPolicySettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.cognito is None:
            self.cognito = CognitoSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        if self.is_production and self.tokens.missing_secrets:
            raise ValueError(
                "missing token secrets in production: "
                + ", ".join(self.tokens.missing_secrets)
            )
        if self.auth.login_mode == "mfa" and not self.cognito.is_configured:
            raise ValueError("LOGIN_MODE=mfa requires the Cognito settings")

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"
