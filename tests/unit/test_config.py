"""Unit tests for AppSettings and sub-configs."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from config import (
    AppSettings,
    AuthPolicySettings,
    CognitoSettings,
    DatabaseSettings,
    RedisSettings,
    TokenSettings,
)

_SECRETS = {
    "ACCESS_TOKEN_SECRET": "access-secret",
    "REFRESH_TOKEN_SECRET": "refresh-secret",
    "EMAIL_VERIFICATION_SECRET": "verify-secret",
    "RESET_TOKEN_SECRET": "reset-secret",
    "OTP_SECRET": "otp-secret",
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def with_mongo(monkeypatch):
    """Set the required MONGODB_URI so AppSettings can be instantiated."""
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
    return monkeypatch


@pytest.fixture
def with_secrets(with_mongo):
    for key, value in _SECRETS.items():
        with_mongo.setenv(key, value)
    return with_mongo


# ---------------------------------------------------------------------------
# DatabaseSettings / RedisSettings
# ---------------------------------------------------------------------------


class TestDatabaseSettings:
    def test_loads_mongodb_uri(self, with_mongo):
        assert DatabaseSettings().mongodb_uri == "mongodb://localhost:27017/"

    def test_defaults(self, with_mongo):
        settings = DatabaseSettings()
        assert settings.db_name == "auth-service"
        assert settings.accounts_collection == "accounts"

    def test_missing_mongodb_uri_raises(self, monkeypatch):
        monkeypatch.delenv("MONGODB_URI", raising=False)
        with pytest.raises(PydanticValidationError):
            DatabaseSettings()


class TestRedisSettings:
    def test_optional(self, monkeypatch):
        monkeypatch.delenv("REDIS_URI", raising=False)
        assert RedisSettings().redis_uri is None


# ---------------------------------------------------------------------------
# TokenSettings
# ---------------------------------------------------------------------------


class TestTokenSettings:
    def test_defaults(self):
        settings = TokenSettings()
        assert settings.access_token_ttl_seconds == 900
        assert settings.refresh_token_ttl_seconds == 7 * 24 * 3600
        assert settings.verification_token_ttl_seconds == 3600
        assert settings.reset_token_ttl_seconds == 600
        assert settings.cookie_secure is True

    def test_loads_secrets_from_env(self, with_secrets):
        settings = TokenSettings()
        assert settings.signing_secrets["password_reset"] == "reset-secret"
        assert settings.missing_secrets == []

    def test_shared_secret_rejected(self, with_secrets):
        with_secrets.setenv("REFRESH_TOKEN_SECRET", "access-secret")
        with pytest.raises(PydanticValidationError):
            TokenSettings()

    def test_missing_secrets_listed(self, monkeypatch):
        for key in _SECRETS:
            monkeypatch.delenv(key, raising=False)
        missing = TokenSettings().missing_secrets
        assert set(missing) == {"access", "refresh", "email_verification", "password_reset", "otp"}

    def test_invalid_samesite(self, monkeypatch):
        monkeypatch.setenv("COOKIE_SAMESITE", "sometimes")
        with pytest.raises(PydanticValidationError):
            TokenSettings()


# ---------------------------------------------------------------------------
# AuthPolicySettings / CognitoSettings
# ---------------------------------------------------------------------------


class TestAuthPolicySettings:
    def test_defaults(self):
        policy = AuthPolicySettings()
        assert policy.login_mode == "direct"
        assert policy.resend_cooldown_seconds == 60
        assert policy.otp_ttl_seconds == 600
        assert policy.otp_length == 6
        assert policy.max_otp_attempts == 5

    def test_unknown_login_mode(self, monkeypatch):
        monkeypatch.setenv("LOGIN_MODE", "magic")
        with pytest.raises(PydanticValidationError):
            AuthPolicySettings()


class TestCognitoSettings:
    def test_not_configured_by_default(self, monkeypatch):
        monkeypatch.delenv("COGNITO_USER_POOL_ID", raising=False)
        monkeypatch.delenv("COGNITO_CLIENT_ID", raising=False)
        assert CognitoSettings().is_configured is False

    def test_configured(self, monkeypatch):
        monkeypatch.setenv("COGNITO_USER_POOL_ID", "pool")
        monkeypatch.setenv("COGNITO_CLIENT_ID", "client")
        assert CognitoSettings().is_configured is True


# ---------------------------------------------------------------------------
# AppSettings
# ---------------------------------------------------------------------------


class TestAppSettings:
    def test_sub_configs_populated(self, with_mongo):
        settings = AppSettings()
        for name in ("db", "redis", "tokens", "auth", "email", "cognito", "logging", "sentry"):
            assert getattr(settings, name) is not None

    def test_is_production(self, with_secrets):
        with_secrets.setenv("ENV", "production")
        assert AppSettings().is_production is True

    def test_production_requires_secrets(self, with_mongo):
        for key in _SECRETS:
            with_mongo.delenv(key, raising=False)
        with_mongo.setenv("ENV", "production")
        with pytest.raises(PydanticValidationError):
            AppSettings()

    def test_development_tolerates_missing_secrets(self, with_mongo):
        for key in _SECRETS:
            with_mongo.delenv(key, raising=False)
        assert AppSettings().is_production is False

    def test_mfa_mode_requires_cognito(self, with_mongo):
        with_mongo.setenv("LOGIN_MODE", "mfa")
        with_mongo.delenv("COGNITO_USER_POOL_ID", raising=False)
        with pytest.raises(PydanticValidationError):
            AppSettings()

    def test_mfa_mode_with_cognito(self, with_mongo):
        with_mongo.setenv("LOGIN_MODE", "mfa")
        with_mongo.setenv("COGNITO_USER_POOL_ID", "pool")
        with_mongo.setenv("COGNITO_CLIENT_ID", "client")
        assert AppSettings().auth.login_mode == "mfa"
