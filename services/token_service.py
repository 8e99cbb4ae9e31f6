"""
Credential codec: signed tokens and one-time codes.

Signed tokens are HS256 JWTs. Every kind has its own secret *and* its own
``typ`` claim and audience, so a token minted for one purpose fails
verification everywhere else:

    kind                 subject claim   extra claims
    access               account id      ver, roles
    refresh              account id      ver
    email_verification   account id      -
    password_reset       email           ver

One-time codes are numeric, generated from ``secrets``, and only their
HMAC digest plus expiry are handed back for storage.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

import jwt

from config import AuthPolicySettings, TokenSettings
from shared.crypto import hash_otp, otp_matches
from shared.generators import generate_otp_code, generate_token_id


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class TokenError(Exception):
    """Signature, expiry, audience or kind check failed."""


class TokenExpiredError(TokenError):
    pass


@dataclass(frozen=True)
class IssuedOtp:
    code: str
    code_hash: str
    expires_at: datetime


class TokenService:
    _ALGORITHM = "HS256"

    def __init__(self, settings: TokenSettings) -> None:
        self._settings = settings
        self._ttls = {
            TokenKind.ACCESS: settings.access_token_ttl_seconds,
            TokenKind.REFRESH: settings.refresh_token_ttl_seconds,
            TokenKind.EMAIL_VERIFICATION: settings.verification_token_ttl_seconds,
            TokenKind.PASSWORD_RESET: settings.reset_token_ttl_seconds,
        }

    def _secret(self, kind: TokenKind) -> str:
        secret = self._settings.signing_secrets[kind.value]
        if not secret:
            raise RuntimeError(f"signing secret for {kind.value} tokens is not configured")
        return secret

    def _audience(self, kind: TokenKind) -> str:
        return f"{self._settings.jwt_audience}:{kind.value}"

    def ttl(self, kind: TokenKind) -> int:
        return self._ttls[kind]

    def issue(
        self,
        kind: TokenKind,
        subject: str,
        *,
        now: Optional[datetime] = None,
        **claims: Any,
    ) -> str:
        """Sign a *kind* token for *subject* with the kind's secret and TTL."""
        now = now or datetime.now(timezone.utc)
        payload = {
            "iss": self._settings.jwt_issuer,
            "aud": self._audience(kind),
            "sub": subject,
            "typ": kind.value,
            "jti": generate_token_id(),
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self._ttls[kind])).timestamp()),
            **claims,
        }
        return jwt.encode(payload, self._secret(kind), algorithm=self._ALGORITHM)

    def verify(self, kind: TokenKind, token: str) -> dict[str, Any]:
        """Decode *token* as a *kind* token.

        Raises:
            TokenExpiredError: The signature is valid but ``exp`` has passed.
            TokenError: Any other failure (bad signature, wrong kind, malformed).
        """
        if not token:
            raise TokenError("empty token")
        try:
            claims = jwt.decode(
                token,
                self._secret(kind),
                algorithms=[self._ALGORITHM],
                audience=self._audience(kind),
                issuer=self._settings.jwt_issuer,
                options={"require": ["exp", "iat", "sub", "typ"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError(str(e)) from e
        except jwt.InvalidTokenError as e:
            raise TokenError(str(e)) from e
        if claims.get("typ") != kind.value:
            raise TokenError(f"not a {kind.value} token")
        return claims


class OtpService:
    """Issues and checks hashed numeric one-time codes."""

    def __init__(self, token_settings: TokenSettings, policy: AuthPolicySettings) -> None:
        if not token_settings.otp_secret:
            raise RuntimeError("OTP_SECRET is not configured")
        self._key = token_settings.otp_secret
        self._length = policy.otp_length
        self._ttl = timedelta(seconds=policy.otp_ttl_seconds)

    def issue(self, now: datetime) -> IssuedOtp:
        code = generate_otp_code(self._length)
        return IssuedOtp(
            code=code, code_hash=hash_otp(code, self._key), expires_at=now + self._ttl
        )

    def matches(
        self,
        code: str,
        stored_hash: Optional[str],
        expires_at: Optional[datetime],
        now: datetime,
    ) -> bool:
        """True only when the digest matches and *now* is strictly before expiry."""
        if stored_hash is None or expires_at is None:
            return False
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if now >= expires_at:
            return False
        return otp_matches(code, stored_hash, self._key)
