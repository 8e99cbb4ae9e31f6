"""
Shared test fakes and fixtures.

The fakes implement the same Protocols as the production adapters so the
real AuthService, TokenService, OtpService and AccountNotifier run unchanged
on top of them. Nothing here touches MongoDB, Redis, ZeptoMail or Cognito.
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

import pytest
from bson import ObjectId

from config import AuthPolicySettings, TokenSettings
from infrastructure.mfa.protocol import (
    InitiateResult,
    MfaChallenge,
    MfaCodeMismatchError,
    ProviderTokens,
)
from repositories.protocol import DuplicateEmailError
from schemas.models.account import AccountDoc, AccountStatus
from services.auth_service import AuthService
from services.login_strategies import DirectLogin, MfaDelegatedLogin
from services.notifications import AccountNotifier
from services.token_service import OtpService, TokenService
from shared.crypto import hash_password
from shared.datetime_utils import utc_now
from shared.validators import normalize_email

_LINK_RE = re.compile(r"https?://\S+")
_OTP_RE = re.compile(r"code is: (\d+)")


class InMemoryAccountRepository:
    """Dict-backed AccountRepository with the same conditional-write rules."""

    def __init__(self) -> None:
        self.docs: dict[str, dict[str, Any]] = {}
        self.fail_next_compare = False

    async def find_by_email(self, email: str) -> Optional[AccountDoc]:
        email = normalize_email(email)
        for doc in self.docs.values():
            if doc["email"] == email:
                return AccountDoc.from_mongo(dict(doc))
        return None

    async def find_by_id(self, account_id: str) -> Optional[AccountDoc]:
        doc = self.docs.get(str(account_id))
        return AccountDoc.from_mongo(dict(doc)) if doc else None

    async def create(self, account: AccountDoc) -> AccountDoc:
        data = account.to_mongo()
        data["email"] = normalize_email(account.email)
        if any(d["email"] == data["email"] for d in self.docs.values()):
            raise DuplicateEmailError(data["email"])
        data["_id"] = ObjectId()
        data["created_at"] = data.get("created_at") or utc_now()
        data["updated_at"] = utc_now()
        self.docs[str(data["_id"])] = data
        return AccountDoc.from_mongo(dict(data))

    async def update(self, account_id: str, changes: dict[str, Any]) -> Optional[AccountDoc]:
        return await self.compare_and_update(account_id, {}, changes)

    async def compare_and_update(
        self, account_id: str, expected: dict[str, Any], changes: dict[str, Any]
    ) -> Optional[AccountDoc]:
        doc = self.docs.get(str(account_id))
        if doc is None:
            return None
        if self.fail_next_compare and expected:
            # Simulates a concurrent writer winning the race
            self.fail_next_compare = False
            return None
        if any(doc.get(key) != value for key, value in expected.items()):
            return None
        doc.update(changes)
        doc["updated_at"] = utc_now()
        return AccountDoc.from_mongo(dict(doc))


class FakeEmailProvider:
    """Records every message; ``fail=True`` makes send() report failure."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = False

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> bool:
        if self.fail:
            return False
        self.sent.append(
            {"to": to_email, "subject": subject, "html": html_body, "text": text_body}
        )
        return True

    def last_verification_token(self) -> str:
        link = _LINK_RE.search(self.sent[-1]["text"]).group(0)
        return parse_qs(urlparse(link).query)["token"][0]

    def last_otp_code(self) -> str:
        return _OTP_RE.search(self.sent[-1]["text"]).group(1)


class FakeMfaProvider:
    """Scriptable MfaProvider. Set ``*_error`` attributes to make calls raise."""

    def __init__(self) -> None:
        self.challenge = MfaChallenge(challenge_name="EMAIL_OTP", session="sess-1")
        self.tokens = ProviderTokens(
            access_token="idp-access", id_token="idp-id", refresh_token="idp-refresh"
        )
        self.skip_challenge = False
        self.expected_code = "123456"
        self.initiate_error: Optional[Exception] = None
        self.complete_error: Optional[Exception] = None
        self.provision_error: Optional[Exception] = None
        self.set_password_error: Optional[Exception] = None
        self.provisioned: list[tuple[str, str]] = []
        # Passwords the provider holds, by email; a login must match them
        self.passwords: dict[str, str] = {}
        self.subjects: dict[str, str] = {}

    async def initiate_challenge(self, email: str, password: str) -> InitiateResult:
        if self.initiate_error:
            raise self.initiate_error
        if email in self.passwords and self.passwords[email] != password:
            raise MfaCodeMismatchError("NotAuthorizedException")
        if self.skip_challenge:
            return InitiateResult(tokens=self.tokens)
        return InitiateResult(challenge=self.challenge)

    async def complete_challenge(
        self, email: str, session: str, challenge_name: str, code: str
    ) -> ProviderTokens:
        if self.complete_error:
            raise self.complete_error
        return self.tokens

    async def provision_identity(self, email: str, temporary_password: str) -> str:
        if self.provision_error:
            raise self.provision_error
        if email not in self.subjects:
            self.provisioned.append((email, temporary_password))
            self.subjects[email] = f"sub-{len(self.provisioned)}"
        self.passwords[email] = temporary_password
        return self.subjects[email]

    async def set_password(self, email: str, password: str) -> None:
        if self.set_password_error:
            raise self.set_password_error
        self.passwords[email] = password


class FakeClock:
    """Injectable clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = utc_now()

    def __call__(self):
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def token_settings() -> TokenSettings:
    return TokenSettings(
        access_token_secret="test-access-secret-0123456789abcdef",
        refresh_token_secret="test-refresh-secret-0123456789abcdef",
        email_verification_secret="test-verify-secret-0123456789abcdef",
        reset_token_secret="test-reset-secret-0123456789abcdef",
        otp_secret="test-otp-secret-0123456789abcdef",
        cookie_secure=False,
    )


@pytest.fixture
def policy() -> AuthPolicySettings:
    return AuthPolicySettings(verify_email_url="https://app.example.com/verify-email")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def account_repo() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def email_provider() -> FakeEmailProvider:
    return FakeEmailProvider()


@pytest.fixture
def mfa_provider() -> FakeMfaProvider:
    return FakeMfaProvider()


@pytest.fixture
def token_service(token_settings) -> TokenService:
    return TokenService(token_settings)


@pytest.fixture
def otp_service(token_settings, policy) -> OtpService:
    return OtpService(token_settings, policy)


@pytest.fixture
def notifier(email_provider, policy) -> AccountNotifier:
    return AccountNotifier(
        email_provider,
        app_name="Account Service",
        verify_email_url=policy.verify_email_url,
    )


@pytest.fixture
def auth_service(
    account_repo, token_service, otp_service, notifier, policy, clock
) -> AuthService:
    return AuthService(
        account_repo, token_service, otp_service, notifier, DirectLogin(), policy, clock
    )


@pytest.fixture
def mfa_auth_service(
    account_repo, token_service, otp_service, notifier, policy, clock, mfa_provider
) -> AuthService:
    return AuthService(
        account_repo,
        token_service,
        otp_service,
        notifier,
        MfaDelegatedLogin(mfa_provider),
        policy,
        clock,
    )


@pytest.fixture
def create_account(account_repo):
    """Insert an account directly, bypassing registration."""

    async def _create(
        email: str = "user@example.com",
        password: Optional[str] = "Secret-pw1",
        *,
        verified: bool = True,
        status: AccountStatus = AccountStatus.ACTIVE,
        **fields: Any,
    ) -> AccountDoc:
        return await account_repo.create(
            AccountDoc(
                email=email,
                password_hash=hash_password(password) if password else None,
                email_verified=verified,
                status=status,
                **fields,
            )
        )

    return _create
