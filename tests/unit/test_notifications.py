"""Unit tests for AccountNotifier and the login strategies."""

from urllib.parse import parse_qs, urlparse

import pytest

from errors import DeliveryError, InternalError, UnauthorizedError, ValidationError
from infrastructure.mfa.protocol import (
    MfaCodeMismatchError,
    MfaInvalidParametersError,
    MfaProviderError,
)
from schemas.models.account import AccountDoc
from services.login_strategies import DirectLogin, MfaDelegatedLogin
from services.notifications import AccountNotifier


class TestAccountNotifier:
    def test_verification_link_appends_token(self, notifier):
        link = notifier.verification_link("abc.def")
        assert parse_qs(urlparse(link).query) == {"token": ["abc.def"]}

    def test_verification_link_keeps_existing_query(self, email_provider):
        notifier = AccountNotifier(
            email_provider, app_name="X", verify_email_url="https://x.test/v?lang=en"
        )
        query = parse_qs(urlparse(notifier.verification_link("t")).query)
        assert query == {"lang": ["en"], "token": ["t"]}

    async def test_send_verification_renders_link(self, notifier, email_provider):
        await notifier.send_verification("u@e.com", "Alice", "tok", committed={})
        message = email_provider.sent[0]
        assert message["to"] == "u@e.com"
        assert "Verify your email" in message["subject"]
        assert notifier.verification_link("tok") in message["html"].replace("&amp;", "&")
        assert "Alice" in message["html"]
        assert email_provider.last_verification_token() == "tok"

    async def test_send_reset_otp_renders_code(self, notifier, email_provider):
        await notifier.send_password_reset_otp("u@e.com", None, "042917", committed={})
        message = email_provider.sent[0]
        assert "042917" in message["html"]
        assert "10 minutes" in message["text"]
        assert email_provider.last_otp_code() == "042917"

    async def test_html_is_escaped(self, notifier, email_provider):
        await notifier.send_verification("u@e.com", "<script>", "tok", committed={})
        assert "<script>" not in email_provider.sent[0]["html"]

    async def test_failed_send_raises_delivery_error(self, notifier, email_provider):
        email_provider.fail = True
        with pytest.raises(DeliveryError) as exc:
            await notifier.send_password_reset_otp(
                "u@e.com", None, "123456", committed={"account_id": "a1"}
            )
        assert exc.value.details == {"account_id": "a1"}


class TestDirectLogin:
    async def test_begin_needs_no_challenge(self):
        assert await DirectLogin().begin(AccountDoc(email="u@e.com"), "pw") is None

    async def test_provision_is_noop(self):
        assert await DirectLogin().provision(AccountDoc(email="u@e.com")) == {}

    async def test_complete_not_available(self):
        with pytest.raises(ValidationError):
            await DirectLogin().complete("u@e.com", "s", "EMAIL_OTP", "1")

    async def test_update_password_is_noop(self):
        assert await DirectLogin().update_password(AccountDoc(email="u@e.com"), "pw") is None


class TestMfaDelegatedLogin:
    async def test_provision_creates_identity(self, mfa_provider):
        account = AccountDoc(email="u@e.com", provisioning_secret="Temp-pw1")
        changes = await MfaDelegatedLogin(mfa_provider).provision(account)
        assert changes == {"external_subject_id": "sub-1", "provisioning_secret": None}

    async def test_provision_skips_already_provisioned(self, mfa_provider):
        account = AccountDoc(email="u@e.com", external_subject_id="sub-0")
        changes = await MfaDelegatedLogin(mfa_provider).provision(account)
        assert changes == {"provisioning_secret": None}
        assert mfa_provider.provisioned == []

    async def test_update_password_pushes_to_provisioned_identity(self, mfa_provider):
        account = AccountDoc(email="u@e.com", external_subject_id="sub-0")
        await MfaDelegatedLogin(mfa_provider).update_password(account, "New-pw1!")
        assert mfa_provider.passwords == {"u@e.com": "New-pw1!"}

    async def test_update_password_skips_unprovisioned(self, mfa_provider):
        mfa_provider.set_password_error = MfaProviderError("must not be called")
        account = AccountDoc(email="u@e.com", provisioning_secret="Temp-pw1")
        await MfaDelegatedLogin(mfa_provider).update_password(account, "New-pw1!")
        assert mfa_provider.passwords == {}

    async def test_provision_without_held_password(self, mfa_provider):
        with pytest.raises(InternalError):
            await MfaDelegatedLogin(mfa_provider).provision(AccountDoc(email="u@e.com"))

    @pytest.mark.parametrize(
        "error, expected",
        [
            (MfaCodeMismatchError("x"), UnauthorizedError),
            (MfaInvalidParametersError("x"), ValidationError),
        ],
        ids=["rejected", "bad_params"],
    )
    async def test_begin_maps_errors(self, mfa_provider, error, expected):
        mfa_provider.initiate_error = error
        with pytest.raises(expected):
            await MfaDelegatedLogin(mfa_provider).begin(AccountDoc(email="u@e.com"), "pw")
