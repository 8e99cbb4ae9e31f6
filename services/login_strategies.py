"""
Credential issuance strategies.

Exactly one strategy is chosen at composition time from ``LOGIN_MODE``:

- DirectLogin: a correct password is enough; the service issues tokens.
- MfaDelegatedLogin: a correct password starts a provider-hosted challenge;
  tokens are only issued once the challenge is answered. Email verification
  also provisions the account in the provider.

The state machine calls the strategy at four seams (begin, complete,
provision, update_password) and never branches on the deployment mode itself.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

from errors import InternalError, UnauthorizedError, ValidationError
from infrastructure.mfa.protocol import (
    InitiateResult,
    MfaCodeExpiredError,
    MfaCodeMismatchError,
    MfaError,
    MfaInvalidParametersError,
    MfaProvider,
    MfaProviderError,
    ProviderTokens,
)
from schemas.models.account import AccountDoc
from shared.logging import get_logger

log = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


class LoginStrategy(Protocol):
    name: str
    # True when registration must keep the password until provisioning
    captures_registration_password: bool

    async def begin(self, account: AccountDoc, password: str) -> Optional[InitiateResult]: ...

    async def complete(
        self, email: str, session: str, challenge_name: str, code: str
    ) -> ProviderTokens: ...

    async def provision(self, account: AccountDoc) -> dict[str, Any]: ...

    async def update_password(self, account: AccountDoc, password: str) -> None: ...


class DirectLogin:
    name = "direct"
    captures_registration_password = False

    async def begin(self, account: AccountDoc, password: str) -> Optional[InitiateResult]:
        return None

    async def complete(
        self, email: str, session: str, challenge_name: str, code: str
    ) -> ProviderTokens:
        raise ValidationError("MFA login is not enabled", code="mfa_not_enabled")

    async def provision(self, account: AccountDoc) -> dict[str, Any]:
        return {}

    async def update_password(self, account: AccountDoc, password: str) -> None:
        return None


class MfaDelegatedLogin:
    name = "mfa"
    captures_registration_password = True

    def __init__(self, provider: MfaProvider) -> None:
        self._provider = provider

    async def begin(self, account: AccountDoc, password: str) -> Optional[InitiateResult]:
        try:
            return await self._provider.initiate_challenge(account.email, password)
        except MfaCodeMismatchError as e:
            # Local hash matched but the provider disagrees; answer uniformly
            log.warning("mfa_initiate_rejected", account_id=account.account_id)
            raise UnauthorizedError(INVALID_CREDENTIALS, code="invalid_credentials") from e
        except MfaInvalidParametersError as e:
            raise ValidationError("Invalid MFA parameters", code="invalid_mfa_parameters") from e
        except MfaProviderError as e:
            log.error("mfa_provider_failed", stage="begin", error=str(e))
            raise InternalError("Identity provider request failed") from e

    async def complete(
        self, email: str, session: str, challenge_name: str, code: str
    ) -> ProviderTokens:
        try:
            return await self._provider.complete_challenge(email, session, challenge_name, code)
        except MfaCodeMismatchError as e:
            raise UnauthorizedError(
                "Invalid verification code", code="invalid_mfa_code"
            ) from e
        except MfaCodeExpiredError as e:
            raise UnauthorizedError(
                "Verification code has expired", code="mfa_code_expired"
            ) from e
        except MfaInvalidParametersError as e:
            raise ValidationError("Invalid MFA parameters", code="invalid_mfa_parameters") from e
        except MfaProviderError as e:
            log.error("mfa_provider_failed", stage="complete", error=str(e))
            raise InternalError("Identity provider request failed") from e

    async def provision(self, account: AccountDoc) -> dict[str, Any]:
        """Create the provider identity and drop the held password."""
        if account.external_subject_id:
            return {"provisioning_secret": None}
        if not account.provisioning_secret:
            log.error("mfa_provision_missing_secret", account_id=account.account_id)
            raise InternalError("Account provisioning failed")
        try:
            subject_id = await self._provider.provision_identity(
                account.email, account.provisioning_secret
            )
        except MfaError as e:
            log.error("mfa_provision_failed", account_id=account.account_id, error=str(e))
            raise InternalError("Account provisioning failed") from e
        return {"external_subject_id": subject_id, "provisioning_secret": None}

    async def update_password(self, account: AccountDoc, password: str) -> None:
        """Push a changed password to the provider identity, if one exists yet."""
        if not account.external_subject_id:
            return
        try:
            await self._provider.set_password(account.email, password)
        except MfaError as e:
            log.error("mfa_password_sync_failed", account_id=account.account_id, error=str(e))
            raise InternalError(
                "Password was changed but the identity provider could not be updated. "
                "Please reset your password again."
            ) from e
        log.info("mfa_password_synced", account_id=account.account_id)
