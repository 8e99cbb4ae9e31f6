"""AWS Cognito implementation of MfaProvider.

boto3 is synchronous, so every call runs in a worker thread via
``asyncio.to_thread`` to keep the event loop free. Cognito error codes are
translated into the MfaError hierarchy.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import CognitoSettings
from infrastructure.mfa.protocol import (
    InitiateResult,
    MfaChallenge,
    MfaCodeExpiredError,
    MfaCodeMismatchError,
    MfaIdentityExistsError,
    MfaInvalidParametersError,
    MfaProviderError,
    ProviderTokens,
)
from shared.logging import get_logger

log = get_logger(__name__)

# Challenge name → key Cognito expects the answer under
_CHALLENGE_ANSWER_KEYS = {
    "SMS_MFA": "SMS_MFA_CODE",
    "SOFTWARE_TOKEN_MFA": "SOFTWARE_TOKEN_MFA_CODE",
    "CUSTOM_CHALLENGE": "ANSWER",
    "EMAIL_OTP": "EMAIL_OTP_CODE",
}

_ERROR_MAP = {
    "NotAuthorizedException": MfaCodeMismatchError,
    "CodeMismatchException": MfaCodeMismatchError,
    "ExpiredCodeException": MfaCodeExpiredError,
    "InvalidParameterException": MfaInvalidParametersError,
    "UsernameExistsException": MfaIdentityExistsError,
}


def _to_provider_tokens(result: dict[str, Any]) -> ProviderTokens:
    return ProviderTokens(
        access_token=result.get("AccessToken"),
        id_token=result.get("IdToken"),
        refresh_token=result.get("RefreshToken"),
        expires_in=result.get("ExpiresIn"),
    )


class CognitoMfaProvider:
    def __init__(self, settings: CognitoSettings, client: Optional[Any] = None) -> None:
        self._settings = settings
        self._client = client or boto3.client(
            "cognito-idp", region_name=settings.aws_region
        )

    def _secret_hash(self, username: str) -> Optional[str]:
        secret = self._settings.cognito_client_secret
        if not secret:
            return None
        digest = hmac.new(
            secret.encode("utf-8"),
            (username + self._settings.cognito_client_id).encode("utf-8"),
            hashlib.sha256,
        ).digest()
        return base64.b64encode(digest).decode("ascii")

    async def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        method = getattr(self._client, operation)
        try:
            return await asyncio.to_thread(method, **params)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            log.warning("cognito_call_failed", operation=operation, error_code=code)
            raise _ERROR_MAP.get(code, MfaProviderError)(code or str(e)) from e
        except BotoCoreError as e:
            log.error("cognito_unreachable", operation=operation, error=str(e))
            raise MfaProviderError(str(e)) from e

    async def initiate_challenge(self, email: str, password: str) -> InitiateResult:
        auth_params = {"USERNAME": email, "PASSWORD": password}
        secret_hash = self._secret_hash(email)
        if secret_hash:
            auth_params["SECRET_HASH"] = secret_hash

        response = await self._call(
            "initiate_auth",
            AuthFlow="USER_PASSWORD_AUTH",
            ClientId=self._settings.cognito_client_id,
            AuthParameters=auth_params,
        )
        challenge_name = response.get("ChallengeName")
        if challenge_name:
            return InitiateResult(
                challenge=MfaChallenge(
                    challenge_name=challenge_name,
                    session=response.get("Session", ""),
                    parameters=response.get("ChallengeParameters") or {},
                )
            )
        return InitiateResult(
            tokens=_to_provider_tokens(response.get("AuthenticationResult") or {})
        )

    async def complete_challenge(
        self, email: str, session: str, challenge_name: str, code: str
    ) -> ProviderTokens:
        answer_key = _CHALLENGE_ANSWER_KEYS.get(challenge_name, "EMAIL_OTP_CODE")
        responses = {"USERNAME": email, answer_key: code}
        secret_hash = self._secret_hash(email)
        if secret_hash:
            responses["SECRET_HASH"] = secret_hash

        response = await self._call(
            "respond_to_auth_challenge",
            ChallengeName=challenge_name,
            ClientId=self._settings.cognito_client_id,
            Session=session,
            ChallengeResponses=responses,
        )
        result = response.get("AuthenticationResult")
        if not result:
            # Cognito answered with a further challenge we do not chain
            raise MfaProviderError(
                f"unexpected follow-up challenge: {response.get('ChallengeName')}"
            )
        return _to_provider_tokens(result)

    async def provision_identity(self, email: str, temporary_password: str) -> str:
        """Create (or adopt), set the permanent password for, and enable a pool user.

        Safe to repeat: a user left behind by an earlier attempt is looked up
        instead of created.

        Returns:
            The Cognito ``sub`` of the user.
        """
        pool_id = self._settings.cognito_user_pool_id
        try:
            created = await self._call(
                "admin_create_user",
                UserPoolId=pool_id,
                Username=email,
                UserAttributes=[
                    {"Name": "email", "Value": email},
                    {"Name": "email_verified", "Value": "true"},
                ],
                TemporaryPassword=temporary_password,
                MessageAction="SUPPRESS",
            )
            attributes = created.get("User", {}).get("Attributes", [])
        except MfaIdentityExistsError:
            log.info("cognito_identity_exists", operation="admin_create_user")
            existing = await self._call("admin_get_user", UserPoolId=pool_id, Username=email)
            attributes = existing.get("UserAttributes", [])

        sub = next((a["Value"] for a in attributes if a.get("Name") == "sub"), None)
        if not sub:
            raise MfaProviderError("provider did not return a subject id")

        await self.set_password(email, temporary_password)
        await self._call("admin_enable_user", UserPoolId=pool_id, Username=email)

        log.info("cognito_identity_provisioned", subject_id=sub)
        return sub

    async def set_password(self, email: str, password: str) -> None:
        await self._call(
            "admin_set_user_password",
            UserPoolId=self._settings.cognito_user_pool_id,
            Username=email,
            Password=password,
            Permanent=True,
        )
