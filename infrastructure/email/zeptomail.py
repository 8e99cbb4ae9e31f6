"""ZeptoMail implementation of EmailProvider.

Delivers already-rendered messages through the ZeptoMail REST API using the
shared async HttpClient. Never raises: every failure is logged and reported
as ``False`` so the caller decides how to surface it.
"""

from typing import Optional

from config import EmailSettings
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)

_ZEPTO_API_URL = "https://api.zeptomail.com/v1.1/email"


class ZeptoMailProvider:
    def __init__(self, settings: EmailSettings, http_client: HttpClient) -> None:
        self._settings = settings
        self._http = http_client

    def _auth_header(self) -> str:
        token = self._settings.zepto_api_token
        if not token.startswith("Zoho-enczapikey "):
            token = f"Zoho-enczapikey {token}"
        return token

    async def send(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: Optional[str] = None,
    ) -> bool:
        if not self._settings.zepto_api_token:
            log.error("email_send_failed", reason="token_not_configured")
            return False

        payload: dict = {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [{"email_address": {"address": to_email, "name": to_email}}],
            "subject": subject,
            "htmlbody": html_body,
        }
        if text_body:
            payload["textbody"] = text_body

        headers = {
            "Authorization": self._auth_header(),
            "Content-Type": "application/json",
        }

        try:
            response = await self._http.post(
                _ZEPTO_API_URL, json=payload, headers=headers
            )
        except Exception as e:
            log.error(
                "email_send_error",
                to_email=to_email,
                subject=subject,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        if response.status_code in (200, 201, 202):
            log.info("email_sent", to_email=to_email, subject=subject)
            return True
        log.error(
            "email_send_failed",
            to_email=to_email,
            subject=subject,
            status_code=response.status_code,
            response=response.text[:200],
        )
        return False
