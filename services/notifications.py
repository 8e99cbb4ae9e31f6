"""Renders and dispatches account notifications.

Rendering lives here, not in the email provider: the provider only delivers.
A provider returning False becomes a DeliveryError carrying what was already
committed, so callers can tell "state changed, email failed" apart from a
fully failed operation.
"""

from __future__ import annotations

import os
from typing import Any, Optional
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, select_autoescape

from errors import DeliveryError
from infrastructure.email.protocol import EmailProvider
from shared.logging import get_logger

log = get_logger(__name__)

_DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(__file__)), "templates", "emails"
)


class AccountNotifier:
    def __init__(
        self,
        provider: EmailProvider,
        *,
        app_name: str,
        verify_email_url: str,
        otp_ttl_minutes: int = 10,
        template_dir: str = _DEFAULT_TEMPLATE_DIR,
    ) -> None:
        self._provider = provider
        self._app_name = app_name
        self._verify_email_url = verify_email_url
        self._otp_ttl_minutes = otp_ttl_minutes
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def verification_link(self, token: str) -> str:
        separator = "&" if "?" in self._verify_email_url else "?"
        return f"{self._verify_email_url}{separator}{urlencode({'token': token})}"

    def _render(self, template: str, **context: Any) -> str:
        return self._jinja.get_template(template).render(
            app_name=self._app_name, **context
        )

    async def _dispatch(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str,
        *,
        kind: str,
        committed: dict[str, Any],
    ) -> None:
        sent = await self._provider.send(to_email, subject, html_body, text_body)
        if not sent:
            log.error("notification_failed", kind=kind, **committed)
            raise DeliveryError(
                "The request was processed but the email could not be sent. "
                "Please use the resend option.",
                details=committed,
            )
        log.info("notification_sent", kind=kind, **committed)

    async def send_verification(
        self,
        email: str,
        name: Optional[str],
        token: str,
        *,
        committed: dict[str, Any],
    ) -> None:
        link = self.verification_link(token)
        html_body = self._render("verification.html", link=link, name=name)
        text_body = (
            f"Verify your email - {self._app_name}\n\n"
            f"Hello{f' {name}' if name else ''},\n\n"
            f"Confirm your address by opening this link:\n{link}\n\n"
            f"The link expires in 1 hour."
        )
        await self._dispatch(
            email,
            f"Verify your email - {self._app_name}",
            html_body,
            text_body,
            kind="email_verification",
            committed=committed,
        )

    async def send_password_reset_otp(
        self,
        email: str,
        name: Optional[str],
        otp_code: str,
        *,
        committed: dict[str, Any],
    ) -> None:
        html_body = self._render(
            "password_reset.html",
            otp_code=otp_code,
            name=name,
            ttl_minutes=self._otp_ttl_minutes,
        )
        text_body = (
            f"Reset your password - {self._app_name}\n\n"
            f"Hello{f' {name}' if name else ''},\n\n"
            f"Your password reset code is: {otp_code}\n\n"
            f"This code expires in {self._otp_ttl_minutes} minutes."
        )
        await self._dispatch(
            email,
            f"Password reset code - {self._app_name}",
            html_body,
            text_body,
            kind="password_reset_otp",
            committed=committed,
        )
