"""
Auth cookie helpers.

Only the refresh token is ever written to a cookie. The access token cookie
name is still read by the auth guard and cleared on logout so clients that
store it there get a clean sign-out.
"""

from __future__ import annotations

from fastapi import Response

from config import TokenSettings

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


def set_refresh_cookie(response: Response, token: str, settings: TokenSettings) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        token,
        max_age=settings.refresh_token_ttl_seconds,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
    )


def clear_auth_cookies(response: Response, settings: TokenSettings) -> None:
    """Delete both auth cookies; deleting an absent cookie is harmless."""
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(
            name,
            path="/",
            httponly=True,
            secure=settings.cookie_secure,
            samesite=settings.cookie_samesite,
        )
