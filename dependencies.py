"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. Everything they hand out is built once in the
app lifespan and parked on app.state.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from config import AppSettings
from infrastructure.rate_limiter import RateLimiter
from routes.cookies import ACCESS_COOKIE
from schemas.models.account import AccountDoc
from services.auth_service import AuthService


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return request.cookies.get(ACCESS_COOKIE)


async def get_current_account(
    request: Request, service: AuthService = Depends(get_auth_service)
) -> AccountDoc:
    """Resolve the caller from ``Authorization: Bearer`` or the access cookie.

    Raises UnauthorizedError / ForbiddenError through the service.
    """
    return await service.authenticate(_bearer_token(request))
