"""
Client IP resolution for FastAPI requests.

Used to key request throttles. The function takes an explicit ``Request`` so
it is testable without a running server.
"""

from __future__ import annotations

from fastapi import Request

_PROXY_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "X-Forwarded-For",
    "X-Real-IP",
)


def get_client_ip(request: Request, trust_proxy_headers: bool = True) -> str:
    """Extract the real client IP from a FastAPI ``Request``.

    When *trust_proxy_headers* is set, proxy headers are checked in priority
    order (Cloudflare, the first hop of ``X-Forwarded-For``, nginx) before
    falling back to the direct connection address.

    Returns:
        The resolved client IP string, or ``"unknown"`` if none can be found.
    """
    if trust_proxy_headers:
        for header in _PROXY_HEADERS:
            value = request.headers.get(header)
            if value:
                client_ip = value.split(",")[0].strip()
                if client_ip:
                    return client_ip

    return request.client.host if request.client else "unknown"
