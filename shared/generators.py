"""
Random code generators: pure, side-effect-free functions.

All generators use the ``secrets`` module (cryptographically secure source).
"""

from __future__ import annotations

import secrets
import string


def generate_otp_code(length: int = 6) -> str:
    """Generate a cryptographically secure numeric OTP.

    Leading zeros are allowed, so every code of *length* digits is equally
    likely.

    Args:
        length: Number of digits (default 6).

    Returns:
        String of random decimal digits.
    """
    return "".join(secrets.choice(string.digits) for _ in range(length))


def generate_token_id() -> str:
    """Random identifier embedded in signed tokens as the ``jti`` claim."""
    return secrets.token_hex(16)
