"""
Input validators: framework-agnostic, pure functions.

Password policy follows the registration rules: 8–128 characters with at
least one uppercase letter, lowercase letter, digit and special character.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from email_validator import EmailNotValidError, validate_email

_SPECIAL_CHARS = r'[!@#$%^&*()_+\-=\[\]{};\':"\\|,.<>\/?~`]'
_PHONE_RE = re.compile(r"^[0-9+\-\s()]{6,20}$")

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


def normalize_email(email: Optional[str]) -> str:
    """Lower-case and strip *email*; ``None`` becomes ``""``.

    Account lookups always go through this so email uniqueness is
    case-insensitive.
    """
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    """Syntax-only email check (no DNS lookups)."""
    if not email:
        return False
    try:
        validate_email(email, check_deliverability=False)
        return True
    except EmailNotValidError:
        return False


def validate_password(password: Optional[str]) -> Tuple[bool, List[str]]:
    """
    Validate password against the account password policy.

    Returns:
        Tuple[bool, List[str]]: (is_valid, missing_requirements)
    """
    if not password:
        return False, ["Password is required"]

    missing = []

    if len(password) < PASSWORD_MIN_LENGTH:
        missing.append(f"At least {PASSWORD_MIN_LENGTH} characters")
    if len(password) > PASSWORD_MAX_LENGTH:
        missing.append(f"Maximum {PASSWORD_MAX_LENGTH} characters")
    if not re.search(r"[A-Z]", password):
        missing.append("At least one uppercase letter")
    if not re.search(r"[a-z]", password):
        missing.append("At least one lowercase letter")
    if not re.search(r"[0-9]", password):
        missing.append("At least one number")
    if not re.search(_SPECIAL_CHARS, password):
        missing.append("At least one special character")

    return len(missing) == 0, missing


def is_valid_phone(phone: str) -> bool:
    return bool(_PHONE_RE.match(phone))


def is_valid_otp(code: Optional[str], length: Optional[int] = None) -> bool:
    """True when *code* is decimal digits, exactly *length* of them when given."""
    if not code or not code.isdigit():
        return False
    return length is None or len(code) == length
