"""
Cryptographic helpers: password hashing and one-time code hashing.

Uses argon2id for passwords (via argon2-cffi) and keyed HMAC-SHA256 for
one-time codes, so a leaked account row cannot be brute-forced offline
without the server-side OTP key.
"""

from __future__ import annotations

import hashlib
import hmac

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_password_hasher = PasswordHasher()

# Verified against when the account does not exist so both login failure
# paths spend the same hashing time.
_DUMMY_HASH = _password_hasher.hash("dummy-password-for-timing")


def hash_password(plain_password: str) -> str:
    """Hash *plain_password* with argon2id.

    Returns:
        Argon2 hash string (includes algorithm parameters and salt).
    """
    return _password_hasher.hash(plain_password)


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Verify *plain_password* against an argon2 *password_hash*.

    A missing hash (federated login method, unknown account) is checked
    against a dummy hash and always fails.

    Returns:
        ``True`` if the password matches, ``False`` for any failure
        (wrong password, invalid hash, etc.).
    """
    if not password_hash:
        try:
            _password_hasher.verify(_DUMMY_HASH, plain_password + "\x00")
        except VerificationError:
            pass
        return False
    try:
        return _password_hasher.verify(password_hash, plain_password)
    except (VerificationError, InvalidHashError):
        return False


def password_needs_rehash(password_hash: str) -> bool:
    """True when *password_hash* was produced with outdated argon2 parameters."""
    return _password_hasher.check_needs_rehash(password_hash)


def hash_otp(code: str, key: str) -> str:
    """Return the hex-encoded HMAC-SHA256 of *code* under *key*.

    Only this digest is persisted; the plaintext code is never stored.
    """
    return hmac.new(key.encode("utf-8"), code.encode("utf-8"), hashlib.sha256).hexdigest()


def otp_matches(code: str, stored_hash: str | None, key: str) -> bool:
    """Constant-time comparison of *code* against a stored OTP digest."""
    if not stored_hash:
        return False
    return hmac.compare_digest(hash_otp(code, key), stored_hash)
