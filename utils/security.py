"""
security helpers:
- Argon2 password hashing via argon2-cffi
- Client IP / user agent extraction for the current request
"""
from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from flask import has_request_context, request

ph = PasswordHasher()

# Verified against when the username is unknown so both paths cost one argon2 run.
_DUMMY_HASH = ph.hash("dummy-password-for-timing")


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return ph.verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except (InvalidHashError, VerificationError):
        return False


def burn_verification(password: str) -> None:
    """Spend the same work as a real check without a real hash."""
    verify_password(password, _DUMMY_HASH)


def client_ip() -> str | None:
    """
    Client address for the current request.
    Forwarded headers are resolved by ProxyFix (TRUSTED_PROXY_HOPS), so a
    client cannot choose its own address by sending X-Forwarded-For.
    """
    if not has_request_context():
        return None
    return request.remote_addr


def user_agent() -> str | None:
    if not has_request_context():
        return None
    return request.headers.get("User-Agent")
