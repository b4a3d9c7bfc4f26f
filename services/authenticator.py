"""
Credential check used by the session orchestrator.

Only knows how to compare a password against the stored argon2 hash; it has no
opinion about lockout or rate limits.
"""
from __future__ import annotations

from models import storage
from models.user import User
from services.token_issuer import Principal
from utils.security import burn_verification, verify_password


class AuthenticationFailed(Exception):
    """Credentials rejected. ``reason`` is for the audit trail only."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def principal_for(user: User) -> Principal:
    return Principal(
        username=user.username,
        roles=list(user.roles or []),
        user_id=user.id,
        email=user.email,
    )


class Authenticator:
    def find_account(self, username: str) -> User | None:
        if not username:
            return None
        session = storage.get_session()
        return session.query(User).filter(User.username == username).first()

    def verify(self, username: str, password: str) -> Principal:
        user = self.find_account(username)
        if user is None:
            burn_verification(password)
            raise AuthenticationFailed("unknown username")
        if not verify_password(password, user.password_hash):
            raise AuthenticationFailed("bad password")
        if not user.enabled:
            raise AuthenticationFailed("account disabled")
        return principal_for(user)

    def check_password(self, user: User, password: str) -> bool:
        return verify_password(password, user.password_hash)
