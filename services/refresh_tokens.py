"""
Stateful refresh tokens.

A refresh token is an opaque random string that only means something once it
is looked up here. An account may hold many at once (one per device/session).
"""
from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from models import storage
from models.refresh_token import RefreshToken
from models.user import User
from services.errors import TokenExpired, TokenNotFound, TokenRevoked
from utils.clock import Clock

logger = logging.getLogger(__name__)

# 32 random bytes -> 256 bits of entropy, ~43 url-safe characters
TOKEN_BYTES = 32


class RefreshTokenStore:
    def __init__(self, ttl: timedelta, clock: Clock | None = None):
        self.ttl = ttl
        self.clock = clock or Clock()

    def create(self, account: User) -> RefreshToken:
        now = self.clock.now()
        rt = RefreshToken(
            token=secrets.token_urlsafe(TOKEN_BYTES),
            user_id=account.id,
            revoked=False,
            issued_at=now,
            expires_at=now + self.ttl,
        )
        storage.new(rt)
        storage.save()
        return rt

    def find(self, token: str) -> RefreshToken | None:
        if not token:
            return None
        session = storage.get_session()
        return session.query(RefreshToken).filter(RefreshToken.token == token).first()

    def verify(self, token: str) -> RefreshToken:
        rt = self.find(token)
        if rt is None:
            raise TokenNotFound()
        if rt.is_expired(self.clock.now()):
            storage.delete(rt)
            storage.save()
            raise TokenExpired()
        if rt.revoked:
            raise TokenRevoked()
        return rt

    def revoke(self, token: str) -> RefreshToken | None:
        """Mark one token revoked. Returns it, or None when it does not exist."""
        rt = self.find(token)
        if rt is None:
            return None
        rt.revoked = True
        storage.new(rt)
        storage.save()
        return rt

    def revoke_all(self, account: User) -> int:
        session = storage.get_session()
        count = (
            session.query(RefreshToken)
            .filter(RefreshToken.user_id == account.id, RefreshToken.revoked.is_(False))
            .update({RefreshToken.revoked: True}, synchronize_session=False)
        )
        storage.save()
        # Instances already loaded in this session must not keep revoked=False.
        for obj in list(session.identity_map.values()):
            if isinstance(obj, RefreshToken) and obj.user_id == account.id:
                session.expire(obj)
        logger.info("Revoked %d refresh tokens for %s", count, account.username)
        return count

    def purge_expired(self) -> int:
        session = storage.get_session()
        count = (
            session.query(RefreshToken)
            .filter(RefreshToken.expires_at <= self.clock.now())
            .delete(synchronize_session=False)
        )
        storage.save()
        if count:
            logger.info("Purged %d expired refresh tokens", count)
        return count
