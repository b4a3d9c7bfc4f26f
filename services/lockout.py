"""
Per-account failed-login tracking.

An account is either unlocked or locked until ``locked_until``. It becomes
locked when ``failed_login_attempts`` reaches ``max_attempts`` and unlocks
either on a successful login or lazily, the next time ``is_locked`` looks at it
after the lock period has passed.
"""
from __future__ import annotations

import logging
from datetime import timedelta

from models import storage
from models.user import User
from utils.clock import Clock

logger = logging.getLogger(__name__)


class LockoutTracker:
    def __init__(self, max_attempts: int, lockout_duration: timedelta, clock: Clock | None = None):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.lockout_duration = lockout_duration
        self.clock = clock or Clock()

    def on_success(self, username: str) -> None:
        session = storage.get_session()
        updated = (
            session.query(User)
            .filter(User.username == username)
            .update(
                {
                    User.failed_login_attempts: 0,
                    User.locked_until: None,
                    User.last_login_at: self.clock.now(),
                },
                synchronize_session=False,
            )
        )
        storage.save()
        if updated:
            self._expire_cached(username)

    def on_failure(self, username: str) -> None:
        session = storage.get_session()
        # Increment in SQL so concurrent failures never overwrite each other.
        updated = (
            session.query(User)
            .filter(User.username == username)
            .update(
                {User.failed_login_attempts: User.failed_login_attempts + 1},
                synchronize_session=False,
            )
        )
        if not updated:
            storage.rollback()
            return
        storage.save()

        attempts = session.query(User.failed_login_attempts).filter(User.username == username).scalar()
        if attempts is not None and attempts >= self.max_attempts:
            locked_until = self.clock.now() + self.lockout_duration
            session.query(User).filter(User.username == username).update(
                {User.locked_until: locked_until}, synchronize_session=False
            )
            storage.save()
            logger.warning("Account %s locked until %s after %d failed attempts", username, locked_until, attempts)
        self._expire_cached(username)

    def lock_active(self, account: User) -> bool:
        """Pure check: is the lock still in force right now?"""
        if account.locked_until is None:
            return False
        return not self.clock.now() > account.locked_until

    def unlock(self, account: User) -> None:
        account.failed_login_attempts = 0
        account.locked_until = None
        storage.new(account)
        storage.save()
        logger.info("Account %s unlocked", account.username)

    def is_locked(self, account: User) -> bool:
        """Lock check that also clears an elapsed lock as a side effect."""
        if account.locked_until is None:
            return False
        if self.lock_active(account):
            return True
        self.unlock(account)
        return False

    def _expire_cached(self, username: str) -> None:
        # Bulk updates bypass the identity map; make loaded instances re-read.
        session = storage.get_session()
        for obj in list(session.identity_map.values()):
            if isinstance(obj, User) and obj.username == username:
                session.expire(obj)
