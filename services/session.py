"""
Login / refresh / logout / change-password use cases.

Gate order on login is fixed: rate limit, then lockout, then credentials.
Gate refusals never reach the password hasher. Every credential failure is
reported to the caller as the same InvalidCredentials error, while the audit
entry keeps the real reason.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from models import storage
from models.audit_log import (
    ACTION_LOGIN,
    ACTION_LOGIN_FAILED,
    ACTION_LOGOUT,
    ACTION_PASSWORD_CHANGED,
    RESOURCE_USER,
)
from models.user import User
from services.audit_trail import ANONYMOUS, AuditTrail
from services.authenticator import AuthenticationFailed, Authenticator, principal_for
from services.errors import (
    AccountLocked,
    InvalidCredentials,
    PasswordMismatch,
    RateLimited,
    TokenNotFound,
    Unauthenticated,
)
from services.lockout import LockoutTracker
from services.rate_limiter import RateLimiter
from services.refresh_tokens import RefreshTokenStore
from services.token_issuer import TokenIssuer
from utils.clock import Clock
from utils.security import hash_password

logger = logging.getLogger(__name__)

TOKEN_TYPE = "Bearer"


@dataclass
class LoginResult:
    access_token: str
    refresh_token: str
    username: str
    email: str | None
    roles: List[str] = field(default_factory=list)
    token_type: str = TOKEN_TYPE
    expires_in: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SessionOrchestrator:
    def __init__(
        self,
        rate_limiter: RateLimiter,
        lockout: LockoutTracker,
        authenticator: Authenticator,
        token_issuer: TokenIssuer,
        refresh_tokens: RefreshTokenStore,
        audit: AuditTrail,
        clock: Clock | None = None,
    ):
        self.rate_limiter = rate_limiter
        self.lockout = lockout
        self.authenticator = authenticator
        self.token_issuer = token_issuer
        self.refresh_tokens = refresh_tokens
        self.audit = audit
        self.clock = clock or Clock()

    def login(self, username: str, password: str, client_ip: str | None) -> LoginResult:
        ip = client_ip or "unknown"

        if not self.rate_limiter.consume(ip):
            self.audit.log_failure(
                ACTION_LOGIN_FAILED,
                RESOURCE_USER,
                username,
                details=f"Rate limit exceeded from IP: {ip}",
                error_message="Too many login attempts",
                actor=ANONYMOUS,
                ip=ip,
            )
            raise RateLimited()

        account = self.authenticator.find_account(username)
        if account is not None and self.lockout.is_locked(account):
            self.audit.log_failure(
                ACTION_LOGIN_FAILED,
                RESOURCE_USER,
                username,
                details=f"Login attempt on locked account from IP: {ip}",
                error_message="Account locked",
                actor=ANONYMOUS,
                ip=ip,
            )
            raise AccountLocked()

        try:
            principal = self.authenticator.verify(username, password)
        except AuthenticationFailed as exc:
            self.lockout.on_failure(username)
            self.audit.log_failure(
                ACTION_LOGIN_FAILED,
                RESOURCE_USER,
                username,
                details=f"Failed login attempt - invalid credentials ({exc.reason})",
                error_message="Invalid username or password",
                actor=ANONYMOUS,
                ip=ip,
            )
            logger.info("Failed login for %r from %s", username, ip)
            raise InvalidCredentials()

        self.lockout.on_success(principal.username)
        self.rate_limiter.reset(ip)

        if account is None:
            account = self.authenticator.find_account(principal.username)
        # Access token is pure computation; the refresh token commit is the
        # last step, so a failure there returns nothing at all.
        access_token = self.token_issuer.issue(principal)
        refresh = self.refresh_tokens.create(account)

        self.audit.log_success(
            ACTION_LOGIN,
            RESOURCE_USER,
            account.id,
            details=f"User logged in successfully from IP: {ip}",
            actor=account.username,
            ip=ip,
        )
        return LoginResult(
            access_token=access_token,
            refresh_token=refresh.token,
            username=principal.username,
            email=principal.email,
            roles=sorted(principal.roles),
            expires_in=self.token_issuer.expires_in,
        )

    def refresh(self, refresh_token: str) -> LoginResult:
        rt = self.refresh_tokens.verify(refresh_token)
        user = storage.get(User, rt.user_id)
        if user is None:
            raise TokenNotFound()
        principal = principal_for(user)
        return LoginResult(
            access_token=self.token_issuer.issue(principal),
            refresh_token=rt.token,
            username=principal.username,
            email=principal.email,
            roles=sorted(principal.roles),
            expires_in=self.token_issuer.expires_in,
        )

    def logout(self, refresh_token: str) -> None:
        rt = self.refresh_tokens.revoke(refresh_token)
        actor = None
        resource_id = None
        if rt is not None:
            user = storage.get(User, rt.user_id)
            if user is not None:
                actor = user.username
                resource_id = user.id
        self.audit.log_success(
            ACTION_LOGOUT,
            RESOURCE_USER,
            resource_id,
            details="User logged out successfully" if rt else "Logout with unknown refresh token",
            actor=actor,
        )

    def change_password(self, account: User | None, current_password: str, new_password: str) -> None:
        if account is None:
            raise Unauthenticated()

        if not self.authenticator.check_password(account, current_password):
            self.audit.log_failure(
                ACTION_PASSWORD_CHANGED,
                RESOURCE_USER,
                account.id,
                details="Password change rejected - current password mismatch",
                error_message="Current password is incorrect",
                actor=account.username,
            )
            raise PasswordMismatch()

        account.password_hash = hash_password(new_password)
        account.password_changed_at = self.clock.now()
        storage.new(account)
        storage.save()

        self.refresh_tokens.revoke_all(account)

        self.audit.log_success(
            ACTION_PASSWORD_CHANGED,
            RESOURCE_USER,
            account.id,
            details="User password changed successfully",
            actor=account.username,
        )

    def validate(self, access_token: str) -> Dict[str, Any]:
        return self.token_issuer.validate(access_token)
