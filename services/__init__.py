"""
Authentication and session security components.

``build_security`` wires them together from a Flask config mapping; the app
factory stores the result in ``app.extensions["security"]``.
"""
from __future__ import annotations

from dataclasses import dataclass

from services.audit_trail import AuditTrail
from services.authenticator import Authenticator
from services.lockout import LockoutTracker
from services.rate_limiter import RateLimiter
from services.refresh_tokens import RefreshTokenStore
from services.session import SessionOrchestrator
from services.token_issuer import TokenIssuer
from utils.clock import Clock


@dataclass
class SecurityContext:
    clock: Clock
    rate_limiter: RateLimiter
    lockout: LockoutTracker
    authenticator: Authenticator
    token_issuer: TokenIssuer
    refresh_tokens: RefreshTokenStore
    audit: AuditTrail
    sessions: SessionOrchestrator


def build_security(config, clock: Clock | None = None) -> SecurityContext:
    clock = clock or Clock()
    rate_limiter = RateLimiter(
        capacity=config["LOGIN_RATE_LIMIT_REQUESTS"],
        window_seconds=config["LOGIN_RATE_LIMIT_WINDOW"].total_seconds(),
        clock=clock,
    )
    lockout = LockoutTracker(
        max_attempts=config["MAX_FAILED_LOGIN_ATTEMPTS"],
        lockout_duration=config["ACCOUNT_LOCKOUT_DURATION"],
        clock=clock,
    )
    authenticator = Authenticator()
    token_issuer = TokenIssuer(
        secret=config["JWT_SECRET"],
        ttl=config["JWT_TOKEN_EXPIRES"],
        algorithm=config["JWT_ALGORITHM"],
        issuer=config["JWT_ISSUER"],
        clock=clock,
    )
    refresh_tokens = RefreshTokenStore(ttl=config["REFRESH_TOKEN_EXPIRES"], clock=clock)
    audit = AuditTrail(clock=clock, max_workers=config["AUDIT_WORKERS"])
    sessions = SessionOrchestrator(
        rate_limiter=rate_limiter,
        lockout=lockout,
        authenticator=authenticator,
        token_issuer=token_issuer,
        refresh_tokens=refresh_tokens,
        audit=audit,
        clock=clock,
    )
    return SecurityContext(
        clock=clock,
        rate_limiter=rate_limiter,
        lockout=lockout,
        authenticator=authenticator,
        token_issuer=token_issuer,
        refresh_tokens=refresh_tokens,
        audit=audit,
        sessions=sessions,
    )
