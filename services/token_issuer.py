"""
Stateless access tokens (JWT via PyJWT).

Tokens are self-contained: subject, roles, issued-at and expiry are signed with
a process-wide secret and checked without touching the database. There is no
revocation list, so an issued token stays usable until it expires; keep the TTL
short.
"""
from __future__ import annotations

import calendar
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List

import jwt

from utils.clock import Clock

TOKEN_TYPE = "access"


class TokenError(Exception):
    """Base class for access token validation failures."""


class TokenExpiredError(TokenError):
    pass


class MalformedTokenError(TokenError):
    pass


class TokenSignatureError(TokenError):
    pass


@dataclass
class Principal:
    """Authenticated identity as seen by the token layer."""
    username: str
    roles: List[str] = field(default_factory=list)
    user_id: str | None = None
    email: str | None = None


def _timestamp(dt) -> int:
    return calendar.timegm(dt.utctimetuple())


class TokenIssuer:
    def __init__(
        self,
        secret: str,
        ttl: timedelta,
        algorithm: str = "HS256",
        issuer: str = "vending-inventory-api",
        clock: Clock | None = None,
    ):
        if not secret:
            raise ValueError("a signing secret is required")
        self.secret = secret
        self.ttl = ttl
        self.algorithm = algorithm
        self.issuer = issuer
        self.clock = clock or Clock()

    def issue(self, principal: Principal) -> str:
        issued_at = self.clock.now()
        payload = {
            "iss": self.issuer,
            "sub": principal.username,
            "iat": _timestamp(issued_at),
            "exp": _timestamp(issued_at + self.ttl),
            "type": TOKEN_TYPE,
            "jti": str(uuid.uuid4()),
            "roles": sorted(principal.roles or []),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def validate(self, token: str) -> Dict[str, Any]:
        """
        Return the verified claims of ``token``.

        Raises TokenSignatureError when the signature does not match,
        MalformedTokenError for anything that is not a well-formed access token,
        and TokenExpiredError once ``exp`` has passed on the issuer's clock.
        """
        if not token:
            raise MalformedTokenError("Token is empty")
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                # exp is judged against self.clock below
                options={"verify_exp": False, "verify_iat": False, "require": ["sub", "iat", "exp"]},
                issuer=self.issuer,
            )
        except jwt.InvalidSignatureError as exc:
            raise TokenSignatureError("Invalid token signature") from exc
        except jwt.InvalidTokenError as exc:
            raise MalformedTokenError(f"Invalid token: {exc}") from exc

        if claims.get("type") != TOKEN_TYPE:
            raise MalformedTokenError("Wrong token type")
        if not isinstance(claims.get("exp"), int):
            raise MalformedTokenError("Invalid exp claim")
        if _timestamp(self.clock.now()) >= claims["exp"]:
            raise TokenExpiredError("Token expired")
        return claims

    @property
    def expires_in(self) -> int:
        return int(self.ttl.total_seconds())
