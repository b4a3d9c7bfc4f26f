"""
Error taxonomy for authentication and session handling.

Each error carries the HTTP status and machine code it is rendered with by
api.errors; the message is what callers see, so it must never distinguish
"unknown user" from "wrong password".
"""
from __future__ import annotations


class AuthError(Exception):
    status = 400
    code = "AUTH_ERROR"
    message = "Authentication error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class RateLimited(AuthError):
    status = 429
    code = "RATE_LIMITED"
    message = "Too many login attempts. Please try again later."


class AccountLocked(AuthError):
    status = 423
    code = "ACCOUNT_LOCKED"
    message = "Account is locked due to multiple failed login attempts. Please try again later."


class InvalidCredentials(AuthError):
    status = 401
    code = "INVALID_CREDENTIALS"
    message = "Invalid username or password"


class TokenNotFound(AuthError):
    code = "TOKEN_NOT_FOUND"
    message = "Refresh token not found"


class TokenExpired(AuthError):
    code = "TOKEN_EXPIRED"
    message = "Refresh token has expired. Please login again."


class TokenRevoked(AuthError):
    code = "TOKEN_REVOKED"
    message = "Refresh token is not valid"


class PasswordMismatch(AuthError):
    code = "PASSWORD_MISMATCH"
    message = "Current password is incorrect"


class Unauthenticated(AuthError):
    status = 401
    code = "UNAUTHENTICATED"
    message = "User not authenticated"
