"""
Environment-aware configuration.
Values come from the environment (and .env via python-dotenv) and are applied
once, when create_app() builds the security components.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Access tokens (JWT)
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "vending-inventory-api")
    JWT_TOKEN_EXPIRES = timedelta(seconds=_int_env("JWT_TOKEN_EXPIRES_SECONDS", 900))

    # Refresh tokens (opaque, stored)
    REFRESH_TOKEN_EXPIRES = timedelta(seconds=_int_env("REFRESH_TOKEN_EXPIRES_SECONDS", 7 * 24 * 3600))

    # Account lockout
    MAX_FAILED_LOGIN_ATTEMPTS = _int_env("MAX_FAILED_LOGIN_ATTEMPTS", 5)
    ACCOUNT_LOCKOUT_DURATION = timedelta(minutes=_int_env("ACCOUNT_LOCKOUT_DURATION_MINUTES", 30))

    # Per-IP login rate limit
    LOGIN_RATE_LIMIT_REQUESTS = _int_env("LOGIN_RATE_LIMIT_REQUESTS", 5)
    LOGIN_RATE_LIMIT_WINDOW = timedelta(seconds=_int_env("LOGIN_RATE_LIMIT_WINDOW_SECONDS", 60))
    # Reverse proxies in front of the app; X-Forwarded-For is only honoured for this many hops
    TRUSTED_PROXY_HOPS = _int_env("TRUSTED_PROXY_HOPS", 0)

    # Audit trail
    AUDIT_RETENTION_DAYS = _int_env("AUDIT_RETENTION_DAYS", 90)
    AUDIT_WORKERS = _int_env("AUDIT_WORKERS", 2)

    ALLOWED_ROLES = os.getenv("ALLOWED_ROLES", "ADMIN,OPERATOR,VIEWER").split(",")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    # In dev, propagate exceptions so our error handler has full context
    PROPAGATE_EXCEPTIONS = True


class TestingConfig(BaseConfig):
    TESTING = True
    JWT_SECRET = "test-secret-key-for-testing-only"
    TRUSTED_PROXY_HOPS = 1


class ProductionConfig(BaseConfig):
    DEBUG = False


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    if name:
        name = name.lower()
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig
