from __future__ import annotations
from functools import wraps
from flask import current_app, request, g, abort
from models import storage
from models.user import User
from services.token_issuer import TokenError


def bearer_token() -> str | None:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


def jwt_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = bearer_token()
            if not token:
                abort(401, description="Missing or invalid Authorization header")
            issuer = current_app.extensions["security"].token_issuer
            try:
                decoded = issuer.validate(token)
            except TokenError as e:
                abort(401, description=str(e))

            username = decoded.get("sub")
            session = storage.get_session()
            user = session.query(User).filter(User.username == username).first()
            if not user or not user.enabled:
                abort(401, description="User not found")
            g.current_user = user
            g.current_user_roles = decoded.get("roles", user.roles or [])
            g.current_token_jti = decoded.get("jti")
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(required_roles: list[str]):
    """
    Allow access if the user has ANY of the required roles.
    Deny (403) only if there is NO overlap between user_roles and required_roles.
    """
    req = set(required_roles or [])

    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            user_roles = set(getattr(g, "current_user_roles", []))
            if not (user_roles & req):
                abort(403, description="Insufficient role")
            return fn(*args, **kwargs)

        return wrapper

    return decorator
