"""
Authentication blueprint:
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout
- POST /auth/change-password
- GET  /auth/validate

The handlers only parse input and shape output; login gating, token lifecycle
and auditing live in services.session.SessionOrchestrator.
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify, g, current_app

from models.schemas.auth import LoginSchema, RefreshTokenSchema, ChangePasswordSchema
from services.token_issuer import TokenError
from utils.decorators import bearer_token, jwt_required
from utils.security import client_ip
from .errors import error_response

bp = Blueprint("auth", __name__)

login_schema = LoginSchema()
refresh_schema = RefreshTokenSchema()
change_password_schema = ChangePasswordSchema()


def _sessions():
    return current_app.extensions["security"].sessions


@bp.post("/login")
def login():
    """
    Login: return access_token and refresh_token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             username: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      401:
        description: Invalid username or password
      423:
        description: Account locked
      429:
        description: Too many login attempts from this IP
    """
    payload = login_schema.load(request.get_json(silent=True) or {})
    result = _sessions().login(payload["username"], payload["password"], client_ip())
    return jsonify(result.to_dict()), 200


@bp.post("/refresh")
def refresh():
    """
    Exchange a refresh token for a new access token (refresh token is echoed back)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: OK (new access token)
      400:
        description: Refresh token not found, expired or revoked
    """
    payload = refresh_schema.load(request.get_json(silent=True) or {})
    result = _sessions().refresh(payload["refresh_token"])
    return jsonify(result.to_dict()), 200


@bp.post("/logout")
def logout():
    """
    Logout: revokes the refresh token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: Logged out
    """
    payload = refresh_schema.load(request.get_json(silent=True) or {})
    _sessions().logout(payload["refresh_token"])
    return jsonify({"message": "Logged out successfully"}), 200


@bp.post("/change-password")
@jwt_required()
def change_password():
    """
    Change own password; every existing refresh token is revoked
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             current_password: { type: string }
             new_password: { type: string }
    responses:
      200:
        description: Password changed
      400:
        description: Current password is incorrect
      401:
        description: Unauthorized
    """
    payload = change_password_schema.load(request.get_json(silent=True) or {})
    _sessions().change_password(
        getattr(g, "current_user", None),
        payload["current_password"],
        payload["new_password"],
    )
    return jsonify({"message": "Password changed successfully. Please login again."}), 200


@bp.get("/validate")
def validate():
    """
    Check an access token
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Token is valid
      400:
        description: Invalid token
    """
    token = bearer_token()
    if not token:
        return error_response("INVALID_TOKEN", "Invalid token", 400)
    try:
        claims = _sessions().validate(token)
    except TokenError as exc:
        return error_response("INVALID_TOKEN", str(exc), 400)
    return jsonify(
        {
            "valid": True,
            "username": claims["sub"],
            "roles": claims.get("roles", []),
            "expires_at": claims["exp"],
        }
    ), 200
