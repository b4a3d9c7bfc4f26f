from __future__ import annotations

from flask import Blueprint, request, jsonify, g, abort, current_app
from sqlalchemy.orm.attributes import flag_modified

from models import storage
from models.audit_log import ACTION_CREATE, ACTION_DELETE, ACTION_UNLOCK, ACTION_UPDATE, RESOURCE_USER
from models.user import User
from models.schemas.user import UserCreateSchema, UserUpdateSchema, UserOutSchema
from utils.decorators import jwt_required, roles_required
from utils.pagination import parse_pagination
from utils.security import hash_password

bp = Blueprint("users", __name__)


user_create_schema = UserCreateSchema()
user_update_schema = UserUpdateSchema()
user_out_schema = UserOutSchema()
user_list_out_schema = UserOutSchema(many=True)

SORT_COLUMNS = {
    "username": User.username,
    "email": User.email,
    "created_at": User.created_at,
    "last_login_at": User.last_login_at,
}


def _security():
    return current_app.extensions["security"]


def parse_sort(default="username"):
    sort = request.args.get("sort", default)
    desc = sort.startswith("-")
    key = sort[1:] if desc else sort
    col = SORT_COLUMNS.get(key)
    if col is None:
        abort(400, description=f"Unsupported sort field. Allowed: {', '.join(SORT_COLUMNS)}")
    return (col.desc() if desc else col.asc(),)


def _get_user_or_404(user_id: str) -> User:
    user = storage.get(User, user_id)
    if not user:
        abort(404)
    return user


def _check_roles(roles):
    allowed = set(current_app.config.get("ALLOWED_ROLES", ["ADMIN", "OPERATOR", "VIEWER"]))
    if any(r not in allowed for r in roles):
        abort(422, description=f"Roles must be subset of {sorted(allowed)}")


@bp.get("/users")
@roles_required(["ADMIN"])
def list_users():
    """
    List users - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: query, name: page, type: integer }
      - { in: query, name: limit, type: integer }
      - { in: query, name: sort, type: string, description: "username | email | created_at | last_login_at, prefix - for desc" }
      - { in: query, name: role, type: string }
    responses:
      200: { description: OK }
    """
    session = storage.get_session()
    page, limit = parse_pagination()
    order_by = parse_sort()

    query = session.query(User)
    role = request.args.get("role")
    rows = query.order_by(*order_by).all()
    if role:
        # roles is a JSON column; filter in Python to stay portable across backends
        rows = [u for u in rows if role in (u.roles or [])]

    total = len(rows)
    rows = rows[(page - 1) * limit: page * limit]
    return jsonify(
        {
            "data": user_list_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total}
        }
    )


@bp.get("/users/<user_id>")
@roles_required(["ADMIN"])
def get_user(user_id: str):
    """
    Get one user - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    return jsonify({"data": user_out_schema.dump(_get_user_or_404(user_id))}), 200


@bp.post("/users")
@roles_required(["ADMIN"])
def create_user():
    """
    Create a user - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            username: { type: string }
            email: { type: string }
            password: { type: string }
            f_name: { type: string }
            l_name: { type: string }
            phone_number: { type: string }
            roles: { type: array, items: { type: string } }
            enabled: { type: boolean }
    responses:
      201: { description: Created }
      409: { description: Username or email already taken }
      422: { description: Validation error }
    """
    data = user_create_schema.load(request.get_json(silent=True) or {})
    _check_roles(data["roles"])

    session = storage.get_session()
    if session.query(User).filter(User.username == data["username"]).first():
        abort(409, description="Username already exists")
    if session.query(User).filter(User.email == data["email"]).first():
        abort(409, description="Email already registered")

    user = User(
        username=data["username"],
        email=data["email"],
        password_hash=hash_password(data["password"]),
        f_name=data.get("f_name"),
        l_name=data.get("l_name"),
        phone_number=data.get("phone_number"),
        roles=sorted(set(data["roles"])),
        enabled=data.get("enabled", True),
        failed_login_attempts=0,
    )
    storage.new(user)
    storage.save()

    _security().audit.log_success(
        ACTION_CREATE, RESOURCE_USER, user.id, details=f"Created user: {user.username}"
    )
    return jsonify({"data": user_out_schema.dump(user)}), 201


@bp.put("/users/<user_id>")
@roles_required(["ADMIN"])
def update_user(user_id: str):
    """
    Update a user - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - { in: path, name: user_id, type: string, required: true }
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
            password: { type: string }
            f_name: { type: string }
            l_name: { type: string }
            phone_number: { type: string }
            roles: { type: array, items: { type: string } }
            enabled: { type: boolean }
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    user = _get_user_or_404(user_id)
    data = user_update_schema.load(request.get_json(silent=True) or {}, partial=True)
    security = _security()

    if data.get("email") and data["email"] != user.email:
        session = storage.get_session()
        if session.query(User).filter(User.email == data["email"], User.id != user.id).first():
            abort(409, description="Email already registered")
        user.email = data["email"]
    for key in ("f_name", "l_name", "phone_number"):
        if key in data:
            setattr(user, key, data[key])
    if data.get("roles"):
        _check_roles(data["roles"])
        user.roles = sorted(set(data["roles"]))
        flag_modified(user, "roles")
    if "enabled" in data:
        user.enabled = data["enabled"]

    password_reset = bool(data.get("password"))
    if password_reset:
        user.password_hash = hash_password(data["password"])
        user.password_changed_at = security.clock.now()

    storage.new(user)
    storage.save()

    if password_reset or not user.enabled:
        # a reset or disabled account must not keep minting access tokens
        security.refresh_tokens.revoke_all(user)

    security.audit.log_success(
        ACTION_UPDATE, RESOURCE_USER, user.id, details=f"Updated user: {user.username}"
    )
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.delete("/users/<user_id>")
@roles_required(["ADMIN"])
def delete_user(user_id: str):
    """
    Delete a user - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
    responses:
      204: { description: Deleted }
      404: { description: Not found }
      409: { description: Cannot delete yourself }
    """
    user = _get_user_or_404(user_id)
    if user.id == g.current_user.id:
        abort(409, description="You cannot delete your own account")
    username = user.username
    storage.delete(user)
    storage.save()

    _security().audit.log_success(
        ACTION_DELETE, RESOURCE_USER, user_id, details=f"Deleted user: {username}"
    )
    return ("", 204)


@bp.post("/users/<user_id>/roles")
@roles_required(["ADMIN"])
def set_roles(user_id: str):
    """
    Admin-only: replace roles for a user (roles array).
    Body: { "roles": ["ADMIN", "OPERATOR", "VIEWER"] }
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: path
         name: user_id
         type: string
         required: true
      -  in: body
         name: body
         schema:
           type: object
           properties:
             roles: { type: array, items: { type: string } }
    responses:
      200: { description: OK }
    """
    payload = request.get_json(silent=True) or {}
    roles = payload.get("roles")
    if not isinstance(roles, list) or not roles:
        abort(422, description="roles must be a non-empty list")

    user = _get_user_or_404(user_id)
    _check_roles(roles)
    user.roles = sorted(set(roles))
    flag_modified(user, "roles")
    storage.new(user)
    storage.save()

    _security().audit.log_success(
        ACTION_UPDATE, RESOURCE_USER, user.id, details=f"Roles of {user.username} set to {user.roles}"
    )
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.post("/users/<user_id>/unlock")
@roles_required(["ADMIN"])
def unlock_user(user_id: str):
    """
    Admin-only: clear a lockout before it expires
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    user = _get_user_or_404(user_id)
    security = _security()
    security.lockout.unlock(user)
    security.audit.log_success(
        ACTION_UNLOCK, RESOURCE_USER, user.id, details=f"Unlocked user: {user.username}"
    )
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.get("/me")
@jwt_required()
def me():
    """
    Get current user info.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    return jsonify({"data": user_out_schema.dump(g.current_user)}), 200
