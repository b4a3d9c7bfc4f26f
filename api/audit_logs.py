from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from flask import Blueprint, request, jsonify, abort, current_app

from models.audit_log import ACTION_CLEANUP, RESOURCE_AUDIT_LOG
from models.schemas.audit_log import AuditLogOutSchema
from utils.decorators import roles_required
from utils.pagination import parse_pagination

bp = Blueprint("audit_logs", __name__)

audit_logs_out_schema = AuditLogOutSchema(many=True)


def _audit():
    return current_app.extensions["security"].audit


def parse_datetime_param(name: str) -> Optional[datetime]:
    val = request.args.get(name)
    if not val:
        return None
    try:
        parsed = datetime.fromisoformat(val)
    except ValueError:
        abort(400, description=f"Invalid datetime format for {name}. Use ISO 8601")
    if parsed.tzinfo is not None:
        # stored timestamps are naive UTC
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@bp.get("/audit-logs")
@roles_required(["ADMIN"])
def list_audit_logs():
    """
    Search audit logs (newest first) - admin
    ---
    tags:
      - Audit
    security:
      - Bearer: []
    parameters:
      - { in: query, name: username, type: string }
      - { in: query, name: action, type: string }
      - { in: query, name: resource_type, type: string }
      - { in: query, name: resource_id, type: string }
      - { in: query, name: start, type: string, format: date-time }
      - { in: query, name: end, type: string, format: date-time }
      - { in: query, name: page, type: integer }
      - { in: query, name: limit, type: integer }
    responses:
      200: { description: OK }
      400: { description: Bad filter }
    """
    page, limit = parse_pagination()
    start = parse_datetime_param("start")
    end = parse_datetime_param("end")
    if start and end and start > end:
        abort(400, description="start must not be after end")

    rows, total = _audit().search(
        username=request.args.get("username"),
        action=request.args.get("action"),
        resource_type=request.args.get("resource_type"),
        resource_id=request.args.get("resource_id"),
        start=start,
        end=end,
        page=page,
        limit=limit,
    )
    return jsonify(
        {
            "data": audit_logs_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total},
        }
    ), 200


@bp.get("/audit-logs/recent")
@roles_required(["ADMIN"])
def recent_audit_logs():
    """
    Ten most recent audit log entries - admin
    ---
    tags:
      - Audit
    security:
      - Bearer: []
    responses:
      200: { description: OK }
    """
    rows, _ = _audit().search(page=1, limit=10)
    return jsonify({"data": audit_logs_out_schema.dump(rows)}), 200


@bp.delete("/audit-logs/cleanup")
@roles_required(["ADMIN"])
def cleanup_audit_logs():
    """
    Delete audit logs older than N days - admin
    ---
    tags:
      - Audit
    security:
      - Bearer: []
    parameters:
      - { in: query, name: days_to_keep, type: integer, default: 90 }
    responses:
      200: { description: OK }
      400: { description: Bad days_to_keep }
    """
    default_days = current_app.config.get("AUDIT_RETENTION_DAYS", 90)
    try:
        days = int(request.args.get("days_to_keep", default_days))
    except ValueError:
        abort(400, description="days_to_keep must be an integer")
    if days < 1:
        abort(400, description="days_to_keep must be at least 1")

    audit = _audit()
    cutoff = audit.clock.now() - timedelta(days=days)
    deleted = audit.delete_older_than(cutoff)
    audit.log_success(
        ACTION_CLEANUP, RESOURCE_AUDIT_LOG, None,
        details=f"Cleaned up {deleted} audit log entries older than {days} days",
    )
    return jsonify({"message": f"Cleaned up {deleted} old audit log entries", "deleted": deleted}), 200
