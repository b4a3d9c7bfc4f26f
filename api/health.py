from flask import Blueprint, current_app

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    """
    Health check
    ---
    tags:
      - Health
    responses:
      200:
        description: API is up
        schema:
          type: object
          properties:
            status:
              type: string
              example: ok
            version:
              type: string
              example: 1.0.0
            audit_write_failures:
              type: integer
              example: 0
    """
    audit = current_app.extensions["security"].audit
    return {"status": "ok", "version": "1.0.0", "audit_write_failures": audit.failed_writes}, 200
