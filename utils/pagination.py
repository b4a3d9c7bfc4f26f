from __future__ import annotations

from typing import Tuple

from flask import abort, request

MAX_LIMIT = 100


def parse_pagination(default_limit: int = 20) -> Tuple[int, int]:
    """Read ``page`` and ``limit`` from the query string; limit is clamped to 1..MAX_LIMIT."""
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", str(default_limit)))
    except ValueError:
        abort(400, description="page and limit must be integers")
    return max(page, 1), max(1, min(limit, MAX_LIMIT))
