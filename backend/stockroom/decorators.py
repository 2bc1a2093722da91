# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app


ACTOR_HEADER = "X-User-Id"


def with_actor(f):
    """
    Attach the acting user's identity to the request.

    Authentication lives outside this service; the caller forwards an opaque
    integer user reference in the X-User-Id header. It is recorded on ledger
    entries, adjustments, orders and payments as-is.

    Sets:
    - g.actor_user_id: int, or None when the header is absent

    Returns 400 if the header is present but not a positive integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER)
        actor_id = None
        if raw is not None and raw.strip():
            raw = raw.strip()
            if not raw.isdigit() or int(raw) <= 0:
                return jsonify({"error": f"{ACTOR_HEADER} must be a positive integer"}), 400
            actor_id = int(raw)

        g.actor_user_id = actor_id
        return f(*args, **kwargs)

    return decorated_function


def pagination_args(default_limit: int | None = None) -> tuple[int, int]:
    """Read page/limit query args, clamped to the configured page size bounds."""
    if default_limit is None:
        default_limit = current_app.config.get("DEFAULT_PAGE_SIZE", 20)
    max_limit = current_app.config.get("MAX_PAGE_SIZE", 100)

    page = request.args.get("page", default=1, type=int) or 1
    limit = request.args.get("limit", default=default_limit, type=int) or default_limit
    return max(1, page), max(1, min(limit, max_limit))
