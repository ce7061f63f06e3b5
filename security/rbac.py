from functools import wraps
from flask import g, jsonify

from models.user import ADMIN

def require_roles(*role_names: str):
    """
    Guard a route on the forwarded actor's roles. ADMIN passes every guard;
    ownership checks still happen in the lifecycle.

    Usage: @require_roles("FACULTY")
    """
    allowed = set(role_names) | {ADMIN}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required", code="Unauthorized"), 401

            if not allowed.intersection(r.name for r in user.roles):
                return jsonify(error="Forbidden", code="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
