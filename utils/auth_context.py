from functools import wraps
from flask import current_app, g, jsonify, request
from models import db
from models.user import User

def load_current_user():
    # Authentication happens upstream; the gateway forwards the user id.
    raw = request.headers.get(current_app.config.get("ACTOR_HEADER", "X-User-Id"))
    g.user = None
    if not raw:
        return
    try:
        user_id = int(raw)
    except ValueError:
        return
    g.user = db.session.get(User, user_id)

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required", code="Unauthorized"), 401
        return fn(*args, **kwargs)
    return wrapper
