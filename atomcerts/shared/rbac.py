from functools import wraps

from flask import abort, jsonify, session

from ..app import db
from ..models import User


def session_user():
    user_id = session.get("user_id")
    if not user_id:
        return None
    return db.session.get(User, user_id)


def admin_required(fn):
    """Require a logged-in administrator; the handler receives ``current_user``."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = session_user()
        if user is None:
            return jsonify({"error": "Authentication required."}), 401
        if not user.is_admin:
            abort(403)
        return fn(*args, **kwargs, current_user=user)

    return wrapper
