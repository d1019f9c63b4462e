from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request, session as flask_session
from sqlalchemy import func

from ..app import db
from ..models import User

bp = Blueprint("auth", __name__, url_prefix="/auth")


@bp.post("/login")
def login():
    payload = request.get_json(silent=True) or request.form
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    if not email or not password:
        return jsonify({"error": "Email and password are required."}), 400

    user = (
        db.session.query(User)
        .filter(func.lower(User.email) == email)
        .one_or_none()
    )
    if not user or not user.password_hash or not user.check_password(password):
        current_app.logger.info(f"[AUTH-FAIL] email={email} reason=credentials")
        return jsonify({"error": "Invalid email or password."}), 401

    # check_password may have upgraded the stored hash
    db.session.commit()
    flask_session.clear()
    flask_session["user_id"] = user.id
    current_app.logger.info(f"[AUTH] login user={user.id}")
    return jsonify(
        {"id": user.id, "email": user.email, "name": user.name, "isAdmin": user.is_admin}
    )


@bp.post("/logout")
def logout():
    flask_session.clear()
    return jsonify({"ok": True})
