from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError

from spaceshare.extensions import db
from spaceshare.models import User
from spaceshare.utils.auth_context import current_user, login_required
from spaceshare.utils.jwt_utils import create_token
from spaceshare.utils.rate_limit import rate_limit

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/auth")


def _token_payload(user: User, status: int):
    return jsonify({"ok": True, "token": create_token(int(user.id)), "user": user.to_dict()}), status


@auth_bp.post("/register")
@rate_limit("auth:register", 3600, 20)
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    name = (data.get("name") or "").strip()
    if not email or "@" not in email:
        return jsonify({"ok": False, "error": "INVALID_EMAIL", "message": "A valid email is required"}), 400
    if len(password) < 8:
        return jsonify({"ok": False, "error": "WEAK_PASSWORD", "message": "Password must be at least 8 characters"}), 400

    user = User(
        email=email,
        name=name or email.split("@")[0],
        phone=(data.get("phone") or "").strip() or None,
        zalo=(data.get("zalo") or "").strip() or None,
        role="user",
    )
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"ok": False, "error": "EMAIL_TAKEN", "message": "Email already registered"}), 409
    current_app.logger.info("user_registered user_id=%s", user.id)
    return _token_payload(user, 201)


@auth_bp.post("/login")
@rate_limit("auth:login", 60, 10)
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    user = User.query.filter_by(email=email).first() if email else None
    if user is None or not user.check_password(password):
        return jsonify({"ok": False, "error": "INVALID_CREDENTIALS", "message": "Invalid email or password"}), 401
    if user.is_hard_locked:
        return jsonify({"ok": False, "error": "ACCOUNT_LOCKED", "message": "Account is locked"}), 403
    return _token_payload(user, 200)


@auth_bp.get("/me")
@login_required
def me():
    return jsonify({"ok": True, "user": current_user().to_dict()}), 200
