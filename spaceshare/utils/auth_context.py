from __future__ import annotations

from functools import wraps

from flask import g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from spaceshare.extensions import db
from spaceshare.models import User
from spaceshare.utils.jwt_utils import decode_token, get_bearer_token


def current_user() -> User | None:
    """User for the request's bearer token. Hard-locked accounts resolve to None."""
    if "current_user" in g:
        return g.current_user
    user = None
    token = get_bearer_token(request.headers.get("Authorization", ""))
    payload = decode_token(token) if token else None
    if payload:
        try:
            user = db.session.get(User, int(payload.get("sub")))
        except (TypeError, ValueError):
            user = None
        except SQLAlchemyError:
            db.session.rollback()
            user = None
    if user is not None and user.is_hard_locked:
        user = None
    g.current_user = user
    return user


def is_admin(user: User | None) -> bool:
    return bool(user is not None and user.is_admin)


def _unauthorized():
    return jsonify({"ok": False, "error": "UNAUTHORIZED", "message": "Unauthorized"}), 401


def _forbidden():
    return jsonify({"ok": False, "error": "FORBIDDEN", "message": "Forbidden"}), 403


def login_required(fn):
    @wraps(fn)
    def wrapped(*args, **kwargs):
        if current_user() is None:
            return _unauthorized()
        return fn(*args, **kwargs)

    return wrapped


def admin_required(fn):
    @wraps(fn)
    def wrapped(*args, **kwargs):
        user = current_user()
        if user is None:
            return _unauthorized()
        if not is_admin(user):
            return _forbidden()
        return fn(*args, **kwargs)

    return wrapped
