from __future__ import annotations

from datetime import datetime

from flask import Blueprint, current_app, jsonify, request

from spaceshare.extensions import db
from spaceshare.models import Listing, User
from spaceshare.models.listing import LISTING_STATUSES
from spaceshare.models.user import LOCK_STATUSES, ROLES
from spaceshare.utils.auth_context import admin_required, current_user

admin_moderation_bp = Blueprint("admin_moderation_bp", __name__, url_prefix="/api/admin")


def _listing_or_404(listing_id: int):
    row = db.session.get(Listing, listing_id)
    if row is None:
        return None, (jsonify({"ok": False, "error": "NOT_FOUND", "message": "Listing not found"}), 404)
    return row, None


def _saved(row: Listing, action: str):
    db.session.commit()
    current_app.logger.info(
        "admin_listing_%s listing_id=%s status=%s admin_id=%s",
        action,
        row.id,
        row.status,
        current_user().id,
    )
    return jsonify({"ok": True, "listing": row.to_dict()}), 200


@admin_moderation_bp.get("/listings")
@admin_required
def list_listings():
    status = (request.args.get("status") or "").strip().lower()
    try:
        page = max(1, int(request.args.get("page") or 1))
        page_size = max(1, min(100, int(request.args.get("pageSize") or 20)))
    except ValueError:
        return jsonify({"ok": False, "error": "INVALID_PAGINATION", "message": "page and pageSize must be integers"}), 400
    query = Listing.query
    if status:
        if status not in LISTING_STATUSES:
            return jsonify({"ok": False, "error": "VALIDATION_ERROR", "message": f"unknown status {status}"}), 400
        query = query.filter(Listing.status == status)
    total = query.count()
    rows = query.order_by(Listing.id.desc()).offset((page - 1) * page_size).limit(page_size).all()
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows], "total": total}), 200


@admin_moderation_bp.post("/listings/<int:listing_id>/approve")
@admin_required
def approve_listing(listing_id: int):
    row, err = _listing_or_404(listing_id)
    if err:
        return err
    row.status = "approved"
    return _saved(row, "approved")


@admin_moderation_bp.post("/listings/<int:listing_id>/toggle-expired")
@admin_required
def toggle_expired(listing_id: int):
    row, err = _listing_or_404(listing_id)
    if err:
        return err
    # Expired listings go back through review.
    row.status = "pending" if row.status == "expired" else "expired"
    return _saved(row, "expiry_toggled")


@admin_moderation_bp.post("/listings/<int:listing_id>/toggle-visibility")
@admin_required
def toggle_visibility(listing_id: int):
    row, err = _listing_or_404(listing_id)
    if err:
        return err
    row.is_hidden = not bool(row.is_hidden)
    return _saved(row, "visibility_toggled")


@admin_moderation_bp.post("/listings/<int:listing_id>/toggle-lock")
@admin_required
def toggle_lock(listing_id: int):
    row, err = _listing_or_404(listing_id)
    if err:
        return err
    row.is_locked = not bool(row.is_locked)
    return _saved(row, "lock_toggled")


@admin_moderation_bp.post("/users/<int:user_id>/lock")
@admin_required
def set_user_lock(user_id: int):
    data = request.get_json(silent=True) or {}
    status = str(data.get("status") or "").strip().lower()
    if status not in LOCK_STATUSES:
        return jsonify({"ok": False, "error": "VALIDATION_ERROR", "message": f"status must be one of {', '.join(LOCK_STATUSES)}"}), 400
    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({"ok": False, "error": "NOT_FOUND", "message": "User not found"}), 404
    if int(user.id) == int(current_user().id):
        return jsonify({"ok": False, "error": "FORBIDDEN", "message": "Admins cannot lock themselves"}), 403
    user.lock_status = status
    user.lock_updated_at = datetime.utcnow()
    db.session.commit()
    current_app.logger.info("admin_user_lock user_id=%s status=%s admin_id=%s", user.id, status, current_user().id)
    return jsonify({"ok": True, "user": user.to_dict()}), 200


@admin_moderation_bp.get("/users")
@admin_required
def list_users():
    try:
        page = max(1, int(request.args.get("page") or 1))
        page_size = max(1, min(100, int(request.args.get("pageSize") or 20)))
    except ValueError:
        return jsonify({"ok": False, "error": "INVALID_PAGINATION", "message": "page and pageSize must be integers"}), 400
    q = (request.args.get("q") or "").strip()
    role = (request.args.get("role") or "").strip().lower()
    lock_status = (request.args.get("lock_status") or "").strip().lower()
    if role and role not in ROLES:
        return jsonify({"ok": False, "error": "VALIDATION_ERROR", "message": f"unknown role {role}"}), 400
    if lock_status and lock_status not in LOCK_STATUSES:
        return jsonify({"ok": False, "error": "VALIDATION_ERROR", "message": f"unknown lock status {lock_status}"}), 400

    query = User.query
    if q:
        like = f"%{q}%"
        query = query.filter(db.or_(User.email.ilike(like), User.name.ilike(like), User.phone.ilike(like)))
    if role:
        query = query.filter(User.role == role)
    if lock_status:
        query = query.filter(User.lock_status == lock_status)
    total = query.count()
    rows = query.order_by(User.id.desc()).offset((page - 1) * page_size).limit(page_size).all()
    return jsonify({"ok": True, "items": [u.to_dict() for u in rows], "total": total}), 200
