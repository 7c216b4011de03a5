from __future__ import annotations

from flask import Blueprint, jsonify, request

from spaceshare.extensions import db
from spaceshare.models import CoinExchangeConfig, CoinTransaction, User
from spaceshare.services.coin_ledger_service import LedgerError, admin_adjust_balance, ledger_query, ledger_totals, wallet_totals
from spaceshare.services.coin_pricing_service import (
    CONFIG_ROW_ID,
    CoinPricingValidationError,
    create_tier,
    default_min_topup,
    delete_tier,
    list_tiers,
    toggle_tier,
    update_base_rate,
    update_tier,
)
from spaceshare.utils.auth_context import admin_required, current_user

admin_coins_bp = Blueprint("admin_coins_bp", __name__, url_prefix="/api/admin")


def _invalid(exc: Exception):
    return jsonify({"ok": False, "error": "VALIDATION_ERROR", "message": str(exc)}), 400


def _tier_not_found():
    return jsonify({"ok": False, "error": "NOT_FOUND", "message": "Tier not found"}), 404


@admin_coins_bp.get("/coins/config")
@admin_required
def get_config():
    row = db.session.get(CoinExchangeConfig, CONFIG_ROW_ID)
    config = row.to_dict() if row is not None else {"coins_per_1000": 1, "min_topup": default_min_topup(), "updated_at": None, "updated_by": None}
    return jsonify({"ok": True, "config": config, "configured": row is not None}), 200


@admin_coins_bp.put("/coins/config")
@admin_required
def put_config():
    try:
        row = update_base_rate(request.get_json(silent=True) or {}, admin_id=int(current_user().id))
    except CoinPricingValidationError as exc:
        return _invalid(exc)
    return jsonify({"ok": True, "config": row.to_dict()}), 200


@admin_coins_bp.get("/coins/tiers")
@admin_required
def get_tiers():
    return jsonify({"ok": True, "items": [t.to_dict() for t in list_tiers()]}), 200


@admin_coins_bp.post("/coins/tiers")
@admin_required
def post_tier():
    try:
        row = create_tier(request.get_json(silent=True) or {})
    except CoinPricingValidationError as exc:
        return _invalid(exc)
    return jsonify({"ok": True, "tier": row.to_dict()}), 201


@admin_coins_bp.put("/coins/tiers/<int:tier_id>")
@admin_required
def put_tier(tier_id: int):
    try:
        row = update_tier(tier_id, request.get_json(silent=True) or {})
    except CoinPricingValidationError as exc:
        return _invalid(exc)
    if row is None:
        return _tier_not_found()
    return jsonify({"ok": True, "tier": row.to_dict()}), 200


@admin_coins_bp.delete("/coins/tiers/<int:tier_id>")
@admin_required
def remove_tier(tier_id: int):
    if not delete_tier(tier_id):
        return _tier_not_found()
    return jsonify({"ok": True, "deleted": tier_id}), 200


@admin_coins_bp.post("/coins/tiers/<int:tier_id>/toggle")
@admin_required
def flip_tier(tier_id: int):
    row = toggle_tier(tier_id)
    if row is None:
        return _tier_not_found()
    return jsonify({"ok": True, "tier": row.to_dict()}), 200


@admin_coins_bp.post("/wallets/<int:user_id>/adjust")
@admin_required
def adjust_wallet(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        entry = admin_adjust_balance(
            user_id,
            data.get("amount"),
            note=str(data.get("note") or ""),
            admin_id=int(current_user().id),
        )
    except LedgerError as exc:
        return jsonify({"ok": False, "error": exc.code, "message": str(exc)}), exc.http_status
    return jsonify({"ok": True, "transaction": entry.to_dict()}), 200



def _paging():
    page = max(1, int(request.args.get("page") or 1))
    page_size = max(1, min(100, int(request.args.get("pageSize") or 20)))
    return page, page_size


def _bad_paging():
    return jsonify({"ok": False, "error": "INVALID_PAGINATION", "message": "page and pageSize must be integers"}), 400


@admin_coins_bp.get("/wallets")
@admin_required
def list_wallets():
    try:
        page, page_size = _paging()
    except ValueError:
        return _bad_paging()
    q = (request.args.get("q") or "").strip()
    query = User.query
    if q:
        like = f"%{q}%"
        query = query.filter(db.or_(User.email.ilike(like), User.name.ilike(like)))
    total = query.count()
    rows = (
        query.order_by(User.coin_balance.desc(), User.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    items = [{"user_id": int(u.id), "email": u.email, "name": u.name, "coin_balance": int(u.coin_balance or 0)} for u in rows]
    return jsonify({"ok": True, "items": items, "total": total, "totals": wallet_totals()}), 200


@admin_coins_bp.get("/transactions")
@admin_required
def list_ledger():
    try:
        page, page_size = _paging()
        raw_user = (request.args.get("user_id") or "").strip()
        user_id = int(raw_user) if raw_user else None
    except ValueError:
        return jsonify({"ok": False, "error": "VALIDATION_ERROR", "message": "page, pageSize and user_id must be integers"}), 400
    try:
        query = ledger_query(user_id=user_id, tx_type=(request.args.get("type") or "").strip().lower())
    except LedgerError as exc:
        return jsonify({"ok": False, "error": "VALIDATION_ERROR", "message": str(exc)}), 400
    totals = ledger_totals(query)
    rows = (
        query.order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows], "total": totals["count"], "totals": totals}), 200
