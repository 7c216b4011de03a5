from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from spaceshare.integrations.common import (
    GatewayUnavailableError,
    IntegrationDisabledError,
    IntegrationMisconfiguredError,
)
from spaceshare.services.coin_ledger_service import LedgerError, get_balance, list_transactions
from spaceshare.services.coin_pricing_service import get_topup_display_data
from spaceshare.services.topup_service import TopupError, TopupOutcome, create_topup_request, verify_topup
from spaceshare.utils.auth_context import current_user, login_required
from spaceshare.utils.env import env_str
from spaceshare.utils.observability import get_request_id

coins_bp = Blueprint("coins_bp", __name__, url_prefix="/api/coins")


def _gateway_error(exc: Exception):
    if isinstance(exc, GatewayUnavailableError):
        current_app.logger.warning("payment_gateway_unavailable err=%s trace_id=%s", exc, get_request_id())
        return jsonify({"ok": False, "error": "GATEWAY_UNAVAILABLE", "message": "Payment gateway unavailable, retry later", "retryable": True}), 502
    current_app.logger.error("payment_gateway_not_configured err=%s", exc)
    return jsonify({"ok": False, "error": "PAYMENTS_UNAVAILABLE", "message": "Payments are not available"}), 503


@coins_bp.get("/pricing")
def pricing():
    return jsonify({"ok": True, **get_topup_display_data()}), 200


@coins_bp.get("/balance")
@login_required
def balance():
    user = current_user()
    return jsonify({"ok": True, "coin_balance": get_balance(int(user.id))}), 200


@coins_bp.get("/transactions")
@login_required
def transactions():
    user = current_user()
    try:
        limit = int(request.args.get("limit") or 50)
        offset = int(request.args.get("offset") or 0)
    except ValueError:
        return jsonify({"ok": False, "error": "INVALID_PAGINATION", "message": "limit and offset must be integers"}), 400
    rows = list_transactions(int(user.id), limit=limit, offset=offset)
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200


@coins_bp.post("/topup")
@login_required
def create_topup():
    user = current_user()
    data = request.get_json(silent=True) or {}
    base_url = env_str("PUBLIC_APP_URL") or request.host_url
    try:
        payload = create_topup_request(user, data.get("amount"), base_url=base_url)
    except TopupError as exc:
        return jsonify({"ok": False, "error": exc.code, "message": str(exc)}), exc.http_status
    except (IntegrationDisabledError, IntegrationMisconfiguredError) as exc:
        return _gateway_error(exc)
    return jsonify({"ok": True, **payload}), 201


@coins_bp.post("/topup/verify")
@login_required
def verify():
    user = current_user()
    data = request.get_json(silent=True) or {}
    order_ref = str(data.get("order_id") or data.get("order_ref") or "").strip()
    try:
        result = verify_topup(user, order_ref)
    except (TopupError, LedgerError) as exc:
        return jsonify({"ok": False, "error": exc.code, "message": str(exc)}), exc.http_status
    except (GatewayUnavailableError, IntegrationDisabledError, IntegrationMisconfiguredError) as exc:
        return _gateway_error(exc)

    body = {"ok": True, **result.to_dict()}
    if result.outcome == TopupOutcome.IGNORED:
        body["message"] = f"Payment not completed (status {result.gateway_status or 'unknown'})"
    elif result.outcome == TopupOutcome.ALREADY_PROCESSED:
        body["message"] = "Already processed"
    return jsonify(body), 200
