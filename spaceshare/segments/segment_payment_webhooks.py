from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request

from spaceshare.extensions import db
from spaceshare.integrations.common import (
    GatewayUnavailableError,
    IntegrationDisabledError,
    IntegrationMisconfiguredError,
)
from spaceshare.models import WebhookEvent
from spaceshare.services.coin_ledger_service import LedgerError
from spaceshare.services.topup_service import SOURCE_WEBHOOK, TopupError, TopupOutcome, process_gateway_order
from spaceshare.utils.env import env_bool, env_str
from spaceshare.utils.observability import get_request_id

webhooks_bp = Blueprint("webhooks_bp", __name__, url_prefix="/api/webhooks")

_MESSAGES = {
    TopupOutcome.SETTLED: "Processed successfully",
    TopupOutcome.ALREADY_PROCESSED: "Already processed",
    TopupOutcome.IGNORED: "Ignored non-captured order",
}


def extract_order_ref(payload: dict) -> str:
    for key in ("order_invoice_number", "referenceCode", "id"):
        value = payload.get(key)
        if value not in (None, ""):
            return str(value).strip()
    order = payload.get("order")
    if isinstance(order, dict):
        return str(order.get("order_invoice_number") or "").strip()
    return ""


def _record_event(payload: dict, raw: bytes, order_ref: str) -> WebhookEvent:
    digest = hashlib.sha256(raw or json.dumps(payload, sort_keys=True, default=str).encode("utf-8")).hexdigest()
    event = WebhookEvent(
        provider="sepay",
        event_id=f"sepay:{order_ref or 'unknown'}:{digest[:16]}",
        reference=order_ref or None,
        status="received",
        request_id=get_request_id() or None,
        payload_hash=digest,
        payload_json=json.dumps(payload, ensure_ascii=False, default=str)[:20000],
    )
    db.session.add(event)
    db.session.commit()
    return event


def _finish_event(event_id: int, status: str, error: str = "") -> None:
    event = db.session.get(WebhookEvent, event_id)
    if event is None:
        return
    event.status = status
    event.error = error or None
    event.processed_at = datetime.utcnow()
    db.session.commit()


def handle_sepay_payload(payload: dict, *, event_id: int | None = None) -> tuple[dict, int]:
    """Settle from a webhook payload. Returns (body, http_status)."""
    order_ref = extract_order_ref(payload)
    if not order_ref:
        return {"ok": False, "error": "ORDER_ID_MISSING", "message": "Missing order id"}, 400
    try:
        result = process_gateway_order(order_ref, source=SOURCE_WEBHOOK)
    except (TopupError, LedgerError) as exc:
        db.session.rollback()
        current_app.logger.warning("sepay_webhook_rejected order_ref=%s code=%s err=%s", order_ref, exc.code, exc)
        if event_id is not None:
            _finish_event(event_id, "rejected", exc.code)
        return {"ok": False, "error": exc.code, "message": str(exc)}, exc.http_status
    if event_id is not None:
        _finish_event(event_id, result.outcome)
    return {"ok": True, "message": _MESSAGES[result.outcome], **result.to_dict()}, 200


def _authorized(header: str) -> bool:
    expected = env_str("SEPAY_WEBHOOK_API_KEY")
    if not expected:
        return True
    scheme, _, key = (header or "").partition(" ")
    return scheme.lower() == "apikey" and hmac.compare_digest(key.strip(), expected)


@webhooks_bp.post("/sepay")
def sepay_webhook():
    if not _authorized(request.headers.get("Authorization", "")):
        return jsonify({"ok": False, "error": "UNAUTHORIZED", "message": "Invalid webhook credentials"}), 401
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = request.form.to_dict()
    raw = request.get_data() or b""
    order_ref = extract_order_ref(payload)
    if not order_ref:
        return jsonify({"ok": False, "error": "ORDER_ID_MISSING", "message": "Missing order id"}), 400

    event = _record_event(payload, raw, order_ref)

    if env_bool("SEPAY_WEBHOOK_QUEUE", False):
        from spaceshare.tasks.topup_tasks import process_sepay_webhook_task

        try:
            process_sepay_webhook_task.delay(payload=payload, event_id=int(event.id), trace_id=get_request_id())
            return jsonify({"ok": True, "queued": True, "trace_id": get_request_id()}), 200
        except Exception:
            current_app.logger.exception("sepay_webhook_enqueue_failed order_ref=%s", order_ref)

    try:
        body, status = handle_sepay_payload(payload, event_id=int(event.id))
    except (GatewayUnavailableError, IntegrationDisabledError, IntegrationMisconfiguredError) as exc:
        db.session.rollback()
        current_app.logger.warning("sepay_webhook_gateway_unavailable order_ref=%s err=%s", order_ref, exc)
        _finish_event(int(event.id), "retryable", str(exc)[:500])
        return jsonify({"ok": False, "error": "GATEWAY_UNAVAILABLE", "message": "Payment gateway unavailable, retry later"}), 502
    return jsonify(body), status
