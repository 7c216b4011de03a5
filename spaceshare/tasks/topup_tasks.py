from __future__ import annotations

import json
import time
from datetime import datetime

from celery import shared_task
from flask import current_app

from spaceshare.extensions import db
from spaceshare.integrations.common import GatewayUnavailableError


def _task_log(task_name: str, *, status: str, started_at: float, trace_id: str = "", **extra):
    payload = {
        "task_name": task_name,
        "status": status,
        "duration_ms": int(max(0.0, time.perf_counter() - float(started_at)) * 1000.0),
        "trace_id": str(trace_id or ""),
        "timestamp": datetime.utcnow().isoformat(),
    }
    payload.update(extra)
    current_app.logger.info(json.dumps(payload, default=str))


def _retry_countdown(retries: int) -> int:
    return int(min(900, max(5, 5 * (2 ** int(max(0, retries))))))


@shared_task(
    bind=True,
    name="spaceshare.tasks.topup_tasks.process_sepay_webhook",
    max_retries=5,
)
def process_sepay_webhook_task(self, *, payload: dict, event_id: int | None = None, trace_id: str = ""):
    from spaceshare.segments.segment_payment_webhooks import extract_order_ref, handle_sepay_payload

    started = time.perf_counter()
    order_ref = extract_order_ref(payload or {})
    try:
        body, status = handle_sepay_payload(payload or {}, event_id=event_id)
    except GatewayUnavailableError as exc:
        db.session.rollback()
        if int(self.request.retries or 0) < int(self.max_retries or 0):
            countdown = _retry_countdown(int(self.request.retries or 0))
            _task_log(
                "process_sepay_webhook",
                status="retrying",
                started_at=started,
                trace_id=trace_id,
                order_ref=order_ref,
                detail=str(exc),
                countdown=countdown,
            )
            raise self.retry(exc=exc, countdown=countdown)
        _task_log("process_sepay_webhook", status="failed", started_at=started, trace_id=trace_id, order_ref=order_ref, detail=str(exc))
        raise
    _task_log(
        "process_sepay_webhook",
        status="ok" if status == 200 else "rejected",
        started_at=started,
        trace_id=trace_id,
        order_ref=order_ref,
        http_status=status,
        result=body.get("result") or body.get("error"),
    )
    return body


@shared_task(bind=True, name="spaceshare.tasks.topup_tasks.reconcile_pending_topups")
def reconcile_pending_topups(self, limit: int = 50, trace_id: str = ""):
    from spaceshare.services.topup_service import reconcile_pending_orders

    started = time.perf_counter()
    try:
        summary = reconcile_pending_orders(limit=limit)
    except GatewayUnavailableError as exc:
        db.session.rollback()
        _task_log("reconcile_pending_topups", status="gateway_unavailable", started_at=started, trace_id=trace_id, detail=str(exc))
        return {"ok": False, "detail": str(exc)}
    _task_log("reconcile_pending_topups", status="ok", started_at=started, trace_id=trace_id, **summary)
    return {"ok": True, **summary}
