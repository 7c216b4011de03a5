from __future__ import annotations

import hashlib
import json
import logging
import time
import uuid
from datetime import datetime

from flask import g, request

from spaceshare.utils.env import env_float, env_str


def _hash_ip(ip: str, salt: str) -> str:
    raw = f"{salt}:{ip or ''}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:16]


def get_request_id() -> str:
    return getattr(g, "request_id", "")


def configure_logging(app) -> None:
    level = getattr(logging, env_str("LOG_LEVEL", "INFO").upper(), logging.INFO)
    app.logger.setLevel(level)


def init_sentry(app) -> None:
    dsn = env_str("SENTRY_DSN")
    if not dsn:
        app.logger.info("sentry_disabled_no_dsn")
        return
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=env_str("SENTRY_ENVIRONMENT") or env_str("SPACESHARE_ENV", "dev"),
            release=env_str("GIT_SHA", "unknown"),
            integrations=[FlaskIntegration()],
            send_default_pii=False,
            traces_sample_rate=env_float("SENTRY_TRACES_SAMPLE_RATE", 0.0, minimum=0.0, maximum=1.0),
            before_send=_before_send_scrub,
        )
        app.logger.info("sentry_enabled")
    except Exception as e:
        app.logger.warning("sentry_init_failed err=%s", e)


def _before_send_scrub(event, hint):
    req = event.get("request") or {}
    headers = req.get("headers") or {}
    for key in list(headers.keys()):
        if key.lower() in ("authorization", "cookie", "set-cookie", "x-api-key"):
            headers[key] = "[REDACTED]"
    if headers:
        req["headers"] = headers
        event["request"] = req
    return event


def install_request_observers(app) -> None:
    @app.before_request
    def _request_observer_begin():
        rid = (request.headers.get("X-Request-Id") or "").strip()
        g.request_id = rid[:64] if rid else uuid.uuid4().hex
        g.request_started_at = time.perf_counter()

    @app.after_request
    def _request_observer_end(response):
        rid = getattr(g, "request_id", "") or uuid.uuid4().hex
        response.headers["X-Request-Id"] = rid
        started = getattr(g, "request_started_at", None)
        latency_ms = round((time.perf_counter() - float(started)) * 1000.0, 2) if started is not None else None
        user = g.get("current_user")
        payload = {
            "ts": datetime.utcnow().isoformat(),
            "request_id": rid,
            "path": request.path,
            "method": request.method,
            "status": int(response.status_code),
            "latency_ms": latency_ms,
            "user_id": int(user.id) if user is not None else None,
            "ip_hash": _hash_ip(request.headers.get("X-Forwarded-For", request.remote_addr or ""), app.config.get("SECRET_KEY", "spaceshare")),
        }
        app.logger.info(json.dumps(payload))
        return response
