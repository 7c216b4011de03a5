from __future__ import annotations

import threading
import time
from functools import wraps

import redis
from flask import jsonify, request

from spaceshare.utils.env import env_bool, env_str


_LOCK = threading.Lock()
_WINDOWS: dict[str, list[float]] = {}
_CLIENT = None
_CLIENT_INIT = False


def rate_limit_enabled() -> bool:
    return env_bool("RATE_LIMIT_ENABLED", True)


def _get_client():
    global _CLIENT, _CLIENT_INIT
    with _LOCK:
        if _CLIENT_INIT:
            return _CLIENT
        _CLIENT_INIT = True
    url = env_str("REDIS_URL")
    if not url:
        return None
    try:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=0.75,
            socket_timeout=0.75,
        )
        client.ping()
    except redis.RedisError:
        return None
    with _LOCK:
        _CLIENT = client
    return client


def check_limit(key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    """Fixed-window counter. Returns (allowed, retry_after_seconds)."""
    window = max(1, int(window_seconds))
    limit = max(1, int(limit))
    client = _get_client()
    if client is not None:
        now_sec = int(time.time())
        counter_key = f"rl:v1:{key}:{now_sec // window}"
        try:
            current = int(client.incr(counter_key))
            if current == 1:
                client.expire(counter_key, window + 1)
            if current <= limit:
                return True, 0
            return False, int(max(1, window - (now_sec % window)))
        except redis.RedisError:
            pass
    return _check_limit_memory(key, limit=limit, window_seconds=window)


def _check_limit_memory(key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    now = time.time()
    start = now - window_seconds
    with _LOCK:
        bucket = [ts for ts in _WINDOWS.get(key, []) if ts >= start]
        if len(bucket) >= limit:
            _WINDOWS[key] = bucket
            return False, int(max(1, window_seconds - (now - min(bucket))))
        bucket.append(now)
        _WINDOWS[key] = bucket
    return True, 0


def reset_memory_windows() -> None:
    with _LOCK:
        _WINDOWS.clear()


def resolve_client_ip(req) -> str:
    xff = (req.headers.get("X-Forwarded-For") or "").strip()
    if xff and env_bool("TRUST_PROXY_HEADERS", False):
        first_hop = xff.split(",")[0].strip()
        if first_hop:
            return first_hop
    return (req.remote_addr or "").strip() or "unknown"


def rate_limit(key: str, per_seconds: int, limit: int, *, message: str = "Too many requests. Please retry later."):
    def decorator(fn):
        @wraps(fn)
        def wrapped(*args, **kwargs):
            if not rate_limit_enabled():
                return fn(*args, **kwargs)
            ok, retry_after = check_limit(f"{key}:ip:{resolve_client_ip(request)}", limit=limit, window_seconds=per_seconds)
            if ok:
                return fn(*args, **kwargs)
            resp = jsonify({"ok": False, "error": "RATE_LIMITED", "message": message, "retry_after": int(retry_after)})
            resp.headers["Retry-After"] = str(int(retry_after))
            return resp, 429

        return wrapped

    return decorator
