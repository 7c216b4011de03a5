from __future__ import annotations

import time
from typing import Any

import jwt

from spaceshare.utils.env import env_int, env_str


ALGORITHM = "HS256"


def _secret() -> str:
    return env_str("SECRET_KEY", "dev-secret")


def access_token_ttl() -> int:
    return env_int("ACCESS_TOKEN_TTL_SECONDS", 60 * 60 * 24 * 7, minimum=60)


def create_token(user_id: int, ttl_seconds: int | None = None) -> str:
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + int(ttl_seconds or access_token_ttl()),
        "type": "access",
    }
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def decode_token(token: str) -> dict[str, Any] | None:
    try:
        payload = jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None
    if payload.get("type") != "access":
        return None
    return payload


def get_bearer_token(auth_header: str) -> str | None:
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None
