"""
Revoked web sessions, kept in Redis/Valkey.

A logged-out or superseded session id is denied until the token would have
expired on its own; after that the key disappears with it.
"""
from __future__ import annotations
import time
import redis
from core.config import settings

_KEY = "session:revoked:{jti}"

rds = redis.Redis(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    password=settings.REDIS_PASSWORD,
    ssl=settings.REDIS_SSL.lower() in ("1", "true", "yes"),
    ssl_cert_reqs=None,
    decode_responses=True,
    socket_timeout=2,
)


def revoke_session(jti: str, expires_at: int | None) -> None:
    """Deny a session id until its natural expiry (at least one second)."""
    ttl = max(int((expires_at or 0) - time.time()), 1)
    rds.setex(_KEY.format(jti=jti), ttl, "1")


def is_session_revoked(jti: str) -> bool:
    return rds.exists(_KEY.format(jti=jti)) > 0
