"""
Password hashing and verification utilities.

Follows Layer 1 rules:
- Always use a strong hashing algorithm (bcrypt)
- NEVER log plaintext passwords or hashes
"""
from __future__ import annotations
import bcrypt

# Checked against when the login identifier matches no user, so both paths cost one bcrypt round.
_DUMMY_HASH = bcrypt.hashpw(b"not-a-real-password", bcrypt.gensalt()).decode()


def _to_bytes(x) -> bytes:
    if x is None:
        return b""
    if isinstance(x, (bytes, bytearray)):
        return bytes(x)
    return str(x).encode()


def hash_password(plain: str) -> str:
    """
    Hash a plaintext password using bcrypt.

    Args:
        plain: Plaintext password

    Returns:
        Hashed password string
    """
    return bcrypt.hashpw(_to_bytes(plain), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str | None) -> bool:
    """
    Verify a plaintext password against a hash.

    A missing or malformed stored hash never matches.
    """
    try:
        return bcrypt.checkpw(_to_bytes(plain), _to_bytes(hashed or _DUMMY_HASH)) and hashed is not None
    except ValueError:
        return False
