"""HMAC signatures for time-limited artifact URLs."""

from __future__ import annotations

import hashlib
import hmac
import time


def sign(secret: str, key: str, expires: int) -> str:
    message = f"{key}:{expires}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify(secret: str, key: str, expires: int, signature: str, now: float | None = None) -> bool:
    """Check the signature and that the link has not expired."""
    current = time.time() if now is None else now
    if expires < current:
        return False
    return hmac.compare_digest(sign(secret, key, expires), signature)
