"""URL validation and artifact key derivation."""

from __future__ import annotations

import hashlib
import threading
import time
from urllib.parse import urlparse

from snapdiff.errors import InvalidInputError
from snapdiff.models.capture import ArtifactKeySet

KEY_PREFIX = "screenshots"
IMAGE_EXT = "png"


def validate_target_url(url: str) -> str:
    """Reject empty or non-http(s) URLs before any browser work starts."""
    if not url or not url.strip():
        raise InvalidInputError("Missing url parameter")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidInputError("Invalid url parameter")
    return url


def identity_from_url(url: str) -> str:
    """Stable fingerprint of the exact URL string."""
    return hashlib.md5(url.encode("utf-8")).hexdigest()


def derive_keys(target_url: str, generation: int) -> ArtifactKeySet:
    validate_target_url(target_url)
    identity = identity_from_url(target_url)
    base = f"{KEY_PREFIX}/{identity}"
    return ArtifactKeySet(
        identity=identity,
        generation=generation,
        raw_key=f"{base}/capture-{generation}.{IMAGE_EXT}",
        baseline_key=baseline_key_for(identity),
        diff_key=f"{base}/diff-{generation}.{IMAGE_EXT}",
    )


def baseline_key_for(identity: str) -> str:
    return f"{KEY_PREFIX}/{identity}/baseline.{IMAGE_EXT}"


class GenerationClock:
    """Millisecond timestamps, strictly increasing within one process."""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            now = int(self._clock() * 1000)
            if now <= self._last:
                now = self._last + 1
            self._last = now
            return now
