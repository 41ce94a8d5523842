from typing import Any, Dict, Optional, Tuple
import hashlib
import threading
import time

from pydantic import BaseModel

from src.exceptions import Conflict

_IN_FLIGHT = object()


def request_fingerprint(request: BaseModel) -> str:
    """Stable hash of a request body, bound to its Idempotency-Key"""
    return hashlib.sha256(request.model_dump_json().encode("utf-8")).hexdigest()


class IdempotencyCache:
    """
    Short-lived memory of responses keyed by client-supplied Idempotency-Key.

    A client that retries a booking request with the same key and the same
    body within ``ttl`` seconds gets the first response back instead of a
    second booking. ``begin`` claims the key atomically; the claim is either
    completed with the response or abandoned when the request fails.
    """

    def __init__(self, ttl: float = 30.0):
        self.ttl = ttl
        self._entries: Dict[str, Tuple[float, str, Any]] = {}
        self._lock = threading.Lock()

    def begin(self, key: str, fingerprint: str) -> Optional[Any]:
        """Return the stored response, or claim the key and return None"""
        with self._lock:
            self._evict()
            entry = self._entries.get(key)
            if entry is None:
                self._entries[key] = (time.monotonic() + self.ttl, fingerprint, _IN_FLIGHT)
                return None

            _, stored_fingerprint, response = entry
            if stored_fingerprint != fingerprint:
                raise Conflict(reason="idempotency_key_reused", idempotency_key=key)
            if response is _IN_FLIGHT:
                raise Conflict(reason="request_in_progress", idempotency_key=key)
            return response

    def complete(self, key: str, fingerprint: str, response: Any) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic() + self.ttl, fingerprint, response)

    def abandon(self, key: str) -> None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[2] is _IN_FLIGHT:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _evict(self) -> None:
        now = time.monotonic()
        expired = [key for key, entry in self._entries.items() if entry[0] <= now]
        for key in expired:
            del self._entries[key]
