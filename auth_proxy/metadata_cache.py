"""
Single-slot cache for the enhanced authorization-server metadata document.
Shared by all tenants; an entry is never returned at or after its expiry.
"""
import threading
import time
from typing import Callable


class MetadataCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._document: dict | None = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    def get(self) -> dict | None:
        with self._lock:
            if self._document is None or self._clock() >= self._expires_at:
                return None
            return self._document

    def put(self, document: dict, max_age: float) -> None:
        """Store document for max_age seconds (0 means it is already stale). Last write wins."""
        with self._lock:
            self._document = document
            self._expires_at = self._clock() + max_age

    def clear(self) -> None:
        with self._lock:
            self._document = None
            self._expires_at = 0.0
