from __future__ import annotations

from typing import Any, Callable, Optional
import threading
import time


class TTLCache:
    """A single cached value with an expiry timestamp.

    ``clock`` is injectable so expiry can be tested without sleeping.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._value: Any = None
        self._expires_at: float = 0.0
        self._has_value = False

    def get(self, default: Any = None) -> Any:
        with self._lock:
            if self._has_value and self._clock() < self._expires_at:
                return self._value
            return default

    def set(self, value: Any, ttl_seconds: Optional[float] = None) -> None:
        with self._lock:
            self._value = value
            self._has_value = True
            self._expires_at = self._clock() + (self.ttl_seconds if ttl_seconds is None else ttl_seconds)

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._has_value = False
            self._expires_at = 0.0

    @property
    def expires_at(self) -> float:
        return self._expires_at
