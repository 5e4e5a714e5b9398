import threading
import time
from typing import Callable, Dict, Tuple

from fastapi import Request

from errors import RateLimited


class RateLimiter:
    """Fixed-window request counter keyed by client IP.

    Used as a FastAPI dependency: ``Depends(limiter)``.
    """

    def __init__(self, max_requests: int, window_seconds: int,
                 clock: Callable[[], float] = time.monotonic, sweep_threshold: int = 1024):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self.sweep_threshold = sweep_threshold
        self._hits: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key_for(request: Request) -> str:
        return request.client.host if request.client else "unknown"

    def hit(self, key: str) -> int:
        now = self.clock()
        with self._lock:
            if len(self._hits) >= self.sweep_threshold:
                self._sweep(now)
            started, count = self._hits.get(key, (now, 0))
            if now - started >= self.window_seconds:
                started, count = now, 0
            count += 1
            self._hits[key] = (started, count)
        if count > self.max_requests:
            raise RateLimited()
        return count

    def _sweep(self, now: float) -> None:
        # caller holds the lock
        expired = [k for k, (started, _) in self._hits.items() if now - started >= self.window_seconds]
        for k in expired:
            del self._hits[k]

    def forgive(self, key: str) -> None:
        """Take back one hit, e.g. after a successful login."""
        with self._lock:
            if key in self._hits:
                started, count = self._hits[key]
                self._hits[key] = (started, max(count - 1, 0))

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()

    def __call__(self, request: Request) -> str:
        key = self.key_for(request)
        self.hit(key)
        return key
