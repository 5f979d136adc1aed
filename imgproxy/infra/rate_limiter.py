# imgproxy/infra/rate_limiter.py
from __future__ import annotations
import time
from collections import defaultdict
from threading import Lock
from imgproxy.infra.logging_config import get_logger

logger = get_logger(__name__)


class InMemoryRateLimiter:
    """
    In-memory sliding-window hit counter (RateCounterStore).

    ⚠️ NOT horizontally scalable: each process holds its own window,
    so with N replicas the effective limit is N × max_attempts.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._hits: dict[str, list[float]] = defaultdict(list)
        self._lock = Lock()

    def increment(self, identity: str, window_seconds: int) -> int:
        """Record a hit and return the number of hits inside the window."""
        now = self._clock()
        cutoff = now - window_seconds

        with self._lock:
            hits = [ts for ts in self._hits[identity] if ts > cutoff]
            hits.append(now)
            self._hits[identity] = hits
            return len(hits)

    def get_usage(self, identity: str, window_seconds: int) -> dict:
        """Get current usage stats for an identity"""
        cutoff = self._clock() - window_seconds

        with self._lock:
            recent = [ts for ts in self._hits.get(identity, []) if ts > cutoff]
            return {
                "count": len(recent),
                "window_seconds": window_seconds,
            }

    def cleanup(self, max_age_seconds: int = 3600) -> int:
        """
        Remove identities that haven't been used recently.
        Returns number of identities removed.
        """
        cutoff = self._clock() - max_age_seconds

        with self._lock:
            to_remove = [
                identity for identity, hits in self._hits.items()
                if not hits or max(hits) < cutoff
            ]

            for identity in to_remove:
                del self._hits[identity]

        if to_remove:
            logger.info(f"Rate limiter cleanup: removed {len(to_remove)} keys")

        return len(to_remove)
