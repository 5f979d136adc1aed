# imgproxy/core/rate_limit.py
"""
Per-identity request quota.

The identity is ``{prefix}:{client_ip}:{request_path}`` so that each image
path is limited independently for a given client.  Whether the option
segment is part of ``request_path`` is a deployment choice
(``include_options``): with it, every transform variant of an image gets
its own quota.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from imgproxy.core.errors import RateLimitedError
from imgproxy.core.ports import RateCounterStore

logger = logging.getLogger(__name__)


class RateLimitPolicy(str, Enum):
    REJECT = "reject"      # 429 with Retry-After
    REDIRECT = "redirect"  # 302 to the bare image path


@dataclass(frozen=True)
class RateLimitConfig:
    enabled: bool = True
    max_attempts: int = 10
    key_prefix: str = "image-proxy"
    window_seconds: int = 60
    include_options: bool = False
    policy: RateLimitPolicy = RateLimitPolicy.REJECT


def build_identity(prefix: str, client_ip: str, request_path: str) -> str:
    return f"{prefix}:{client_ip}:{request_path}"


class RateLimitGate:
    """Quota check backed by an injected counter store."""

    def __init__(self, store: RateCounterStore, config: RateLimitConfig):
        self._store = store
        self.config = config

    @property
    def active(self) -> bool:
        return self.config.enabled

    def allow(self, identity: str, max_attempts: int, window_seconds: int) -> bool:
        count = self._store.increment(identity, window_seconds)
        return count <= max_attempts

    def check(self, client_ip: str, path: str, options: str | None = None) -> None:
        """
        Raise RateLimitedError when the client exceeded its quota for ``path``.

        ``path`` is the image path after the options segment; ``options`` is
        only folded into the identity when ``include_options`` is set.
        """
        if not self.active:
            return

        keyed_path = f"{options}/{path}" if self.config.include_options and options else path
        identity = build_identity(self.config.key_prefix, client_ip, keyed_path)

        if self.allow(identity, self.config.max_attempts, self.config.window_seconds):
            return

        masked = client_ip[:4] + "***" if len(client_ip) > 4 else "***"
        logger.warning(
            "Rate limit exceeded: ip=%s path=%s", masked, path,
            extra={"limit": self.config.max_attempts, "window": self.config.window_seconds},
        )
        raise RateLimitedError(
            retry_after=self.config.window_seconds,
            redirect_to="/" + path.lstrip("/"),
        )
