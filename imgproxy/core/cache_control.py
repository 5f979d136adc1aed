# imgproxy/core/cache_control.py
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CacheControlConfig:
    """Cache-Control directives for image responses (defaults: 30 days, immutable)"""
    max_age: int | None = 2592000
    s_maxage: int | None = 2592000
    immutable: bool = True
    stale_while_revalidate: int | None = None
    stale_if_error: int | None = None


def build_cache_control(config: CacheControlConfig) -> str:
    """
    Build the Cache-Control header value.

    Directive order is fixed:
        public, max-age, s-maxage, immutable, stale-while-revalidate, stale-if-error
    Zero/None values are omitted.
    """
    parts = ["public"]

    if config.max_age:
        parts.append(f"max-age={config.max_age}")

    if config.s_maxage:
        parts.append(f"s-maxage={config.s_maxage}")

    if config.immutable:
        parts.append("immutable")

    if config.stale_while_revalidate:
        parts.append(f"stale-while-revalidate={config.stale_while_revalidate}")

    if config.stale_if_error:
        parts.append(f"stale-if-error={config.stale_if_error}")

    return ", ".join(parts)
