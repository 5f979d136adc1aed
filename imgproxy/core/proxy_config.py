# imgproxy/core/proxy_config.py
"""
Immutable configuration snapshot.

Built once from ``Settings`` at startup and handed to every component
through its constructor; nothing on the request path reads settings.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from imgproxy.core.cache_control import CacheControlConfig
from imgproxy.core.path_validator import build_validator
from imgproxy.core.rate_limit import RateLimitConfig, RateLimitPolicy
from imgproxy.core.sources import AddressingScheme, SourceConfig, normalize_source_config
from imgproxy.core.transform import TransformLimits

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProxyConfig:
    sources: Mapping[str, SourceConfig]
    scheme: AddressingScheme = AddressingScheme.SOURCE
    default_source: str = ""
    limits: TransformLimits = field(default_factory=TransformLimits)
    cache: CacheControlConfig = field(default_factory=CacheControlConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    upstream_timeout: float = 10.0
    route_enabled: bool = True
    route_prefix: str | None = None

    @classmethod
    def from_settings(cls, settings) -> "ProxyConfig":
        fallback = build_validator(settings.path_validator)

        # Normalized once: the request path never sees the raw config shape
        sources = {
            key: normalize_source_config(raw, fallback_validator=fallback)
            for key, raw in settings.sources.items()
        }

        limits = TransformLimits(
            max_width=settings.max_width,
            max_height=settings.max_height,
            allowed_widths=frozenset(settings.allowed_widths) if settings.allowed_widths is not None else None,
            allowed_heights=frozenset(settings.allowed_heights) if settings.allowed_heights is not None else None,
            allowed_formats=frozenset(f.lower() for f in settings.allowed_formats),
            quality_default=settings.default_quality,
        )

        cache = CacheControlConfig(
            max_age=settings.cache_max_age,
            s_maxage=settings.cache_s_maxage,
            immutable=settings.cache_immutable,
            stale_while_revalidate=settings.cache_stale_while_revalidate,
            stale_if_error=settings.cache_stale_if_error,
        )

        rate_limit = RateLimitConfig(
            enabled=settings.rate_limit_active,
            max_attempts=settings.rate_limit_max_attempts,
            key_prefix=settings.rate_limit_key_prefix,
            window_seconds=settings.rate_limit_window_seconds,
            include_options=settings.rate_limit_include_options,
            policy=RateLimitPolicy(settings.rate_limit_policy),
        )

        config = cls(
            sources=MappingProxyType(sources),
            scheme=AddressingScheme(settings.addressing_scheme),
            default_source=settings.default_source,
            limits=limits,
            cache=cache,
            rate_limit=rate_limit,
            upstream_timeout=settings.upstream_timeout_seconds,
            route_enabled=settings.route_enabled,
            route_prefix=(settings.route_prefix or "").strip("/") or None,
        )

        logger.info(
            f"Proxy config loaded: sources={list(sources)}, scheme={config.scheme.value}, "
            f"rate_limit={'on' if rate_limit.enabled else 'off'}"
        )
        return config
