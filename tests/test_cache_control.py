# tests/test_cache_control.py
"""Tests for imgproxy/core/cache_control.py"""
from imgproxy.core.cache_control import CacheControlConfig, build_cache_control


def test_defaults():
    assert build_cache_control(CacheControlConfig()) == (
        "public, max-age=2592000, s-maxage=2592000, immutable"
    )


def test_all_directives_in_fixed_order():
    config = CacheControlConfig(
        max_age=60, s_maxage=120, immutable=True, stale_while_revalidate=30, stale_if_error=86400,
    )
    assert build_cache_control(config) == (
        "public, max-age=60, s-maxage=120, immutable, stale-while-revalidate=30, stale-if-error=86400"
    )


def test_zero_and_none_omitted():
    config = CacheControlConfig(max_age=0, s_maxage=None, immutable=False, stale_while_revalidate=0)
    assert build_cache_control(config) == "public"
