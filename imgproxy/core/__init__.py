# imgproxy/core/__init__.py
"""
Core pipeline -- framework-agnostic request resolution and validation.

Canonical imports:
    from imgproxy.core import RequestPipeline, ProxyConfig
    from imgproxy.core.path_validator import directories, matching, with_extensions
    from imgproxy.core.url_builder import imgproxy_url
"""
from imgproxy.core.errors import ProxyError  # noqa: F401
from imgproxy.core.options import parse_options, serialize_options  # noqa: F401
from imgproxy.core.path_validator import PathValidator, CallableValidator  # noqa: F401
from imgproxy.core.sources import SourceConfig, SourceResolver, ResolvedRequest  # noqa: F401
from imgproxy.core.transform import FitMode, TransformLimits, TransformSpec  # noqa: F401
from imgproxy.core.cache_control import CacheControlConfig, build_cache_control  # noqa: F401
from imgproxy.core.rate_limit import RateLimitConfig, RateLimitGate  # noqa: F401
from imgproxy.core.proxy_config import ProxyConfig  # noqa: F401
from imgproxy.core.pipeline import ProxyRequest, ProxyResponse, RequestPipeline  # noqa: F401
