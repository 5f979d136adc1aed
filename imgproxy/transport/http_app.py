# imgproxy/transport/http_app.py
"""
HTTP application serving transformed images.

URL shape:
    [/{prefix}]/{options}/{source}/{path}   (addressing_scheme=source)
    [/{prefix}]/{options}/{path}            (addressing_scheme=prefix)

``options`` must look like ``w=800,h=600,f=webp`` and ``path`` must end in a
file extension; anything else is a 404, as if the route did not exist.
"""
from __future__ import annotations

import asyncio
import re
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from imgproxy.config import Settings, settings as default_settings
from imgproxy.core.errors import ProxyError, RateLimitedError
from imgproxy.core.options import is_valid_segment
from imgproxy.core.pipeline import ProxyRequest, RequestPipeline
from imgproxy.core.ports import BlobStore, ImageCodec, RateCounterStore
from imgproxy.core.proxy_config import ProxyConfig
from imgproxy.core.rate_limit import RateLimitGate, RateLimitPolicy
from imgproxy.infra.image_processor import ImageConfig, PillowImageCodec
from imgproxy.infra.logging_config import setup_logging, get_logger
from imgproxy.infra.metrics import MetricsCollector, ProxyMetrics
from imgproxy.infra.rate_limiter import InMemoryRateLimiter
from imgproxy.infra.storage import build_registry
from imgproxy.transport.middleware import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
)
from imgproxy.transport.security import (
    SecurityHeaders,
    get_client_ip,
    metrics_auth,
    sanitize_error_message,
)

logger = get_logger(__name__)

_PATH_WITH_EXTENSION = re.compile(r"\.[A-Za-z0-9]+\Z")

# Rate limiter housekeeping interval (seconds)
_RATE_LIMIT_CLEANUP_INTERVAL = 600


async def _cleanup_rate_limiter(counter_store: InMemoryRateLimiter, max_age_seconds: int) -> None:
    while True:
        await asyncio.sleep(_RATE_LIMIT_CLEANUP_INTERVAL)
        counter_store.cleanup(max_age_seconds=max_age_seconds)


def create_app(
    app_settings: Settings | None = None,
    store: BlobStore | None = None,
    codec: ImageCodec | None = None,
    counter_store: RateCounterStore | None = None,
) -> FastAPI:
    """
    Build the application from a settings object.

    Collaborators default to the configured storage backends, the Pillow
    codec and an in-memory rate counter; tests inject their own.
    """
    s = app_settings or default_settings
    config = ProxyConfig.from_settings(s)

    store = store if store is not None else build_registry(s)
    codec = codec if codec is not None else PillowImageCodec(ImageConfig(
        max_file_size_bytes=s.image_max_file_size_mb * 1024 * 1024,
        max_pixels=s.image_max_pixels_millions * 1_000_000,
    ))
    counter_store = counter_store if counter_store is not None else InMemoryRateLimiter()

    gate = RateLimitGate(counter_store, config.rate_limit)
    collector = MetricsCollector()
    pipeline = RequestPipeline(config, store, codec, gate, metrics=ProxyMetrics(collector))

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        logger.info(
            f"Starting image proxy: env={s.app_env}, prefix={config.route_prefix or '/'}, "
            f"scheme={config.scheme.value}"
        )

        cleanup_task = None
        if gate.active and isinstance(counter_store, InMemoryRateLimiter):
            cleanup_task = asyncio.create_task(
                _cleanup_rate_limiter(counter_store, max_age_seconds=config.rate_limit.window_seconds * 2)
            )

        yield

        logger.info("Shutting down image proxy")
        if cleanup_task is not None:
            cleanup_task.cancel()

    app = FastAPI(
        title="Image Proxy",
        description="On-the-fly image resizing and format conversion",
        version="1.0.0",
        lifespan=lifespan,
        # Security: Completely disable docs in production (None, not conditional URL)
        docs_url=None if s.is_production else "/docs",
        redoc_url=None if s.is_production else "/redoc",
        openapi_url=None if s.is_production else "/openapi.json",
    )
    app.state.config = config
    app.state.pipeline = pipeline
    app.state.metrics = collector

    hsts = s.is_production or s.is_staging

    class SecurityHeadersMiddleware(BaseHTTPMiddleware):
        """Add security headers to all responses"""
        async def dispatch(self, request: Request, call_next):
            response = await call_next(request)
            return SecurityHeaders.add_security_headers(response, hsts=hsts)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware, enabled=s.enable_request_logging)
    app.add_middleware(RequestIDMiddleware)

    # ========================================================================
    # EXCEPTION HANDLERS
    # ========================================================================

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError):
        if isinstance(exc, RateLimitedError):
            if config.rate_limit.policy is RateLimitPolicy.REDIRECT and exc.redirect_to:
                return RedirectResponse(url=exc.redirect_to, status_code=302)
            headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=headers)

        if exc.status_code >= 500:
            logger.error(f"Pipeline failure: {exc.kind}: {exc.detail}", extra={"error_kind": exc.kind})

        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc.__class__.__name__}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": sanitize_error_message(exc, s.is_production)},
        )

    # ========================================================================
    # ROUTES
    # ========================================================================

    @app.get("/health")
    def health():
        """Liveness check - PUBLIC, minimal information."""
        return {"status": "healthy"}

    if s.enable_metrics:
        @app.get(
            "/metrics",
            dependencies=[Depends(metrics_auth(s.metrics_token, s.internal_networks, s.trust_proxy_headers))],
        )
        def metrics():
            """
            Metrics endpoint - INTERNAL/METRICS only.

            Access: Internal network OR METRICS_TOKEN
            """
            return collector.get_metrics()

    async def serve_image(options: str, path: str, request: Request):
        """Resolve, validate, load, transform and return one image."""
        if not is_valid_segment(options) or not _PATH_WITH_EXTENSION.search(path):
            raise HTTPException(status_code=404, detail="Not found")

        proxy_request = ProxyRequest(
            options=options,
            path=path,
            client_ip=get_client_ip(request, s.trust_proxy_headers),
            request_id=getattr(request.state, "request_id", None),
        )
        result = await pipeline.handle(proxy_request, is_cancelled=request.is_disconnected)

        return Response(
            content=result.body,
            media_type=result.content_type,
            headers={"Cache-Control": result.cache_control},
        )

    if config.route_enabled:
        route = f"/{config.route_prefix}" if config.route_prefix else ""
        app.add_api_route(
            route + "/{options}/{path:path}",
            serve_image,
            methods=["GET"],
            name="imgproxy.show",
            include_in_schema=not s.is_production,
        )

    return app


# Initialize logging first
setup_logging(
    level=default_settings.log_level,
    use_json=default_settings.is_production
)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "imgproxy.transport.http_app:app",
        host="0.0.0.0",
        port=8080,
        reload=not default_settings.is_production,
        log_level=default_settings.log_level.lower(),
        access_log=not default_settings.is_production,  # Disable in prod (use middleware logging)
        server_header=False,  # Don't expose server version
        date_header=False,  # Don't expose server time
    )
