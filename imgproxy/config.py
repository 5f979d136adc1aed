# imgproxy/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Any, Literal

from imgproxy.infra.logging_config import get_logger

logger = get_logger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    enable_request_logging: bool = True
    # SECURITY: Only set to true if behind a trusted reverse proxy (nginx, cloudflared, etc.)
    # When false, uses direct client IP - prevents X-Forwarded-For spoofing of rate limit keys
    trust_proxy_headers: bool = False

    # Metrics (/metrics): bearer token if set, otherwise internal network only
    enable_metrics: bool = True
    metrics_token: str | None = None
    internal_networks: str = "10.0.0.0/8,172.16.0.0/12,192.168.0.0/16,127.0.0.0/8,::1/128"

    # Route
    route_enabled: bool = True
    route_prefix: str | None = "img"  # None/empty serves from the root URL: /{options}/{path}

    # Addressing scheme
    # "source" - /{options}/{source}/{path} (source named explicitly)
    # "prefix" - /{options}/{path}, longest matching source key prefix, else default_source
    addressing_scheme: Literal["source", "prefix"] = "source"
    default_source: str = ""

    # Sources (JSON in env), e.g.
    # SOURCES='{"images": "public", "media": {"backend": "s3", "root": "uploads", "validator": {"extensions": ["jpg"]}}}'
    # A validator is either a rule set {"directories": [...], "patterns": [...], "extensions": [...]}
    # or a "module:attribute" reference to a predicate / object with validate(path).
    sources: dict[str, str | dict[str, Any]] = {"images": "public"}
    path_validator: dict[str, list[str]] | str | None = None  # global fallback for sources without one

    # Storage backends, e.g. {"public": {"driver": "local", "root": "public"}, "s3": {"driver": "s3"}}
    storage_backends: dict[str, dict[str, Any]] = {"public": {"driver": "local", "root": "public"}}

    # S3/Bucket Storage (used by "s3" driver backends)
    s3_endpoint_url: str | None = None  # e.g., https://s3.amazonaws.com or https://xyz.r2.cloudflarestorage.com
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_bucket_name: str | None = None
    s3_region: str = "auto"
    s3_force_path_style: bool = True

    # Rate Limiting (only applies when app_env=prod)
    rate_limit_enabled: bool = True
    rate_limit_max_attempts: int = 10
    rate_limit_key_prefix: str = "image-proxy"
    rate_limit_window_seconds: int = 60
    rate_limit_include_options: bool = False  # True = each transform variant of a path is limited separately
    rate_limit_policy: Literal["reject", "redirect"] = "reject"

    # Transform limits
    default_quality: int = 85
    max_width: int = 2000
    max_height: int = 2000
    allowed_widths: list[int] | None = None  # e.g. [100, 200, 400, 800] - overrides max_width
    allowed_heights: list[int] | None = None
    allowed_formats: list[str] = ["jpg", "jpeg", "png", "gif", "webp"]

    # Cache headers
    cache_max_age: int = 2592000  # 30 days
    cache_s_maxage: int = 2592000  # 30 days (CDN/proxy caches)
    cache_immutable: bool = True
    cache_stale_while_revalidate: int | None = None
    cache_stale_if_error: int | None = None

    # Upstream (load + transform)
    upstream_timeout_seconds: float = 10.0
    image_max_file_size_mb: int = 20
    image_max_pixels_millions: int = 50  # Decompression bomb guard

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def is_staging(self) -> bool:
        return self.app_env == "staging"

    @property
    def s3_enabled(self) -> bool:
        """Check if S3 credentials are configured"""
        return bool(
            self.s3_endpoint_url
            and self.s3_access_key
            and self.s3_secret_key
            and self.s3_bucket_name
        )

    @property
    def rate_limit_active(self) -> bool:
        """Rate limiting is a production-only policy"""
        return self.is_production and self.rate_limit_enabled

    def referenced_backends(self) -> set[str]:
        """Backend ids named by the configured sources"""
        referenced = set()
        for source in self.sources.values():
            if isinstance(source, str):
                referenced.add(source)
            else:
                referenced.add(source.get("backend") or source.get("disk") or "public")
        return referenced

    def uses_driver(self, driver: str) -> bool:
        return any(b.get("driver", "local") == driver for b in self.storage_backends.values())

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []

        if self.uses_driver("s3"):
            for field_name in ("s3_endpoint_url", "s3_access_key", "s3_secret_key"):
                if not getattr(self, field_name):
                    missing.append(field_name)

        if not self.sources:
            missing.append("sources")

        for backend in sorted(self.referenced_backends() - set(self.storage_backends)):
            missing.append(f"storage_backends.{backend}")

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    # --- Path validation ---
    unvalidated = [
        key or "<default>"
        for key, source in s.sources.items()
        if not (isinstance(source, dict) and source.get("validator"))
    ]
    if unvalidated and not s.path_validator:
        warnings.append(
            f"sources without a path validator: {unvalidated} (any path under the backend can be served)."
        )

    # --- Rate limiting ---
    if s.is_production and not s.rate_limit_enabled:
        warnings.append("prod: rate limiting is disabled.")
    if s.trust_proxy_headers:
        warnings.append(
            "trust_proxy_headers=True: ensure you are behind a trusted reverse proxy, "
            "otherwise X-Forwarded-For spoofing can bypass rate limits."
        )

    # --- Metrics ---
    if s.enable_metrics and not s.metrics_token:
        warnings.append(
            "enable_metrics=True but metrics_token is not set: /metrics protection relies on internal_networks."
        )
    if s.enable_metrics and not s.internal_networks.strip():
        warnings.append("internal_networks is empty: internal-only protection for /metrics won't work.")

    # --- Dimensions ---
    if s.allowed_widths is None and s.allowed_heights is None:
        warnings.append(
            "allowed_widths/allowed_heights not set: any dimension up to max_width/max_height "
            "can be requested (cache-busting with arbitrary sizes is possible)."
        )

    # --- Storage ---
    for backend in sorted(s.referenced_backends() - set(s.storage_backends)):
        warnings.append(f"source backend '{backend}' has no entry in storage_backends.")

    if s.uses_driver("s3") and not s.s3_enabled:
        warnings.append("an s3 backend is configured but S3 credentials are incomplete.")

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In non-prod: warn only.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        logger.warning(f"[config] {msg}")


settings = Settings()
validate_or_warn(settings)
