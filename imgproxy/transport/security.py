# imgproxy/transport/security.py
"""
Request security utilities.

- Client IP extraction (proxy headers only when explicitly trusted)
- Security headers on every response
- Metrics endpoint protection (bearer token or internal network)
- Error message sanitization for production
"""
import hmac
import ipaddress

from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from imgproxy.infra.logging_config import get_logger

logger = get_logger(__name__)


def get_client_ip(request: Request, trust_proxy_headers: bool = False) -> str:
    """
    Get the real client IP, respecting proxy headers if configured.

    SECURITY NOTE:
    - Only trust X-Forwarded-For if you're behind a trusted proxy
    - Malicious clients can spoof this header to dodge per-IP rate limits
    - Set TRUST_PROXY_HEADERS=false if exposed directly to internet
    """
    client_ip = request.client.host if request.client else "unknown"

    if trust_proxy_headers:
        # X-Forwarded-For: client, proxy1, proxy2
        # The first IP is the original client
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()

        # Some proxies use X-Real-IP
        real_ip = request.headers.get("X-Real-IP")
        if real_ip and not forwarded_for:
            client_ip = real_ip.strip()

    return client_ip


# Metrics auth scheme
metrics_bearer_scheme = HTTPBearer(
    scheme_name="Metrics Token",
    description="Enter your metrics token (without 'Bearer ' prefix)",
    auto_error=False,
)


def parse_networks(cidrs: str) -> list[ipaddress.IPv4Network | ipaddress.IPv6Network]:
    """Parse comma-separated CIDRs, skipping invalid entries."""
    networks = []
    for cidr in cidrs.split(","):
        cidr = cidr.strip()
        if not cidr:
            continue
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError as e:
            logger.warning(f"Invalid CIDR in INTERNAL_NETWORKS: {cidr} - {e}")
    return networks


def is_internal_ip(ip_str: str, networks) -> bool:
    """Check if IP address is in allowed internal networks."""
    try:
        ip = ipaddress.ip_address(ip_str)
    except ValueError:
        logger.warning(f"Invalid IP address format: {ip_str}")
        return False

    return any(ip in network for network in networks)


def metrics_auth(
    metrics_token: str | None,
    internal_networks: str,
    trust_proxy_headers: bool = False,
):
    """
    Build the dependency guarding metrics endpoints.

    Security model (in order of precedence):
    1. If METRICS_TOKEN is set: require Bearer token authentication
    2. If METRICS_TOKEN is not set: require internal network access

    Usage:
        .get("/metrics", dependencies=[Depends(metrics_auth(...))])
    """
    networks = parse_networks(internal_networks)

    def require_metrics_auth(
        request: Request,
        credentials: HTTPAuthorizationCredentials | None = Depends(metrics_bearer_scheme),
    ):
        # Strategy 1: Token-based auth (if configured)
        if metrics_token:
            if not credentials:
                logger.warning("Metrics endpoint accessed without token")
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Authentication required",
                    headers={"WWW-Authenticate": "Bearer"},
                )

            if not hmac.compare_digest(credentials.credentials, metrics_token):
                logger.warning("Invalid metrics token attempt")
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid credentials",
                    headers={"WWW-Authenticate": "Bearer"},
                )
            return  # Token valid

        # Strategy 2: Internal network check (fallback when no token configured)
        client_ip = get_client_ip(request, trust_proxy_headers)
        if is_internal_ip(client_ip, networks):
            return

        logger.warning(f"Metrics access denied from non-internal IP: {client_ip}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    return require_metrics_auth


class SecurityHeaders:
    """OWASP recommended response headers."""

    @staticmethod
    def add_security_headers(response, hsts: bool = False):
        # Prevent MIME sniffing (images are served with an exact Content-Type)
        response.headers["X-Content-Type-Options"] = "nosniff"

        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"

        # Referrer policy - don't leak URLs to third parties
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # No scripts/styles can run from proxied content (e.g. crafted SVG)
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        # Images set their own Cache-Control; everything else is not cacheable
        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

        if hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"

        # CORP=cross-origin so images can be embedded on other origins
        response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"

        # Hide server information
        if "Server" in response.headers:
            del response.headers["Server"]

        return response


def sanitize_error_message(error: Exception, is_production: bool) -> str:
    """
    Sanitize error messages for external responses.
    In production: Generic messages
    In dev: Detailed messages
    """
    if not is_production:
        return str(error)

    error_type = type(error).__name__

    generic_messages = {
        "ValueError": "Invalid input",
        "KeyError": "Invalid request",
        "ConnectionError": "Service temporarily unavailable",
        "TimeoutError": "Request timeout",
    }

    return generic_messages.get(error_type, "An error occurred")
