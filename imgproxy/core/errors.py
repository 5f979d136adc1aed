# imgproxy/core/errors.py
"""
Typed errors raised by the request pipeline.

Each error carries the HTTP status code it maps to.  The transport layer
catches ``ProxyError`` subtypes and converts them to JSON responses
without embedding pipeline logic in the route handlers.
"""
from __future__ import annotations


class ProxyError(Exception):
    """Base class for all pipeline failures."""

    status_code: int = 500
    kind: str = "ProxyError"

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class UnknownSourceError(ProxyError):
    """Source key is not configured (404)."""

    status_code = 404
    kind = "UnknownSource"

    def __init__(self, detail: str = "Unknown source"):
        super().__init__(detail)


class DirectoryTraversalError(ProxyError):
    """Path contains a ``..`` segment (403)."""

    status_code = 403
    kind = "DirectoryTraversal"

    def __init__(self, detail: str = "Directory traversal not allowed"):
        super().__init__(detail)


class PathNotAllowedError(ProxyError):
    """Path rejected by a configured validator (403)."""

    status_code = 403
    kind = "PathNotAllowed"

    def __init__(self, detail: str = "Path not allowed"):
        super().__init__(detail)


class NotFoundError(ProxyError):
    """Backend has no object at the resolved path (404)."""

    status_code = 404
    kind = "NotFound"

    def __init__(self, detail: str = "Image not found"):
        super().__init__(detail)


class InvalidOptionError(ProxyError):
    """Base for rejected transform options (400)."""

    status_code = 400
    kind = "InvalidOption"

    def __init__(self, detail: str = "Invalid option", errors: tuple["InvalidOptionError", ...] = ()):
        # All failures found in the same validation pass, this one included
        self.errors = errors or (self,)
        super().__init__(detail)


class InvalidDimensionError(InvalidOptionError):
    kind = "InvalidDimension"


class InvalidQualityError(InvalidOptionError):
    kind = "InvalidQuality"


class InvalidFormatError(InvalidOptionError):
    kind = "InvalidFormat"


class InvalidFitError(InvalidOptionError):
    kind = "InvalidFit"


class RateLimitedError(ProxyError):
    """
    Identity exceeded its quota (429).

    Attributes:
        retry_after: Seconds until the window frees a slot, if known.
        redirect_to: Bare image path for the redirect policy.
    """

    status_code = 429
    kind = "RateLimited"

    def __init__(
        self,
        detail: str = "Rate limit exceeded",
        retry_after: int | None = None,
        redirect_to: str | None = None,
    ):
        self.retry_after = retry_after
        self.redirect_to = redirect_to
        super().__init__(detail)


class UpstreamTimeoutError(ProxyError):
    """Load or transform exceeded the configured timeout (500)."""

    status_code = 500
    kind = "UpstreamTimeout"

    def __init__(self, detail: str = "Upstream timeout"):
        super().__init__(detail)


class EncodeFailureError(ProxyError):
    """Codec could not decode or encode the image (500)."""

    status_code = 500
    kind = "EncodeFailure"

    def __init__(self, detail: str = "Image could not be encoded"):
        super().__init__(detail)


class MisconfigurationError(ProxyError):
    """Invalid source/backend configuration (500)."""

    status_code = 500
    kind = "Misconfiguration"

    def __init__(self, detail: str = "Invalid image source configuration"):
        super().__init__(detail)


class RequestCancelledError(ProxyError):
    """Client went away before the pipeline finished (499)."""

    status_code = 499
    kind = "Cancelled"

    def __init__(self, detail: str = "Client closed request"):
        super().__init__(detail)
