# imgproxy/core/url_builder.py
"""
Fluent builder for proxy URLs.

    imgproxy_url("uploads", "photos/image.jpg").width(300).webp().url()
    # → "/img/w=300,f=webp/uploads/photos/image.jpg"

Options are always emitted in canonical order, whatever order the setters
were called in, so equal transforms produce equal (cacheable) URLs.
"""
from __future__ import annotations

from imgproxy.core.options import serialize_options
from imgproxy.core.transform import FitMode


class UrlBuilder:
    def __init__(self, source: str, path: str, prefix: str | None = None):
        self.source = source
        self.path = path
        self.prefix = prefix
        self._options: dict[str, object] = {}

    def width(self, width: int) -> "UrlBuilder":
        self._options["width"] = int(width)
        return self

    w = width

    def height(self, height: int) -> "UrlBuilder":
        self._options["height"] = int(height)
        return self

    h = height

    def format(self, fmt: str) -> "UrlBuilder":
        self._options["format"] = fmt
        return self

    f = format

    def webp(self) -> "UrlBuilder":
        return self.format("webp")

    def png(self) -> "UrlBuilder":
        return self.format("png")

    def jpg(self) -> "UrlBuilder":
        return self.format("jpg")

    def gif(self) -> "UrlBuilder":
        return self.format("gif")

    def quality(self, quality: int) -> "UrlBuilder":
        self._options["quality"] = int(quality)
        return self

    q = quality

    def fit(self, fit: str | FitMode) -> "UrlBuilder":
        self._options["fit"] = FitMode(fit).value if isinstance(fit, FitMode) else fit
        return self

    def cover(self) -> "UrlBuilder":
        return self.fit(FitMode.COVER)

    def contain(self) -> "UrlBuilder":
        return self.fit(FitMode.CONTAIN)

    def scale(self) -> "UrlBuilder":
        return self.fit(FitMode.SCALE)

    def scale_down(self) -> "UrlBuilder":
        return self.fit(FitMode.SCALEDOWN)

    def crop(self) -> "UrlBuilder":
        return self.fit(FitMode.CROP)

    def version(self, version: str | int) -> "UrlBuilder":
        self._options["version"] = str(version)
        return self

    v = version

    def url(self) -> str:
        return str(self)

    def __str__(self) -> str:
        parts = [
            (self.prefix or "").strip("/"),
            serialize_options(self._options),
            self.source,
            self.path.lstrip("/"),
        ]
        return "/" + "/".join(p for p in parts if p)

    def __repr__(self) -> str:
        return f"UrlBuilder({self.url()!r})"


def imgproxy_url(source: str, path: str, prefix: str | None = None) -> UrlBuilder:
    """Start a URL for ``path`` within ``source``."""
    return UrlBuilder(source, path, prefix)
